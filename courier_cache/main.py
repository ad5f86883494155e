"""FastAPI application entrypoint."""

import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from courier_cache.api.v1 import v1_router
from courier_cache.core.config import get_settings
from courier_cache.core.database import async_session_factory, close_db, init_db
from courier_cache.core.registry import CacheRegistry
from courier_cache.services.performance import QueryMetrics, RequestMetrics
from courier_cache.services.query_optimizer import QueryOptimizer
from courier_cache.workers.sweep import CacheSweeper

_settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # Startup: ensure tables exist, then start expiring cache entries
    await init_db()
    sweeper = CacheSweeper(
        app.state.cache_registry, interval=_settings.cache_sweep_interval_seconds
    )
    sweeper.start()
    yield
    await sweeper.stop()
    await close_db()


app = FastAPI(
    title="Courier Cache",
    version="0.1.0",
    description="Caching and query-optimization core for the courier marketplace",
    lifespan=lifespan,
)

# ── Process-wide singletons, handed out via api.deps ─────────
app.state.cache_registry = CacheRegistry.from_settings(_settings)
app.state.query_optimizer = QueryOptimizer(
    async_session_factory,
    QueryMetrics(
        max_samples=_settings.metrics_max_samples,
        slow_threshold_ms=_settings.slow_query_threshold_ms,
    ),
)
app.state.request_metrics = RequestMetrics(max_samples=_settings.metrics_max_samples)

# ── CORS ─────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in _settings.allowed_origins.split(",")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Request timing ───────────────────────────────────────────
@app.middleware("http")
async def record_request_timing(request: Request, call_next):
    t0 = time.monotonic()
    response = await call_next(request)
    duration_ms = int((time.monotonic() - t0) * 1000)
    request.app.state.request_metrics.record(
        request.method, request.url.path, response.status_code, duration_ms
    )
    return response


# ── API routes ───────────────────────────────────────────────
app.include_router(v1_router)


@app.get("/health", tags=["system"])
async def health_check() -> dict:
    return {"status": "ok"}
