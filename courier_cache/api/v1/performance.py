"""Performance endpoints: health, cache and query metrics, recommendations."""

import time
from datetime import datetime
from enum import StrEnum
from typing import Annotated

from fastapi import APIRouter, HTTPException, Query, Request, status
from pydantic import BaseModel
from sqlalchemy import text

from courier_cache.api.deps import Caches, Optimizer, Requests, Session
from courier_cache.core.config import get_settings
from courier_cache.core.registry import CacheRegistry
from courier_cache.models.base import utcnow
from courier_cache.services.performance import (
    OptimizationSuggestion,
    PerformanceSample,
    Recommendation,
    RequestSample,
    aggregate_requests,
    merge_recommendations,
)

router = APIRouter(prefix="/performance", tags=["performance"])

settings = get_settings()
_start_time = time.time()

_HEALTH_PROBE_KEY = "__health_probe__"


class ComponentStatus(StrEnum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    CRITICAL = "critical"
    UNKNOWN = "unknown"


# ── Schemas ──────────────────────────────────────────────────

class Components(BaseModel):
    database: ComponentStatus
    cache: ComponentStatus
    storage: ComponentStatus
    messaging: ComponentStatus


class HealthMetrics(BaseModel):
    response_time_ms: int
    database_query_time_ms: int | None
    cache_hit_rate: float | None


class SystemHealth(BaseModel):
    status: ComponentStatus
    uptime_seconds: int
    version: str
    environment: str
    last_health_check: datetime
    components: Components
    metrics: HealthMetrics


class RequestAggregate(BaseModel):
    count: int
    average_response_time_ms: float
    error_rate: float


class QueryOptimizationReport(BaseModel):
    samples: list[PerformanceSample]
    suggestions: list[OptimizationSuggestion]


class MetricsResponse(BaseModel):
    requests: list[RequestSample]
    aggregated: RequestAggregate
    query_optimization: QueryOptimizationReport
    cache: dict[str, dict]
    timestamp: datetime


class DatabaseMetrics(BaseModel):
    statistics: dict[str, int]
    query_time_ms: int
    slow_queries: list[PerformanceSample]
    recommendations: list[str]


class OverallCache(BaseModel):
    total_size: int
    total_max_size: int
    utilization_rate: float
    total_entries: int


class CacheMetrics(BaseModel):
    caches: dict[str, dict]
    overall: OverallCache
    recommendations: list[str]


class RecommendationSummary(BaseModel):
    total: int
    high: int
    medium: int
    low: int


class RecommendationsResponse(BaseModel):
    recommendations: list[Recommendation]
    summary: RecommendationSummary


class InvalidationResult(BaseModel):
    domain: str
    removed: int


# ── Routes ───────────────────────────────────────────────────

@router.get("/health", response_model=SystemHealth)
async def system_health(request: Request, session: Session, caches: Caches) -> SystemHealth:
    """Component health from real probes; unmonitored components report ``unknown``."""
    t0 = time.monotonic()
    db_status, db_latency = await _check_database(session)
    cache_status = _check_cache(caches)

    components = Components(
        database=db_status,
        cache=cache_status,
        storage=ComponentStatus.UNKNOWN,
        messaging=ComponentStatus.UNKNOWN,
    )
    return SystemHealth(
        status=_overall_status([db_status, cache_status]),
        uptime_seconds=int(time.time() - _start_time),
        version=request.app.version,
        environment=settings.environment,
        last_health_check=utcnow(),
        components=components,
        metrics=HealthMetrics(
            response_time_ms=int((time.monotonic() - t0) * 1000),
            database_query_time_ms=db_latency,
            cache_hit_rate=_combined_hit_rate(caches),
        ),
    )


@router.get("/metrics", response_model=MetricsResponse)
async def performance_metrics(
    caches: Caches,
    optimizer: Optimizer,
    requests: Requests,
    limit: Annotated[int, Query(ge=1, le=1000)] = 100,
) -> MetricsResponse:
    recent = requests.recent(limit)
    query_metrics = optimizer.get_performance_metrics()
    return MetricsResponse(
        requests=recent,
        aggregated=RequestAggregate(**aggregate_requests(recent)),
        query_optimization=QueryOptimizationReport(**query_metrics),
        cache={name: s.as_dict() for name, s in caches.stats().items()},
        timestamp=utcnow(),
    )


@router.get("/database", response_model=DatabaseMetrics)
async def database_metrics(optimizer: Optimizer) -> DatabaseMetrics:
    t0 = time.monotonic()
    counts = await optimizer.entity_counts()
    query_time = int((time.monotonic() - t0) * 1000)
    return DatabaseMetrics(
        statistics=counts,
        query_time_ms=query_time,
        slow_queries=optimizer.metrics.slow_samples(),
        recommendations=[s.description for s in optimizer.metrics.suggestions()],
    )


@router.get("/cache", response_model=CacheMetrics)
async def cache_metrics(caches: Caches) -> CacheMetrics:
    stats = caches.stats()
    overall = caches.overall(stats)
    return CacheMetrics(
        caches={name: s.as_dict() for name, s in stats.items()},
        overall=OverallCache(
            total_size=overall.total_size,
            total_max_size=overall.total_max_size,
            utilization_rate=overall.utilization_rate,
            total_entries=overall.total_entries,
        ),
        recommendations=caches.recommendations(stats),
    )


@router.get("/recommendations", response_model=RecommendationsResponse)
async def optimization_recommendations(
    caches: Caches, optimizer: Optimizer
) -> RecommendationsResponse:
    merged = merge_recommendations(optimizer.metrics.suggestions(), caches.recommendations())
    return RecommendationsResponse(
        recommendations=merged,
        summary=RecommendationSummary(
            total=len(merged),
            high=sum(1 for r in merged if r.impact == "HIGH"),
            medium=sum(1 for r in merged if r.impact == "MEDIUM"),
            low=sum(1 for r in merged if r.impact == "LOW"),
        ),
    )


@router.delete("/data", status_code=status.HTTP_204_NO_CONTENT)
async def clear_performance_data(
    caches: Caches, optimizer: Optimizer, requests: Requests
) -> None:
    """Drop request samples, query samples and every cached entry."""
    requests.clear()
    optimizer.clear_metrics()
    caches.clear_all()


@router.delete("/cache/{domain}", response_model=InvalidationResult)
async def invalidate_cache(
    domain: str,
    caches: Caches,
    entity_id: str | None = None,
) -> InvalidationResult:
    """Invalidate entries mentioning ``entity_id``, or the whole domain without one."""
    if domain not in caches:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown cache domain: {domain}",
        )
    removed = caches.invalidate(domain, entity_id)
    return InvalidationResult(domain=domain, removed=removed)


# ── Helpers ──────────────────────────────────────────────────

async def _check_database(session) -> tuple[ComponentStatus, int | None]:
    try:
        t0 = time.monotonic()
        await session.execute(text("SELECT 1"))
        latency = int((time.monotonic() - t0) * 1000)
    except Exception:
        return ComponentStatus.CRITICAL, None
    if latency < 100:
        return ComponentStatus.HEALTHY, latency
    if latency < 500:
        return ComponentStatus.DEGRADED, latency
    return ComponentStatus.CRITICAL, latency


def _check_cache(caches: CacheRegistry) -> ComponentStatus:
    store = caches.package
    if len(store) >= store.max_size:
        # Writing the probe would evict a real entry; a stats read is enough
        store.stats()
        return ComponentStatus.HEALTHY
    store.set(_HEALTH_PROBE_KEY, "ok", ttl=1)
    ok = _HEALTH_PROBE_KEY in store
    store.delete(_HEALTH_PROBE_KEY)
    return ComponentStatus.HEALTHY if ok else ComponentStatus.DEGRADED


def _overall_status(statuses: list[ComponentStatus]) -> ComponentStatus:
    if ComponentStatus.CRITICAL in statuses:
        return ComponentStatus.CRITICAL
    if ComponentStatus.DEGRADED in statuses:
        return ComponentStatus.DEGRADED
    return ComponentStatus.HEALTHY


def _combined_hit_rate(caches: CacheRegistry) -> float | None:
    stats = caches.stats().values()
    hits = sum(s.hits for s in stats)
    lookups = hits + sum(s.misses for s in stats)
    return round(hits / lookups, 4) if lookups else None
