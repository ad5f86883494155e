"""FastAPI dependencies resolving the process-wide cache and optimizer."""

from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from courier_cache.core.database import get_session
from courier_cache.core.registry import CacheRegistry
from courier_cache.services.performance import RequestMetrics
from courier_cache.services.query_optimizer import QueryOptimizer


def get_cache_registry(request: Request) -> CacheRegistry:
    return request.app.state.cache_registry


def get_query_optimizer(request: Request) -> QueryOptimizer:
    return request.app.state.query_optimizer


def get_request_metrics(request: Request) -> RequestMetrics:
    return request.app.state.request_metrics


# Typed shorthand for use in route signatures
Caches = Annotated[CacheRegistry, Depends(get_cache_registry)]
Optimizer = Annotated[QueryOptimizer, Depends(get_query_optimizer)]
Requests = Annotated[RequestMetrics, Depends(get_request_metrics)]
Session = Annotated[AsyncSession, Depends(get_session)]
