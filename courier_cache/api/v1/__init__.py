"""V1 API router aggregation."""

from fastapi import APIRouter

from courier_cache.api.v1.performance import router as performance_router
from courier_cache.api.v1.search import router as search_router

v1_router = APIRouter(prefix="/v1")
v1_router.include_router(search_router)
v1_router.include_router(performance_router)
