"""Cached read endpoints: cache-aside over the query optimizer."""

import uuid
from datetime import datetime
from typing import Annotated, Any

from fastapi import APIRouter, HTTPException, Query, status

from courier_cache.api.deps import Caches, Optimizer
from courier_cache.core.cache import generate_key
from courier_cache.models.base import as_utc
from courier_cache.models.query import (
    AnalyticsReport,
    BidFilters,
    DashboardData,
    NotificationFilters,
    Page,
    PackageFilters,
    TripFilters,
    UserSearch,
)

router = APIRouter(prefix="/search", tags=["search"])


@router.get("/packages", response_model=Page)
async def search_packages(
    filters: Annotated[PackageFilters, Query()],
    caches: Caches,
    optimizer: Optimizer,
) -> Page:
    key = caches.package_key(filters.cache_params())
    return await caches.package.get_or_compute(key, lambda: optimizer.search_packages(filters))


@router.get("/trips", response_model=Page)
async def search_trips(
    filters: Annotated[TripFilters, Query()],
    caches: Caches,
    optimizer: Optimizer,
) -> Page:
    """Trips by departure time; pass all four coordinates to filter by route."""
    key = caches.trip_key(filters.cache_params())
    return await caches.trip.get_or_compute(key, lambda: optimizer.search_trips(filters))


@router.get("/bids", response_model=Page)
async def list_bids(
    filters: Annotated[BidFilters, Query()],
    caches: Caches,
    optimizer: Optimizer,
) -> Page:
    key = caches.bid_key(filters.cache_params())
    return await caches.bid.get_or_compute(key, lambda: optimizer.get_bids(filters))


@router.get("/users", response_model=list[dict[str, Any]])
async def search_users(
    search: Annotated[UserSearch, Query()],
    caches: Caches,
    optimizer: Optimizer,
) -> list[dict[str, Any]]:
    """Users whose email or name contains ``q`` (case-insensitive)."""
    key = caches.user_search_key(search.cache_params())
    return await caches.user.get_or_compute(key, lambda: optimizer.search_users(search))


@router.get("/users/{user_id}/notifications", response_model=Page)
async def list_notifications(
    user_id: uuid.UUID,
    filters: Annotated[NotificationFilters, Query()],
    caches: Caches,
    optimizer: Optimizer,
) -> Page:
    key = caches.notification_key(user_id, filters.cache_params())
    return await caches.user.get_or_compute(
        key, lambda: optimizer.get_notifications(user_id, filters)
    )


@router.get("/dashboard", response_model=DashboardData)
async def get_dashboard(caches: Caches, optimizer: Optimizer) -> DashboardData:
    return await caches.dashboard.get_or_compute(
        caches.dashboard_key(), optimizer.get_dashboard_data
    )


@router.get("/analytics", response_model=AnalyticsReport)
async def get_analytics(
    start: datetime,
    end: datetime,
    caches: Caches,
    optimizer: Optimizer,
) -> AnalyticsReport:
    start, end = as_utc(start), as_utc(end)
    if start > end:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="start must not be after end",
        )
    key = generate_key("dashboard:analytics", {"start": start, "end": end})
    return await caches.dashboard.get_or_compute(
        key, lambda: optimizer.get_analytics(start, end)
    )
