"""Filter and result schemas for the optimized read paths."""

import uuid
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from courier_cache.models.base import as_utc
from courier_cache.models.bid import BidStatus
from courier_cache.models.package import PackageSize, PackageStatus
from courier_cache.models.trip import TripStatus


# ── Filters ──────────────────────────────────────────────────

class CacheKeyed(BaseModel):
    def cache_params(self) -> dict:
        """JSON-safe filter dict for cache keys; unset filters are dropped."""
        return self.model_dump(mode="json", exclude_none=True)


class PageParams(CacheKeyed):
    limit: int = Field(default=20, gt=0, le=100)
    offset: int = Field(default=0, ge=0)


class PackageFilters(PageParams):
    status: PackageStatus | None = None
    customer_id: uuid.UUID | None = None
    min_price: float | None = Field(default=None, ge=0)
    max_price: float | None = Field(default=None, ge=0)
    size: PackageSize | None = None
    sort_by: Literal["created_at", "price_offered", "weight"] = "created_at"
    sort_order: Literal["asc", "desc"] = "desc"


class TripFilters(PageParams):
    driver_id: uuid.UUID | None = None
    status: TripStatus | None = None
    capacity: str | None = None
    departure_time_start: datetime | None = None
    departure_time_end: datetime | None = None
    start_lat: float | None = Field(default=None, ge=-90, le=90)
    start_lng: float | None = Field(default=None, ge=-180, le=180)
    end_lat: float | None = Field(default=None, ge=-90, le=90)
    end_lng: float | None = Field(default=None, ge=-180, le=180)
    radius: float = Field(default=50, gt=0)  # km

    @field_validator("departure_time_start", "departure_time_end")
    @classmethod
    def _to_utc(cls, value: datetime | None) -> datetime | None:
        return as_utc(value) if value is not None else None

    @property
    def has_route(self) -> bool:
        return None not in (self.start_lat, self.start_lng, self.end_lat, self.end_lng)


class BidFilters(PageParams):
    package_id: uuid.UUID | None = None
    driver_id: uuid.UUID | None = None
    status: BidStatus | None = None


class NotificationFilters(PageParams):
    type: str | None = None
    is_read: bool | None = None


class UserSearch(CacheKeyed):
    q: str = Field(min_length=1, max_length=100)
    limit: int = Field(default=10, gt=0, le=100)


# ── Results ──────────────────────────────────────────────────

class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class Page(BaseModel):
    items: list[dict[str, Any]]
    total: int
    pagination: Pagination


class DashboardSummary(BaseModel):
    total_users: int
    active_packages: int
    pending_bids: int
    total_revenue: float


class DashboardData(BaseModel):
    summary: DashboardSummary
    recent_users: list[dict[str, Any]]
    recent_transactions: list[dict[str, Any]]


class RevenueSummary(BaseModel):
    total: float
    count: int


class AnalyticsReport(BaseModel):
    packages: list[dict[str, Any]]
    bids: list[dict[str, Any]]
    users: list[dict[str, Any]]
    revenue: RevenueSummary
    generated_at: datetime
