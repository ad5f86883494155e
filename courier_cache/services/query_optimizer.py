"""Optimized read paths for the marketplace's heaviest queries.

Each operation projects only the columns its callers render, runs the page
fetch and the count concurrently on separate sessions, and records a
performance sample. Database errors propagate unchanged.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
import uuid
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from courier_cache.core.geo import within_radius
from courier_cache.models.base import utcnow
from courier_cache.models.bid import Bid, BidStatus
from courier_cache.models.driver import Driver
from courier_cache.models.notification import Notification
from courier_cache.models.package import Package, PackageStatus
from courier_cache.models.query import (
    AnalyticsReport,
    BidFilters,
    DashboardData,
    DashboardSummary,
    NotificationFilters,
    Page,
    PackageFilters,
    Pagination,
    RevenueSummary,
    TripFilters,
    UserSearch,
)
from courier_cache.models.transaction import Transaction, TransactionStatus
from courier_cache.models.trip import Trip
from courier_cache.models.user import User
from courier_cache.services.performance import QueryMetrics

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AsyncSession]

# How many candidate trips to pull per requested row when filtering by distance
TRIP_OVERFETCH_FACTOR = 2
REVENUE_WINDOW = timedelta(days=30)
RECENT_LIMIT = 5


def paginate(total: int, limit: int, offset: int) -> Pagination:
    return Pagination(
        page=offset // limit + 1,
        limit=limit,
        total=total,
        total_pages=math.ceil(total / limit),
    )


def _like_pattern(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _nest(row: Mapping[str, Any]) -> dict[str, Any]:
    """Turn ``{"customer__id": 1}`` style labels into nested dicts."""
    out: dict[str, Any] = {}
    for key, value in row.items():
        *parents, leaf = key.split("__")
        target = out
        for part in parents:
            target = target.setdefault(part, {})
        target[leaf] = value
    return out


class _Probe:
    __slots__ = ("rows",)

    def __init__(self) -> None:
        self.rows = 0


class QueryOptimizer:
    """Read-path wrapper over the persistence layer with instrumentation."""

    def __init__(self, session_factory: SessionFactory, metrics: QueryMetrics | None = None) -> None:
        self._session_factory = session_factory
        self.metrics = metrics if metrics is not None else QueryMetrics()

    # ── Packages ─────────────────────────────────────────────

    async def search_packages(self, filters: PackageFilters) -> Page:
        with self._measure("package_search") as probe:
            where = []
            if filters.status:
                where.append(Package.status == filters.status)
            if filters.customer_id:
                where.append(Package.customer_id == filters.customer_id)
            if filters.size:
                where.append(Package.size == filters.size)
            if filters.min_price is not None:
                where.append(Package.price_offered >= filters.min_price)
            if filters.max_price is not None:
                where.append(Package.price_offered <= filters.max_price)

            sort_col = getattr(Package, filters.sort_by)
            order = sort_col.asc() if filters.sort_order == "asc" else sort_col.desc()

            stmt = (
                select(
                    Package.id,
                    Package.description,
                    Package.pickup_address,
                    Package.delivery_address,
                    Package.price_offered,
                    Package.status,
                    Package.size,
                    Package.weight,
                    Package.created_at,
                    User.id.label("customer__id"),
                    User.first_name.label("customer__first_name"),
                    User.last_name.label("customer__last_name"),
                )
                .join(User, User.id == Package.customer_id)
                .where(*where)
                .order_by(order, Package.id)
                .limit(filters.limit)
                .offset(filters.offset)
            )
            count_stmt = select(func.count()).select_from(Package).where(*where)

            items, total = await asyncio.gather(self._rows(stmt), self._scalar(count_stmt))
            probe.rows = len(items)

        return Page(items=items, total=total, pagination=paginate(total, filters.limit, filters.offset))

    # ── Trips ────────────────────────────────────────────────

    async def search_trips(self, filters: TripFilters) -> Page:
        """Trips ordered by departure, optionally near a start/end route.

        Distance filtering happens in-process on an over-fetched window, so
        ``total`` counts the unfiltered matches and can overstate the result.
        """
        with self._measure("trip_search") as probe:
            where = []
            if filters.driver_id:
                where.append(Trip.driver_id == filters.driver_id)
            if filters.status:
                where.append(Trip.status == filters.status)
            if filters.capacity:
                where.append(Trip.available_capacity == filters.capacity)
            if filters.departure_time_start:
                where.append(Trip.departure_time >= filters.departure_time_start)
            if filters.departure_time_end:
                where.append(Trip.departure_time <= filters.departure_time_end)

            stmt = (
                select(
                    Trip.id,
                    Trip.start_address,
                    Trip.end_address,
                    Trip.start_lat,
                    Trip.start_lng,
                    Trip.end_lat,
                    Trip.end_lng,
                    Trip.departure_time,
                    Trip.available_capacity,
                    Trip.status,
                    Driver.id.label("driver__id"),
                    Driver.rating.label("driver__rating"),
                    Driver.vehicle_type.label("driver__vehicle_type"),
                    Driver.vehicle_capacity.label("driver__vehicle_capacity"),
                    User.id.label("driver__user__id"),
                    User.first_name.label("driver__user__first_name"),
                    User.last_name.label("driver__user__last_name"),
                )
                .join(Driver, Driver.id == Trip.driver_id)
                .join(User, User.id == Driver.user_id)
                .where(*where)
                .order_by(Trip.departure_time.asc(), Trip.id)
                .limit(filters.limit * TRIP_OVERFETCH_FACTOR)
                .offset(filters.offset)
            )
            count_stmt = select(func.count()).select_from(Trip).where(*where)

            candidates, total = await asyncio.gather(self._rows(stmt), self._scalar(count_stmt))

            if filters.has_route:
                start = (filters.start_lat, filters.start_lng)
                end = (filters.end_lat, filters.end_lng)
                candidates = [
                    trip for trip in candidates
                    if within_radius(start, (trip["start_lat"], trip["start_lng"]), filters.radius)
                    and within_radius(end, (trip["end_lat"], trip["end_lng"]), filters.radius)
                ]

            items = candidates[: filters.limit]
            probe.rows = len(items)

        return Page(items=items, total=total, pagination=paginate(total, filters.limit, filters.offset))

    # ── Bids ─────────────────────────────────────────────────

    async def get_bids(self, filters: BidFilters) -> Page:
        with self._measure("bid_query") as probe:
            where = []
            if filters.package_id:
                where.append(Bid.package_id == filters.package_id)
            if filters.driver_id:
                where.append(Bid.driver_id == filters.driver_id)
            if filters.status:
                where.append(Bid.status == filters.status)

            driver_user = aliased(User, name="driver_user")
            customer = aliased(User, name="customer")

            stmt = (
                select(
                    Bid.id,
                    Bid.amount,
                    Bid.status,
                    Bid.message,
                    Bid.created_at,
                    Driver.id.label("driver__id"),
                    Driver.rating.label("driver__rating"),
                    driver_user.id.label("driver__user__id"),
                    driver_user.first_name.label("driver__user__first_name"),
                    driver_user.last_name.label("driver__user__last_name"),
                    Package.id.label("package__id"),
                    Package.description.label("package__description"),
                    Package.pickup_address.label("package__pickup_address"),
                    Package.delivery_address.label("package__delivery_address"),
                    Package.price_offered.label("package__price_offered"),
                    customer.id.label("package__customer__id"),
                    customer.first_name.label("package__customer__first_name"),
                    customer.last_name.label("package__customer__last_name"),
                )
                .join(Driver, Driver.id == Bid.driver_id)
                .join(driver_user, driver_user.id == Driver.user_id)
                .join(Package, Package.id == Bid.package_id)
                .join(customer, customer.id == Package.customer_id)
                .where(*where)
                .order_by(Bid.created_at.desc(), Bid.id)
                .limit(filters.limit)
                .offset(filters.offset)
            )
            count_stmt = select(func.count()).select_from(Bid).where(*where)

            items, total = await asyncio.gather(self._rows(stmt), self._scalar(count_stmt))
            probe.rows = len(items)

        return Page(items=items, total=total, pagination=paginate(total, filters.limit, filters.offset))

    # ── Notifications ────────────────────────────────────────

    async def get_notifications(self, user_id: uuid.UUID, filters: NotificationFilters) -> Page:
        with self._measure("notification_query") as probe:
            where = [Notification.user_id == user_id]
            if filters.type:
                where.append(Notification.type == filters.type)
            if filters.is_read is not None:
                where.append(Notification.is_read == filters.is_read)

            stmt = (
                select(
                    Notification.id,
                    Notification.type,
                    Notification.title,
                    Notification.message,
                    Notification.data,
                    Notification.is_read,
                    Notification.created_at,
                )
                .where(*where)
                .order_by(Notification.created_at.desc(), Notification.id)
                .limit(filters.limit)
                .offset(filters.offset)
            )
            count_stmt = select(func.count()).select_from(Notification).where(*where)

            items, total = await asyncio.gather(self._rows(stmt), self._scalar(count_stmt))
            probe.rows = len(items)

        return Page(items=items, total=total, pagination=paginate(total, filters.limit, filters.offset))

    # ── Users ────────────────────────────────────────────────

    async def search_users(self, search: UserSearch) -> list[dict[str, Any]]:
        """Case-insensitive substring match on email, first name or last name."""
        with self._measure("user_search") as probe:
            pattern = _like_pattern(search.q)
            stmt = (
                select(
                    User.id,
                    User.first_name,
                    User.last_name,
                    User.email,
                    User.user_type,
                    User.identity_verified,
                )
                .where(
                    or_(
                        User.first_name.ilike(pattern, escape="\\"),
                        User.last_name.ilike(pattern, escape="\\"),
                        User.email.ilike(pattern, escape="\\"),
                    )
                )
                .order_by(User.email)
                .limit(search.limit)
            )
            users = await self._rows(stmt)
            probe.rows = len(users)
        return users

    # ── Dashboard / analytics ────────────────────────────────

    async def get_dashboard_data(self) -> DashboardData:
        """Admin dashboard: headline counts plus the newest users and transactions."""
        with self._measure("dashboard_query") as probe:
            since = utcnow() - REVENUE_WINDOW
            (
                total_users,
                active_packages,
                pending_bids,
                total_revenue,
                recent_users,
                recent_transactions,
            ) = await asyncio.gather(
                self._scalar(select(func.count()).select_from(User)),
                self._scalar(
                    select(func.count()).select_from(Package)
                    .where(Package.status == PackageStatus.PENDING)
                ),
                self._scalar(
                    select(func.count()).select_from(Bid)
                    .where(Bid.status == BidStatus.PENDING)
                ),
                self._scalar(
                    select(func.coalesce(func.sum(Transaction.amount), 0)).where(
                        Transaction.status == TransactionStatus.COMPLETED,
                        Transaction.created_at >= since,
                    )
                ),
                self._rows(
                    select(
                        User.id,
                        User.email,
                        User.first_name,
                        User.last_name,
                        User.user_type,
                        User.created_at,
                    )
                    .order_by(User.created_at.desc())
                    .limit(RECENT_LIMIT)
                ),
                self._rows(
                    select(
                        Transaction.id,
                        Transaction.user_id,
                        Transaction.type,
                        Transaction.amount,
                        Transaction.status,
                        Transaction.description,
                        Transaction.created_at,
                    )
                    .order_by(Transaction.created_at.desc())
                    .limit(RECENT_LIMIT)
                ),
            )
            probe.rows = 1

        return DashboardData(
            summary=DashboardSummary(
                total_users=total_users,
                active_packages=active_packages,
                pending_bids=pending_bids,
                total_revenue=float(total_revenue or 0),
            ),
            recent_users=recent_users,
            recent_transactions=recent_transactions,
        )

    async def get_analytics(self, start: datetime, end: datetime) -> AnalyticsReport:
        """Grouped activity counts and completed revenue inside ``[start, end]``."""
        with self._measure("analytics_query") as probe:
            (packages, bids, users, revenue) = await asyncio.gather(
                self._rows(
                    select(Package.status.label("status"), func.count().label("count"))
                    .where(Package.created_at.between(start, end))
                    .group_by(Package.status)
                    .order_by(Package.status)
                ),
                self._rows(
                    select(
                        Bid.status.label("status"),
                        func.count().label("count"),
                        func.avg(Bid.amount).label("average_amount"),
                    )
                    .where(Bid.created_at.between(start, end))
                    .group_by(Bid.status)
                    .order_by(Bid.status)
                ),
                self._rows(
                    select(User.user_type.label("user_type"), func.count().label("count"))
                    .where(User.created_at.between(start, end))
                    .group_by(User.user_type)
                    .order_by(User.user_type)
                ),
                self._rows(
                    select(
                        func.coalesce(func.sum(Transaction.amount), 0).label("total"),
                        func.count(Transaction.id).label("count"),
                    ).where(
                        Transaction.status == TransactionStatus.COMPLETED,
                        Transaction.created_at.between(start, end),
                    )
                ),
            )
            probe.rows = len(packages) + len(bids) + len(users)

        totals = revenue[0]
        return AnalyticsReport(
            packages=packages,
            bids=bids,
            users=users,
            revenue=RevenueSummary(total=float(totals["total"] or 0), count=totals["count"]),
            generated_at=utcnow(),
        )

    async def entity_counts(self) -> dict[str, int]:
        with self._measure("entity_counts") as probe:
            models = {
                "users": User,
                "packages": Package,
                "trips": Trip,
                "bids": Bid,
                "transactions": Transaction,
            }
            counts = await asyncio.gather(
                *(self._scalar(select(func.count()).select_from(m)) for m in models.values())
            )
            probe.rows = len(models)
        return dict(zip(models, counts))

    # ── Metrics ──────────────────────────────────────────────

    def get_performance_metrics(self) -> dict:
        return {
            "samples": self.metrics.samples(),
            "suggestions": self.metrics.suggestions(),
        }

    def clear_metrics(self) -> None:
        self.metrics.clear()

    # ── Internals ────────────────────────────────────────────

    @contextmanager
    def _measure(self, operation: str) -> Iterator[_Probe]:
        probe = _Probe()
        started = time.perf_counter()
        try:
            yield probe
        except Exception:
            logger.warning("Query %s failed", operation, exc_info=True)
            raise
        duration_ms = int((time.perf_counter() - started) * 1000)
        sample = self.metrics.record(operation, duration_ms, probe.rows)
        if self.metrics.is_slow(sample):
            logger.warning("Slow query %s took %dms (%d rows)", operation, duration_ms, probe.rows)

    async def _rows(self, stmt) -> list[dict[str, Any]]:
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [_nest(row) for row in result.mappings().all()]

    async def _scalar(self, stmt) -> Any:
        async with self._session_factory() as session:
            return (await session.execute(stmt)).scalar_one()
