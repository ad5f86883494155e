"""Per-domain cache handles, key helpers and invalidation.

Build one ``CacheRegistry`` at process start and share it; every domain store
is independent (own entries, own lock, own capacity).
"""

import logging
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass

from courier_cache.core.cache import (
    DEFAULT_MAX_SIZE,
    CacheStats,
    CacheStore,
    generate_key,
)
from courier_cache.core.config import Settings

logger = logging.getLogger(__name__)

PACKAGE = "package"
TRIP = "trip"
BID = "bid"
USER = "user"
DASHBOARD = "dashboard"

# Default TTLs in seconds
DOMAIN_TTLS: dict[str, float] = {
    PACKAGE: 2 * 60,
    TRIP: 60,
    BID: 30,
    USER: 10 * 60,
    DASHBOARD: 5 * 60,
}

# Listing namespaces wiped alongside any entity-scoped invalidation
_LIST_NAMESPACES = {
    PACKAGE: "packages:",
    TRIP: "trips:",
    BID: "bids:",
    USER: "user:search:",
}


@dataclass(slots=True)
class OverallCacheStats:
    total_size: int
    total_max_size: int
    utilization_rate: float
    total_entries: int


class CacheRegistry:
    """Named ``CacheStore`` instances, one per logical domain."""

    def __init__(
        self,
        ttls: dict[str, float] | None = None,
        *,
        max_size: int = DEFAULT_MAX_SIZE,
        single_flight: bool = False,
        clock: Callable[[], float] = time.monotonic,
        utilization_warning_percent: float = 80.0,
        age_warning_seconds: float = 60 * 60,
    ) -> None:
        ttls = {**DOMAIN_TTLS, **(ttls or {})}
        self._stores: dict[str, CacheStore] = {
            name: CacheStore(
                name,
                default_ttl=ttl,
                max_size=max_size,
                single_flight=single_flight,
                clock=clock,
            )
            for name, ttl in ttls.items()
        }
        self.utilization_warning_percent = utilization_warning_percent
        self.age_warning_seconds = age_warning_seconds

    @classmethod
    def from_settings(cls, settings: Settings) -> "CacheRegistry":
        return cls(
            {
                PACKAGE: settings.cache_package_ttl_seconds,
                TRIP: settings.cache_trip_ttl_seconds,
                BID: settings.cache_bid_ttl_seconds,
                USER: settings.cache_user_ttl_seconds,
                DASHBOARD: settings.cache_dashboard_ttl_seconds,
            },
            max_size=settings.cache_max_size,
            single_flight=settings.cache_single_flight,
            utilization_warning_percent=settings.cache_utilization_warning_percent,
            age_warning_seconds=settings.cache_age_warning_seconds,
        )

    def __getitem__(self, name: str) -> CacheStore:
        return self._stores[name]

    def __contains__(self, name: str) -> bool:
        return name in self._stores

    def __iter__(self) -> Iterator[CacheStore]:
        return iter(self._stores.values())

    @property
    def names(self) -> list[str]:
        return list(self._stores)

    @property
    def package(self) -> CacheStore:
        return self._stores[PACKAGE]

    @property
    def trip(self) -> CacheStore:
        return self._stores[TRIP]

    @property
    def bid(self) -> CacheStore:
        return self._stores[BID]

    @property
    def user(self) -> CacheStore:
        return self._stores[USER]

    @property
    def dashboard(self) -> CacheStore:
        return self._stores[DASHBOARD]

    # ── Key helpers ──────────────────────────────────────────

    @staticmethod
    def package_key(filters: dict) -> str:
        return generate_key("packages", filters)

    @staticmethod
    def trip_key(filters: dict) -> str:
        return generate_key("trips", filters)

    @staticmethod
    def bid_key(filters: dict) -> str:
        return generate_key("bids", filters)

    @staticmethod
    def user_key(user_id: object, data_type: str) -> str:
        return f"user:{user_id}:{data_type}"

    @staticmethod
    def notification_key(user_id: object, filters: dict) -> str:
        return generate_key(f"user:{user_id}:notifications", filters)

    @staticmethod
    def user_search_key(filters: dict) -> str:
        return generate_key("user:search", filters)

    @staticmethod
    def dashboard_key(admin_id: object = "global") -> str:
        return f"dashboard:{admin_id}"

    # ── Invalidation ─────────────────────────────────────────

    def invalidate(self, domain: str, entity_id: object | None = None) -> int:
        """Drop entries touching ``entity_id``, or the whole domain without one.

        Listing namespaces (package/trip/bid listings, user searches) go too,
        since any listing may contain the changed entity.
        """
        store = self._stores[domain]
        if entity_id is None:
            removed = len(store)
            store.clear()
        else:
            fragment = str(entity_id)
            namespace = _LIST_NAMESPACES.get(domain)
            removed = store.remove_where(
                lambda key: fragment in key or (namespace is not None and namespace in key)
            )
        if removed:
            logger.info("Invalidated %d %s cache entries (id=%s)", removed, domain, entity_id)
        return removed

    def invalidate_packages(self, package_id: object | None = None) -> int:
        return self.invalidate(PACKAGE, package_id)

    def invalidate_trips(self, trip_id: object | None = None) -> int:
        return self.invalidate(TRIP, trip_id)

    def invalidate_bids(self, bid_id: object | None = None) -> int:
        return self.invalidate(BID, bid_id)

    def invalidate_user(self, user_id: object) -> int:
        return self.invalidate(USER, user_id)

    def invalidate_dashboard(self) -> int:
        return self.invalidate(DASHBOARD)

    # ── Maintenance / reporting ──────────────────────────────

    def cleanup_expired(self) -> dict[str, int]:
        return {name: store.cleanup_expired() for name, store in self._stores.items()}

    def clear_all(self) -> None:
        for store in self._stores.values():
            store.clear()
            store.reset_counters()

    def stats(self) -> dict[str, CacheStats]:
        return {name: store.stats() for name, store in self._stores.items()}

    def overall(self, stats: dict[str, CacheStats] | None = None) -> OverallCacheStats:
        stats = stats if stats is not None else self.stats()
        total_size = sum(s.size for s in stats.values())
        total_max = sum(s.max_size for s in stats.values())
        utilization = (total_size / total_max) * 100 if total_max else 0.0
        return OverallCacheStats(
            total_size=total_size,
            total_max_size=total_max,
            utilization_rate=round(utilization, 2),
            total_entries=total_size,
        )

    def recommendations(self, stats: dict[str, CacheStats] | None = None) -> list[str]:
        """Warnings for crowded caches and caches holding stale-looking entries."""
        stats = stats if stats is not None else self.stats()
        warnings: list[str] = []
        for name, s in stats.items():
            utilization = (s.size / s.max_size) * 100
            if utilization > self.utilization_warning_percent:
                warnings.append(f"High cache utilization for {name} cache ({utilization:.1f}%)")
            if s.entries:
                avg_age = sum(e.age_seconds for e in s.entries) / len(s.entries)
                if avg_age > self.age_warning_seconds:
                    warnings.append(
                        f"Old entries in {name} cache (avg age: {avg_age / 60:.1f} minutes)"
                    )
        return warnings
