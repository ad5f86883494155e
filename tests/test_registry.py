"""Tests for per-domain cache handles and invalidation."""

from courier_cache.core.config import Settings
from courier_cache.core.registry import DOMAIN_TTLS, CacheRegistry


def test_default_domain_ttls():
    registry = CacheRegistry()
    assert registry.names == ["package", "trip", "bid", "user", "dashboard"]
    assert registry.package.default_ttl == 120
    assert registry.trip.default_ttl == 60
    assert registry.bid.default_ttl == 30
    assert registry.user.default_ttl == 600
    assert registry.dashboard.default_ttl == 300
    assert DOMAIN_TTLS["user"] == 600


def test_ttl_overrides_merge_with_defaults():
    registry = CacheRegistry({"bid": 5})
    assert registry.bid.default_ttl == 5
    assert registry.package.default_ttl == 120


def test_stores_are_independent(clock):
    registry = CacheRegistry(clock=clock)
    registry.package.set("k", "package value")
    registry.trip.set("k", "trip value")

    assert registry.package.get("k") == "package value"
    assert registry.trip.get("k") == "trip value"
    registry.package.clear()
    assert registry.trip.get("k") == "trip value"


def test_key_helpers():
    assert CacheRegistry.package_key({"b": 1, "a": 2}) == 'packages:{"a":2,"b":1}'
    assert CacheRegistry.trip_key({}) == "trips:{}"
    assert CacheRegistry.bid_key({"status": "PENDING"}).startswith("bids:")
    assert CacheRegistry.user_key("u1", "profile") == "user:u1:profile"
    assert CacheRegistry.notification_key("u1", {"limit": 20}) == 'user:u1:notifications:{"limit":20}'
    assert CacheRegistry.dashboard_key() == "dashboard:global"
    assert CacheRegistry.dashboard_key("admin-7") == "dashboard:admin-7"


def test_invalidate_package_by_id_also_drops_listings(clock):
    registry = CacheRegistry(clock=clock)
    registry.package.set(registry.package_key({"status": "PENDING"}), "listing")
    registry.package.set("package:abc", "detail")
    registry.package.set("package:xyz", "other detail")

    removed = registry.invalidate_packages("abc")

    assert removed == 2
    assert registry.package.keys() == ["package:xyz"]


def test_invalidate_without_id_clears_domain(clock):
    registry = CacheRegistry(clock=clock)
    registry.trip.set("trips:{}", 1)
    registry.trip.set("trip:1", 2)
    registry.bid.set("bids:{}", 3)

    assert registry.invalidate_trips() == 2
    assert len(registry.trip) == 0
    assert len(registry.bid) == 1


def test_invalidate_user_only_touches_that_user(clock):
    registry = CacheRegistry(clock=clock)
    registry.user.set(registry.user_key("u1", "profile"), 1)
    registry.user.set(registry.notification_key("u1", {}), 2)
    registry.user.set(registry.user_key("u2", "profile"), 3)

    assert registry.invalidate_user("u1") == 2
    assert registry.user.keys() == ["user:u2:profile"]


def test_invalidate_dashboard(clock):
    registry = CacheRegistry(clock=clock)
    registry.dashboard.set(registry.dashboard_key(), {})
    assert registry.invalidate_dashboard() == 1
    assert registry.invalidate_dashboard() == 0


def test_cleanup_expired_reports_per_domain(clock):
    registry = CacheRegistry(clock=clock)
    registry.bid.set("bids:{}", 1)       # 30s
    registry.package.set("packages:{}", 2)  # 120s
    clock.advance(31)

    removed = registry.cleanup_expired()
    assert removed["bid"] == 1
    assert removed["package"] == 0
    assert len(registry.package) == 1


def test_clear_all_resets_entries_and_counters(clock):
    registry = CacheRegistry(clock=clock)
    registry.package.set("k", 1)
    registry.package.get("k")
    registry.user.set("k", 1)

    registry.clear_all()

    for stats in registry.stats().values():
        assert stats.size == 0
        assert stats.hits == 0
        assert stats.misses == 0


def test_overall_stats(clock):
    registry = CacheRegistry(max_size=10, clock=clock)
    registry.package.set("a", 1)
    registry.package.set("b", 2)
    registry.user.set("c", 3)

    overall = registry.overall()
    assert overall.total_size == 3
    assert overall.total_entries == 3
    assert overall.total_max_size == 50
    assert overall.utilization_rate == 6.0


def test_recommendations_flag_crowded_caches(clock):
    registry = CacheRegistry(max_size=5, clock=clock)
    for i in range(5):
        registry.package.set(f"k{i}", i)

    assert registry.recommendations() == ["High cache utilization for package cache (100.0%)"]


def test_recommendations_flag_old_entries(clock):
    registry = CacheRegistry(clock=clock)
    registry.user.set("user:u1:profile", {})
    clock.advance(3601)

    assert registry.recommendations() == ["Old entries in user cache (avg age: 60.0 minutes)"]


def test_recommendations_empty_for_healthy_caches(clock):
    registry = CacheRegistry(clock=clock)
    registry.package.set("k", 1)
    assert registry.recommendations() == []


def test_from_settings():
    settings = Settings(cache_max_size=50, cache_bid_ttl_seconds=5, cache_single_flight=True)
    registry = CacheRegistry.from_settings(settings)

    assert registry.bid.default_ttl == 5
    assert registry.package.max_size == 50
    assert registry.user.single_flight is True
