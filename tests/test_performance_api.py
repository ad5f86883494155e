"""Tests for the performance monitoring endpoints."""

import pytest
from httpx import AsyncClient

from courier_cache.main import app


@pytest.mark.asyncio
async def test_system_health(client: AsyncClient):
    """GET /v1/performance/health probes the database and the cache."""
    resp = await client.get("/v1/performance/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] in ("healthy", "degraded")
    assert data["version"] == "0.1.0"
    assert data["components"]["cache"] == "healthy"
    assert data["components"]["storage"] == "unknown"
    assert data["components"]["messaging"] == "unknown"
    assert data["metrics"]["database_query_time_ms"] >= 0


@pytest.mark.asyncio
async def test_health_probe_leaves_no_cache_entry(client: AsyncClient, registry):
    await client.get("/v1/performance/health")
    assert len(registry.package) == 0


@pytest.mark.asyncio
async def test_metrics_include_requests_queries_and_cache(client: AsyncClient, marketplace):
    """Request timings come from the middleware, query samples from the optimizer."""
    await client.get("/v1/search/packages")

    resp = await client.get("/v1/performance/metrics", params={"limit": 10})
    assert resp.status_code == 200
    data = resp.json()
    assert [r["path"] for r in data["requests"]] == ["/v1/search/packages"]
    assert data["aggregated"]["count"] == 1
    assert data["aggregated"]["error_rate"] == 0.0
    assert [s["operation"] for s in data["query_optimization"]["samples"]] == ["package_search"]
    assert data["cache"]["package"]["size"] == 1


@pytest.mark.asyncio
async def test_metrics_limit_validated(client: AsyncClient):
    resp = await client.get("/v1/performance/metrics", params={"limit": 0})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_database_metrics(client: AsyncClient, marketplace, optimizer):
    optimizer.metrics.record("trip_search", 1500, 10)

    resp = await client.get("/v1/performance/database")
    assert resp.status_code == 200
    data = resp.json()
    assert data["statistics"] == {
        "users": 3, "packages": 3, "trips": 3, "bids": 3, "transactions": 3,
    }
    assert [s["operation"] for s in data["slow_queries"]] == ["trip_search"]
    assert data["recommendations"] == ["Consider adding spatial index on trip location fields"]


@pytest.mark.asyncio
async def test_cache_metrics(client: AsyncClient, registry):
    registry.package.set("packages:{}", [])
    registry.user.set("user:u1:profile", {})

    resp = await client.get("/v1/performance/cache")
    assert resp.status_code == 200
    data = resp.json()
    assert set(data["caches"]) == {"package", "trip", "bid", "user", "dashboard"}
    assert data["overall"]["total_size"] == 2
    assert data["overall"]["total_max_size"] == 5000
    assert data["recommendations"] == []


@pytest.mark.asyncio
async def test_recommendations(client: AsyncClient, optimizer):
    """Slow queries turn into prioritized database recommendations."""
    optimizer.metrics.record("notification_query", 1200, 100)
    optimizer.metrics.record("package_search", 1500, 20)

    resp = await client.get("/v1/performance/recommendations")
    assert resp.status_code == 200
    data = resp.json()
    assert [r["impact"] for r in data["recommendations"]] == ["HIGH", "LOW"]
    assert data["recommendations"][0]["type"] == "DATABASE"
    assert data["summary"] == {"total": 2, "high": 1, "medium": 0, "low": 1}


@pytest.mark.asyncio
async def test_clear_performance_data(client: AsyncClient, registry, optimizer, marketplace):
    await client.get("/v1/search/packages")
    assert len(registry.package) == 1

    resp = await client.delete("/v1/performance/data")
    assert resp.status_code == 204
    assert len(registry.package) == 0
    assert len(optimizer.metrics) == 0
    # Only the DELETE itself was recorded after the reset
    assert [s.method for s in app.state.request_metrics.recent(10)] == ["DELETE"]


@pytest.mark.asyncio
async def test_invalidate_cache_domain(client: AsyncClient, registry):
    registry.bid.set("bids:{}", [])
    registry.bid.set("bid:b1", {})
    registry.bid.set("bid:b2", {})

    resp = await client.delete("/v1/performance/cache/bid", params={"entity_id": "b1"})
    assert resp.status_code == 200
    assert resp.json() == {"domain": "bid", "removed": 2}
    assert registry.bid.keys() == ["bid:b2"]

    resp = await client.delete("/v1/performance/cache/bid")
    assert resp.json()["removed"] == 1


@pytest.mark.asyncio
async def test_invalidate_unknown_domain(client: AsyncClient):
    resp = await client.delete("/v1/performance/cache/invoices")
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_health_check_does_not_evict_from_full_cache(client: AsyncClient, registry):
    """A full package cache is reported healthy without losing any entry."""
    store = registry.package
    for i in range(store.max_size):
        store.set(f"packages:{i}", i)

    resp = await client.get("/v1/performance/health")
    assert resp.json()["components"]["cache"] == "healthy"
    assert len(store) == store.max_size
    assert "packages:0" in store
