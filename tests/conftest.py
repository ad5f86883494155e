"""Shared test fixtures: file-backed async SQLite DB, seeded marketplace, test client."""

from collections.abc import AsyncGenerator
from datetime import timedelta
from types import SimpleNamespace

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

# Import all models so metadata is populated
import courier_cache.models  # noqa: F401
from courier_cache.api.deps import get_cache_registry, get_query_optimizer
from courier_cache.core.database import get_session
from courier_cache.core.registry import CacheRegistry
from courier_cache.main import app
from courier_cache.models.base import utcnow
from courier_cache.models.bid import Bid, BidStatus
from courier_cache.models.driver import Driver
from courier_cache.models.notification import Notification
from courier_cache.models.package import Package, PackageSize, PackageStatus
from courier_cache.models.transaction import Transaction, TransactionStatus, TransactionType
from courier_cache.models.trip import Trip
from courier_cache.models.user import User, UserType
from courier_cache.services.query_optimizer import QueryOptimizer

BERLIN = (52.5200, 13.4050)
HAMBURG = (53.5511, 9.9937)
MUNICH = (48.1351, 11.5820)
FRANKFURT = (50.1109, 8.6821)


class FakeClock:
    """Manually advanced stand-in for ``time.monotonic``."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
async def engine(tmp_path):
    # One file per test so concurrent sub-queries each get their own connection
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    async with eng.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def test_session_factory(engine):
    """Session factory bound to the test SQLite engine."""
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(test_session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with test_session_factory() as sess:
        yield sess
        await sess.rollback()


@pytest.fixture
def registry() -> CacheRegistry:
    return CacheRegistry()


@pytest.fixture
def optimizer(test_session_factory) -> QueryOptimizer:
    return QueryOptimizer(test_session_factory)


@pytest.fixture
async def marketplace(session: AsyncSession) -> SimpleNamespace:
    """Seed a small marketplace: 3 users, 1 driver, 3 packages, 3 trips, 3 bids."""
    base = utcnow() - timedelta(hours=1)

    customer = User(
        email="ada@example.com", first_name="Ada", last_name="Lovelace",
        user_type=UserType.CUSTOMER, created_at=base,
    )
    driver_user = User(
        email="grace@example.com", first_name="Grace", last_name="Hopper",
        user_type=UserType.DRIVER, identity_verified=True, created_at=base + timedelta(minutes=1),
    )
    admin = User(
        email="root@example.com", first_name="Root", last_name="Admin",
        user_type=UserType.ADMIN, created_at=base + timedelta(minutes=2),
    )
    session.add_all([customer, driver_user, admin])
    await session.flush()

    driver = Driver(
        user_id=driver_user.id, rating=4.8, vehicle_type="VAN", vehicle_capacity="LARGE",
    )
    session.add(driver)
    await session.flush()

    cheap = Package(
        customer_id=customer.id, description="Books", price_offered=10.0,
        size=PackageSize.SMALL, status=PackageStatus.PENDING,
        created_at=base + timedelta(minutes=3),
    )
    pricey = Package(
        customer_id=customer.id, description="Monitor", price_offered=50.0,
        size=PackageSize.LARGE, weight=7.5, status=PackageStatus.PENDING,
        created_at=base + timedelta(minutes=4),
    )
    delivered = Package(
        customer_id=customer.id, description="Shoes", price_offered=30.0,
        size=PackageSize.MEDIUM, status=PackageStatus.DELIVERED,
        created_at=base + timedelta(minutes=5),
    )
    session.add_all([cheap, pricey, delivered])
    await session.flush()

    departure = utcnow() + timedelta(days=1)
    berlin_hamburg = Trip(
        driver_id=driver.id,
        start_lat=BERLIN[0], start_lng=BERLIN[1], end_lat=HAMBURG[0], end_lng=HAMBURG[1],
        departure_time=departure, available_capacity="LARGE",
    )
    munich_frankfurt = Trip(
        driver_id=driver.id,
        start_lat=MUNICH[0], start_lng=MUNICH[1], end_lat=FRANKFURT[0], end_lng=FRANKFURT[1],
        departure_time=departure + timedelta(hours=1), available_capacity="SMALL",
    )
    berlin_hamburg_late = Trip(
        driver_id=driver.id,
        start_lat=BERLIN[0] + 0.05, start_lng=BERLIN[1], end_lat=HAMBURG[0], end_lng=HAMBURG[1] + 0.05,
        departure_time=departure + timedelta(hours=2), available_capacity="LARGE",
    )
    session.add_all([berlin_hamburg, munich_frankfurt, berlin_hamburg_late])

    bids = [
        Bid(package_id=cheap.id, driver_id=driver.id, amount=9.0,
            created_at=base + timedelta(minutes=6)),
        Bid(package_id=cheap.id, driver_id=driver.id, amount=8.5, message="Can do today",
            created_at=base + timedelta(minutes=7)),
        Bid(package_id=pricey.id, driver_id=driver.id, amount=45.0, status=BidStatus.ACCEPTED,
            created_at=base + timedelta(minutes=8)),
    ]
    session.add_all(bids)

    session.add_all([
        Transaction(user_id=customer.id, amount=100.0, status=TransactionStatus.COMPLETED,
                    created_at=base + timedelta(minutes=9)),
        Transaction(user_id=customer.id, amount=50.0, status=TransactionStatus.COMPLETED,
                    type=TransactionType.PAYMENT, created_at=base + timedelta(minutes=10)),
        Transaction(user_id=driver_user.id, amount=20.0, status=TransactionStatus.PENDING,
                    type=TransactionType.PAYOUT, created_at=base + timedelta(minutes=11)),
    ])

    session.add_all([
        Notification(user_id=customer.id, type="BID_RECEIVED", title="New bid",
                     created_at=base + timedelta(minutes=12)),
        Notification(user_id=customer.id, type="BID_RECEIVED", title="Another bid",
                     created_at=base + timedelta(minutes=13)),
        Notification(user_id=customer.id, type="SYSTEM", title="Welcome", is_read=True,
                     created_at=base + timedelta(minutes=14)),
    ])
    await session.commit()

    return SimpleNamespace(
        customer=customer,
        driver_user=driver_user,
        admin=admin,
        driver=driver,
        cheap=cheap,
        pricey=pricey,
        delivered=delivered,
        berlin_hamburg=berlin_hamburg,
        munich_frankfurt=munich_frankfurt,
        berlin_hamburg_late=berlin_hamburg_late,
        bids=bids,
    )


@pytest.fixture
async def client(session, registry, optimizer) -> AsyncGenerator[AsyncClient, None]:
    """HTTPX async test client with DB session, cache and optimizer overrides."""

    async def _override_session():
        yield session

    app.dependency_overrides[get_session] = _override_session
    app.dependency_overrides[get_cache_registry] = lambda: registry
    app.dependency_overrides[get_query_optimizer] = lambda: optimizer
    app.state.request_metrics.clear()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
    app.state.request_metrics.clear()
