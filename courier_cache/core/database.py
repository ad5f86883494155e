"""Async engine and the session factory shared by the query optimizer."""

from collections.abc import AsyncGenerator

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

from courier_cache.core.config import Settings, get_settings

settings = get_settings()


def build_engine(cfg: Settings) -> AsyncEngine:
    """Create the engine; SQLite URLs skip the pool sizing Postgres needs."""
    if make_url(cfg.database_url).get_backend_name() == "sqlite":
        return create_async_engine(cfg.database_url, echo=cfg.database_echo)
    # One optimizer call may hold up to six connections at once
    return create_async_engine(
        cfg.database_url,
        echo=cfg.database_echo,
        pool_size=cfg.database_pool_size,
        max_overflow=cfg.database_max_overflow,
        pool_pre_ping=True,
    )


engine = build_engine(settings)

async_session_factory = sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_factory() as session:
        yield session


async def init_db() -> None:
    """Create any missing marketplace tables."""
    import courier_cache.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def close_db() -> None:
    await engine.dispose()
