"""Async engine and session factory construction."""

from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from bustrack.config import Settings


def create_engine(settings: Settings) -> AsyncEngine:
    """Build the async engine for the configured store."""
    if settings.database_url.startswith("sqlite"):
        # In-memory SQLite must share one connection across sessions
        return create_async_engine(
            settings.database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_async_engine(settings.database_url, pool_pre_ping=True)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(engine, expire_on_commit=False)
