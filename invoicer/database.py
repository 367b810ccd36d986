"""Database connection and session management"""

from functools import lru_cache
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base

from invoicer.config import settings

# Base class for all models
Base = declarative_base()


def build_engine(database_url: str, **kwargs) -> AsyncEngine:
    """
    Create an async engine for the given URL.

    Pool sizing only applies to server databases; SQLite URLs are used as-is.
    """
    if not database_url.startswith("sqlite"):
        kwargs.setdefault("pool_pre_ping", True)
        kwargs.setdefault("pool_size", settings.database_pool_size)
        kwargs.setdefault("max_overflow", settings.database_max_overflow)

    return create_async_engine(database_url, **kwargs)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to an engine"""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@lru_cache(maxsize=1)
def get_engine() -> AsyncEngine:
    """Application engine, created on first use"""
    return build_engine(
        settings.async_database_url,
        echo=settings.environment == "development",
    )


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """
    FastAPI dependency that provides the session factory.

    The repository opens one session per unit of work, so routes receive the
    factory rather than a live session.
    """
    return build_session_factory(get_engine())

