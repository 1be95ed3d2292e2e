"""Async SQLAlchemy engine and session factory for users, keys and settings."""

import structlog
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from vidgen.core.config import get_settings

logger = structlog.get_logger(__name__)


class Base(DeclarativeBase):
    pass


_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def engine_options(url: str) -> dict:
    """create_async_engine kwargs for ``url``."""
    settings = get_settings()
    if url.startswith("sqlite"):
        # Concurrent key reservations queue on the file lock
        return {"echo": settings.debug, "connect_args": {"timeout": 30}}
    return {
        "echo": settings.debug,
        "pool_pre_ping": True,
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
    }


async def init_db(url: str | None = None) -> None:
    """Create the engine and session factory, then any missing tables."""
    global _engine, _session_factory

    if _engine is not None:
        return

    db_url = url or get_settings().database_url
    _engine = create_async_engine(db_url, **engine_options(db_url))
    _session_factory = async_sessionmaker(_engine, class_=AsyncSession, expire_on_commit=False)

    import vidgen.db.models  # noqa: F401

    async with _engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return the shared session factory.

    Raises:
        RuntimeError: init_db() has not run
    """
    if _session_factory is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _session_factory


async def db_is_healthy() -> bool:
    if _session_factory is None:
        return False
    try:
        async with _session_factory() as session:
            await session.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.error("database_ping_failed", error=str(exc), error_type=type(exc).__name__)
        return False
    return True
