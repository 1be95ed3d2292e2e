"""Shared test fixtures for all test groups."""

from datetime import UTC, datetime

import pytest
from fakeredis import FakeAsyncRedis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from vidgen.db.base import Base
from vidgen.entitlements.schemas import UserSnapshot
from vidgen.quota.usage import QuotaTracker

NOW = datetime(2030, 6, 15, 10, 30, 0, tzinfo=UTC)


@pytest.fixture
async def redis():
    """Fake Redis with decode_responses=True, flushed after each test."""
    fake_redis = FakeAsyncRedis(decode_responses=True)
    yield fake_redis
    await fake_redis.flushall()
    await fake_redis.aclose()


@pytest.fixture
async def tracker(redis):
    return QuotaTracker(redis)


@pytest.fixture
async def session_factory(tmp_path):
    """File-backed SQLite database with all tables created.

    Also installs the factory as the global one so code calling
    get_session_factory() sees the same database.
    """
    import vidgen.db.base as db_mod
    import vidgen.db.models  # noqa: F401

    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'vidgen_test.db'}",
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    db_mod._engine = engine
    db_mod._session_factory = factory

    yield factory

    db_mod._engine = None
    db_mod._session_factory = None
    await engine.dispose()


@pytest.fixture
def make_user():
    """Build a UserSnapshot with sensible defaults."""

    def _make(**fields) -> UserSnapshot:
        fields.setdefault("id", "user-1")
        fields.setdefault("username", "tester")
        return UserSnapshot(**fields)

    return _make
