"""API-specific test fixtures."""

from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta

import pytest
from fakeredis import FakeAsyncRedis
from fastapi import FastAPI
from fastapi.testclient import TestClient

from vidgen.core.auth import CurrentUser, require_auth

ADMIN_ID = "admin-user"
SCALE_ID = "scale-user"
FREE_ID = "free-user"


async def _seed_users() -> None:
    from vidgen.db.base import get_session_factory
    from vidgen.db.models.user import User

    async with get_session_factory()() as session:
        session.add_all([
            User(id=ADMIN_ID, username="admin", is_admin=True),
            User(
                id=SCALE_ID,
                username="scaler",
                plan_type="scale",
                plan_expiry=datetime.now(UTC) + timedelta(days=10),
            ),
            User(id=FREE_ID, username="freebie"),
        ])
        await session.commit()


@pytest.fixture
def api_client(tmp_path):
    """FastAPI test client backed by a throwaway SQLite file and fake Redis.

    The database and Redis client are created inside the TestClient's own
    event loop so route handlers can use the shared factories.
    """
    from vidgen.api.routes import api_router
    from vidgen.core.config import get_settings
    from vidgen.db import close_db, init_db
    from vidgen.db.redis import get_redis
    from vidgen.db.seed import seed_rotation_settings
    from vidgen.main import register_exception_handlers

    db_url = f"sqlite+aiosqlite:///{tmp_path / 'vidgen_api.db'}"
    fake = {}

    @asynccontextmanager
    async def test_lifespan(app: FastAPI):
        """Test lifespan - initialize DB in TestClient's event loop."""
        import vidgen.db.base as db_mod

        db_mod._engine = None
        db_mod._session_factory = None
        await init_db(db_url)
        await seed_rotation_settings()
        await _seed_users()
        fake["redis"] = FakeAsyncRedis(decode_responses=True)
        yield
        await fake["redis"].aclose()
        await close_db()

    settings = get_settings()
    app = FastAPI(title=settings.app_name, description="VidGen - Test Client", lifespan=test_lifespan)
    register_exception_handlers(app)
    app.include_router(api_router, prefix="/api")
    app.dependency_overrides[get_redis] = lambda: fake["redis"]

    with TestClient(app) as client:
        yield client


@pytest.fixture
def login(api_client):
    """Authenticate subsequent requests as ``user_id``."""

    def _login(user_id: str) -> None:
        async def _override():
            return CurrentUser(user_id=user_id, claims={"sub": user_id})

        api_client.app.dependency_overrides[require_auth] = _override

    return _login
