"""Health probes, correlation ids and the global error handlers."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from vidgen.core.exceptions import (
    DailyLimitReachedError,
    KeyNotFoundError,
    PlanExpiredError,
    PoolExhaustedError,
)
from vidgen.main import register_exception_handlers
from vidgen.middleware.correlation import setup_correlation_middleware

pytestmark = pytest.mark.integration


def test_health(api_client):
    response = api_client.get("/api/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "service": "vidgen-backend"}


def test_health_reports_draining(api_client):
    api_client.app.state.shutting_down = True
    assert api_client.get("/api/health").status_code == 503


def test_ready_is_degraded_without_redis(api_client):
    # Only the dependency is overridden; the shared Redis client was never started
    response = api_client.get("/api/ready")
    assert response.status_code == 503
    assert response.json()["checks"] == {"database": True, "redis": False}


def test_unauthenticated_request_is_401(api_client):
    response = api_client.get("/api/me/plan")
    assert response.status_code == 401
    assert "debug_id" in response.json()


@pytest.fixture
def error_app():
    app = FastAPI()
    setup_correlation_middleware(app)
    register_exception_handlers(app)

    @app.get("/daily")
    async def daily():
        raise DailyLimitReachedError("You have reached your daily limit of 1000 videos.")

    @app.get("/expired")
    async def expired():
        raise PlanExpiredError("Your plan has expired.")

    @app.get("/pool")
    async def pool():
        raise PoolExhaustedError("zyphra")

    @app.get("/missing")
    async def missing():
        raise KeyNotFoundError("zyphra", "abc")

    return TestClient(app)


def test_entitlement_errors_map_to_status(error_app):
    daily = error_app.get("/daily")
    assert daily.status_code == 429
    assert daily.json()["detail"].startswith("You have reached")

    assert error_app.get("/expired").status_code == 403


def test_pool_exhaustion_hides_provider(error_app):
    response = error_app.get("/pool")
    assert response.status_code == 503
    assert "zyphra" not in response.text
    assert response.json()["detail"] == "Service temporarily unavailable. Please try again later."


def test_not_found_maps_to_404(error_app):
    assert error_app.get("/missing").status_code == 404


def test_request_id_is_echoed(error_app):
    response = error_app.get("/missing", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"
