"""Admin user plan and rotation settings endpoints."""

from datetime import UTC, datetime, timedelta

import pytest

pytestmark = pytest.mark.integration


@pytest.fixture
def admin(login):
    login("admin-user")


def _parse(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


# ---------- Rotation settings ----------


def test_rotation_settings_defaults(api_client, admin):
    body = api_client.get("/api/admin/rotation-settings").json()
    assert body["videos_per_batch"] == 10
    assert body["batch_delay_seconds"] == 20
    assert body["rotation_enabled"] is False


def test_rotation_settings_partial_update(api_client, admin):
    response = api_client.put("/api/admin/rotation-settings", json={"videos_per_batch": 5})
    assert response.status_code == 200
    assert response.json()["videos_per_batch"] == 5
    assert response.json()["batch_delay_seconds"] == 20


def test_rotation_settings_validation(api_client, admin):
    assert api_client.put("/api/admin/rotation-settings", json={"videos_per_batch": 0}).status_code == 422


# ---------- Users ----------


def test_get_user(api_client, admin):
    body = api_client.get("/api/admin/users/scale-user").json()
    assert body["plan_type"] == "scale"
    assert body["daily_video_count"] == 0


def test_unknown_user_is_404(api_client, admin):
    assert api_client.get("/api/admin/users/nobody").status_code == 404


def test_upgrade_free_user(api_client, admin):
    before = datetime.now(UTC)
    response = api_client.put("/api/admin/users/free-user/plan", json={"plan_type": "empire"})

    assert response.status_code == 200
    body = response.json()
    assert body["plan_type"] == "empire"
    expiry = _parse(body["plan_expiry"])
    assert before + timedelta(days=9) < expiry <= datetime.now(UTC) + timedelta(days=10)


def test_enterprise_overrides(api_client, admin):
    response = api_client.put(
        "/api/admin/users/scale-user/plan",
        json={"plan_type": "enterprise", "expiry_days": 45, "daily_video_limit": 60_000, "bulk_max_batch": 40},
    )

    body = response.json()
    assert body["plan_type"] == "enterprise"
    assert body["daily_video_limit"] == 60_000
    assert body["bulk_max_batch"] == 40


def test_unknown_plan_is_400(api_client, admin):
    response = api_client.put("/api/admin/users/free-user/plan", json={"plan_type": "platinum"})
    assert response.status_code == 400


def test_renew_and_remove(api_client, admin):
    renewed = api_client.post("/api/admin/users/scale-user/renew", json={"days": 30}).json()
    assert _parse(renewed["plan_expiry"]) > datetime.now(UTC) + timedelta(days=29)

    removed = api_client.delete("/api/admin/users/scale-user/plan").json()
    assert removed["plan_type"] == "free"
    assert removed["plan_expiry"] is None

    assert api_client.post("/api/admin/users/scale-user/renew", json={}).status_code == 400


def test_reset_usage(api_client, admin):
    response = api_client.post("/api/admin/users/scale-user/reset-usage")
    assert response.status_code == 200
    assert response.json()["daily_video_count"] == 0
