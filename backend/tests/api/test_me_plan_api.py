"""GET /api/me/plan."""

import pytest

pytestmark = pytest.mark.integration


def test_scale_plan_summary(api_client, login):
    login("scale-user")
    body = api_client.get("/api/me/plan").json()

    assert body["plan_name"] == "Scale"
    assert body["daily_limit"] == 1000
    assert body["remaining_videos"] == 1000
    assert body["is_expired"] is False
    assert body["expiry_label"].endswith("days remaining")
    assert "bulk" in body["allowed_tools"]
    assert body["batch_config"] == {"max_batch": 7, "delay_seconds": 30, "max_prompts": 50}
    assert body["voice"]["limit"] == 50_000
    assert body["voice"]["used"] == 0


def test_empire_remaining_shows_unlimited(api_client, login):
    login("admin-user")
    api_client.put("/api/admin/users/free-user/plan", json={"plan_type": "empire"})

    login("free-user")
    body = api_client.get("/api/me/plan").json()
    assert body["daily_limit"] == 2000
    assert body["remaining_videos"] == -1


def test_admin_summary_is_unlimited(api_client, login):
    login("admin-user")
    body = api_client.get("/api/me/plan").json()

    assert body["plan_name"] == "Admin (Unlimited)"
    assert body["daily_limit"] == -1
    assert body["remaining_videos"] == -1


def test_free_plan_summary(api_client, login):
    login("free-user")
    body = api_client.get("/api/me/plan").json()

    assert body["daily_limit"] == 0
    assert body["remaining_videos"] == 0
    assert body["plan_expiry"] is None
    assert "bulk" not in body["allowed_tools"]


def test_unknown_user_is_404(api_client, login):
    login("ghost")
    assert api_client.get("/api/me/plan").status_code == 404
