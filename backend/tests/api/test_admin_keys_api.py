"""Admin key pool endpoints."""

import pytest

pytestmark = pytest.mark.integration


@pytest.fixture
def admin(login):
    login("admin-user")


def test_non_admin_is_rejected(api_client, login):
    login("scale-user")
    response = api_client.get("/api/admin/keys/zyphra")

    assert response.status_code == 403
    assert response.json()["detail"] == "Admin access required"
    assert "debug_id" in response.json()


def test_unknown_provider_is_422(api_client, admin):
    assert api_client.get("/api/admin/keys/elevenlabs").status_code == 422


def test_add_list_and_mask(api_client, admin):
    response = api_client.post("/api/admin/keys/zyphra", json={"secret": "zsk-abcdefghijklmnop"})
    assert response.status_code == 201
    key = response.json()
    assert key["label"] == "Zyphra Key 1"
    assert key["masked_secret"] == "zsk-...mnop"
    assert key["units_limit"] == 50_000
    assert key["state"] == "active_usable"
    assert "secret" not in key

    listed = api_client.get("/api/admin/keys/zyphra").json()
    assert [k["id"] for k in listed] == [key["id"]]
    assert api_client.get("/api/admin/keys/cartesia").json() == []


def test_duplicate_key_is_409(api_client, admin):
    api_client.post("/api/admin/keys/cartesia", json={"secret": "cartesia-secret-1234"})
    response = api_client.post("/api/admin/keys/cartesia", json={"secret": "cartesia-secret-1234"})
    assert response.status_code == 409


def test_overlong_label_is_422(api_client, admin):
    response = api_client.post("/api/admin/keys/zyphra", json={"secret": "zsk-abcdefghijklmnop", "label": "L" * 256})
    assert response.status_code == 422
    assert api_client.get("/api/admin/keys/zyphra").json() == []


def test_bearer_tokens_default_to_rotation_budget(api_client, admin):
    api_client.put("/api/admin/rotation-settings", json={"max_requests_per_token": 250})
    key = api_client.post("/api/admin/keys/bearer", json={"secret": "ya29.token-aaaaaaaa"}).json()
    assert key["units_limit"] == 250


def test_bulk_add_reports_counts(api_client, admin):
    api_client.post("/api/admin/keys/inworld", json={"secret": "inworld-existing-01"})
    response = api_client.post(
        "/api/admin/keys/inworld/bulk",
        json={"entries": "inworld-new-0000001\ninworld-existing-01\n\ninworld-new-0000002"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["added"] == 2
    assert body["duplicates"] == 1
    assert len(body["added_ids"]) == 2


def test_replace_bearer_pool(api_client, admin):
    api_client.post("/api/admin/keys/bearer", json={"secret": "old-token-aaaaaaaa"})
    response = api_client.put("/api/admin/keys/bearer", json={"secrets": ["new-1-aaaaaaaaaa", "new-2-bbbbbbbbbb"]})

    assert response.status_code == 200
    assert [k["label"] for k in response.json()] == ["Token 1", "Token 2"]
    assert len(api_client.get("/api/admin/keys/bearer").json()) == 2


def test_replace_rejects_empty_list_and_other_pools(api_client, admin):
    assert api_client.put("/api/admin/keys/bearer", json={"secrets": []}).status_code == 400
    assert api_client.put("/api/admin/keys/zyphra", json={"secrets": ["x" * 20]}).status_code == 400


def test_toggle_reset_delete_cycle(api_client, admin):
    key = api_client.post("/api/admin/keys/zyphra", json={"secret": "zsk-toggle-aaaaaaaa"}).json()

    toggled = api_client.patch(f"/api/admin/keys/zyphra/{key['id']}", json={"is_active": False}).json()
    assert toggled["is_active"] is False
    assert toggled["state"] == "disabled"

    reset = api_client.post(f"/api/admin/keys/zyphra/{key['id']}/reset").json()
    assert reset["units_used"] == 0
    assert reset["is_active"] is False

    stats = api_client.get("/api/admin/keys/zyphra/stats").json()
    assert stats == {
        "provider": "zyphra",
        "total": 1,
        "usable": 0,
        "exhausted": 0,
        "disabled": 1,
        "units_used": 0,
        "units_limit": 50_000,
        "total_errors": 0,
    }

    assert api_client.delete(f"/api/admin/keys/zyphra/{key['id']}").status_code == 204
    assert api_client.delete(f"/api/admin/keys/zyphra/{key['id']}").status_code == 404


def test_reset_all_and_delete_all(api_client, admin):
    for i in range(3):
        api_client.post("/api/admin/keys/cartesia", json={"secret": f"cartesia-bulk-{i}-xxxx"})

    assert api_client.post("/api/admin/keys/cartesia/reset-all").json() == {"count": 3}
    assert api_client.delete("/api/admin/keys/cartesia").json() == {"count": 3}
    assert api_client.get("/api/admin/keys/cartesia").json() == []


def test_key_from_other_pool_is_404(api_client, admin):
    key = api_client.post("/api/admin/keys/zyphra", json={"secret": "zsk-scoped-aaaaaaaa"}).json()
    assert api_client.post(f"/api/admin/keys/cartesia/{key['id']}/reset").status_code == 404
