"""Tests for /v1/subscriptions: plans, holders, composition and history."""

import pytest


@pytest.fixture
def pro_id(test_client, auth_headers) -> int:
    response = test_client.post("/v1/subscriptions", headers=auth_headers, json={"name": "Pro", "code": "pro"})
    assert response.status_code == 201
    return response.json()["id"]


@pytest.fixture
def reports_id(test_client, auth_headers) -> int:
    response = test_client.post(
        "/v1/features", headers=auth_headers, json={"name": "Reports", "permission": "reports"}
    )
    return response.json()["id"]


def test_list_includes_seeded_demo(test_client, auth_headers, pro_id):
    codes = [s["code"] for s in test_client.get("/v1/subscriptions", headers=auth_headers).json()]
    assert codes == ["demo", "pro"]


def test_duplicate_code_is_409(test_client, auth_headers, pro_id):
    response = test_client.post("/v1/subscriptions", headers=auth_headers, json={"name": "Pro 2", "code": "pro"})
    assert response.status_code == 409


def test_update_and_delete_subscription(test_client, auth_headers, pro_id):
    updated = test_client.patch(f"/v1/subscriptions/{pro_id}", headers=auth_headers, json={"name": "Professional"})
    assert updated.json()["name"] == "Professional"

    assert test_client.delete(f"/v1/subscriptions/{pro_id}", headers=auth_headers).status_code == 200
    assert test_client.patch(f"/v1/subscriptions/{pro_id}", headers=auth_headers, json={"name": "x"}).status_code == 404


@pytest.mark.parametrize("field", ["name", "code"])
def test_patch_subscription_null_field_is_422(test_client, auth_headers, pro_id, field):
    response = test_client.patch(f"/v1/subscriptions/{pro_id}", headers=auth_headers, json={field: None})
    assert response.status_code == 422


def test_feature_through_subscription(test_client, auth_headers, pro_id, reports_id, make_user):
    """Feature bundled into a plan reaches every holder of the plan."""
    user = make_user()

    bundled = test_client.post(
        "/v1/subscriptions/features",
        headers=auth_headers,
        json={"feature_id": reports_id, "subscription_id": pro_id},
    )
    held = test_client.post(
        "/v1/subscriptions/mapping",
        headers=auth_headers,
        json={"user_id": user.id, "subscription_id": pro_id},
    )
    assert (bundled.status_code, held.status_code) == (201, 201)

    features = test_client.get("/v1/features/user", headers=auth_headers, params={"user_id": user.id}).json()
    assert [f["permission"] for f in features] == ["reports"]

    plan_features = test_client.get(
        "/v1/subscriptions/features/list", headers=auth_headers, params={"subscription_id": pro_id}
    ).json()
    assert [f["id"] for f in plan_features] == [reports_id]

    plans = test_client.get("/v1/subscriptions/user", headers=auth_headers, params={"user_id": user.id}).json()
    assert [p["code"] for p in plans] == ["demo", "pro"]


def test_duplicate_mappings_are_409(test_client, auth_headers, pro_id, reports_id, make_user):
    user = make_user()
    holder = {"user_id": user.id, "subscription_id": pro_id}
    bundle = {"feature_id": reports_id, "subscription_id": pro_id}

    test_client.post("/v1/subscriptions/mapping", headers=auth_headers, json=holder)
    test_client.post("/v1/subscriptions/features", headers=auth_headers, json=bundle)

    assert test_client.post("/v1/subscriptions/mapping", headers=auth_headers, json=holder).status_code == 409
    assert test_client.post("/v1/subscriptions/features", headers=auth_headers, json=bundle).status_code == 409


def test_unmapping_is_idempotent(test_client, auth_headers, pro_id, reports_id, make_user):
    user = make_user()
    test_client.post(
        "/v1/subscriptions/mapping", headers=auth_headers, json={"user_id": user.id, "subscription_id": pro_id}
    )
    test_client.post(
        "/v1/subscriptions/features", headers=auth_headers, json={"feature_id": reports_id, "subscription_id": pro_id}
    )

    holder = {"user_id": user.id, "subscription_id": pro_id}
    bundle = {"feature_id": reports_id, "subscription_id": pro_id}
    for path, params in (("/v1/subscriptions/mapping", holder), ("/v1/subscriptions/features", bundle)):
        first = test_client.delete(path, headers=auth_headers, params=params)
        second = test_client.delete(path, headers=auth_headers, params=params)
        assert (first.json()["deleted"], second.json()["deleted"]) == (1, 0)


def test_history_lifecycle(test_client, auth_headers, pro_id, make_user):
    user = make_user()

    created = test_client.post(
        "/v1/subscriptions/history",
        headers=auth_headers,
        json={"user_id": user.id, "subscription_id": pro_id},
    )
    assert created.status_code == 201
    assert created.json()["start_date"]
    assert created.json()["number_of_renewals"] == 0

    duplicate = test_client.post(
        "/v1/subscriptions/history",
        headers=auth_headers,
        json={"user_id": user.id, "subscription_id": pro_id},
    )
    assert duplicate.status_code == 409

    updated = test_client.patch(
        "/v1/subscriptions/history/user",
        headers=auth_headers,
        params={"user_id": user.id},
        json={"number_of_renewals": 2, "renewal_date": "2026-11-01T00:00:00Z"},
    )
    assert updated.status_code == 200
    assert updated.json()["number_of_renewals"] == 2

    fetched = test_client.get("/v1/subscriptions/history/user", headers=auth_headers, params={"user_id": user.id})
    assert fetched.json()["number_of_renewals"] == 2
    assert len(test_client.get("/v1/subscriptions/history", headers=auth_headers).json()) == 1

    deleted = test_client.delete("/v1/subscriptions/history/user", headers=auth_headers, params={"user_id": user.id})
    assert deleted.json()["deleted"] == 1
    missing = test_client.get("/v1/subscriptions/history/user", headers=auth_headers, params={"user_id": user.id})
    assert missing.status_code == 404


def test_history_negative_renewals_is_422(test_client, auth_headers, pro_id, make_user):
    response = test_client.post(
        "/v1/subscriptions/history",
        headers=auth_headers,
        json={"user_id": make_user().id, "subscription_id": pro_id, "number_of_renewals": -1},
    )
    assert response.status_code == 422


def test_history_null_renewal_count_is_422(test_client, auth_headers, pro_id, make_user):
    user = make_user()
    test_client.post(
        "/v1/subscriptions/history",
        headers=auth_headers,
        json={"user_id": user.id, "subscription_id": pro_id},
    )
    response = test_client.patch(
        "/v1/subscriptions/history/user",
        headers=auth_headers,
        params={"user_id": user.id},
        json={"number_of_renewals": None},
    )
    assert response.status_code == 422
