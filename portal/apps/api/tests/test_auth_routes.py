"""Tests for /v1/auth: register, login, validate-token, tenant, features."""

import pytest

from conftest import b64
from portal_api.db.models import Feature, Tenant, User
from portal_api.entitlements.graph import EntitlementGraph
from portal_api.tenants.resolver import TenantResolver


def register(client, **overrides):
    body = {"email": "bob@example.com", "name": "Bob", "password": b64("pw-bob")}
    body.update(overrides)
    return client.post("/v1/auth/register", json=body)


def login(client, credential, password):
    return client.post("/v1/auth/login", json={"credential": credential, "password": b64(password)})


# ============================================================================
# Register
# ============================================================================


def test_register_with_mobile_only(test_client):
    response = register(test_client, email=None, mobile_number="9876543210")
    assert response.status_code == 201
    assert response.json()["mobile_number"] == "9876543210"
    assert response.json()["email"] is None


def test_register_system_user(test_client):
    response = register(test_client, type="system")
    assert response.status_code == 201
    assert response.json()["type"] == "system"


def test_register_invalid_type_is_400(test_client):
    response = register(test_client, type="superuser")
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid user type"


def test_register_without_identifier_is_400(test_client):
    response = register(test_client, email=None)
    assert response.status_code == 400


def test_register_bad_base64_is_400(test_client):
    response = register(test_client, password="%%%not-base64%%%")
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid password encoding"


def test_register_duplicate_email_is_409_and_leaves_one_row(test_client, db_session):
    assert register(test_client).status_code == 201
    response = register(test_client, name="Bob Again")
    assert response.status_code == 409
    assert db_session.query(User).filter_by(email="bob@example.com").count() == 1


def test_register_without_default_tenant_is_500(test_client, db_session, default_tenant):
    db_session.delete(default_tenant)
    db_session.commit()

    response = register(test_client)

    assert response.status_code == 500
    assert "Default" not in response.json()["detail"]
    assert db_session.query(User).count() == 0


# ============================================================================
# Login
# ============================================================================


def test_login_by_mobile_number(test_client):
    register(test_client, email=None, mobile_number="5550001111")
    response = login(test_client, "5550001111", "pw-bob")
    assert response.status_code == 200
    assert response.json()["token"]


@pytest.mark.parametrize(
    "credential,password",
    [
        ("bob@example.com", "wrong"),  # bad password
        ("nobody@example.com", "pw-bob"),  # unknown email
        ("not an identifier", "pw-bob"),  # neither email nor mobile
    ],
)
def test_login_failures_are_indistinguishable(test_client, credential, password):
    register(test_client)
    response = login(test_client, credential, password)
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid credentials"
    assert response.headers["WWW-Authenticate"] == "Token"


def test_login_inactive_user_is_401(test_client, db_session):
    user_id = register(test_client).json()["id"]
    db_session.get(User, user_id).is_active = False
    db_session.commit()

    assert login(test_client, "bob@example.com", "pw-bob").status_code == 401


def test_each_login_issues_a_new_token(test_client):
    register(test_client)
    first = login(test_client, "bob@example.com", "pw-bob").json()["token"]
    second = login(test_client, "bob@example.com", "pw-bob").json()["token"]
    assert first != second
    for token in (first, second):
        assert test_client.get("/v1/auth/validate-token", headers={"Token": token}).status_code == 200


# ============================================================================
# validate-token
# ============================================================================


def test_validate_token_reports_owner_and_remaining(test_client):
    user_id = register(test_client).json()["id"]
    token = login(test_client, "bob@example.com", "pw-bob").json()["token"]

    response = test_client.get("/v1/auth/validate-token", headers={"Token": token})

    assert response.status_code == 200
    body = response.json()
    assert body["result"] is True
    assert body["user_id"] == user_id
    assert 0 < body["expires_in"] <= 72 * 3600


def test_validate_token_missing_header(test_client):
    response = test_client.get("/v1/auth/validate-token")
    assert response.status_code == 401
    assert response.json()["detail"] == "Token is required"


# ============================================================================
# tenant
# ============================================================================


@pytest.fixture
def acme(db_session) -> Tenant:
    tenant = Tenant(company_guid="acme-guid", company_name="Acme", host="10.0.0.5", bmrm_port=9000)
    db_session.add(tenant)
    db_session.commit()
    return tenant


def test_tenant_requires_company_header(test_client, auth_headers):
    response = test_client.get("/v1/auth/tenant", headers=auth_headers)
    assert response.status_code == 400


def test_tenant_unknown_and_non_member_look_the_same(test_client, auth_headers, acme):
    unknown = test_client.get(
        "/v1/auth/tenant", headers={**auth_headers, "X-Company-GUID": "no-such-guid"}
    )
    not_member = test_client.get(
        "/v1/auth/tenant", headers={**auth_headers, "X-Company-GUID": acme.company_guid}
    )

    assert unknown.status_code == not_member.status_code == 404
    assert unknown.json()["detail"] == not_member.json()["detail"]


def test_tenant_member_gets_connection_details(test_client, db_session, auth_headers, acme):
    user_id = test_client.get("/v1/users/me", headers=auth_headers).json()["id"]
    TenantResolver(db_session).map_user(user_id, acme.id)
    db_session.commit()

    response = test_client.get(
        "/v1/auth/tenant", headers={**auth_headers, "X-Company-GUID": "acme-guid"}
    )

    assert response.status_code == 200
    assert response.json()["host"] == "10.0.0.5"
    assert response.json()["bmrm_port"] == 9000


def test_tenant_without_token_is_401(test_client, acme):
    response = test_client.get("/v1/auth/tenant", headers={"X-Company-GUID": "acme-guid"})
    assert response.status_code == 401


# ============================================================================
# features
# ============================================================================


def test_my_features_combines_direct_and_subscription(
    test_client, db_session, auth_headers, demo_subscription
):
    user_id = test_client.get("/v1/users/me", headers=auth_headers).json()["id"]
    direct = Feature(name="Export", permission="export")
    bundled = Feature(name="Reports", permission="reports")
    db_session.add_all([direct, bundled])
    db_session.commit()
    graph = EntitlementGraph(db_session)
    graph.grant_feature_direct(user_id, direct.id)
    graph.grant_feature_direct(user_id, bundled.id)
    graph.map_feature_to_subscription(bundled.id, demo_subscription.id)
    db_session.commit()

    response = test_client.get("/v1/auth/features", headers=auth_headers)

    assert response.status_code == 200
    assert [f["permission"] for f in response.json()] == ["export", "reports"]
