"""Error Format (RFC 9457 Problem Details).

All error responses:
- Content-Type: application/problem+json
- Required fields: type, title, status, detail, instance
- instance is opaque (urn:portal:trace:<request_id>), no path or PK leaks
"""

import re

import pytest
from fastapi.testclient import TestClient

from conftest import b64
from portal_api.main import app


def assert_problem_details(resp, expected_status: int):
    content_type = resp.headers.get("content-type", "")
    assert content_type.startswith("application/problem+json"), \
        f"Expected application/problem+json, got: {content_type}"

    data = resp.json()
    for field in ["type", "title", "status", "detail", "instance"]:
        assert field in data, f"Missing required field: {field}"

    assert data["status"] == expected_status
    assert resp.status_code == expected_status

    instance = data["instance"]
    assert re.match(r"^urn:portal:trace:[A-Za-z0-9._:-]{8,}$", instance), \
        f"Invalid instance format: {instance}"
    assert "/" not in instance
    assert not instance.split(":")[-1].isdigit()


class TestErrorFormat:
    def test_400_bad_encoding(self, test_client):
        response = test_client.post(
            "/v1/auth/register",
            json={"email": "x@example.com", "name": "X", "password": "!!"},
        )
        assert_problem_details(response, 400)
        assert response.json()["type"].endswith("/validation-error")

    def test_401_missing_token(self, test_client):
        response = test_client.get("/v1/users/me")
        assert_problem_details(response, 401)
        assert response.headers["WWW-Authenticate"] == "Token"

    def test_401_unknown_and_expired_look_the_same(self, test_client):
        response = test_client.get("/v1/users/me", headers={"Token": "not-a-real-token"})
        assert_problem_details(response, 401)
        assert response.json()["detail"] == "Invalid or expired token"

    def test_404(self, test_client, auth_headers):
        response = test_client.get("/v1/users/424242", headers=auth_headers)
        assert_problem_details(response, 404)

    def test_409(self, test_client, make_user):
        make_user(email="taken@example.com")
        response = test_client.post(
            "/v1/auth/register",
            json={"email": "taken@example.com", "name": "Dup", "password": b64("pw")},
        )
        assert_problem_details(response, 409)

    def test_422_request_validation(self, test_client):
        response = test_client.post("/v1/auth/login", json={"credential": "x@example.com"})
        assert_problem_details(response, 422)
        assert "password" in response.json()["detail"]

    def test_404_unknown_route(self, test_client):
        response = test_client.get("/v1/no-such-route")
        assert_problem_details(response, 404)

    def test_instance_uses_request_id(self, test_client):
        response = test_client.get("/v1/users/me", headers={"X-Request-ID": "req-trace-0001"})
        assert response.headers["X-Request-ID"] == "req-trace-0001"
        assert response.json()["instance"] == "urn:portal:trace:req-trace-0001"


@pytest.fixture
def crashing_client(test_client):
    @app.get("/v1/_test/crash")
    def crash():
        raise RuntimeError("boom with password=hunter2")

    client = TestClient(app, raise_server_exceptions=False)
    yield client
    app.router.routes = [r for r in app.router.routes if getattr(r, "path", "") != "/v1/_test/crash"]


def test_500_hides_exception_details(crashing_client):
    response = crashing_client.get("/v1/_test/crash")
    assert_problem_details(response, 500)
    assert "boom" not in response.text
    assert "hunter2" not in response.text
