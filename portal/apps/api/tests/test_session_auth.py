"""Tests for the session dependency guarding protected routes."""

from datetime import timedelta

import pytest
from fastapi import Depends, FastAPI, HTTPException
from fastapi.testclient import TestClient

from portal_api.auth.session_auth import IdentityContext, authenticate_token, require_identity
from portal_api.auth.token_service import TokenService
from portal_api.db.session import get_db


@pytest.fixture
def guarded(db_session):
    """Minimal app with one protected handler that records its calls."""
    calls = []
    app = FastAPI()

    @app.get("/guarded")
    def guarded_route(identity: IdentityContext = Depends(require_identity)):
        calls.append(identity)
        return {"user_id": identity.user_id}

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app), calls


def test_valid_token_reaches_handler_with_identity(db_session, make_user, guarded):
    client, calls = guarded
    user = make_user()
    token = TokenService(db_session).issue(user.id)
    db_session.commit()

    response = client.get("/guarded", headers={"Token": token.value})

    assert response.status_code == 200
    assert response.json() == {"user_id": user.id}
    assert calls[0].user_id == user.id
    assert calls[0].token_remaining_seconds > 0


@pytest.mark.parametrize("headers", [{}, {"Token": ""}, {"Token": "bogus"}])
def test_handler_not_invoked_without_valid_token(guarded, headers):
    client, calls = guarded
    response = client.get("/guarded", headers=headers)
    assert response.status_code == 401
    assert calls == []


def test_expired_token_never_reaches_handler(db_session, make_user, guarded):
    client, calls = guarded
    token = TokenService(db_session).issue(make_user().id, timedelta(0))
    db_session.commit()

    assert client.get("/guarded", headers={"Token": token.value}).status_code == 401
    assert calls == []


def test_bearer_authorization_header_is_not_accepted(db_session, make_user, guarded):
    client, calls = guarded
    token = TokenService(db_session).issue(make_user().id)
    db_session.commit()

    response = client.get("/guarded", headers={"Authorization": f"Bearer {token.value}"})

    assert response.status_code == 401
    assert calls == []


def test_authenticate_token_builds_problem(db_session):
    with pytest.raises(HTTPException) as exc_info:
        authenticate_token(db_session, None)

    exc = exc_info.value
    assert exc.status_code == 401
    assert exc.headers == {"WWW-Authenticate": "Token"}
    assert exc.detail["detail"] == "Token is required"
    assert exc.detail["type"].endswith("/unauthorized")


def test_identity_context_is_immutable():
    identity = IdentityContext(user_id=1, token_remaining_seconds=10)
    with pytest.raises(AttributeError):
        identity.user_id = 2
