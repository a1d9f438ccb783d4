"""Tests for account flows (register / login / password change) at the service level."""

import base64
from datetime import timedelta

import pytest

from portal_api.auth.accounts import AccountService, classify_identifier, decode_password
from portal_api.auth.token_service import TokenService
from portal_api.db.models import Credential, User
from portal_api.errors import (
    AuthenticationError,
    InfrastructureError,
    PortalError,
    UniquenessViolation,
    ValidationError,
)


def b64(plaintext: str) -> str:
    return base64.b64encode(plaintext.encode("utf-8")).decode("ascii")


def test_decode_password_round_trip():
    assert decode_password("cGFzczE=") == "pass1"


@pytest.mark.parametrize("encoded", ["not base64!", "cGFzczE", "//79"])
def test_decode_password_rejects_bad_input(encoded):
    with pytest.raises(ValidationError):
        decode_password(encoded)


@pytest.mark.parametrize(
    "credential,expected",
    [
        ("alice@x.com", "email"),
        ("9876543210", "mobile_number"),
        ("alice", None),
        ("123", None),
    ],
)
def test_classify_identifier(credential, expected):
    assert classify_identifier(credential) == expected


def test_register_stores_salted_hash_only(db_session):
    user = AccountService(db_session).register(
        name="alice", password_b64=b64("pass1"), user_type="client", email="alice@x.com"
    )

    credential = db_session.query(Credential).filter_by(user_id=user.id).one()
    assert credential.password_hash != "pass1"
    assert len(credential.salt) == 32


def test_register_duplicate_mobile_rolls_back(db_session):
    service = AccountService(db_session)
    service.register(name="a", password_b64=b64("x"), user_type="client", mobile_number="9990001111")

    with pytest.raises(UniquenessViolation):
        service.register(name="b", password_b64=b64("x"), user_type="client", mobile_number="9990001111")

    assert db_session.query(User).count() == 1
    assert db_session.query(Credential).count() == 1


def test_login_uses_configured_ttl(db_session, make_user):
    make_user(email="ttl@example.com", password="pw")

    result = AccountService(db_session, token_ttl=timedelta(minutes=5)).login("ttl@example.com", b64("pw"))

    assert TokenService(db_session).validate(result.token.value).remaining_seconds <= 300


def test_login_records_last_login(db_session, make_user):
    user = make_user(email="seen@example.com", password="pw")
    assert user.last_login is None

    AccountService(db_session).login("seen@example.com", b64("pw"))

    assert user.last_login is not None


def test_login_wrong_password_message_is_generic(db_session, make_user):
    make_user(email="g@example.com", password="pw")
    with pytest.raises(AuthenticationError, match="^Invalid credentials$"):
        AccountService(db_session).login("g@example.com", b64("nope"))


def test_change_password_requires_old_password(db_session, make_user):
    user = make_user(password="old")
    with pytest.raises(AuthenticationError):
        AccountService(db_session).change_password(user.id, b64("wrong"), b64("new"))


def test_error_taxonomy_status_codes():
    assert ValidationError("x").status_code == 400
    assert AuthenticationError("x").status_code == 401
    assert UniquenessViolation("x", constraint="uq").constraint == "uq"
    assert issubclass(InfrastructureError, PortalError)
    assert InfrastructureError("x").status_code == 500
