"""Pytest configuration and fixtures."""

import sys
from pathlib import Path
# Inject sys.path for reliable pytest imports
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))  # => .../apps/api
sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "reaper"))  # => .../apps/reaper

import os

# Must be set before portal_api.db.session builds its module-level engine
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("PORTAL_BCRYPT_ROUNDS", "4")

import base64
import uuid
from typing import Callable, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from portal_api.auth.accounts import AccountService
from portal_api.db.engine import enable_sqlite_foreign_keys
from portal_api.db.models import Base, Subscription, Tenant, User
from portal_api.db.session import get_db
from portal_api.main import app

DEFAULT_TENANT_GUID = "00000000-0000-0000-0000-000000000000"


def b64(plaintext: str) -> str:
    """Base64-encode a password the way clients send it."""
    return base64.b64encode(plaintext.encode("utf-8")).decode("ascii")


@pytest.fixture(scope="function")
def db_engine():
    """In-memory SQLite engine shared across threads, foreign keys enforced."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture(scope="function")
def db_session(session_factory) -> Session:
    """
    Create a fresh database session for each test.

    The reserved default tenant and demo subscription are seeded, as the
    baseline migration does.
    """
    session = session_factory()
    session.add(Tenant(company_guid=DEFAULT_TENANT_GUID, company_name="Default"))
    session.add(Subscription(name="Demo", code="demo"))
    session.commit()

    try:
        yield session
        session.rollback()
    finally:
        session.close()


@pytest.fixture
def default_tenant(db_session: Session) -> Tenant:
    return db_session.query(Tenant).filter_by(company_guid=DEFAULT_TENANT_GUID).one()


@pytest.fixture
def demo_subscription(db_session: Session) -> Subscription:
    return db_session.query(Subscription).filter_by(code="demo").one()


@pytest.fixture
def test_client(db_session: Session):
    """TestClient with db_session dependency override."""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass  # Don't close - db_session fixture will handle it

    app.dependency_overrides[get_db] = override_get_db
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db_session: Session) -> Callable[..., User]:
    """Factory registering users through AccountService.

    Usage:
        user = make_user()                       # random email, password "secret"
        user = make_user(email="a@b.co", password="pw")
    """

    def _make(
        email: Optional[str] = None,
        password: str = "secret",
        name: str = "Test User",
        mobile_number: Optional[str] = None,
        user_type: str = "client",
    ) -> User:
        if email is None and mobile_number is None:
            email = f"user_{uuid.uuid4().hex[:8]}@example.com"
        return AccountService(db_session).register(
            name=name,
            password_b64=b64(password),
            user_type=user_type,
            email=email,
            mobile_number=mobile_number,
        )

    return _make


@pytest.fixture
def auth_headers(test_client: TestClient, make_user) -> dict[str, str]:
    """Token header for a freshly registered and logged-in user."""
    user = make_user(email="operator@example.com", password="operator-pw")
    response = test_client.post(
        "/v1/auth/login",
        json={"credential": user.email, "password": b64("operator-pw")},
    )
    assert response.status_code == 200, response.text
    return {"Token": response.json()["token"]}
