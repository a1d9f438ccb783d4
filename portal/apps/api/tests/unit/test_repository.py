"""Tests for the generic repository and its constraint translation."""

import pytest

from portal_api.db.models import Credential, Tenant, Token, User, UserTenantMapping
from portal_api.db.repository import Repository, commit
from portal_api.errors import NotFoundError, UniquenessViolation, ValidationError


@pytest.fixture
def users(db_session) -> Repository[User]:
    return Repository(db_session, User)


def test_create_and_get_by_field(db_session, users):
    created = users.create(email="repo@example.com", name="Repo")
    commit(db_session)

    assert users.get(created.id).email == "repo@example.com"
    assert users.get_by_field("email", "repo@example.com").id == created.id
    assert users.get_by_field("email", "missing@example.com") is None


def test_get_by_unknown_field_raises_validation_error(users):
    with pytest.raises(ValidationError):
        users.get_by_field("not_a_column", "x")


def test_duplicate_unique_value_raises_uniqueness_violation(db_session, users):
    users.create(email="dup@example.com", name="First")
    commit(db_session)

    with pytest.raises(UniquenessViolation):
        users.create(email="dup@example.com", name="Second")

    # Session is usable again after the rollback
    assert users.get_by_field("email", "dup@example.com").name == "First"


def test_missing_foreign_key_raises_not_found(db_session):
    with pytest.raises(NotFoundError):
        Repository(db_session, Credential).create(user_id=424242, password_hash="x", salt="y")


def test_check_constraint_raises_validation_error(users):
    with pytest.raises(ValidationError):
        users.create(email="bad-type@example.com", name="Bad", type="admin")


def test_update_one_applies_fields(db_session, users):
    user = users.create(email="upd@example.com", name="Before")
    users.update_one(user, {"name": "After", "country_id": 91})
    commit(db_session)
    db_session.expire_all()

    reloaded = users.get(user.id)
    assert (reloaded.name, reloaded.country_id) == ("After", 91)


def test_update_one_rejects_unknown_field(users):
    user = users.create(email="upd2@example.com", name="X")
    with pytest.raises(ValidationError):
        users.update_one(user, {"nickname": "nope"})


def test_get_all_by_condition_orders_and_limits(db_session):
    tenants = Repository(db_session, Tenant)
    tenants.create_many(
        {"company_guid": f"guid-{i}", "company_name": f"Co {i}"} for i in range(5)
    )
    commit(db_session)

    rows = tenants.get_all_by_condition(Tenant.company_guid.like("guid-%"), limit=3)
    assert [t.company_guid for t in rows] == ["guid-0", "guid-1", "guid-2"]


def test_delete_by_condition_returns_count(db_session):
    tenants = Repository(db_session, Tenant)
    tenants.create_many(
        {"company_guid": f"del-{i}", "company_name": "Gone"} for i in range(3)
    )
    commit(db_session)

    assert tenants.delete_by_condition(Tenant.company_name == "Gone") == 3
    assert tenants.delete_by_condition(Tenant.company_name == "Gone") == 0


def test_deleting_user_cascades_to_dependents(db_session, make_user):
    user = make_user(email="cascade@example.com")
    user_id = user.id
    Repository(db_session, Token).create(user_id=user_id, value="v-1", expires_at=user.created_at)
    commit(db_session)

    Repository(db_session, User).delete(user)
    commit(db_session)

    for model in (Credential, Token, UserTenantMapping):
        assert Repository(db_session, model).get_by_field("user_id", user_id) is None
