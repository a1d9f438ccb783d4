"""SQLAlchemy ORM Models for the portal."""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    BIGINT,
    INTEGER,
    TIMESTAMP,
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

# BIGINT keys in Postgres; SQLite only autoincrements INTEGER PRIMARY KEY.
BigIntPK = BIGINT().with_variant(INTEGER(), "sqlite")

USER_TYPES = ("client", "system")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )


class User(TimestampMixin, Base):
    """User identity record.

    Email or mobile number identifies the user at login; both are unique when set.
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    mobile_number: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    country_id: Mapped[int] = mapped_column(INTEGER, nullable=False, default=0)
    type: Mapped[str] = mapped_column(String(16), nullable=False, default="client")
    # client | system
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_login: Mapped[Optional[datetime]] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )

    credential: Mapped[Optional["Credential"]] = relationship(
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
        uselist=False,
    )
    tokens: Mapped[list["Token"]] = relationship(
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        UniqueConstraint("email", name="uq_users_email"),
        UniqueConstraint("mobile_number", name="uq_users_mobile_number"),
        CheckConstraint("type IN ('client', 'system')", name="ck_users_type"),
    )


class Credential(TimestampMixin, Base):
    """Salted bcrypt hash of a user's password (one per user)."""

    __tablename__ = "user_passwords"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BIGINT, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    salt: Mapped[str] = mapped_column(String(64), nullable=False)

    user: Mapped[User] = relationship(back_populates="credential")

    __table_args__ = (UniqueConstraint("user_id", name="uq_user_passwords_user_id"),)


class Token(TimestampMixin, Base):
    """Opaque session token. Valid while now < expires_at; never revoked."""

    __tablename__ = "tokens"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BIGINT, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    value: Mapped[str] = mapped_column(String(64), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    user: Mapped[User] = relationship(back_populates="tokens")

    __table_args__ = (
        UniqueConstraint("value", name="uq_tokens_value"),
        Index("idx_tokens_user_id", "user_id"),
        Index("idx_tokens_expires_at", "expires_at"),
    )


class Tenant(TimestampMixin, Base):
    """Company / organization. company_guid is the immutable external identifier."""

    __tablename__ = "tenants"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    company_guid: Mapped[str] = mapped_column(String(50), nullable=False)
    company_name: Mapped[str] = mapped_column(String(250), nullable=False)
    host: Mapped[Optional[str]] = mapped_column(String(250), nullable=True)
    bmrm_port: Mapped[Optional[int]] = mapped_column(INTEGER, nullable=True)
    sg_biz_port: Mapped[Optional[int]] = mapped_column(INTEGER, nullable=True)
    tally_sync_port: Mapped[Optional[int]] = mapped_column(INTEGER, nullable=True)

    __table_args__ = (
        UniqueConstraint("company_guid", name="uq_tenants_company_guid"),
        Index("idx_tenants_company_name", "company_name"),
    )


class UserTenantMapping(TimestampMixin, Base):
    """Membership of a user in a tenant."""

    __tablename__ = "user_tenant_mappings"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BIGINT, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    tenant_id: Mapped[int] = mapped_column(
        BIGINT, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("user_id", "tenant_id", name="uq_user_tenant_mappings_user_tenant"),
        Index("idx_user_tenant_mappings_tenant_id", "tenant_id"),
    )


class Subscription(TimestampMixin, Base):
    """Named bundle of features, looked up by code (e.g. "demo")."""

    __tablename__ = "subscriptions"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    code: Mapped[str] = mapped_column(String(50), nullable=False)

    __table_args__ = (UniqueConstraint("code", name="uq_subscriptions_code"),)


class Feature(TimestampMixin, Base):
    """Capability gate keyed by its permission code."""

    __tablename__ = "features"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    permission: Mapped[str] = mapped_column(String(50), nullable=False)

    __table_args__ = (UniqueConstraint("permission", name="uq_features_permission"),)


class UserFeatureMapping(TimestampMixin, Base):
    """Direct feature grant."""

    __tablename__ = "user_feature_mappings"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BIGINT, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    feature_id: Mapped[int] = mapped_column(
        BIGINT, ForeignKey("features.id", ondelete="CASCADE"), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("user_id", "feature_id", name="uq_user_feature_mappings_user_feature"),
        Index("idx_user_feature_mappings_feature_id", "feature_id"),
    )


class FeatureSubscriptionMapping(TimestampMixin, Base):
    """Plan composition: a feature bundled into a subscription."""

    __tablename__ = "feature_subscription_mappings"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    feature_id: Mapped[int] = mapped_column(
        BIGINT, ForeignKey("features.id", ondelete="CASCADE"), nullable=False
    )
    subscription_id: Mapped[int] = mapped_column(
        BIGINT, ForeignKey("subscriptions.id", ondelete="CASCADE"), nullable=False
    )

    __table_args__ = (
        UniqueConstraint(
            "feature_id",
            "subscription_id",
            name="uq_feature_subscription_mappings_feature_subscription",
        ),
        Index("idx_feature_subscription_mappings_subscription_id", "subscription_id"),
    )


class UserSubscriptionMapping(TimestampMixin, Base):
    """Active plan held by a user."""

    __tablename__ = "user_subscription_mappings"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BIGINT, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    subscription_id: Mapped[int] = mapped_column(
        BIGINT, ForeignKey("subscriptions.id", ondelete="CASCADE"), nullable=False
    )

    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "subscription_id",
            name="uq_user_subscription_mappings_user_subscription",
        ),
        Index("idx_user_subscription_mappings_subscription_id", "subscription_id"),
    )


class UserSubscriptionHistory(TimestampMixin, Base):
    """Lifecycle record of a user's subscription (start, renewals, expiry)."""

    __tablename__ = "user_subscription_histories"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BIGINT, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    subscription_id: Mapped[int] = mapped_column(
        BIGINT, ForeignKey("subscriptions.id", ondelete="CASCADE"), nullable=False
    )
    start_date: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=utcnow
    )
    renewal_date: Mapped[Optional[datetime]] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )
    expiry_date: Mapped[Optional[datetime]] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )
    number_of_renewals: Mapped[int] = mapped_column(INTEGER, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "subscription_id",
            name="uq_user_subscription_histories_user_subscription",
        ),
    )
