"""Tenant membership resolution.

A company GUID resolves to a tenant for a user only when both hold:
1. a Tenant row with that GUID exists        (else UnknownTenant)
2. a UserTenantMapping row for (user, tenant) (else NotAMember)

A tenant without a membership row is rejected, never defaulted.

Registration bootstrap maps every new user to the reserved default tenant and
the reserved demo subscription; both rows are a deployment precondition.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from portal_api.config.env import get_default_tenant_name, get_demo_subscription_code
from portal_api.context import tenant_id_var
from portal_api.db.models import Subscription, Tenant, UserSubscriptionMapping, UserTenantMapping
from portal_api.db.repository import Repository
from portal_api.errors import (
    BootstrapEntitlementMissing,
    DuplicateGrant,
    NotAMember,
    UniquenessViolation,
    UnknownTenant,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TenantInfo:
    """A tenant the caller is confirmed to belong to."""

    user_id: int
    tenant_id: int
    company_guid: str
    company_name: str
    host: Optional[str]
    bmrm_port: Optional[int]
    sg_biz_port: Optional[int]
    tally_sync_port: Optional[int]


class TenantResolver:
    def __init__(self, db: Session):
        self.db = db
        self.tenants = Repository(db, Tenant)
        self.memberships = Repository(db, UserTenantMapping)
        self.subscriptions = Repository(db, Subscription)
        self.user_subscriptions = Repository(db, UserSubscriptionMapping)

    def resolve_tenant(self, user_id: int, company_guid: str) -> TenantInfo:
        """Resolve ``company_guid`` to a tenant ``user_id`` is a member of.

        Raises:
            UnknownTenant: No tenant has this GUID
            NotAMember: Tenant exists, user has no membership row
        """
        tenant = self.tenants.get_by_field("company_guid", company_guid)
        if tenant is None:
            logger.info(
                "tenant.resolve.failed",
                extra={"event": "tenant.resolve.failed", "reason": "unknown_tenant"},
            )
            raise UnknownTenant(f"No tenant with company GUID '{company_guid}'")

        membership = self.memberships.get_one_by_condition(
            UserTenantMapping.user_id == user_id,
            UserTenantMapping.tenant_id == tenant.id,
        )
        if membership is None:
            logger.info(
                "tenant.resolve.failed",
                extra={
                    "event": "tenant.resolve.failed",
                    "reason": "not_a_member",
                    "resolved_tenant_id": tenant.id,
                },
            )
            raise NotAMember("User is not a member of this tenant")

        tenant_id_var.set(str(tenant.id))
        return TenantInfo(
            user_id=user_id,
            tenant_id=tenant.id,
            company_guid=tenant.company_guid,
            company_name=tenant.company_name,
            host=tenant.host,
            bmrm_port=tenant.bmrm_port,
            sg_biz_port=tenant.sg_biz_port,
            tally_sync_port=tenant.tally_sync_port,
        )

    def bootstrap_registration(self, user_id: int) -> None:
        """Map a freshly created user to the default tenant and demo subscription.

        Both reserved rows are looked up before anything is written, so a
        missing precondition leaves no partial mapping behind.

        Raises:
            BootstrapEntitlementMissing: Default tenant or demo subscription absent
        """
        tenant_name = get_default_tenant_name()
        demo_code = get_demo_subscription_code()

        tenant = self.tenants.get_by_field("company_name", tenant_name)
        if tenant is None:
            logger.error(
                "registration.bootstrap.missing",
                extra={"event": "registration.bootstrap.missing", "missing": "default_tenant"},
            )
            raise BootstrapEntitlementMissing(f"Default tenant '{tenant_name}' is not provisioned")

        subscription = self.subscriptions.get_by_field("code", demo_code)
        if subscription is None:
            logger.error(
                "registration.bootstrap.missing",
                extra={"event": "registration.bootstrap.missing", "missing": "demo_subscription"},
            )
            raise BootstrapEntitlementMissing(f"Subscription '{demo_code}' is not provisioned")

        self.memberships.create(user_id=user_id, tenant_id=tenant.id)
        self.user_subscriptions.create(user_id=user_id, subscription_id=subscription.id)

        logger.info(
            "registration.bootstrap.mapped",
            extra={
                "event": "registration.bootstrap.mapped",
                "owner_id": user_id,
                "default_tenant_id": tenant.id,
                "subscription_id": subscription.id,
            },
        )

    # ── membership management ────────────────────────────────────────────────

    def map_user(self, user_id: int, tenant_id: int) -> UserTenantMapping:
        """Add a membership row.

        Raises:
            DuplicateGrant: The user is already a member
            NotFoundError: User or tenant does not exist
        """
        try:
            return self.memberships.create(user_id=user_id, tenant_id=tenant_id)
        except UniquenessViolation as e:
            raise DuplicateGrant("User is already mapped to this tenant") from e

    def map_users(self, tenant_id: int, user_ids: Iterable[int]) -> list[UserTenantMapping]:
        """Add several memberships in one flush; all or nothing."""
        try:
            return self.memberships.create_many(
                {"user_id": user_id, "tenant_id": tenant_id} for user_id in user_ids
            )
        except UniquenessViolation as e:
            raise DuplicateGrant("One or more users are already mapped to this tenant") from e

    def unmap_user(self, user_id: int, tenant_id: int) -> int:
        """Remove a membership. Removing a missing membership is not an error."""
        return self.memberships.delete_by_condition(
            UserTenantMapping.user_id == user_id,
            UserTenantMapping.tenant_id == tenant_id,
        )

    def tenants_for_user(self, user_id: int) -> list[Tenant]:
        stmt = (
            select(Tenant)
            .join(UserTenantMapping, UserTenantMapping.tenant_id == Tenant.id)
            .where(UserTenantMapping.user_id == user_id)
            .order_by(Tenant.id)
        )
        return self.tenants.select_rows(stmt)
