"""Entitlement graph: users ↔ subscriptions ↔ features.

A user's effective features are the union of
- direct grants        (user_feature_mappings), and
- subscription grants  (user_subscription_mappings → feature_subscription_mappings).

Neither path takes precedence; a feature reachable both ways appears once.

Duplicate policy: every mapping kind rejects a second row for the same pair
with DuplicateGrant (the unique constraint is the authority). Removing a
mapping that does not exist is a no-op.
"""

import logging
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from portal_api.db.models import (
    Feature,
    FeatureSubscriptionMapping,
    Subscription,
    UserFeatureMapping,
    UserSubscriptionMapping,
)
from portal_api.db.repository import Repository
from portal_api.errors import DuplicateGrant, NotFoundError, UniquenessViolation

logger = logging.getLogger(__name__)


class EntitlementGraph:
    def __init__(self, db: Session):
        self.db = db
        self.features = Repository(db, Feature)
        self.subscriptions = Repository(db, Subscription)
        self.user_features = Repository(db, UserFeatureMapping)
        self.feature_subscriptions = Repository(db, FeatureSubscriptionMapping)
        self.user_subscriptions = Repository(db, UserSubscriptionMapping)

    # ── resolution ───────────────────────────────────────────────────────────

    def features_for_user(self, user_id: int) -> set[Feature]:
        """Effective feature set of ``user_id`` (direct ∪ via subscriptions)."""
        direct = (
            select(Feature)
            .join(UserFeatureMapping, UserFeatureMapping.feature_id == Feature.id)
            .where(UserFeatureMapping.user_id == user_id)
        )
        via_subscription = (
            select(Feature)
            .join(FeatureSubscriptionMapping, FeatureSubscriptionMapping.feature_id == Feature.id)
            .join(
                UserSubscriptionMapping,
                UserSubscriptionMapping.subscription_id == FeatureSubscriptionMapping.subscription_id,
            )
            .where(UserSubscriptionMapping.user_id == user_id)
        )

        by_id: dict[int, Feature] = {}
        for feature in self.features.select_rows(direct) + self.features.select_rows(via_subscription):
            by_id[feature.id] = feature
        return set(by_id.values())

    def features_for_subscription(self, subscription_id: int) -> list[Feature]:
        stmt = (
            select(Feature)
            .join(FeatureSubscriptionMapping, FeatureSubscriptionMapping.feature_id == Feature.id)
            .where(FeatureSubscriptionMapping.subscription_id == subscription_id)
            .order_by(Feature.id)
        )
        return self.features.select_rows(stmt)

    def subscriptions_for_user(self, user_id: int) -> list[Subscription]:
        stmt = (
            select(Subscription)
            .join(UserSubscriptionMapping, UserSubscriptionMapping.subscription_id == Subscription.id)
            .where(UserSubscriptionMapping.user_id == user_id)
            .order_by(Subscription.id)
        )
        return self.subscriptions.select_rows(stmt)

    # ── direct grants ────────────────────────────────────────────────────────

    def grant_feature_direct(self, user_id: int, feature_id: int) -> UserFeatureMapping:
        """Grant one feature to one user.

        Raises:
            DuplicateGrant: The (user, feature) pair already exists
            NotFoundError: User or feature does not exist
        """
        try:
            mapping = self.user_features.create(user_id=user_id, feature_id=feature_id)
        except UniquenessViolation as e:
            raise DuplicateGrant("Feature already granted to user") from e
        logger.info(
            "entitlement.feature.granted",
            extra={"event": "entitlement.feature.granted", "owner_id": user_id, "feature_id": feature_id},
        )
        return mapping

    def grant_features_by_permission_code(
        self, user_id: int, codes: Iterable[str]
    ) -> list[UserFeatureMapping]:
        """Grant every feature named by ``codes``; all or nothing.

        Raises:
            NotFoundError: A permission code matches no feature
            DuplicateGrant: One of the features is already granted
        """
        wanted = list(dict.fromkeys(codes))
        found = self.features.get_all_by_condition(Feature.permission.in_(wanted))
        missing = sorted(set(wanted) - {feature.permission for feature in found})
        if missing:
            raise NotFoundError(f"Unknown permission code(s): {', '.join(missing)}")

        try:
            mappings = self.user_features.create_many(
                {"user_id": user_id, "feature_id": feature.id} for feature in found
            )
        except UniquenessViolation as e:
            raise DuplicateGrant("One or more features already granted to user") from e
        logger.info(
            "entitlement.feature.granted",
            extra={
                "event": "entitlement.feature.granted",
                "owner_id": user_id,
                "feature_ids": [feature.id for feature in found],
            },
        )
        return mappings

    def grant_users_to_feature(self, feature_id: int, user_ids: Iterable[int]) -> list[UserFeatureMapping]:
        """Grant one feature to several users; all or nothing."""
        try:
            return self.user_features.create_many(
                {"user_id": user_id, "feature_id": feature_id} for user_id in user_ids
            )
        except UniquenessViolation as e:
            raise DuplicateGrant("Feature already granted to one or more users") from e

    def revoke_feature_direct(self, user_id: int, feature_id: int) -> int:
        return self.user_features.delete_by_condition(
            UserFeatureMapping.user_id == user_id,
            UserFeatureMapping.feature_id == feature_id,
        )

    def revoke_all_for_user(self, user_id: int) -> int:
        """Drop every direct grant of ``user_id``. Subscription grants are untouched."""
        removed = self.user_features.delete_by_condition(UserFeatureMapping.user_id == user_id)
        logger.info(
            "entitlement.feature.revoked_all",
            extra={"event": "entitlement.feature.revoked_all", "owner_id": user_id, "removed": removed},
        )
        return removed

    # ── plan composition / plan holding ──────────────────────────────────────

    def map_feature_to_subscription(self, feature_id: int, subscription_id: int) -> FeatureSubscriptionMapping:
        try:
            return self.feature_subscriptions.create(feature_id=feature_id, subscription_id=subscription_id)
        except UniquenessViolation as e:
            raise DuplicateGrant("Feature already mapped to subscription") from e

    def unmap_feature_from_subscription(self, feature_id: int, subscription_id: int) -> int:
        return self.feature_subscriptions.delete_by_condition(
            FeatureSubscriptionMapping.feature_id == feature_id,
            FeatureSubscriptionMapping.subscription_id == subscription_id,
        )

    def map_user_to_subscription(self, user_id: int, subscription_id: int) -> UserSubscriptionMapping:
        try:
            return self.user_subscriptions.create(user_id=user_id, subscription_id=subscription_id)
        except UniquenessViolation as e:
            raise DuplicateGrant("User already holds subscription") from e

    def unmap_user_from_subscription(self, user_id: int, subscription_id: int) -> int:
        return self.user_subscriptions.delete_by_condition(
            UserSubscriptionMapping.user_id == user_id,
            UserSubscriptionMapping.subscription_id == subscription_id,
        )
