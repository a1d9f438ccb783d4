"""Subscription endpoints: plans, plan holders, plan composition, history.

Session token required on every route.
"""

import logging

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from portal_api.auth.session_auth import IdentityContext, require_identity
from portal_api.db.models import Subscription, UserSubscriptionHistory
from portal_api.db.repository import Repository, commit
from portal_api.db.session import get_db
from portal_api.entitlements.graph import EntitlementGraph
from portal_api.errors import NotFoundError, ValidationError
from portal_api.schemas import (
    DeleteResponse,
    FeatureResponse,
    FeatureSubscriptionMappingRequest,
    FeatureSubscriptionMappingResponse,
    SubscriptionCreateRequest,
    SubscriptionHistoryCreateRequest,
    SubscriptionHistoryResponse,
    SubscriptionHistoryUpdateRequest,
    SubscriptionResponse,
    SubscriptionUpdateRequest,
    UserSubscriptionMappingRequest,
    UserSubscriptionMappingResponse,
)

router = APIRouter(prefix="/v1/subscriptions", tags=["subscriptions"])
logger = logging.getLogger(__name__)


# ============================================================================
# Plans
# ============================================================================


@router.post("", status_code=status.HTTP_201_CREATED, response_model=SubscriptionResponse)
def create_subscription(
    request: SubscriptionCreateRequest,
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
) -> SubscriptionResponse:
    """Create a subscription. A duplicate code answers 409."""
    subscription = Repository(db, Subscription).create(**request.model_dump())
    commit(db)
    return SubscriptionResponse.model_validate(subscription)


@router.get("", response_model=list[SubscriptionResponse])
def list_subscriptions(
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
) -> list[SubscriptionResponse]:
    return [SubscriptionResponse.model_validate(s) for s in Repository(db, Subscription).get_all()]


# ============================================================================
# Plan holders
# ============================================================================


@router.post("/mapping", status_code=status.HTTP_201_CREATED, response_model=UserSubscriptionMappingResponse)
def map_user_to_subscription(
    request: UserSubscriptionMappingRequest,
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
) -> UserSubscriptionMappingResponse:
    """Give a user a subscription. A duplicate answers 409."""
    mapping = EntitlementGraph(db).map_user_to_subscription(request.user_id, request.subscription_id)
    commit(db)
    return UserSubscriptionMappingResponse.model_validate(mapping)


@router.delete("/mapping", response_model=DeleteResponse)
def delete_user_subscription_mapping(
    user_id: int = Query(...),
    subscription_id: int = Query(...),
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
) -> DeleteResponse:
    deleted = EntitlementGraph(db).unmap_user_from_subscription(user_id, subscription_id)
    commit(db)
    return DeleteResponse(message="User-subscription mapping deleted", deleted=deleted)


@router.get("/user", response_model=list[SubscriptionResponse])
def subscriptions_by_user(
    user_id: int = Query(...),
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
) -> list[SubscriptionResponse]:
    subscriptions = EntitlementGraph(db).subscriptions_for_user(user_id)
    return [SubscriptionResponse.model_validate(s) for s in subscriptions]


# ============================================================================
# Plan composition
# ============================================================================


@router.post("/features", status_code=status.HTTP_201_CREATED, response_model=FeatureSubscriptionMappingResponse)
def map_feature_to_subscription(
    request: FeatureSubscriptionMappingRequest,
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
) -> FeatureSubscriptionMappingResponse:
    """Bundle a feature into a subscription. A duplicate answers 409."""
    mapping = EntitlementGraph(db).map_feature_to_subscription(request.feature_id, request.subscription_id)
    commit(db)
    return FeatureSubscriptionMappingResponse.model_validate(mapping)


@router.get("/features/list", response_model=list[FeatureResponse])
def features_by_subscription(
    subscription_id: int = Query(...),
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
) -> list[FeatureResponse]:
    features = EntitlementGraph(db).features_for_subscription(subscription_id)
    return [FeatureResponse.model_validate(f) for f in features]


@router.delete("/features", response_model=DeleteResponse)
def delete_feature_subscription_mapping(
    feature_id: int = Query(...),
    subscription_id: int = Query(...),
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
) -> DeleteResponse:
    deleted = EntitlementGraph(db).unmap_feature_from_subscription(feature_id, subscription_id)
    commit(db)
    return DeleteResponse(message="Feature-subscription mapping deleted", deleted=deleted)


# ============================================================================
# History
# ============================================================================


def _get_history_or_404(db: Session, user_id: int) -> UserSubscriptionHistory:
    history = Repository(db, UserSubscriptionHistory).get_by_field("user_id", user_id)
    if history is None:
        raise NotFoundError(f"No subscription history for user {user_id}")
    return history


@router.post("/history", status_code=status.HTTP_201_CREATED, response_model=SubscriptionHistoryResponse)
def create_subscription_history(
    request: SubscriptionHistoryCreateRequest,
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
) -> SubscriptionHistoryResponse:
    """Open a history record; start_date is set to now."""
    history = Repository(db, UserSubscriptionHistory).create(**request.model_dump())
    commit(db)
    return SubscriptionHistoryResponse.model_validate(history)


@router.get("/history", response_model=list[SubscriptionHistoryResponse])
def list_subscription_histories(
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
) -> list[SubscriptionHistoryResponse]:
    histories = Repository(db, UserSubscriptionHistory).get_all()
    return [SubscriptionHistoryResponse.model_validate(h) for h in histories]


@router.get("/history/user", response_model=SubscriptionHistoryResponse)
def get_subscription_history(
    user_id: int = Query(...),
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
) -> SubscriptionHistoryResponse:
    return SubscriptionHistoryResponse.model_validate(_get_history_or_404(db, user_id))


@router.patch("/history/user", response_model=SubscriptionHistoryResponse)
def update_subscription_history(
    request: SubscriptionHistoryUpdateRequest,
    user_id: int = Query(...),
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
) -> SubscriptionHistoryResponse:
    updates = request.model_dump(exclude_unset=True)
    if not updates:
        raise ValidationError("No updates provided")

    history = _get_history_or_404(db, user_id)
    Repository(db, UserSubscriptionHistory).update_one(history, updates)
    commit(db)
    return SubscriptionHistoryResponse.model_validate(history)


@router.delete("/history/user", response_model=DeleteResponse)
def delete_subscription_history(
    user_id: int = Query(...),
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
) -> DeleteResponse:
    deleted = Repository(db, UserSubscriptionHistory).delete_by_condition(
        UserSubscriptionHistory.user_id == user_id
    )
    commit(db)
    return DeleteResponse(message="Subscription history deleted", deleted=deleted)


# ============================================================================
# Plan update / delete (path parameter routes registered last)
# ============================================================================


@router.patch("/{subscription_id}", response_model=SubscriptionResponse)
def update_subscription(
    subscription_id: int,
    request: SubscriptionUpdateRequest,
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
) -> SubscriptionResponse:
    updates = request.model_dump(exclude_unset=True)
    if not updates:
        raise ValidationError("No updates provided")

    subscriptions = Repository(db, Subscription)
    subscription = subscriptions.get(subscription_id)
    if subscription is None:
        raise NotFoundError(f"Subscription {subscription_id} not found")
    subscriptions.update_one(subscription, updates)
    commit(db)
    return SubscriptionResponse.model_validate(subscription)


@router.delete("/{subscription_id}", response_model=DeleteResponse)
def delete_subscription(
    subscription_id: int,
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
) -> DeleteResponse:
    """Delete a subscription with its holders, composition and history rows."""
    subscriptions = Repository(db, Subscription)
    subscription = subscriptions.get(subscription_id)
    if subscription is None:
        raise NotFoundError(f"Subscription {subscription_id} not found")
    subscriptions.delete(subscription)
    commit(db)
    return DeleteResponse(message="Subscription deleted successfully", deleted=1)
