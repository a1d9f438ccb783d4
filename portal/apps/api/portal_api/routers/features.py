"""Feature management and direct-grant endpoints (session token required)."""

import logging

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from portal_api.auth.session_auth import IdentityContext, require_identity
from portal_api.db.models import Feature
from portal_api.db.repository import Repository, commit
from portal_api.db.session import get_db
from portal_api.entitlements.graph import EntitlementGraph
from portal_api.errors import NotFoundError, ValidationError
from portal_api.schemas import (
    BulkFeatureGrantRequest,
    DeleteResponse,
    FeatureCreateRequest,
    FeatureResponse,
    FeatureUpdateRequest,
    PermissionGrantRequest,
    UserFeatureGrantRequest,
    UserFeatureMappingResponse,
)

router = APIRouter(prefix="/v1/features", tags=["features"])
logger = logging.getLogger(__name__)


@router.post("", status_code=status.HTTP_201_CREATED, response_model=FeatureResponse)
def create_feature(
    request: FeatureCreateRequest,
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
) -> FeatureResponse:
    """Create a feature. A duplicate permission code answers 409."""
    feature = Repository(db, Feature).create(**request.model_dump())
    commit(db)
    return FeatureResponse.model_validate(feature)


@router.get("", response_model=list[FeatureResponse])
def list_features(
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
) -> list[FeatureResponse]:
    return [FeatureResponse.model_validate(f) for f in Repository(db, Feature).get_all()]


@router.get("/user", response_model=list[FeatureResponse])
def features_by_user(
    user_id: int = Query(...),
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
) -> list[FeatureResponse]:
    """Effective features of a user (direct and via subscriptions)."""
    features = EntitlementGraph(db).features_for_user(user_id)
    return [FeatureResponse.model_validate(f) for f in sorted(features, key=lambda f: f.id)]


@router.post("/mapping", status_code=status.HTTP_201_CREATED, response_model=UserFeatureMappingResponse)
def grant_feature(
    request: UserFeatureGrantRequest,
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
) -> UserFeatureMappingResponse:
    """Grant one feature to one user. A duplicate grant answers 409."""
    mapping = EntitlementGraph(db).grant_feature_direct(request.user_id, request.feature_id)
    commit(db)
    return UserFeatureMappingResponse.model_validate(mapping)


@router.post("/mapping/permissions", status_code=status.HTTP_201_CREATED, response_model=list[UserFeatureMappingResponse])
def grant_features_by_permission(
    request: PermissionGrantRequest,
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
) -> list[UserFeatureMappingResponse]:
    """Grant features to a user by permission code; all or nothing."""
    mappings = EntitlementGraph(db).grant_features_by_permission_code(request.user_id, request.permissions)
    commit(db)
    return [UserFeatureMappingResponse.model_validate(m) for m in mappings]


@router.post("/mappings", status_code=status.HTTP_201_CREATED, response_model=list[UserFeatureMappingResponse])
def grant_feature_to_users(
    request: BulkFeatureGrantRequest,
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
) -> list[UserFeatureMappingResponse]:
    mappings = EntitlementGraph(db).grant_users_to_feature(request.feature_id, request.user_ids)
    commit(db)
    return [UserFeatureMappingResponse.model_validate(m) for m in mappings]


@router.delete("/mapping", response_model=DeleteResponse)
def revoke_feature(
    user_id: int = Query(...),
    feature_id: int = Query(...),
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
) -> DeleteResponse:
    """Revoke a direct grant. Revoking a missing grant still answers 200."""
    deleted = EntitlementGraph(db).revoke_feature_direct(user_id, feature_id)
    commit(db)
    return DeleteResponse(message="User-feature mapping deleted", deleted=deleted)


@router.delete("/mappings", response_model=DeleteResponse)
def revoke_all_features(
    user_id: int = Query(...),
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
) -> DeleteResponse:
    """Revoke every direct grant of a user."""
    deleted = EntitlementGraph(db).revoke_all_for_user(user_id)
    commit(db)
    return DeleteResponse(message="User-feature mappings deleted", deleted=deleted)


# ============================================================================
# Feature update / delete (path parameter routes registered last)
# ============================================================================


@router.patch("/{feature_id}", response_model=FeatureResponse)
def update_feature(
    feature_id: int,
    request: FeatureUpdateRequest,
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
) -> FeatureResponse:
    updates = request.model_dump(exclude_unset=True)
    if not updates:
        raise ValidationError("No updates provided")

    features = Repository(db, Feature)
    feature = features.get(feature_id)
    if feature is None:
        raise NotFoundError(f"Feature {feature_id} not found")
    features.update_one(feature, updates)
    commit(db)
    return FeatureResponse.model_validate(feature)


@router.delete("/{feature_id}", response_model=DeleteResponse)
def delete_feature(
    feature_id: int,
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
) -> DeleteResponse:
    """Delete a feature together with its grants and plan memberships."""
    features = Repository(db, Feature)
    feature = features.get(feature_id)
    if feature is None:
        raise NotFoundError(f"Feature {feature_id} not found")
    features.delete(feature)
    commit(db)
    return DeleteResponse(message="Feature deleted successfully", deleted=1)
