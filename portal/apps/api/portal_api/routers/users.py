"""User endpoints.

All routes require a session token. ``/me`` routes act on the caller only.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from portal_api.auth.accounts import AccountService
from portal_api.auth.session_auth import IdentityContext, require_identity
from portal_api.db.models import User
from portal_api.db.repository import Repository, commit
from portal_api.db.session import get_db
from portal_api.errors import NotFoundError, ValidationError
from portal_api.schemas import (
    ChangePasswordRequest,
    DeleteResponse,
    MessageResponse,
    UserResponse,
    UserUpdateRequest,
)

router = APIRouter(prefix="/v1/users", tags=["users"])
logger = logging.getLogger(__name__)


def _get_user_or_404(db: Session, user_id: int) -> User:
    user = Repository(db, User).get(user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found")
    return user


@router.get("/me", response_model=UserResponse)
def get_profile(
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
) -> UserResponse:
    """Profile of the authenticated caller."""
    return UserResponse.model_validate(_get_user_or_404(db, identity.user_id))


@router.post("/me/password", response_model=MessageResponse)
def change_password(
    request: ChangePasswordRequest,
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
) -> MessageResponse:
    """Change the caller's password (old password required)."""
    AccountService(db).change_password(identity.user_id, request.old_password, request.new_password)
    return MessageResponse(message="Password updated successfully")


@router.get("", response_model=list[UserResponse])
def list_users(
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
) -> list[UserResponse]:
    return [UserResponse.model_validate(u) for u in Repository(db, User).get_all()]


@router.get("/{user_id}", response_model=UserResponse)
def get_user(
    user_id: int,
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
) -> UserResponse:
    return UserResponse.model_validate(_get_user_or_404(db, user_id))


@router.patch("/{user_id}", response_model=UserResponse)
def update_user(
    user_id: int,
    request: UserUpdateRequest,
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
) -> UserResponse:
    """Partial update. An empty body is rejected with 400."""
    updates = request.model_dump(exclude_unset=True)
    if not updates:
        raise ValidationError("No updates provided")

    user = _get_user_or_404(db, user_id)
    email = updates.get("email", user.email)
    mobile_number = updates.get("mobile_number", user.mobile_number)
    if not email and not mobile_number:
        raise ValidationError("Either email or mobile_number is required")

    Repository(db, User).update_one(user, updates)
    commit(db)

    logger.info(
        "user.updated",
        extra={"event": "user.updated", "target_user_id": user_id, "fields": sorted(updates)},
    )
    return UserResponse.model_validate(user)


@router.delete("/{user_id}", response_model=DeleteResponse)
def delete_user(
    user_id: int,
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
) -> DeleteResponse:
    """Delete a user; credential, tokens and mappings go with it."""
    user = _get_user_or_404(db, user_id)
    Repository(db, User).delete(user)
    commit(db)

    logger.info("user.deleted", extra={"event": "user.deleted", "target_user_id": user_id})
    return DeleteResponse(message="User deleted successfully", deleted=1)
