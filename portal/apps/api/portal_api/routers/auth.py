"""Auth endpoints.

Endpoints:
- POST /v1/auth/register: Create account (default tenant + demo subscription auto-mapped)
- POST /v1/auth/login: Email or mobile login, returns a session token
- GET /v1/auth/validate-token: Check the Token header
- GET /v1/auth/tenant: Resolve the X-Company-GUID header for the caller
- GET /v1/auth/features: Caller's effective feature set

SECURITY:
- Passwords are base64 in transit, never logged
- Login failures share one 401 body regardless of cause
- Unknown tenant and missing membership share one 404 body
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, status
from sqlalchemy.orm import Session

from portal_api.auth.accounts import AccountService
from portal_api.auth.session_auth import (
    IdentityContext,
    authenticate_token,
    require_identity,
    token_header_scheme,
)
from portal_api.db.session import get_db
from portal_api.entitlements.graph import EntitlementGraph
from portal_api.errors import NotAMember, NotFoundError, UnknownTenant, ValidationError
from portal_api.schemas import (
    FeatureResponse,
    LoginRequest,
    LoginResponse,
    RegisterRequest,
    TenantResolutionResponse,
    TokenValidationResponse,
    UserResponse,
)
from portal_api.tenants.resolver import TenantResolver

router = APIRouter(prefix="/v1/auth", tags=["auth"])
logger = logging.getLogger(__name__)

COMPANY_HEADER = "X-Company-GUID"


@router.post("/register", status_code=status.HTTP_201_CREATED, response_model=UserResponse)
def register(request: RegisterRequest, db: Session = Depends(get_db)) -> UserResponse:
    """Register a new user.

    Returns:
        201 with the created user

    Raises:
        400: Invalid user type / password encoding
        409: Email or mobile number already registered
        500: Default tenant or demo subscription not provisioned
    """
    user = AccountService(db).register(
        name=request.name,
        password_b64=request.password,
        user_type=request.type,
        email=request.email,
        mobile_number=request.mobile_number,
    )
    return UserResponse.model_validate(user)


@router.post("/login", response_model=LoginResponse)
def login(request: LoginRequest, db: Session = Depends(get_db)) -> LoginResponse:
    """Exchange email/mobile + password for a session token."""
    result = AccountService(db).login(request.credential, request.password)
    return LoginResponse(
        token=result.token.value,
        expires_at=result.token.expires_at,
        user=UserResponse.model_validate(result.user),
    )


@router.get("/validate-token", response_model=TokenValidationResponse)
def validate_token(
    token_value: Optional[str] = Depends(token_header_scheme),
    db: Session = Depends(get_db),
) -> TokenValidationResponse:
    """Report whether the Token header holds a live session token."""
    identity = authenticate_token(db, token_value)
    return TokenValidationResponse(
        message="Token is valid",
        result=True,
        user_id=identity.user_id,
        expires_in=identity.token_remaining_seconds,
    )


@router.get("/tenant", response_model=TenantResolutionResponse)
def resolve_tenant(
    identity: IdentityContext = Depends(require_identity),
    company_guid: Optional[str] = Header(None, alias=COMPANY_HEADER),
    db: Session = Depends(get_db),
) -> TenantResolutionResponse:
    """Resolve the company named in X-Company-GUID for the authenticated caller.

    Raises:
        400: Header missing
        404: Unknown company, or caller is not a member (indistinguishable)
    """
    if not company_guid:
        raise ValidationError(f"{COMPANY_HEADER} header is required")

    try:
        info = TenantResolver(db).resolve_tenant(identity.user_id, company_guid)
    except (UnknownTenant, NotAMember):
        raise NotFoundError("Company not found or not accessible") from None

    return TenantResolutionResponse.model_validate(info)


@router.get("/features", response_model=list[FeatureResponse])
def my_features(
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
) -> list[FeatureResponse]:
    """Effective features of the caller (direct grants and subscription grants)."""
    features = EntitlementGraph(db).features_for_user(identity.user_id)
    return [FeatureResponse.model_validate(f) for f in sorted(features, key=lambda f: f.id)]
