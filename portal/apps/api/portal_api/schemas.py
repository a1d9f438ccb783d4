"""Pydantic schemas for API requests and responses."""

from datetime import datetime
from typing import Any, ClassVar, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

EMAIL_REGEX = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"
MOBILE_REGEX = r"^\d{10,15}$"


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class UpdateModel(BaseModel):
    """Partial update body: unknown fields are rejected, unset fields are left alone.

    Fields listed in ``required_fields`` map to NOT NULL columns; sending them
    as an explicit null is rejected instead of reaching the store.
    """

    model_config = ConfigDict(extra="forbid")

    required_fields: ClassVar[frozenset[str]] = frozenset()

    @model_validator(mode="after")
    def reject_null_required_fields(self):
        nulls = sorted(
            name for name in self.model_fields_set & self.required_fields if getattr(self, name) is None
        )
        if nulls:
            raise ValueError(f"{', '.join(nulls)} cannot be null")
        return self


# ============================================================================
# RFC 9457 Problem Details
# ============================================================================


class ProblemDetail(BaseModel):
    """RFC 9457 Problem Details for HTTP API errors.

    RFC 9457: detail can be either a string or a structured object (dict).
    """

    type: str = Field(..., description="URI reference identifying the problem type")
    title: str = Field(..., description="Short, human-readable summary")
    status: int = Field(..., description="HTTP status code")
    detail: str | dict[str, Any] = Field(..., description="Human-readable explanation or structured error details")
    instance: Optional[str] = Field(None, description="URI reference identifying the specific occurrence")


class DeleteResponse(BaseModel):
    message: str
    deleted: int = Field(..., description="Number of rows removed (0 when nothing matched)")


# ============================================================================
# Users / Auth
# ============================================================================


class UserResponse(ORMModel):
    id: int
    email: Optional[str] = None
    mobile_number: Optional[str] = None
    name: str
    country_id: int
    type: str = Field(..., description="client | system")
    is_active: bool
    last_login: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class RegisterRequest(BaseModel):
    """Request body for POST /v1/auth/register."""

    email: Optional[str] = Field(None, description="User email address", pattern=EMAIL_REGEX)
    mobile_number: Optional[str] = Field(None, description="Mobile number (10-15 digits)", pattern=MOBILE_REGEX)
    name: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=1, description="Base64-encoded password")
    type: str = Field("client", description="client | system")


class LoginRequest(BaseModel):
    """Request body for POST /v1/auth/login."""

    credential: str = Field(..., min_length=1, description="Email address or mobile number")
    password: str = Field(..., min_length=1, description="Base64-encoded password")


class LoginResponse(BaseModel):
    token: str = Field(..., description="Opaque session token; send as the Token header")
    expires_at: datetime
    user: UserResponse


class TokenValidationResponse(BaseModel):
    message: str
    result: bool
    user_id: int
    expires_in: int = Field(..., description="Seconds until the token expires")


class ChangePasswordRequest(BaseModel):
    old_password: str = Field(..., min_length=1, description="Base64-encoded current password")
    new_password: str = Field(..., min_length=1, description="Base64-encoded new password")


class MessageResponse(BaseModel):
    message: str


class UserUpdateRequest(UpdateModel):
    required_fields: ClassVar[frozenset[str]] = frozenset({"name", "country_id", "is_active"})

    email: Optional[str] = Field(None, pattern=EMAIL_REGEX)
    mobile_number: Optional[str] = Field(None, pattern=MOBILE_REGEX)
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    country_id: Optional[int] = None
    is_active: Optional[bool] = None


# ============================================================================
# Tenants
# ============================================================================


class TenantCreateRequest(BaseModel):
    company_guid: str = Field(..., min_length=1, max_length=50)
    company_name: str = Field(..., min_length=1, max_length=250)
    host: Optional[str] = Field(None, max_length=250)
    bmrm_port: Optional[int] = None
    sg_biz_port: Optional[int] = None
    tally_sync_port: Optional[int] = None


class TenantUpdateRequest(UpdateModel):
    """company_guid is immutable and therefore not accepted here."""

    required_fields: ClassVar[frozenset[str]] = frozenset({"company_name"})

    company_name: Optional[str] = Field(None, min_length=1, max_length=250)
    host: Optional[str] = Field(None, max_length=250)
    bmrm_port: Optional[int] = None
    sg_biz_port: Optional[int] = None
    tally_sync_port: Optional[int] = None


class TenantResponse(ORMModel):
    id: int
    company_guid: str
    company_name: str
    host: Optional[str] = None
    bmrm_port: Optional[int] = None
    sg_biz_port: Optional[int] = None
    tally_sync_port: Optional[int] = None
    created_at: datetime
    updated_at: datetime


class TenantResolutionResponse(ORMModel):
    """Response for GET /v1/auth/tenant."""

    user_id: int
    tenant_id: int
    company_guid: str
    company_name: str
    host: Optional[str] = None
    bmrm_port: Optional[int] = None
    sg_biz_port: Optional[int] = None
    tally_sync_port: Optional[int] = None


class UserTenantMappingRequest(BaseModel):
    user_id: int
    tenant_id: int


class BulkUserTenantMappingRequest(BaseModel):
    tenant_id: int
    user_ids: list[int] = Field(..., min_length=1)


class UserTenantMappingResponse(ORMModel):
    id: int
    user_id: int
    tenant_id: int
    created_at: datetime


# ============================================================================
# Features
# ============================================================================


class FeatureCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    permission: str = Field(..., min_length=1, max_length=50, description="Unique permission code")


class FeatureUpdateRequest(UpdateModel):
    required_fields: ClassVar[frozenset[str]] = frozenset({"name", "permission"})

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    permission: Optional[str] = Field(None, min_length=1, max_length=50)


class FeatureResponse(ORMModel):
    id: int
    name: str
    permission: str
    created_at: datetime
    updated_at: datetime


class UserFeatureGrantRequest(BaseModel):
    user_id: int
    feature_id: int


class PermissionGrantRequest(BaseModel):
    user_id: int
    permissions: list[str] = Field(..., min_length=1, description="Permission codes to grant")


class BulkFeatureGrantRequest(BaseModel):
    feature_id: int
    user_ids: list[int] = Field(..., min_length=1)


class UserFeatureMappingResponse(ORMModel):
    id: int
    user_id: int
    feature_id: int
    created_at: datetime


# ============================================================================
# Subscriptions
# ============================================================================


class SubscriptionCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    code: str = Field(..., min_length=1, max_length=50, description="Unique lookup code (e.g. demo)")


class SubscriptionUpdateRequest(UpdateModel):
    required_fields: ClassVar[frozenset[str]] = frozenset({"name", "code"})

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    code: Optional[str] = Field(None, min_length=1, max_length=50)


class SubscriptionResponse(ORMModel):
    id: int
    name: str
    code: str
    created_at: datetime
    updated_at: datetime


class UserSubscriptionMappingRequest(BaseModel):
    user_id: int
    subscription_id: int


class UserSubscriptionMappingResponse(ORMModel):
    id: int
    user_id: int
    subscription_id: int
    created_at: datetime


class FeatureSubscriptionMappingRequest(BaseModel):
    feature_id: int
    subscription_id: int


class FeatureSubscriptionMappingResponse(ORMModel):
    id: int
    feature_id: int
    subscription_id: int
    created_at: datetime


class SubscriptionHistoryCreateRequest(BaseModel):
    user_id: int
    subscription_id: int
    renewal_date: Optional[datetime] = None
    expiry_date: Optional[datetime] = None
    number_of_renewals: int = Field(0, ge=0)


class SubscriptionHistoryUpdateRequest(UpdateModel):
    required_fields: ClassVar[frozenset[str]] = frozenset({"number_of_renewals"})

    renewal_date: Optional[datetime] = None
    expiry_date: Optional[datetime] = None
    number_of_renewals: Optional[int] = Field(None, ge=0)


class SubscriptionHistoryResponse(ORMModel):
    id: int
    user_id: int
    subscription_id: int
    start_date: datetime
    renewal_date: Optional[datetime] = None
    expiry_date: Optional[datetime] = None
    number_of_renewals: int
    created_at: datetime
    updated_at: datetime
