"""Tenant management endpoints (session token required)."""

import logging

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from portal_api.auth.session_auth import IdentityContext, require_identity
from portal_api.db.models import Tenant
from portal_api.db.repository import Repository, commit
from portal_api.db.session import get_db
from portal_api.errors import NotFoundError, ValidationError
from portal_api.schemas import (
    BulkUserTenantMappingRequest,
    DeleteResponse,
    TenantCreateRequest,
    TenantResponse,
    TenantUpdateRequest,
    UserTenantMappingRequest,
    UserTenantMappingResponse,
)
from portal_api.tenants.resolver import TenantResolver

router = APIRouter(prefix="/v1/tenants", tags=["tenants"])
companies_router = APIRouter(prefix="/v1/companies", tags=["tenants"])
logger = logging.getLogger(__name__)


@router.post("", status_code=status.HTTP_201_CREATED, response_model=TenantResponse)
def create_tenant(
    request: TenantCreateRequest,
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
) -> TenantResponse:
    """Create a tenant. A duplicate company_guid answers 409."""
    tenant = Repository(db, Tenant).create(**request.model_dump())
    commit(db)
    logger.info("tenant.created", extra={"event": "tenant.created", "created_tenant_id": tenant.id})
    return TenantResponse.model_validate(tenant)


@router.get("", response_model=list[TenantResponse])
def list_tenants(
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
) -> list[TenantResponse]:
    return [TenantResponse.model_validate(t) for t in Repository(db, Tenant).get_all()]


@router.patch("/{tenant_id}", response_model=TenantResponse)
def update_tenant(
    tenant_id: int,
    request: TenantUpdateRequest,
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
) -> TenantResponse:
    updates = request.model_dump(exclude_unset=True)
    if not updates:
        raise ValidationError("No updates provided")

    tenants = Repository(db, Tenant)
    tenant = tenants.get(tenant_id)
    if tenant is None:
        raise NotFoundError(f"Tenant {tenant_id} not found")
    tenants.update_one(tenant, updates)
    commit(db)
    return TenantResponse.model_validate(tenant)


@router.post("/mapping", status_code=status.HTTP_201_CREATED, response_model=UserTenantMappingResponse)
def map_user_to_tenant(
    request: UserTenantMappingRequest,
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
) -> UserTenantMappingResponse:
    """Add a user to a tenant. Duplicate membership answers 409."""
    mapping = TenantResolver(db).map_user(request.user_id, request.tenant_id)
    commit(db)
    return UserTenantMappingResponse.model_validate(mapping)


@router.post("/mappings", status_code=status.HTTP_201_CREATED, response_model=list[UserTenantMappingResponse])
def map_users_to_tenant(
    request: BulkUserTenantMappingRequest,
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
) -> list[UserTenantMappingResponse]:
    """Add several users to one tenant; all or nothing."""
    mappings = TenantResolver(db).map_users(request.tenant_id, request.user_ids)
    commit(db)
    return [UserTenantMappingResponse.model_validate(m) for m in mappings]


@router.delete("/mapping", response_model=DeleteResponse)
def delete_user_tenant_mapping(
    user_id: int = Query(...),
    tenant_id: int = Query(...),
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
) -> DeleteResponse:
    """Remove a membership. Removing a missing membership still answers 200."""
    deleted = TenantResolver(db).unmap_user(user_id, tenant_id)
    commit(db)
    return DeleteResponse(message="User-tenant mapping deleted", deleted=deleted)


@router.get("/user", response_model=list[TenantResponse])
def tenants_by_user(
    user_id: int = Query(...),
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
) -> list[TenantResponse]:
    return [TenantResponse.model_validate(t) for t in TenantResolver(db).tenants_for_user(user_id)]


@companies_router.get("", response_model=list[TenantResponse])
def get_companies(
    user_id: int = Query(...),
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
):
    """Companies (tenants) mapped to a user. 204 when there are none."""
    tenants = TenantResolver(db).tenants_for_user(user_id)
    if not tenants:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return [TenantResponse.model_validate(t) for t in tenants]
