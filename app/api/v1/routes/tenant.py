"""
Tenant management API routes (super admin only)
Handles CRUD operations for tenants
Reference: https://fastapi.tiangolo.com/tutorial/bigger-applications/
"""
import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.schemas.common import Page, page_params
from app.api.v1.schemas.tenant import TenantCreate, TenantResponse, TenantUpdate
from app.core.database import get_db
from app.core.dependencies import SuperAdmin
from app.services.pagination import PageParams
from app.services.tenant import TenantService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/tenants",
    tags=["tenants"],
)


@router.post(
    "",
    response_model=TenantResponse,
    summary="Create tenant",
    description="Create a new tenant (super admin only)",
    status_code=status.HTTP_201_CREATED,
)
async def create_tenant(
    tenant_data: TenantCreate,
    principal: SuperAdmin,
    db: AsyncSession = Depends(get_db),
) -> TenantResponse:
    """
    Create a new tenant (super admin only)

    The subdomain must be unique across all tenants, including deleted ones.
    schemaName defaults to tenant_<subdomain>.

    Args:
        tenant_data: Tenant creation data
        principal: Authenticated super admin (injected via dependency)
        db: Database session (injected via dependency)

    Returns:
        TenantResponse: Created tenant with all fields

    Raises:
        ConflictError: 409 if subdomain or schema name already exists
    """
    tenant = await TenantService().create_tenant(db, tenant_data, principal)
    await db.commit()

    logger.info(f"Super admin {principal.user_id} created tenant: {tenant.id} ({tenant.name})")
    return TenantResponse.model_validate(tenant)


@router.get(
    "",
    response_model=Page[TenantResponse],
    summary="List tenants",
    description="Get a page of tenants (super admin only)",
)
async def list_tenants(
    principal: SuperAdmin,
    include_inactive: bool = Query(False, alias="includeInactive", description="Include inactive tenants"),
    search: Optional[str] = Query(None, description="Match on name or subdomain"),
    params: PageParams = Depends(page_params),
    db: AsyncSession = Depends(get_db),
) -> Page[TenantResponse]:
    tenants, total = await TenantService().get_tenants(db, params, include_inactive=include_inactive, search=search)
    return Page[TenantResponse].build([TenantResponse.model_validate(t) for t in tenants], total, params)


@router.get(
    "/{tenant_id}",
    response_model=TenantResponse,
    summary="Get tenant",
)
async def get_tenant(
    tenant_id: uuid.UUID,
    principal: SuperAdmin,
    db: AsyncSession = Depends(get_db),
) -> TenantResponse:
    """
    Raises:
        NotFoundError: 404 if tenant not found
    """
    tenant = await TenantService().require_tenant(db, tenant_id)
    return TenantResponse.model_validate(tenant)


@router.patch(
    "/{tenant_id}",
    response_model=TenantResponse,
    summary="Update tenant",
    description="Partial update; only provided fields change",
)
async def update_tenant(
    tenant_id: uuid.UUID,
    tenant_data: TenantUpdate,
    principal: SuperAdmin,
    db: AsyncSession = Depends(get_db),
) -> TenantResponse:
    tenant = await TenantService().update_tenant(db, tenant_id, tenant_data, principal)
    await db.commit()
    return TenantResponse.model_validate(tenant)


@router.post(
    "/{tenant_id}/activate",
    response_model=TenantResponse,
    summary="Activate tenant",
)
async def activate_tenant(
    tenant_id: uuid.UUID,
    principal: SuperAdmin,
    db: AsyncSession = Depends(get_db),
) -> TenantResponse:
    tenant = await TenantService().set_active(db, tenant_id, True, principal)
    await db.commit()
    return TenantResponse.model_validate(tenant)


@router.post(
    "/{tenant_id}/deactivate",
    response_model=TenantResponse,
    summary="Deactivate tenant",
    description="Users of an inactive tenant are rejected on every authenticated request",
)
async def deactivate_tenant(
    tenant_id: uuid.UUID,
    principal: SuperAdmin,
    db: AsyncSession = Depends(get_db),
) -> TenantResponse:
    tenant = await TenantService().set_active(db, tenant_id, False, principal)
    await db.commit()
    return TenantResponse.model_validate(tenant)


@router.delete(
    "/{tenant_id}",
    summary="Delete tenant",
    description="Soft delete by default; purge=true removes the tenant and all its data",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def delete_tenant(
    tenant_id: uuid.UUID,
    principal: SuperAdmin,
    purge: bool = Query(False, description="Physically delete the tenant and cascade to its data"),
    db: AsyncSession = Depends(get_db),
) -> Response:
    """
    Delete a tenant (super admin only)

    Soft delete tombstones the tenant and its users, persons, groups,
    memberships and documents, and revokes its users' refresh tokens.
    Purge deletes the rows; database cascades remove dependent data.

    Raises:
        NotFoundError: 404 if tenant not found
    """
    service = TenantService()
    if purge:
        await service.purge_tenant(db, tenant_id, principal)
    else:
        await service.delete_tenant(db, tenant_id, principal)
    await db.commit()

    logger.warning(f"Super admin {principal.user_id} {'purged' if purge else 'deleted'} tenant {tenant_id}")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
