"""
Audit log API routes (read only)
"""
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.schemas.audit import AuditLogResponse
from app.api.v1.schemas.common import Page, page_params
from app.core.database import get_db
from app.core.dependencies import TenantAdmin
from app.core.tenant import ActingTenantId
from app.services.audit import AuditService
from app.services.pagination import PageParams

router = APIRouter(
    prefix="/audit-logs",
    tags=["audit"],
)


@router.get(
    "",
    response_model=Page[AuditLogResponse],
    summary="List audit entries",
    description="Audit trail of the acting tenant, newest first",
)
async def list_audit_logs(
    principal: TenantAdmin,
    tenant_id: ActingTenantId,
    entity_type: Optional[str] = Query(None, alias="entityType"),
    entity_id: Optional[uuid.UUID] = Query(None, alias="entityId"),
    action: Optional[str] = Query(None),
    user_id: Optional[uuid.UUID] = Query(None, alias="userId"),
    params: PageParams = Depends(page_params),
    db: AsyncSession = Depends(get_db),
) -> Page[AuditLogResponse]:
    entries, total = await AuditService().list_entries(
        db,
        tenant_id,
        params,
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        user_id=user_id,
    )
    return Page[AuditLogResponse].build([AuditLogResponse.model_validate(e) for e in entries], total, params)
