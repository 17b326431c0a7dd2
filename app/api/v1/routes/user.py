"""
User administration API routes
Tenant admins manage the accounts of their own tenant; super admins any tenant.
Reference: https://fastapi.tiangolo.com/tutorial/bigger-applications/
"""
import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.schemas.common import Page, page_params
from app.api.v1.schemas.user import UserResponse, UserUpdate
from app.core.database import get_db
from app.core.dependencies import TenantAdmin
from app.core.tenant import ActingTenantId
from app.models.user import UserRole
from app.services.pagination import PageParams
from app.services.user import UserService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/users",
    tags=["users"],
)


@router.get(
    "",
    response_model=Page[UserResponse],
    summary="List users",
    description="Users of the acting tenant",
)
async def list_users(
    principal: TenantAdmin,
    tenant_id: ActingTenantId,
    search: Optional[str] = Query(None, description="Match on email, first or last name"),
    role: Optional[UserRole] = Query(None),
    is_active: Optional[bool] = Query(None, alias="isActive"),
    params: PageParams = Depends(page_params),
    db: AsyncSession = Depends(get_db),
) -> Page[UserResponse]:
    users, total = await UserService().list_users(
        db, tenant_id, params, search=search, role=role, is_active=is_active
    )
    return Page[UserResponse].build([UserResponse.model_validate(u) for u in users], total, params)


@router.get(
    "/{user_id}",
    response_model=UserResponse,
    summary="Get user",
)
async def get_user(
    user_id: uuid.UUID,
    principal: TenantAdmin,
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    user = await UserService().get_user(db, principal, user_id)
    return UserResponse.model_validate(user)


@router.patch(
    "/{user_id}",
    response_model=UserResponse,
    summary="Update user",
    description="Names, roles and active flag. Only a super admin can grant or revoke super_admin.",
)
async def update_user(
    user_id: uuid.UUID,
    data: UserUpdate,
    principal: TenantAdmin,
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    user = await UserService().update_user(db, principal, user_id, data)
    await db.commit()
    return UserResponse.model_validate(user)


@router.post(
    "/{user_id}/unlock",
    response_model=UserResponse,
    summary="Unlock user",
    description="Clear the failed login counter and any account lock",
)
async def unlock_user(
    user_id: uuid.UUID,
    principal: TenantAdmin,
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    user = await UserService().unlock_user(db, principal, user_id)
    await db.commit()
    return UserResponse.model_validate(user)


@router.delete(
    "/{user_id}",
    summary="Delete user",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def delete_user(
    user_id: uuid.UUID,
    principal: TenantAdmin,
    purge: bool = Query(False, description="Physically delete the account"),
    db: AsyncSession = Depends(get_db),
) -> Response:
    """
    Delete a user account

    Soft delete disables the account and revokes its refresh tokens.
    Purge removes the row: refresh tokens are deleted with it and audit
    entries keep their rows with the actor cleared.

    Raises:
        InvalidStateError: 409 when deleting your own account
    """
    service = UserService()
    if purge:
        await service.purge_user(db, principal, user_id)
    else:
        await service.delete_user(db, principal, user_id)
    await db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
