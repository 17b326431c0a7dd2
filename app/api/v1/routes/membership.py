"""
Group membership API routes
Create memberships and drive their end / suspend / reactivate lifecycle
Reference: https://fastapi.tiangolo.com/tutorial/bigger-applications/
"""
import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Body, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.schemas.common import Page, page_params
from app.api.v1.schemas.membership import (
    MembershipCreate,
    MembershipEnd,
    MembershipResponse,
    MembershipSuspend,
    MembershipUpdate,
)
from app.core.database import get_db
from app.core.dependencies import CurrentPrincipal, PeopleWriter
from app.core.tenant import ActingTenantId
from app.models.group_membership import MembershipRole, MembershipStatus
from app.services.membership import MembershipFilters, MembershipService
from app.services.pagination import PageParams

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/memberships",
    tags=["memberships"],
)


@router.post(
    "",
    response_model=MembershipResponse,
    summary="Create membership",
    status_code=status.HTTP_201_CREATED,
)
async def create_membership(
    data: MembershipCreate,
    principal: PeopleWriter,
    tenant_id: ActingTenantId,
    db: AsyncSession = Depends(get_db),
) -> MembershipResponse:
    """
    Add a person to a group.

    A membership created with an end date is stored as already ended.

    Raises:
        NotFoundError: 404 if the person or group is not in the acting tenant
        ConflictError: 409 if the (person, group, startDate) membership exists
        CapacityError: 409 if the group has no free seats
    """
    membership = await MembershipService().create_membership(db, principal, tenant_id, data)
    await db.commit()
    return MembershipResponse.model_validate(membership)


@router.get(
    "",
    response_model=Page[MembershipResponse],
    summary="List memberships",
)
async def list_memberships(
    principal: CurrentPrincipal,
    tenant_id: ActingTenantId,
    person_id: Optional[uuid.UUID] = Query(None, alias="personId"),
    group_id: Optional[uuid.UUID] = Query(None, alias="groupId"),
    role: Optional[MembershipRole] = Query(None),
    status_filter: Optional[MembershipStatus] = Query(None, alias="status"),
    active_only: bool = Query(False, alias="activeOnly"),
    params: PageParams = Depends(page_params),
    db: AsyncSession = Depends(get_db),
) -> Page[MembershipResponse]:
    filters = MembershipFilters(
        person_id=person_id,
        group_id=group_id,
        role=role,
        status=status_filter,
        active_only=active_only,
    )
    memberships, total = await MembershipService().list_memberships(db, tenant_id, params, filters)
    return Page[MembershipResponse].build([MembershipResponse.model_validate(m) for m in memberships], total, params)


@router.get(
    "/{membership_id}",
    response_model=MembershipResponse,
    summary="Get membership",
)
async def get_membership(
    membership_id: uuid.UUID,
    principal: CurrentPrincipal,
    db: AsyncSession = Depends(get_db),
) -> MembershipResponse:
    membership = await MembershipService().get_membership(db, principal, membership_id)
    return MembershipResponse.model_validate(membership)


@router.patch(
    "/{membership_id}",
    response_model=MembershipResponse,
    summary="Update membership",
    description="Role and reason only; use the actions to change status",
)
async def update_membership(
    membership_id: uuid.UUID,
    data: MembershipUpdate,
    principal: PeopleWriter,
    db: AsyncSession = Depends(get_db),
) -> MembershipResponse:
    membership = await MembershipService().update_membership(db, principal, membership_id, data)
    await db.commit()
    return MembershipResponse.model_validate(membership)


@router.post(
    "/{membership_id}/end",
    response_model=MembershipResponse,
    summary="End membership",
)
async def end_membership(
    membership_id: uuid.UUID,
    principal: PeopleWriter,
    data: Optional[MembershipEnd] = Body(None),
    db: AsyncSession = Depends(get_db),
) -> MembershipResponse:
    """
    Set the end date (default today) and mark the membership inactive.
    Ending an already ended membership returns it unchanged.

    Raises:
        ValidationError: 422 if endDate is before startDate
    """
    membership = await MembershipService().end_membership(db, principal, membership_id, data or MembershipEnd())
    await db.commit()
    return MembershipResponse.model_validate(membership)


@router.post(
    "/{membership_id}/suspend",
    response_model=MembershipResponse,
    summary="Suspend membership",
)
async def suspend_membership(
    membership_id: uuid.UUID,
    data: MembershipSuspend,
    principal: PeopleWriter,
    db: AsyncSession = Depends(get_db),
) -> MembershipResponse:
    """
    Raises:
        InvalidStateError: 409 if the membership is ended or inactive
    """
    membership = await MembershipService().suspend_membership(db, principal, membership_id, data.reason)
    await db.commit()
    return MembershipResponse.model_validate(membership)


@router.post(
    "/{membership_id}/reactivate",
    response_model=MembershipResponse,
    summary="Reactivate membership",
)
async def reactivate_membership(
    membership_id: uuid.UUID,
    principal: PeopleWriter,
    db: AsyncSession = Depends(get_db),
) -> MembershipResponse:
    """
    Raises:
        InvalidStateError: 409 if the membership is ended or inactive
        CapacityError: 409 if the group filled up in the meantime
    """
    membership = await MembershipService().reactivate_membership(db, principal, membership_id)
    await db.commit()
    return MembershipResponse.model_validate(membership)
