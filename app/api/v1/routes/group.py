"""
Group API routes
Group CRUD, the hierarchy view and the members sub-resource
Reference: https://fastapi.tiangolo.com/tutorial/bigger-applications/
"""
import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.schemas.common import Page, page_params
from app.api.v1.schemas.group import GroupCreate, GroupResponse, GroupTreeNode, GroupUpdate
from app.api.v1.schemas.membership import GroupMemberCreate, MembershipCreate, MembershipResponse, MembershipUpdate
from app.core.database import get_db
from app.core.dependencies import CurrentPrincipal, PeopleWriter
from app.core.tenant import ActingTenantId
from app.models.group import GroupType
from app.models.group_membership import MembershipRole, MembershipStatus
from app.services.group import GroupService
from app.services.membership import MembershipFilters, MembershipService
from app.services.pagination import PageParams

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/groups",
    tags=["groups"],
)


@router.post(
    "",
    response_model=GroupResponse,
    summary="Create group",
    status_code=status.HTTP_201_CREATED,
)
async def create_group(
    data: GroupCreate,
    principal: PeopleWriter,
    tenant_id: ActingTenantId,
    db: AsyncSession = Depends(get_db),
) -> GroupResponse:
    """
    Create a group in the acting tenant.

    Raises:
        ConflictError: 409 if a sibling group has the same name
        NotFoundError: 404 if the parent group or leader is not in the tenant
    """
    group = await GroupService().create_group(db, principal, tenant_id, data)
    await db.commit()
    return GroupResponse.model_validate(group)


@router.get(
    "",
    response_model=Page[GroupResponse],
    summary="List groups",
)
async def list_groups(
    principal: CurrentPrincipal,
    tenant_id: ActingTenantId,
    search: Optional[str] = Query(None),
    group_type: Optional[GroupType] = Query(None, alias="type"),
    parent_group_id: Optional[uuid.UUID] = Query(None, alias="parentGroupId"),
    leader_id: Optional[uuid.UUID] = Query(None, alias="leaderId"),
    is_active: Optional[bool] = Query(None, alias="isActive"),
    params: PageParams = Depends(page_params),
    db: AsyncSession = Depends(get_db),
) -> Page[GroupResponse]:
    groups, total = await GroupService().list_groups(
        db,
        tenant_id,
        params,
        search=search,
        group_type=group_type,
        parent_group_id=parent_group_id,
        leader_id=leader_id,
        is_active=is_active,
    )
    return Page[GroupResponse].build([GroupResponse.model_validate(g) for g in groups], total, params)


@router.get(
    "/hierarchy",
    response_model=list[GroupTreeNode],
    summary="Group hierarchy",
    description="Forest of groups with active member and direct subgroup counts",
)
async def get_hierarchy(
    principal: CurrentPrincipal,
    tenant_id: ActingTenantId,
    parent_id: Optional[uuid.UUID] = Query(None, alias="parentId", description="Return the subtree below this group"),
    include_inactive: bool = Query(False, alias="includeInactive"),
    db: AsyncSession = Depends(get_db),
) -> list[GroupTreeNode]:
    nodes = await GroupService().get_hierarchy(db, tenant_id, parent_id=parent_id, include_inactive=include_inactive)
    return [GroupTreeNode.model_validate(node) for node in nodes]


@router.get(
    "/{group_id}",
    response_model=GroupResponse,
    summary="Get group",
)
async def get_group(
    group_id: uuid.UUID,
    principal: CurrentPrincipal,
    db: AsyncSession = Depends(get_db),
) -> GroupResponse:
    group = await GroupService().get_group(db, principal, group_id)
    return GroupResponse.model_validate(group)


@router.patch(
    "/{group_id}",
    response_model=GroupResponse,
    summary="Update group",
)
async def update_group(
    group_id: uuid.UUID,
    data: GroupUpdate,
    principal: PeopleWriter,
    db: AsyncSession = Depends(get_db),
) -> GroupResponse:
    """
    Raises:
        ValidationError: 422 if the new parent is the group itself or a descendant
    """
    group = await GroupService().update_group(db, principal, group_id, data)
    await db.commit()
    return GroupResponse.model_validate(group)


@router.delete(
    "/{group_id}",
    summary="Delete group",
    description="Soft delete; rejected while the group has child groups or active members",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def delete_group(
    group_id: uuid.UUID,
    principal: PeopleWriter,
    db: AsyncSession = Depends(get_db),
) -> Response:
    await GroupService().delete_group(db, principal, group_id)
    await db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/{group_id}/members",
    response_model=Page[MembershipResponse],
    summary="List group members",
)
async def list_members(
    group_id: uuid.UUID,
    principal: CurrentPrincipal,
    role: Optional[MembershipRole] = Query(None),
    status_filter: Optional[MembershipStatus] = Query(None, alias="status"),
    active_only: bool = Query(False, alias="activeOnly"),
    params: PageParams = Depends(page_params),
    db: AsyncSession = Depends(get_db),
) -> Page[MembershipResponse]:
    group = await GroupService().get_group(db, principal, group_id)
    memberships, total = await MembershipService().list_memberships(
        db,
        group.tenant_id,
        params,
        MembershipFilters(group_id=group.id, role=role, status=status_filter, active_only=active_only),
    )
    return Page[MembershipResponse].build([MembershipResponse.model_validate(m) for m in memberships], total, params)


@router.get(
    "/{group_id}/members/active",
    response_model=Page[MembershipResponse],
    summary="List active group members",
)
async def list_active_members(
    group_id: uuid.UUID,
    principal: CurrentPrincipal,
    params: PageParams = Depends(page_params),
    db: AsyncSession = Depends(get_db),
) -> Page[MembershipResponse]:
    group = await GroupService().get_group(db, principal, group_id)
    memberships, total = await MembershipService().list_memberships(
        db, group.tenant_id, params, MembershipFilters(group_id=group.id, active_only=True)
    )
    return Page[MembershipResponse].build([MembershipResponse.model_validate(m) for m in memberships], total, params)


@router.post(
    "/{group_id}/members",
    response_model=MembershipResponse,
    summary="Add group member",
    status_code=status.HTTP_201_CREATED,
)
async def add_member(
    group_id: uuid.UUID,
    data: GroupMemberCreate,
    principal: PeopleWriter,
    db: AsyncSession = Depends(get_db),
) -> MembershipResponse:
    """
    Add a person to the group; startDate defaults to today.

    Raises:
        ConflictError: 409 if the person already joined on that date
        CapacityError: 409 if the group is full
    """
    group = await GroupService().get_group(db, principal, group_id)
    membership = await MembershipService().create_membership(
        db,
        principal,
        group.tenant_id,
        MembershipCreate(group_id=group.id, **data.model_dump()),
    )
    await db.commit()
    return MembershipResponse.model_validate(membership)


@router.patch(
    "/{group_id}/members/{person_id}",
    response_model=MembershipResponse,
    summary="Update group member",
    description="Change role or reason of the person's open membership",
)
async def update_member(
    group_id: uuid.UUID,
    person_id: uuid.UUID,
    data: MembershipUpdate,
    principal: PeopleWriter,
    db: AsyncSession = Depends(get_db),
) -> MembershipResponse:
    group = await GroupService().get_group(db, principal, group_id)
    membership = await MembershipService().update_member(db, principal, group, person_id, data)
    await db.commit()
    return MembershipResponse.model_validate(membership)


@router.delete(
    "/{group_id}/members/{person_id}",
    response_model=MembershipResponse,
    summary="Remove group member",
    description="Ends the person's open membership today; the row is kept",
)
async def remove_member(
    group_id: uuid.UUID,
    person_id: uuid.UUID,
    principal: PeopleWriter,
    db: AsyncSession = Depends(get_db),
) -> MembershipResponse:
    group = await GroupService().get_group(db, principal, group_id)
    membership = await MembershipService().remove_member(db, principal, group, person_id)
    await db.commit()
    return MembershipResponse.model_validate(membership)
