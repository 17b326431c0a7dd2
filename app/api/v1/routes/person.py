"""
Person directory API routes
Tenant-scoped CRUD, soft delete/restore and lookups
Reference: https://fastapi.tiangolo.com/tutorial/bigger-applications/
"""
import logging
import uuid
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.schemas.common import Page, page_params
from app.api.v1.schemas.membership import MembershipResponse
from app.api.v1.schemas.person import PersonCreate, PersonResponse, PersonUpdate
from app.core.database import get_db
from app.core.dependencies import CurrentPrincipal, PeopleWriter
from app.core.tenant import ActingTenantId
from app.models.group_membership import MembershipStatus
from app.models.person import Gender
from app.services.membership import MembershipFilters, MembershipService
from app.services.pagination import PageParams
from app.services.person import PersonFilters, PersonService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/persons",
    tags=["persons"],
)


@router.post(
    "",
    response_model=PersonResponse,
    summary="Create person",
    status_code=status.HTTP_201_CREATED,
)
async def create_person(
    data: PersonCreate,
    principal: PeopleWriter,
    tenant_id: ActingTenantId,
    db: AsyncSession = Depends(get_db),
) -> PersonResponse:
    """
    Create a person in the acting tenant.

    Raises:
        ConflictError: 409 if the email or national ID is already used by any person
    """
    person = await PersonService().create_person(db, principal, tenant_id, data)
    await db.commit()
    return PersonResponse.model_validate(person)


@router.get(
    "",
    response_model=Page[PersonResponse],
    summary="List persons",
)
async def list_persons(
    principal: CurrentPrincipal,
    tenant_id: ActingTenantId,
    search: Optional[str] = Query(None, description="Match on name, email or national ID"),
    email: Optional[str] = Query(None),
    national_id: Optional[str] = Query(None, alias="nationalId"),
    gender: Optional[Gender] = Query(None),
    tag: Optional[str] = Query(None),
    created_after: Optional[datetime] = Query(None, alias="createdAfter"),
    created_before: Optional[datetime] = Query(None, alias="createdBefore"),
    params: PageParams = Depends(page_params),
    db: AsyncSession = Depends(get_db),
) -> Page[PersonResponse]:
    filters = PersonFilters(
        search=search,
        email=email,
        national_id=national_id,
        gender=gender,
        tag=tag,
        created_after=created_after,
        created_before=created_before,
    )
    persons, total = await PersonService().list_persons(db, tenant_id, params, filters)
    return Page[PersonResponse].build([PersonResponse.model_validate(p) for p in persons], total, params)


@router.get(
    "/search/email",
    response_model=PersonResponse,
    summary="Find person by email",
)
async def find_by_email(
    principal: CurrentPrincipal,
    email: str = Query(..., min_length=3),
    db: AsyncSession = Depends(get_db),
) -> PersonResponse:
    person = await PersonService().find_by_email(db, principal, email)
    return PersonResponse.model_validate(person)


@router.get(
    "/search/national-id",
    response_model=PersonResponse,
    summary="Find person by national ID",
)
async def find_by_national_id(
    principal: CurrentPrincipal,
    national_id: str = Query(..., alias="nationalId", min_length=1),
    db: AsyncSession = Depends(get_db),
) -> PersonResponse:
    person = await PersonService().find_by_national_id(db, principal, national_id)
    return PersonResponse.model_validate(person)


@router.get(
    "/{person_id}",
    response_model=PersonResponse,
    summary="Get person",
)
async def get_person(
    person_id: uuid.UUID,
    principal: CurrentPrincipal,
    db: AsyncSession = Depends(get_db),
) -> PersonResponse:
    """
    Raises:
        NotFoundError: 404 if the person does not exist or is deleted
        AuthorizationError: 403 if the person belongs to another tenant
    """
    person = await PersonService().get_person(db, principal, person_id)
    return PersonResponse.model_validate(person)


@router.patch(
    "/{person_id}",
    response_model=PersonResponse,
    summary="Update person",
)
async def update_person(
    person_id: uuid.UUID,
    data: PersonUpdate,
    principal: PeopleWriter,
    db: AsyncSession = Depends(get_db),
) -> PersonResponse:
    person = await PersonService().update_person(db, principal, person_id, data)
    await db.commit()
    return PersonResponse.model_validate(person)


@router.delete(
    "/{person_id}",
    summary="Delete person",
    description="Soft delete; documents are deleted and open memberships ended",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def delete_person(
    person_id: uuid.UUID,
    principal: PeopleWriter,
    db: AsyncSession = Depends(get_db),
) -> Response:
    await PersonService().delete_person(db, principal, person_id)
    await db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{person_id}/restore",
    response_model=PersonResponse,
    summary="Restore person",
    description="Undo a soft delete. Documents and ended memberships stay as they are.",
)
async def restore_person(
    person_id: uuid.UUID,
    principal: PeopleWriter,
    db: AsyncSession = Depends(get_db),
) -> PersonResponse:
    person = await PersonService().restore_person(db, principal, person_id)
    await db.commit()
    return PersonResponse.model_validate(person)


@router.get(
    "/{person_id}/memberships",
    response_model=Page[MembershipResponse],
    summary="List a person's memberships",
)
async def list_person_memberships(
    person_id: uuid.UUID,
    principal: CurrentPrincipal,
    status_filter: Optional[MembershipStatus] = Query(None, alias="status"),
    active_only: bool = Query(False, alias="activeOnly"),
    params: PageParams = Depends(page_params),
    db: AsyncSession = Depends(get_db),
) -> Page[MembershipResponse]:
    person = await PersonService().get_person(db, principal, person_id)
    memberships, total = await MembershipService().list_memberships(
        db,
        person.tenant_id,
        params,
        MembershipFilters(person_id=person.id, status=status_filter, active_only=active_only),
    )
    return Page[MembershipResponse].build([MembershipResponse.model_validate(m) for m in memberships], total, params)
