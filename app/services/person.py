"""
Person service for business logic
Directory CRUD, soft delete and restore, and lookups by email or national ID
Reference: https://docs.sqlalchemy.org/en/20/orm/session_basics.html
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from sqlalchemy import String, cast, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.schemas.person import PersonCreate, PersonUpdate
from app.core.database import utcnow
from app.core.dependencies import Principal
from app.core.errors import ConflictError, InvalidStateError, NotFoundError
from app.core.tenant import authorize_tenant_access
from app.models.document import Document
from app.models.group_membership import GroupMembership, MembershipStatus
from app.models.person import Gender, Person
from app.services.audit import AuditService, snapshot
from app.services.pagination import PageParams, paginate

logger = logging.getLogger(__name__)


@dataclass
class PersonFilters:
    search: Optional[str] = None
    email: Optional[str] = None
    national_id: Optional[str] = None
    gender: Optional[Gender] = None
    tag: Optional[str] = None
    created_after: Optional[datetime] = None
    created_before: Optional[datetime] = None


class PersonService:
    """
    Service for the person directory

    Email and national ID are unique across all tenants, including
    soft-deleted persons, matching the database unique constraints.
    """

    def __init__(self):
        self.audit = AuditService()

    async def get_person(
        self,
        db: AsyncSession,
        principal: Principal,
        person_id: uuid.UUID,
        include_deleted: bool = False,
    ) -> Person:
        """
        Fetch a person visible to the principal

        Raises:
            NotFoundError: Unknown person
            AuthorizationError: Person belongs to another tenant
        """
        query = select(Person).where(Person.id == person_id)
        if include_deleted:
            query = query.execution_options(include_deleted=True)
        person = (await db.execute(query)).scalar_one_or_none()
        if person is None:
            raise NotFoundError.for_entity("Person", person_id)
        authorize_tenant_access(principal, person.tenant_id)
        return person

    async def _ensure_unique(
        self,
        db: AsyncSession,
        email: Optional[str] = None,
        national_id: Optional[str] = None,
        exclude_id: Optional[uuid.UUID] = None,
    ) -> None:
        for field, column, value in (
            ("email", Person.email, email),
            ("nationalId", Person.national_id, national_id),
        ):
            if value is None:
                continue
            query = select(Person.id).where(column == value).execution_options(include_deleted=True)
            if exclude_id is not None:
                query = query.where(Person.id != exclude_id)
            if (await db.execute(query)).first() is not None:
                raise ConflictError(
                    f"A person with this {field} already exists",
                    details={"field": field},
                )

    async def create_person(
        self,
        db: AsyncSession,
        principal: Principal,
        tenant_id: uuid.UUID,
        data: PersonCreate,
    ) -> Person:
        """
        Create a person in the acting tenant

        Raises:
            ConflictError: Email or national ID already used
        """
        await self._ensure_unique(db, email=data.email, national_id=data.national_id)

        person = Person(tenant_id=tenant_id, **data.to_columns())
        db.add(person)
        await db.flush()

        self.audit.record(
            db,
            "person.create",
            principal=principal,
            tenant_id=tenant_id,
            entity_type="person",
            entity_id=person.id,
            new_values=snapshot(person),
        )
        await db.flush()
        logger.info(f"Created person {person.id} in tenant {tenant_id}")
        return person

    async def list_persons(
        self,
        db: AsyncSession,
        tenant_id: uuid.UUID,
        params: PageParams,
        filters: PersonFilters,
    ) -> tuple[list[Person], int]:
        query = select(Person).where(Person.tenant_id == tenant_id)
        if filters.search:
            pattern = f"%{filters.search.strip()}%"
            query = query.where(
                or_(
                    Person.first_name.ilike(pattern),
                    Person.last_name.ilike(pattern),
                    Person.email.ilike(pattern),
                    Person.national_id.ilike(pattern),
                )
            )
        if filters.email:
            query = query.where(Person.email == filters.email.strip().lower())
        if filters.national_id:
            query = query.where(Person.national_id == filters.national_id.strip())
        if filters.gender is not None:
            query = query.where(Person.gender == filters.gender)
        if filters.tag:
            # tags is a JSON array of strings
            query = query.where(cast(Person.tags, String).like(f'%"{filters.tag}"%'))
        if filters.created_after:
            query = query.where(Person.created_at >= filters.created_after)
        if filters.created_before:
            query = query.where(Person.created_at <= filters.created_before)

        return await paginate(
            db,
            query,
            params,
            sort_columns={
                "createdAt": Person.created_at,
                "updatedAt": Person.updated_at,
                "firstName": Person.first_name,
                "lastName": Person.last_name,
                "email": Person.email,
                "birthDate": Person.birth_date,
            },
        )

    async def find_by_email(self, db: AsyncSession, principal: Principal, email: str) -> Person:
        result = await db.execute(select(Person).where(Person.email == email.strip().lower()))
        person = result.scalar_one_or_none()
        if person is None:
            raise NotFoundError("Person not found", details={"email": email})
        authorize_tenant_access(principal, person.tenant_id)
        return person

    async def find_by_national_id(self, db: AsyncSession, principal: Principal, national_id: str) -> Person:
        result = await db.execute(select(Person).where(Person.national_id == national_id.strip()))
        person = result.scalar_one_or_none()
        if person is None:
            raise NotFoundError("Person not found", details={"nationalId": national_id})
        authorize_tenant_access(principal, person.tenant_id)
        return person

    async def update_person(
        self,
        db: AsyncSession,
        principal: Principal,
        person_id: uuid.UUID,
        data: PersonUpdate,
    ) -> Person:
        """
        Partial update

        Raises:
            ConflictError: New email or national ID already used
        """
        person = await self.get_person(db, principal, person_id)
        update_data = data.to_columns(exclude_unset=True)
        if not update_data:
            return person

        await self._ensure_unique(
            db,
            email=update_data.get("email") if update_data.get("email") != person.email else None,
            national_id=(
                update_data.get("national_id") if update_data.get("national_id") != person.national_id else None
            ),
            exclude_id=person.id,
        )

        before = snapshot(person)
        for field, value in update_data.items():
            setattr(person, field, value)
        person.updated_at = utcnow()

        self.audit.record(
            db,
            "person.update",
            principal=principal,
            tenant_id=person.tenant_id,
            entity_type="person",
            entity_id=person.id,
            old_values=before,
            new_values=snapshot(person),
        )
        await db.flush()
        logger.info(f"Updated person {person.id}")
        return person

    async def delete_person(
        self,
        db: AsyncSession,
        principal: Principal,
        person_id: uuid.UUID,
        today: Optional[date] = None,
    ) -> Person:
        """
        Soft delete a person

        Documents are tombstoned with the same timestamp. Open memberships
        are ended today (status INACTIVE), not deleted, so group history stays intact.
        """
        person = await self.get_person(db, principal, person_id)
        now = utcnow()
        today = today or now.date()

        documents = await db.execute(
            update(Document)
            .where(Document.person_id == person.id, Document.deleted_at.is_(None))
            .values(deleted_at=now)
            .execution_options(synchronize_session=False)
        )
        # A membership cannot end before it started
        memberships = await db.execute(
            select(GroupMembership).where(
                GroupMembership.person_id == person.id,
                GroupMembership.end_date.is_(None),
            )
        )
        ended = 0
        for membership in memberships.scalars():
            membership.end_date = max(today, membership.start_date)
            membership.status = MembershipStatus.INACTIVE
            membership.reason = membership.reason or "Person deleted"
            ended += 1

        before = snapshot(person)
        person.soft_delete(now)
        self.audit.record(
            db,
            "person.delete",
            principal=principal,
            tenant_id=person.tenant_id,
            entity_type="person",
            entity_id=person.id,
            old_values=before,
            new_values={
                "deleted_at": now,
                "documents_deleted": documents.rowcount or 0,
                "memberships_ended": ended,
            },
        )
        await db.flush()
        logger.info(f"Soft deleted person {person.id}; ended {ended} membership(s)")
        return person

    async def restore_person(self, db: AsyncSession, principal: Principal, person_id: uuid.UUID) -> Person:
        """
        Clear the deletion marker of a person

        Documents and ended memberships are not restored.

        Raises:
            InvalidStateError: Person is not deleted
        """
        person = await self.get_person(db, principal, person_id, include_deleted=True)
        if person.deleted_at is None:
            raise InvalidStateError("Person is not deleted")

        deleted_at = person.deleted_at
        person.deleted_at = None
        person.updated_at = utcnow()
        self.audit.record(
            db,
            "person.restore",
            principal=principal,
            tenant_id=person.tenant_id,
            entity_type="person",
            entity_id=person.id,
            old_values={"deleted_at": deleted_at},
            new_values={"deleted_at": None},
        )
        await db.flush()
        logger.info(f"Restored person {person.id}")
        return person
