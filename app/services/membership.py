"""
Membership service for business logic
Time-bounded person/group memberships: creation under a capacity lock and
the end / suspend / reactivate lifecycle.
Reference: https://docs.sqlalchemy.org/en/20/orm/queryguide/select.html#sqlalchemy.sql.expression.Select.with_for_update
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import date
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.schemas.membership import MembershipCreate, MembershipEnd, MembershipUpdate
from app.core.dependencies import Principal
from app.core.errors import CapacityError, ConflictError, InvalidStateError, NotFoundError, ValidationError
from app.core.tenant import authorize_tenant_access
from app.models.group import Group
from app.models.group_membership import GroupMembership, MembershipRole, MembershipStatus
from app.models.person import Person
from app.services.audit import AuditService, snapshot
from app.services.group import active_membership_clause
from app.services.pagination import PageParams, paginate

logger = logging.getLogger(__name__)


@dataclass
class MembershipFilters:
    person_id: Optional[uuid.UUID] = None
    group_id: Optional[uuid.UUID] = None
    role: Optional[MembershipRole] = None
    status: Optional[MembershipStatus] = None
    active_only: bool = False


class MembershipService:
    """
    Service for group memberships

    Status model: ACTIVE, SUSPENDED and INACTIVE; a membership is ended
    when end_date is set (status INACTIVE). Only ACTIVE memberships without
    an end date count toward a group's max_members.

    Capacity is checked after locking the group row (SELECT ... FOR UPDATE)
    in the same transaction as the insert, so concurrent additions to the
    same group are serialized and cannot oversubscribe it.
    """

    def __init__(self):
        self.audit = AuditService()

    async def _lock_group(self, db: AsyncSession, tenant_id: uuid.UUID, group_id: uuid.UUID) -> Group:
        result = await db.execute(
            select(Group)
            .where(Group.id == group_id, Group.tenant_id == tenant_id)
            .with_for_update()
        )
        group = result.scalar_one_or_none()
        if group is None:
            raise NotFoundError.for_entity("Group", group_id)
        return group

    async def _count_active(self, db: AsyncSession, group_id: uuid.UUID) -> int:
        count = await db.scalar(
            select(func.count()).select_from(GroupMembership).where(
                GroupMembership.group_id == group_id,
                GroupMembership.deleted_at.is_(None),
                active_membership_clause(),
            )
        )
        return int(count or 0)

    async def _ensure_capacity(self, db: AsyncSession, group: Group) -> None:
        """Caller must hold the group row lock"""
        if group.max_members is None:
            return
        active = await self._count_active(db, group.id)
        if active >= group.max_members:
            logger.info(f"Group {group.id} is at capacity ({active}/{group.max_members})")
            raise CapacityError(
                "Group is at maximum capacity",
                details={"groupId": str(group.id), "maxMembers": group.max_members, "activeMembers": active},
            )

    async def get_membership(
        self,
        db: AsyncSession,
        principal: Principal,
        membership_id: uuid.UUID,
    ) -> GroupMembership:
        """
        Raises:
            NotFoundError: Unknown membership
            AuthorizationError: Membership's group belongs to another tenant
        """
        result = await db.execute(
            select(GroupMembership, Group.tenant_id)
            .join(Group, Group.id == GroupMembership.group_id)
            .where(GroupMembership.id == membership_id)
        )
        row = result.first()
        if row is None:
            raise NotFoundError.for_entity("Membership", membership_id)
        membership, tenant_id = row
        authorize_tenant_access(principal, tenant_id)
        return membership

    async def create_membership(
        self,
        db: AsyncSession,
        principal: Principal,
        tenant_id: uuid.UUID,
        data: MembershipCreate,
    ) -> GroupMembership:
        """
        Add a person to a group

        Raises:
            NotFoundError: Person or group not found in the tenant
            ConflictError: Same (person, group, start date) already exists
            CapacityError: The group has no free seats for an active membership
        """
        person = await db.execute(
            select(Person.id).where(Person.id == data.person_id, Person.tenant_id == tenant_id)
        )
        if person.first() is None:
            raise NotFoundError.for_entity("Person", data.person_id)

        group = await self._lock_group(db, tenant_id, data.group_id)

        # Soft-deleted rows still hold the unique (person, group, start_date) slot
        duplicate = await db.execute(
            select(GroupMembership.id)
            .where(
                GroupMembership.person_id == data.person_id,
                GroupMembership.group_id == data.group_id,
                GroupMembership.start_date == data.start_date,
            )
            .execution_options(include_deleted=True)
        )
        if duplicate.first() is not None:
            raise ConflictError(
                "Person already has a membership in this group starting on this date",
                details={"personId": str(data.person_id), "groupId": str(data.group_id), "startDate": data.start_date.isoformat()},
            )

        status = MembershipStatus.INACTIVE if data.end_date is not None else data.status
        if status == MembershipStatus.ACTIVE:
            await self._ensure_capacity(db, group)

        membership = GroupMembership(
            person_id=data.person_id,
            group_id=data.group_id,
            role=data.role,
            status=status,
            start_date=data.start_date,
            end_date=data.end_date,
            reason=data.reason,
            added_by=principal.user_id,
        )
        db.add(membership)
        await db.flush()

        self.audit.record(
            db,
            "membership.create",
            principal=principal,
            tenant_id=tenant_id,
            entity_type="membership",
            entity_id=membership.id,
            new_values=snapshot(membership),
        )
        await db.flush()
        logger.info(f"Person {data.person_id} added to group {data.group_id} (membership {membership.id})")
        return membership

    async def list_memberships(
        self,
        db: AsyncSession,
        tenant_id: uuid.UUID,
        params: PageParams,
        filters: MembershipFilters,
    ) -> tuple[list[GroupMembership], int]:
        query = (
            select(GroupMembership)
            .join(Group, Group.id == GroupMembership.group_id)
            .where(Group.tenant_id == tenant_id)
        )
        if filters.person_id is not None:
            query = query.where(GroupMembership.person_id == filters.person_id)
        if filters.group_id is not None:
            query = query.where(GroupMembership.group_id == filters.group_id)
        if filters.role is not None:
            query = query.where(GroupMembership.role == filters.role)
        if filters.status is not None:
            query = query.where(GroupMembership.status == filters.status)
        if filters.active_only:
            query = query.where(active_membership_clause())

        return await paginate(
            db,
            query,
            params,
            sort_columns={
                "createdAt": GroupMembership.created_at,
                "startDate": GroupMembership.start_date,
                "endDate": GroupMembership.end_date,
                "role": GroupMembership.role,
                "status": GroupMembership.status,
            },
        )

    async def update_membership(
        self,
        db: AsyncSession,
        principal: Principal,
        membership_id: uuid.UUID,
        data: MembershipUpdate,
    ) -> GroupMembership:
        membership = await self.get_membership(db, principal, membership_id)
        return await self._apply_update(db, principal, membership, data)

    async def _apply_update(
        self,
        db: AsyncSession,
        principal: Principal,
        membership: GroupMembership,
        data: MembershipUpdate,
    ) -> GroupMembership:
        update_data = data.model_dump(exclude_unset=True)
        if update_data.get("role", membership.role) is None:
            raise ValidationError("role cannot be null", details={"field": "role"})
        if not update_data:
            return membership

        before = snapshot(membership)
        for field, value in update_data.items():
            setattr(membership, field, value)
        self.audit.record(
            db,
            "membership.update",
            principal=principal,
            entity_type="membership",
            entity_id=membership.id,
            tenant_id=await self._tenant_of(db, membership),
            old_values=before,
            new_values=snapshot(membership),
        )
        await db.flush()
        return membership

    async def _tenant_of(self, db: AsyncSession, membership: GroupMembership) -> uuid.UUID:
        return await db.scalar(
            select(Group.tenant_id).where(Group.id == membership.group_id).execution_options(include_deleted=True)
        )

    async def end_membership(
        self,
        db: AsyncSession,
        principal: Principal,
        membership_id: uuid.UUID,
        data: MembershipEnd,
    ) -> GroupMembership:
        membership = await self.get_membership(db, principal, membership_id)
        return await self._end(db, principal, membership, data.end_date, data.reason)

    async def _end(
        self,
        db: AsyncSession,
        principal: Principal,
        membership: GroupMembership,
        end_date: date,
        reason: Optional[str],
    ) -> GroupMembership:
        """
        End a membership; ending an already ended membership is a no-op

        Raises:
            ValidationError: end_date before start_date
        """
        if membership.end_date is not None:
            return membership
        if end_date < membership.start_date:
            raise ValidationError(
                "End date must be on or after start date",
                details={"field": "endDate", "startDate": membership.start_date.isoformat()},
            )

        before = snapshot(membership)
        membership.end_date = end_date
        membership.status = MembershipStatus.INACTIVE
        if reason:
            membership.reason = reason
        self.audit.record(
            db,
            "membership.end",
            principal=principal,
            tenant_id=await self._tenant_of(db, membership),
            entity_type="membership",
            entity_id=membership.id,
            old_values=before,
            new_values=snapshot(membership),
        )
        await db.flush()
        logger.info(f"Ended membership {membership.id} on {end_date.isoformat()}")
        return membership

    async def suspend_membership(
        self,
        db: AsyncSession,
        principal: Principal,
        membership_id: uuid.UUID,
        reason: str,
    ) -> GroupMembership:
        """
        ACTIVE -> SUSPENDED; suspending a suspended membership is a no-op

        Raises:
            InvalidStateError: Membership ended or inactive
        """
        membership = await self.get_membership(db, principal, membership_id)
        if membership.status == MembershipStatus.SUSPENDED and membership.end_date is None:
            return membership
        if membership.end_date is not None or membership.status != MembershipStatus.ACTIVE:
            raise InvalidStateError("Only active memberships can be suspended", details={"status": membership.status.value})

        before = snapshot(membership)
        membership.status = MembershipStatus.SUSPENDED
        membership.reason = reason
        self.audit.record(
            db,
            "membership.suspend",
            principal=principal,
            tenant_id=await self._tenant_of(db, membership),
            entity_type="membership",
            entity_id=membership.id,
            old_values=before,
            new_values=snapshot(membership),
        )
        await db.flush()
        logger.info(f"Suspended membership {membership.id}")
        return membership

    async def reactivate_membership(
        self,
        db: AsyncSession,
        principal: Principal,
        membership_id: uuid.UUID,
    ) -> GroupMembership:
        """
        SUSPENDED -> ACTIVE; reactivating an active membership is a no-op

        The reactivated membership takes a seat again, so capacity is
        re-checked under the group lock.

        Raises:
            InvalidStateError: Membership ended or inactive
            CapacityError: The group filled up while the membership was suspended
        """
        membership = await self.get_membership(db, principal, membership_id)
        if membership.is_active:
            return membership
        if membership.end_date is not None or membership.status != MembershipStatus.SUSPENDED:
            raise InvalidStateError(
                "Only suspended memberships can be reactivated",
                details={"status": membership.status.value},
            )

        tenant_id = await self._tenant_of(db, membership)
        group = await self._lock_group(db, tenant_id, membership.group_id)
        await self._ensure_capacity(db, group)

        before = snapshot(membership)
        membership.status = MembershipStatus.ACTIVE
        self.audit.record(
            db,
            "membership.reactivate",
            principal=principal,
            tenant_id=tenant_id,
            entity_type="membership",
            entity_id=membership.id,
            old_values=before,
            new_values=snapshot(membership),
        )
        await db.flush()
        logger.info(f"Reactivated membership {membership.id}")
        return membership

    async def _open_membership(
        self,
        db: AsyncSession,
        group_id: uuid.UUID,
        person_id: uuid.UUID,
    ) -> GroupMembership:
        result = await db.execute(
            select(GroupMembership)
            .where(
                GroupMembership.group_id == group_id,
                GroupMembership.person_id == person_id,
                GroupMembership.end_date.is_(None),
            )
            .order_by(GroupMembership.start_date.desc())
        )
        membership = result.scalars().first()
        if membership is None:
            raise NotFoundError(
                "Person has no open membership in this group",
                details={"groupId": str(group_id), "personId": str(person_id)},
            )
        return membership

    async def remove_member(
        self,
        db: AsyncSession,
        principal: Principal,
        group: Group,
        person_id: uuid.UUID,
        today: Optional[date] = None,
    ) -> GroupMembership:
        """End the person's open membership in the group today"""
        membership = await self._open_membership(db, group.id, person_id)
        today = today or date.today()
        return await self._end(db, principal, membership, max(today, membership.start_date), None)

    async def update_member(
        self,
        db: AsyncSession,
        principal: Principal,
        group: Group,
        person_id: uuid.UUID,
        data: MembershipUpdate,
    ) -> GroupMembership:
        membership = await self._open_membership(db, group.id, person_id)
        return await self._apply_update(db, principal, membership, data)
