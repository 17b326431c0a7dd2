"""
Group service for business logic
Group CRUD with sibling-name, parent and leader checks, delete guards and the hierarchy view
Reference: https://docs.sqlalchemy.org/en/20/orm/session_basics.html
"""
import logging
import uuid
from typing import Any, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.schemas.group import GroupCreate, GroupUpdate
from app.core.database import utcnow
from app.core.dependencies import Principal
from app.core.errors import ConflictError, InvalidStateError, NotFoundError, ValidationError
from app.core.tenant import authorize_tenant_access
from app.models.group import Group, GroupType
from app.models.group_membership import GroupMembership, MembershipStatus
from app.models.person import Person
from app.services.audit import AuditService, snapshot
from app.services.hierarchy import GroupNode, build_group_forest, would_create_cycle
from app.services.pagination import PageParams, paginate

logger = logging.getLogger(__name__)


def active_membership_clause():
    """Memberships that count toward capacity: ACTIVE with no end date"""
    return (GroupMembership.status == MembershipStatus.ACTIVE) & GroupMembership.end_date.is_(None)


class GroupService:
    """
    Service for tenant groups

    Parent links are validated here rather than by the database: the
    parent must be a live group of the same tenant and must not be the
    group itself or one of its descendants.
    """

    def __init__(self):
        self.audit = AuditService()

    async def get_group(
        self,
        db: AsyncSession,
        principal: Principal,
        group_id: uuid.UUID,
    ) -> Group:
        """
        Raises:
            NotFoundError: Unknown group
            AuthorizationError: Group belongs to another tenant
        """
        group = (await db.execute(select(Group).where(Group.id == group_id))).scalar_one_or_none()
        if group is None:
            raise NotFoundError.for_entity("Group", group_id)
        authorize_tenant_access(principal, group.tenant_id)
        return group

    async def _get_tenant_group(self, db: AsyncSession, tenant_id: uuid.UUID, group_id: uuid.UUID) -> Optional[Group]:
        result = await db.execute(select(Group).where(Group.id == group_id, Group.tenant_id == tenant_id))
        return result.scalar_one_or_none()

    async def _ensure_sibling_name_free(
        self,
        db: AsyncSession,
        tenant_id: uuid.UUID,
        parent_group_id: Optional[uuid.UUID],
        name: str,
        exclude_id: Optional[uuid.UUID] = None,
    ) -> None:
        query = select(Group.id).where(
            Group.tenant_id == tenant_id,
            func.lower(Group.name) == name.lower(),
            Group.parent_group_id.is_(None) if parent_group_id is None else Group.parent_group_id == parent_group_id,
        )
        if exclude_id is not None:
            query = query.where(Group.id != exclude_id)
        if (await db.execute(query)).first() is not None:
            raise ConflictError(
                "Group with this name already exists in the same parent group",
                details={"field": "name"},
            )

    async def _ensure_parent(self, db: AsyncSession, tenant_id: uuid.UUID, parent_group_id: uuid.UUID) -> Group:
        parent = await self._get_tenant_group(db, tenant_id, parent_group_id)
        if parent is None:
            raise NotFoundError("Parent group not found", details={"parentGroupId": str(parent_group_id)})
        return parent

    async def _ensure_leader(self, db: AsyncSession, tenant_id: uuid.UUID, leader_id: uuid.UUID) -> None:
        result = await db.execute(select(Person.id).where(Person.id == leader_id, Person.tenant_id == tenant_id))
        if result.first() is None:
            raise NotFoundError("Leader person not found", details={"leaderId": str(leader_id)})

    async def _parent_map(self, db: AsyncSession, tenant_id: uuid.UUID) -> dict[uuid.UUID, Optional[uuid.UUID]]:
        result = await db.execute(select(Group.id, Group.parent_group_id).where(Group.tenant_id == tenant_id))
        return {group_id: parent_id for group_id, parent_id in result.all()}

    async def create_group(
        self,
        db: AsyncSession,
        principal: Principal,
        tenant_id: uuid.UUID,
        data: GroupCreate,
    ) -> Group:
        """
        Create a group in the acting tenant

        Raises:
            ConflictError: Sibling with the same name
            NotFoundError: Parent group or leader not found in the tenant
        """
        await self._ensure_sibling_name_free(db, tenant_id, data.parent_group_id, data.name)
        if data.parent_group_id is not None:
            await self._ensure_parent(db, tenant_id, data.parent_group_id)
        if data.leader_id is not None:
            await self._ensure_leader(db, tenant_id, data.leader_id)

        group = Group(
            tenant_id=tenant_id,
            name=data.name,
            description=data.description,
            type=data.type,
            parent_group_id=data.parent_group_id,
            leader_id=data.leader_id,
            max_members=data.max_members,
            is_active=data.is_active,
            metadata_=data.metadata,
        )
        db.add(group)
        await db.flush()

        self.audit.record(
            db,
            "group.create",
            principal=principal,
            tenant_id=tenant_id,
            entity_type="group",
            entity_id=group.id,
            new_values=snapshot(group),
        )
        await db.flush()
        logger.info(f"Created group {group.id} ({group.name}) in tenant {tenant_id}")
        return group

    async def list_groups(
        self,
        db: AsyncSession,
        tenant_id: uuid.UUID,
        params: PageParams,
        search: Optional[str] = None,
        group_type: Optional[GroupType] = None,
        parent_group_id: Optional[uuid.UUID] = None,
        leader_id: Optional[uuid.UUID] = None,
        is_active: Optional[bool] = None,
    ) -> tuple[list[Group], int]:
        query = select(Group).where(Group.tenant_id == tenant_id)
        if search:
            pattern = f"%{search.strip()}%"
            query = query.where(or_(Group.name.ilike(pattern), Group.description.ilike(pattern)))
        if group_type is not None:
            query = query.where(Group.type == group_type)
        if parent_group_id is not None:
            query = query.where(Group.parent_group_id == parent_group_id)
        if leader_id is not None:
            query = query.where(Group.leader_id == leader_id)
        if is_active is not None:
            query = query.where(Group.is_active.is_(is_active))

        return await paginate(
            db,
            query,
            params,
            sort_columns={
                "createdAt": Group.created_at,
                "updatedAt": Group.updated_at,
                "name": Group.name,
                "type": Group.type,
            },
        )

    async def update_group(
        self,
        db: AsyncSession,
        principal: Principal,
        group_id: uuid.UUID,
        data: GroupUpdate,
    ) -> Group:
        """
        Partial update

        Raises:
            ConflictError: Sibling with the same name under the resulting parent
            NotFoundError: New parent or leader not found in the tenant
            ValidationError: New parent is the group itself or one of its descendants
        """
        group = await self.get_group(db, principal, group_id)
        update_data: dict[str, Any] = data.model_dump(exclude_unset=True)
        if not update_data:
            return group

        for required in ("name", "type", "is_active"):
            if required in update_data and update_data[required] is None:
                raise ValidationError(f"{required} cannot be null", details={"field": required})

        new_parent_id = update_data.get("parent_group_id", group.parent_group_id)
        new_name = update_data.get("name", group.name)

        if "parent_group_id" in update_data and new_parent_id != group.parent_group_id and new_parent_id is not None:
            if new_parent_id == group.id:
                raise ValidationError("A group cannot be its own parent", details={"field": "parentGroupId"})
            await self._ensure_parent(db, group.tenant_id, new_parent_id)
            if would_create_cycle(await self._parent_map(db, group.tenant_id), group.id, new_parent_id):
                raise ValidationError(
                    "Cannot set parent group: would create circular reference",
                    details={"field": "parentGroupId"},
                )

        if new_name != group.name or new_parent_id != group.parent_group_id:
            await self._ensure_sibling_name_free(db, group.tenant_id, new_parent_id, new_name, exclude_id=group.id)

        if update_data.get("leader_id") is not None and update_data["leader_id"] != group.leader_id:
            await self._ensure_leader(db, group.tenant_id, update_data["leader_id"])

        before = snapshot(group)
        for field, value in update_data.items():
            setattr(group, "metadata_" if field == "metadata" else field, value)
        group.updated_at = utcnow()

        self.audit.record(
            db,
            "group.update",
            principal=principal,
            tenant_id=group.tenant_id,
            entity_type="group",
            entity_id=group.id,
            old_values=before,
            new_values=snapshot(group),
        )
        await db.flush()
        logger.info(f"Updated group {group.id}")
        return group

    async def delete_group(self, db: AsyncSession, principal: Principal, group_id: uuid.UUID) -> Group:
        """
        Soft delete a group

        Raises:
            InvalidStateError: The group has child groups or active memberships
        """
        group = await self.get_group(db, principal, group_id)

        children = await db.scalar(
            select(func.count()).select_from(Group).where(
                Group.parent_group_id == group.id, Group.deleted_at.is_(None)
            )
        )
        if children:
            raise InvalidStateError("Cannot delete group with child groups", details={"childGroups": children})

        active = await self.count_active_members(db, group.id)
        if active:
            raise InvalidStateError("Cannot delete group with active members", details={"activeMembers": active})

        before = snapshot(group)
        group.soft_delete()
        self.audit.record(
            db,
            "group.delete",
            principal=principal,
            tenant_id=group.tenant_id,
            entity_type="group",
            entity_id=group.id,
            old_values=before,
            new_values={"deleted_at": group.deleted_at},
        )
        await db.flush()
        logger.info(f"Soft deleted group {group.id}")
        return group

    async def count_active_members(self, db: AsyncSession, group_id: uuid.UUID) -> int:
        count = await db.scalar(
            select(func.count()).select_from(GroupMembership).where(
                GroupMembership.group_id == group_id,
                GroupMembership.deleted_at.is_(None),
                active_membership_clause(),
            )
        )
        return int(count or 0)

    async def get_hierarchy(
        self,
        db: AsyncSession,
        tenant_id: uuid.UUID,
        parent_id: Optional[uuid.UUID] = None,
        include_inactive: bool = False,
    ) -> list[GroupNode]:
        """
        Group forest of the tenant

        Args:
            parent_id: Return the subtree below this group instead of the top level
            include_inactive: Include inactive groups (and their subtrees)

        Raises:
            NotFoundError: parent_id is not a group of the tenant
        """
        if parent_id is not None and await self._get_tenant_group(db, tenant_id, parent_id) is None:
            raise NotFoundError.for_entity("Group", parent_id)

        query = select(Group).where(Group.tenant_id == tenant_id)
        if not include_inactive:
            query = query.where(Group.is_active.is_(True))
        groups = (await db.execute(query)).scalars().all()

        counts = await db.execute(
            select(GroupMembership.group_id, func.count())
            .join(Group, Group.id == GroupMembership.group_id)
            .where(
                Group.tenant_id == tenant_id,
                GroupMembership.deleted_at.is_(None),
                active_membership_clause(),
            )
            .group_by(GroupMembership.group_id)
        )
        member_counts = {group_id: count for group_id, count in counts.all()}

        return build_group_forest(groups, member_counts, root_parent_id=parent_id)
