"""
Tenant service for business logic
Handles tenant CRUD operations, lifecycle and deletion cascades
Reference: https://docs.sqlalchemy.org/en/20/orm/session_basics.html
"""
import logging
import uuid
from typing import Optional

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.schemas.tenant import TenantCreate, TenantUpdate, default_schema_name
from app.core.database import utcnow
from app.core.dependencies import Principal
from app.core.errors import ConflictError, NotFoundError
from app.models.document import Document
from app.models.group import Group
from app.models.group_membership import GroupMembership
from app.models.person import Person
from app.models.tenant import Tenant
from app.models.user import User
from app.services.audit import AuditService, snapshot
from app.services.pagination import PageParams, paginate
from app.services.refresh_token import RefreshTokenService

logger = logging.getLogger(__name__)


class TenantService:
    """
    Service for tenant management operations

    Handles all business logic for tenant CRUD operations.
    This service is used by super admin endpoints to manage tenants.

    Reference: https://fastapi.tiangolo.com/tutorial/bigger-applications/
    """

    def __init__(self):
        """Initialize tenant service"""
        self.audit = AuditService()
        self.refresh_tokens = RefreshTokenService()

    async def get_tenant(
        self,
        db: AsyncSession,
        tenant_id: uuid.UUID,
        include_deleted: bool = False,
    ) -> Optional[Tenant]:
        """
        Get a tenant by ID

        Args:
            db: Database session
            tenant_id: UUID of the tenant to fetch
            include_deleted: Also return soft-deleted tenants

        Returns:
            Tenant if found, None otherwise
        """
        query = select(Tenant).where(Tenant.id == tenant_id)
        if include_deleted:
            query = query.execution_options(include_deleted=True)
        result = await db.execute(query)
        return result.scalar_one_or_none()

    async def require_tenant(self, db: AsyncSession, tenant_id: uuid.UUID, include_deleted: bool = False) -> Tenant:
        tenant = await self.get_tenant(db, tenant_id, include_deleted=include_deleted)
        if tenant is None:
            raise NotFoundError.for_entity("Tenant", tenant_id)
        return tenant

    async def get_tenant_by_subdomain(self, db: AsyncSession, subdomain: str) -> Optional[Tenant]:
        result = await db.execute(select(Tenant).where(Tenant.subdomain == subdomain.lower()))
        return result.scalar_one_or_none()

    async def get_tenants(
        self,
        db: AsyncSession,
        params: PageParams,
        include_inactive: bool = False,
        search: Optional[str] = None,
    ) -> tuple[list[Tenant], int]:
        """
        Get a page of tenants

        Args:
            db: Database session
            params: Pagination and sorting
            include_inactive: Whether to include inactive tenants
            search: Case-insensitive match on name or subdomain

        Returns:
            (tenants, total)
        """
        query = select(Tenant)

        # Filter out inactive tenants unless explicitly requested
        if not include_inactive:
            query = query.where(Tenant.is_active.is_(True))
        if search:
            pattern = f"%{search.strip()}%"
            query = query.where(or_(Tenant.name.ilike(pattern), Tenant.subdomain.ilike(pattern)))

        return await paginate(
            db,
            query,
            params,
            sort_columns={
                "createdAt": Tenant.created_at,
                "updatedAt": Tenant.updated_at,
                "name": Tenant.name,
                "subdomain": Tenant.subdomain,
            },
        )

    async def _ensure_unique(
        self,
        db: AsyncSession,
        subdomain: Optional[str] = None,
        schema_name: Optional[str] = None,
        exclude_id: Optional[uuid.UUID] = None,
    ) -> None:
        """Subdomain and schema name stay reserved after soft delete"""
        checks = [
            ("subdomain", Tenant.subdomain, subdomain),
            ("schemaName", Tenant.schema_name, schema_name),
        ]
        for field, column, value in checks:
            if value is None:
                continue
            query = select(Tenant.id).where(column == value).execution_options(include_deleted=True)
            if exclude_id is not None:
                query = query.where(Tenant.id != exclude_id)
            if (await db.execute(query)).first() is not None:
                raise ConflictError(
                    f"Tenant with {field} '{value}' already exists",
                    details={"field": field},
                )

    async def create_tenant(
        self,
        db: AsyncSession,
        tenant_data: TenantCreate,
        principal: Principal,
    ) -> Tenant:
        """
        Create a new tenant

        Args:
            db: Database session
            tenant_data: Tenant creation data
            principal: Acting super admin

        Returns:
            Created Tenant object

        Raises:
            ConflictError: If subdomain or schema name already exists
        """
        schema_name = tenant_data.schema_name or default_schema_name(tenant_data.subdomain)
        await self._ensure_unique(db, subdomain=tenant_data.subdomain, schema_name=schema_name)

        tenant = Tenant(
            **tenant_data.model_dump(exclude={"schema_name"}),
            schema_name=schema_name,
        )
        db.add(tenant)
        await db.flush()  # Flush to get ID without committing

        self.audit.record(
            db,
            "tenant.create",
            principal=principal,
            tenant_id=tenant.id,
            entity_type="tenant",
            entity_id=tenant.id,
            new_values=snapshot(tenant),
        )
        await db.flush()

        logger.info(f"Created tenant: {tenant.id} ({tenant.name})")
        return tenant

    async def update_tenant(
        self,
        db: AsyncSession,
        tenant_id: uuid.UUID,
        tenant_data: TenantUpdate,
        principal: Principal,
    ) -> Tenant:
        """
        Update an existing tenant

        Only updates fields that are explicitly provided (partial update).

        Raises:
            NotFoundError: Unknown tenant
            ConflictError: New subdomain already taken
        """
        tenant = await self.require_tenant(db, tenant_id)

        # Get only fields that were explicitly set (exclude_unset=True)
        # Reference: https://docs.pydantic.dev/latest/api/standard_library/#pydantic.BaseModel.model_dump
        update_data = tenant_data.model_dump(exclude_unset=True)
        if not update_data:
            return tenant

        if "subdomain" in update_data and update_data["subdomain"] != tenant.subdomain:
            await self._ensure_unique(db, subdomain=update_data["subdomain"], exclude_id=tenant.id)

        before = snapshot(tenant)
        for field, value in update_data.items():
            setattr(tenant, field, value)
        tenant.updated_at = utcnow()

        self.audit.record(
            db,
            "tenant.update",
            principal=principal,
            tenant_id=tenant.id,
            entity_type="tenant",
            entity_id=tenant.id,
            old_values=before,
            new_values=snapshot(tenant),
        )
        await db.flush()  # Flush changes without committing

        logger.info(f"Updated tenant: {tenant.id} ({tenant.name})")
        return tenant

    async def set_active(
        self,
        db: AsyncSession,
        tenant_id: uuid.UUID,
        is_active: bool,
        principal: Principal,
    ) -> Tenant:
        """
        Activate or deactivate a tenant

        Users of an inactive tenant are rejected on every authenticated request.
        """
        tenant = await self.require_tenant(db, tenant_id)
        if tenant.is_active == is_active:
            return tenant

        tenant.is_active = is_active
        tenant.updated_at = utcnow()
        self.audit.record(
            db,
            "tenant.activate" if is_active else "tenant.deactivate",
            principal=principal,
            tenant_id=tenant.id,
            entity_type="tenant",
            entity_id=tenant.id,
            old_values={"is_active": not is_active},
            new_values={"is_active": is_active},
        )
        await db.flush()

        if is_active:
            logger.info(f"Activated tenant: {tenant.id} ({tenant.name})")
        else:
            logger.warning(f"Deactivated tenant: {tenant.id} ({tenant.name})")
        return tenant

    async def delete_tenant(
        self,
        db: AsyncSession,
        tenant_id: uuid.UUID,
        principal: Principal,
    ) -> Tenant:
        """
        Soft delete a tenant and everything it owns

        Tombstones users, persons, groups, memberships and documents of the
        tenant with the same timestamp, and revokes its users' refresh tokens.

        Raises:
            NotFoundError: Unknown or already deleted tenant
        """
        tenant = await self.require_tenant(db, tenant_id)
        now = utcnow()

        user_ids = select(User.id).where(User.tenant_id == tenant.id)
        person_ids = select(Person.id).where(Person.tenant_id == tenant.id)
        group_ids = select(Group.id).where(Group.tenant_id == tenant.id)

        revoked = await self.refresh_tokens.revoke_all_for_users(
            db, (await db.execute(user_ids.execution_options(include_deleted=True))).scalars().all()
        )

        counts: dict[str, int] = {}
        for name, model, condition in (
            ("documents", Document, Document.person_id.in_(person_ids)),
            (
                "memberships",
                GroupMembership,
                or_(GroupMembership.person_id.in_(person_ids), GroupMembership.group_id.in_(group_ids)),
            ),
            ("groups", Group, Group.tenant_id == tenant.id),
            ("persons", Person, Person.tenant_id == tenant.id),
            ("users", User, User.tenant_id == tenant.id),
        ):
            result = await db.execute(
                update(model)
                .where(condition, model.deleted_at.is_(None))
                .values(deleted_at=now)
                .execution_options(synchronize_session=False)
            )
            counts[name] = result.rowcount or 0

        before = snapshot(tenant)
        tenant.soft_delete(now)
        self.audit.record(
            db,
            "tenant.delete",
            principal=principal,
            tenant_id=tenant.id,
            entity_type="tenant",
            entity_id=tenant.id,
            old_values=before,
            new_values={"deleted_at": now, "cascade": counts, "revoked_sessions": revoked},
        )
        await db.flush()

        logger.warning(f"Soft deleted tenant: {tenant.id} ({tenant.name}); cascade={counts}")
        return tenant

    async def purge_tenant(
        self,
        db: AsyncSession,
        tenant_id: uuid.UUID,
        principal: Principal,
    ) -> None:
        """
        Physically delete a tenant (soft-deleted or not)

        Child rows go through the database ON DELETE CASCADE rules: users,
        persons, groups and audit entries, and transitively refresh tokens,
        documents and memberships. The audit entry for the purge itself is
        platform-level (no tenant) so it outlives the tenant.
        """
        tenant = await self.require_tenant(db, tenant_id, include_deleted=True)
        name = tenant.name

        await db.delete(tenant)
        self.audit.record(
            db,
            "tenant.purge",
            principal=principal,
            tenant_id=None,
            entity_type="tenant",
            entity_id=tenant_id,
            old_values={"name": name, "subdomain": tenant.subdomain},
        )
        await db.flush()

        logger.warning(f"Purged tenant: {tenant_id} ({name})")
