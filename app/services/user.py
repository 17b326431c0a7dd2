"""
User administration service
Listing, role management, unlock and deletion of user accounts
"""
import logging
import uuid
from typing import Optional

from sqlalchemy import String, cast, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.schemas.user import UserUpdate
from app.core.database import utcnow
from app.core.dependencies import Principal
from app.core.errors import AuthorizationError, InvalidStateError, NotFoundError
from app.core.tenant import authorize_tenant_access
from app.models.user import User, UserRole, normalize_roles
from app.services.audit import AuditService, snapshot
from app.services.pagination import PageParams, paginate
from app.services.refresh_token import RefreshTokenService

logger = logging.getLogger(__name__)


class UserService:
    """
    Service for administrative user management

    Tenant admins manage users of their own tenant; super admins manage all.
    """

    def __init__(self):
        self.audit = AuditService()
        self.refresh_tokens = RefreshTokenService()

    async def get_user(
        self,
        db: AsyncSession,
        principal: Principal,
        user_id: uuid.UUID,
        include_deleted: bool = False,
    ) -> User:
        """
        Raises:
            NotFoundError: Unknown user
            AuthorizationError: User belongs to another tenant
        """
        query = select(User).where(User.id == user_id)
        if include_deleted:
            query = query.execution_options(include_deleted=True)
        user = (await db.execute(query)).scalar_one_or_none()
        if user is None:
            raise NotFoundError.for_entity("User", user_id)
        authorize_tenant_access(principal, user.tenant_id)
        return user

    async def list_users(
        self,
        db: AsyncSession,
        tenant_id: uuid.UUID,
        params: PageParams,
        search: Optional[str] = None,
        role: Optional[UserRole] = None,
        is_active: Optional[bool] = None,
    ) -> tuple[list[User], int]:
        query = select(User).where(User.tenant_id == tenant_id)
        if search:
            pattern = f"%{search.strip()}%"
            query = query.where(
                or_(
                    User.email.ilike(pattern),
                    User.first_name.ilike(pattern),
                    User.last_name.ilike(pattern),
                )
            )
        if role is not None:
            # roles is a JSON array of quoted strings on both SQLite and PostgreSQL
            query = query.where(cast(User.roles, String).like(f'%"{role.value}"%'))
        if is_active is not None:
            query = query.where(User.is_active.is_(is_active))

        return await paginate(
            db,
            query,
            params,
            sort_columns={
                "createdAt": User.created_at,
                "email": User.email,
                "lastName": User.last_name,
                "lastLoginAt": User.last_login_at,
            },
        )

    async def update_user(
        self,
        db: AsyncSession,
        principal: Principal,
        user_id: uuid.UUID,
        data: UserUpdate,
    ) -> User:
        """
        Partial update of names, roles and the active flag

        Raises:
            AuthorizationError: Granting or revoking super_admin without being one
        """
        user = await self.get_user(db, principal, user_id)
        update_data = data.model_dump(exclude_unset=True)
        if not update_data:
            return user

        if "roles" in update_data and update_data["roles"] is not None:
            new_roles = normalize_roles(update_data["roles"])
            touches_super_admin = (UserRole.SUPER_ADMIN.value in new_roles) != user.has_role(UserRole.SUPER_ADMIN)
            if touches_super_admin and not principal.is_super_admin:
                logger.warning(f"User {principal.user_id} attempted to change super_admin role of {user.id}")
                raise AuthorizationError("Only a super admin can grant or revoke the super_admin role")
            update_data["roles"] = new_roles

        before = snapshot(user)
        for field, value in update_data.items():
            if value is not None:
                setattr(user, field, value)
        user.updated_at = utcnow()

        if update_data.get("is_active") is False:
            await self.refresh_tokens.revoke_all_for_user(db, user.id)

        self.audit.record(
            db,
            "user.update",
            principal=principal,
            tenant_id=user.tenant_id,
            entity_type="user",
            entity_id=user.id,
            old_values=before,
            new_values=snapshot(user),
        )
        await db.flush()
        logger.info(f"User {principal.user_id} updated user {user.id}")
        return user

    async def unlock_user(self, db: AsyncSession, principal: Principal, user_id: uuid.UUID) -> User:
        """Administrative reset: clears the failed-attempt counter and any lock"""
        user = await self.get_user(db, principal, user_id)
        before = {"failed_login_attempts": user.failed_login_attempts, "locked_until": user.locked_until}
        user.failed_login_attempts = 0
        user.locked_until = None
        self.audit.record(
            db,
            "user.unlock",
            principal=principal,
            tenant_id=user.tenant_id,
            entity_type="user",
            entity_id=user.id,
            old_values=before,
            new_values={"failed_login_attempts": 0, "locked_until": None},
        )
        await db.flush()
        logger.info(f"User {principal.user_id} unlocked user {user.id}")
        return user

    async def delete_user(self, db: AsyncSession, principal: Principal, user_id: uuid.UUID) -> User:
        """
        Soft delete: disable the account, tombstone it and revoke its refresh tokens

        Raises:
            InvalidStateError: Deleting your own account
        """
        user = await self.get_user(db, principal, user_id)
        if user.id == principal.user_id:
            raise InvalidStateError("You cannot delete your own account")

        before = snapshot(user)
        user.is_active = False
        user.soft_delete()
        revoked = await self.refresh_tokens.revoke_all_for_user(db, user.id)
        self.audit.record(
            db,
            "user.delete",
            principal=principal,
            tenant_id=user.tenant_id,
            entity_type="user",
            entity_id=user.id,
            old_values=before,
            new_values={"deleted_at": user.deleted_at, "revoked_sessions": revoked},
        )
        await db.flush()
        logger.warning(f"User {principal.user_id} deleted user {user.id}")
        return user

    async def purge_user(self, db: AsyncSession, principal: Principal, user_id: uuid.UUID) -> None:
        """
        Physical delete

        Refresh tokens go with the user (CASCADE); audit entries and
        membership provenance keep their rows with the user reference nulled
        (SET NULL).
        """
        user = await self.get_user(db, principal, user_id, include_deleted=True)
        if user.id == principal.user_id:
            raise InvalidStateError("You cannot delete your own account")

        tenant_id = user.tenant_id
        email = user.email
        await db.delete(user)
        self.audit.record(
            db,
            "user.purge",
            principal=principal,
            tenant_id=tenant_id,
            entity_type="user",
            entity_id=user_id,
            old_values={"email": email},
        )
        await db.flush()
        logger.warning(f"User {principal.user_id} purged user {user_id}")
