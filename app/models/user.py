from datetime import datetime
from enum import Enum as PyEnum
from typing import Optional
import uuid
from sqlalchemy import Boolean, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship
from app.core.database import Base, JSONType, SoftDeleteMixin, TimestampMixin, UTCDateTime, utcnow


class UserRole(str, PyEnum):
    """
    Fixed role enumeration, declared from most to least privileged.
    The declaration order is used to derive a user's primary role.
    """
    SUPER_ADMIN = "super_admin"
    TENANT_ADMIN = "tenant_admin"
    INSTRUCTOR = "instructor"
    STUDENT = "student"
    MEMBER = "member"


ROLE_PRECEDENCE: list[UserRole] = list(UserRole)


class UserStatus(str, PyEnum):
    """Authentication state derived from the user's columns"""
    UNVERIFIED = "unverified"
    ACTIVE = "active"
    LOCKED = "locked"
    DISABLED = "disabled"


def normalize_roles(roles: list) -> list[str]:
    """Deduplicate roles and order them by precedence"""
    values = {UserRole(role).value for role in roles}
    return [role.value for role in ROLE_PRECEDENCE if role.value in values]


class User(TimestampMixin, SoftDeleteMixin, Base):
    """
    User model representing an authentication principal

    Users may belong to a tenant. Platform-level users (super admins) have
    no tenant. Roles are stored as an ordered set; `primary_role` gives the
    single-role view the web frontend expects.

    Attributes:
        id: Primary key, UUID
        tenant_id: Optional foreign key to Tenant (CASCADE on tenant delete)
        email: Globally unique login email
        password_hash: bcrypt hash
        roles: Ordered list of UserRole values
        failed_login_attempts: Consecutive failures since the last success
        locked_until: Lock expiry after too many failures
        last_login_at / last_login_ip: Metadata of the last successful login

    Reference: https://docs.sqlalchemy.org/en/20/orm/mapped_sql_expressions.html
    """
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # Nullable: platform users are not attached to any tenant
    tenant_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )

    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_email_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    email_verification_token: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    email_verification_expires: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    password_reset_token: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    password_reset_expires: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)

    roles: Mapped[list[str]] = mapped_column(
        JSONType,
        default=lambda: [UserRole.MEMBER.value],
        nullable=False,
    )

    failed_login_attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    locked_until: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    last_login_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    last_login_ip: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    tenant: Mapped[Optional["Tenant"]] = relationship("Tenant", back_populates="users")
    refresh_tokens: Mapped[list["RefreshToken"]] = relationship(
        "RefreshToken",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def primary_role(self) -> str:
        for role in ROLE_PRECEDENCE:
            if role.value in (self.roles or []):
                return role.value
        return UserRole.MEMBER.value

    def has_role(self, *roles: UserRole) -> bool:
        return any(role.value in (self.roles or []) for role in roles)

    def is_locked(self, now: Optional[datetime] = None) -> bool:
        return self.locked_until is not None and self.locked_until > (now or utcnow())

    @property
    def is_disabled(self) -> bool:
        return self.deleted_at is not None or not self.is_active

    @property
    def status(self) -> UserStatus:
        if self.is_disabled:
            return UserStatus.DISABLED
        if self.is_locked():
            return UserStatus.LOCKED
        if not self.is_email_verified:
            return UserStatus.UNVERIFIED
        return UserStatus.ACTIVE

    def __repr__(self) -> str:
        """String representation for debugging"""
        return f"<User(id={self.id}, email='{self.email}', tenant_id={self.tenant_id}, roles={self.roles})>"
