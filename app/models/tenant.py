"""
Tenant database model for multi-tenant architecture
Each tenant represents an educational organization with isolated data
Reference: https://docs.sqlalchemy.org/en/20/orm/mapped_sql_expressions.html
"""
import uuid
from datetime import datetime
from typing import Any, Optional
from sqlalchemy import Boolean, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base, JSONType, SoftDeleteMixin, TimestampMixin, UTCDateTime, utcnow


class Tenant(TimestampMixin, SoftDeleteMixin, Base):
    """
    Tenant model representing an organization in the multi-tenant system

    The tenant is the root of the ownership tree: users, persons, groups and
    audit log entries reference it with ON DELETE CASCADE.

    Attributes:
        id: Primary key, UUID
        name: Human-readable tenant name (e.g., "Academia Perseo")
        subdomain: Unique subdomain used for request routing (e.g., "demo")
        schema_name: Unique database schema name reserved for the tenant
        is_active: Inactive tenants cannot access the system
        user_limit: Seat limit for users (0 = unlimited)
        expires_at: Optional subscription expiry
        deleted_at: Soft delete marker

    Reference: https://docs.sqlalchemy.org/en/20/orm/basic_relationships.html
    """
    __tablename__ = "tenants"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,  # Auto-generate UUID on insert
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)

    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Subdomain: tenant1.example.com -> "tenant1"
    # Must be unique across all tenants (including soft-deleted ones)
    subdomain: Mapped[str] = mapped_column(
        String(100),
        unique=True,
        nullable=False,
        index=True,
    )

    schema_name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)

    settings: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONType, nullable=True)

    contact_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    contact_phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    address: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    logo_url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)

    # Seat limit: 0 means unlimited
    user_limit: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    expires_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)

    # Relationships: passive_deletes lets the database cascade handle child rows
    users: Mapped[list["User"]] = relationship(
        "User", back_populates="tenant", cascade="all, delete", passive_deletes=True
    )

    @property
    def is_expired(self) -> bool:
        return self.expires_at is not None and self.expires_at <= utcnow()

    @property
    def is_usable(self) -> bool:
        """Active, not soft-deleted and not past its expiry"""
        return self.is_active and self.deleted_at is None and not self.is_expired

    def __repr__(self) -> str:
        """String representation for debugging"""
        return f"<Tenant(id={self.id}, name='{self.name}', subdomain='{self.subdomain}', is_active={self.is_active})>"
