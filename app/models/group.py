"""
Group database model
Tenant-scoped organizational units arranged in a tree through parent_group_id
"""
import uuid
from enum import Enum as PyEnum
from typing import Any, Optional
from sqlalchemy import Boolean, Enum, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base, JSONType, SoftDeleteMixin, TimestampMixin
from app.models.person import enum_values


class GroupType(str, PyEnum):
    ADMINISTRATIVE = "ADMINISTRATIVE"
    ACADEMIC = "ACADEMIC"
    SOCIAL = "SOCIAL"
    OTHER = "OTHER"


class Group(TimestampMixin, SoftDeleteMixin, Base):
    """
    Group model

    parent_group_id is a plain key reference (SET NULL on parent delete).
    The database does not enforce that the parent belongs to the same tenant
    or that the hierarchy is acyclic; GroupService checks both on write and
    the hierarchy builder guards against cycles on read.
    """
    __tablename__ = "groups"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    type: Mapped[GroupType] = mapped_column(
        Enum(GroupType, native_enum=False, values_callable=enum_values, length=20),
        default=GroupType.OTHER,
        nullable=False,
    )

    parent_group_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("groups.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    leader_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("persons.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # Capacity: None means unlimited
    max_members: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    metadata_: Mapped[Optional[dict[str, Any]]] = mapped_column("metadata", JSONType, nullable=True)

    memberships: Mapped[list["GroupMembership"]] = relationship(
        "GroupMembership", back_populates="group", cascade="all, delete", passive_deletes=True
    )

    def __repr__(self) -> str:
        return f"<Group(id={self.id}, name='{self.name}', parent={self.parent_group_id}, tenant_id={self.tenant_id})>"
