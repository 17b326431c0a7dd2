"""
Group membership database model
Time-bounded join between a Person and a Group
"""
import uuid
from datetime import date
from enum import Enum as PyEnum
from typing import Optional
from sqlalchemy import Date, Enum, ForeignKey, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base, SoftDeleteMixin, TimestampMixin
from app.models.person import enum_values


class MembershipRole(str, PyEnum):
    MEMBER = "MEMBER"
    LEADER = "LEADER"
    COORDINATOR = "COORDINATOR"


class MembershipStatus(str, PyEnum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    SUSPENDED = "SUSPENDED"


class GroupMembership(TimestampMixin, SoftDeleteMixin, Base):
    """
    Group membership model

    Rows are never physically removed by the application. A membership ends
    when end_date is set (status becomes INACTIVE); there is no separate
    terminal status value.

    (person_id, group_id, start_date) is unique: re-joining the same group on
    the same date is rejected.
    """
    __tablename__ = "group_memberships"
    __table_args__ = (
        UniqueConstraint(
            "person_id", "group_id", "start_date",
            name="uq_group_memberships_person_group_start",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    person_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("persons.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    group_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("groups.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    role: Mapped[MembershipRole] = mapped_column(
        Enum(MembershipRole, native_enum=False, values_callable=enum_values, length=20),
        default=MembershipRole.MEMBER,
        nullable=False,
    )
    status: Mapped[MembershipStatus] = mapped_column(
        Enum(MembershipStatus, native_enum=False, values_callable=enum_values, length=20),
        default=MembershipStatus.ACTIVE,
        nullable=False,
        index=True,
    )

    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Provenance only: the user who added the member. Survives user deletion as NULL.
    added_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    person: Mapped["Person"] = relationship(
        "Person", back_populates="memberships", foreign_keys=[person_id]
    )
    group: Mapped["Group"] = relationship("Group", back_populates="memberships")

    @property
    def is_ended(self) -> bool:
        return self.end_date is not None

    @property
    def is_active(self) -> bool:
        """Counts toward group capacity"""
        return self.status == MembershipStatus.ACTIVE and self.end_date is None

    def __repr__(self) -> str:
        return (
            f"<GroupMembership(id={self.id}, person_id={self.person_id}, group_id={self.group_id}, "
            f"status={self.status.value}, start={self.start_date}, end={self.end_date})>"
        )
