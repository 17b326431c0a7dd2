"""
Person database model
Directory subjects of a tenant. A person does not need login credentials.
Reference: https://docs.sqlalchemy.org/en/20/orm/mapped_sql_expressions.html
"""
import uuid
from datetime import date
from enum import Enum as PyEnum
from typing import Any, Optional
from sqlalchemy import Date, Enum, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base, JSONType, SoftDeleteMixin, TimestampMixin


class Gender(str, PyEnum):
    MALE = "M"
    FEMALE = "F"
    OTHER = "OTHER"
    PREFER_NOT_TO_SAY = "PREFER_NOT_TO_SAY"


class NationalIdType(str, PyEnum):
    DNI = "DNI"
    PASSPORT = "PASSPORT"
    OTHER = "OTHER"


def enum_values(enum_cls) -> list[str]:
    """Persist enum values (not member names) in VARCHAR enum columns"""
    return [member.value for member in enum_cls]


class Person(TimestampMixin, SoftDeleteMixin, Base):
    """
    Person model

    Email and national ID are unique across the whole platform, not per
    tenant. Address, emergency contact and communication preferences are
    structured JSON documents validated at the API boundary.

    Relationships:
        - documents: cascade-deleted with the person
        - memberships: cascade-deleted with the person
    """
    __tablename__ = "persons"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    first_name: Mapped[str] = mapped_column(String(50), nullable=False)
    last_name: Mapped[str] = mapped_column(String(50), nullable=False)

    email: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    alternate_emails: Mapped[Optional[list[str]]] = mapped_column(JSONType, nullable=True)
    phone: Mapped[str] = mapped_column(String(30), nullable=False)
    alternate_phones: Mapped[Optional[list[str]]] = mapped_column(JSONType, nullable=True)

    birth_date: Mapped[date] = mapped_column(Date, nullable=False)

    national_id: Mapped[str] = mapped_column(String(20), unique=True, nullable=False, index=True)
    national_id_type: Mapped[NationalIdType] = mapped_column(
        Enum(NationalIdType, native_enum=False, values_callable=enum_values, length=20),
        default=NationalIdType.DNI,
        nullable=False,
    )
    gender: Mapped[Optional[Gender]] = mapped_column(
        Enum(Gender, native_enum=False, values_callable=enum_values, length=20),
        nullable=True,
    )

    address: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False)
    emergency_contact: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False)
    preferred_language: Mapped[str] = mapped_column(String(2), default="es", nullable=False)
    communication_preferences: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False)

    photo_url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    tags: Mapped[Optional[list[str]]] = mapped_column(JSONType, nullable=True)

    documents: Mapped[list["Document"]] = relationship(
        "Document", back_populates="person", cascade="all, delete", passive_deletes=True
    )
    memberships: Mapped[list["GroupMembership"]] = relationship(
        "GroupMembership",
        back_populates="person",
        cascade="all, delete",
        passive_deletes=True,
        foreign_keys="GroupMembership.person_id",
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def __repr__(self) -> str:
        return f"<Person(id={self.id}, email='{self.email}', tenant_id={self.tenant_id})>"
