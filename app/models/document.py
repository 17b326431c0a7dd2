"""
Document database model for person file attachments
Documents belong to exactly one person and are removed with it
Reference: https://docs.sqlalchemy.org/en/20/orm/mapped_sql_expressions.html
"""
import uuid
from enum import Enum as PyEnum
from typing import Optional
from sqlalchemy import Boolean, Enum, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base, SoftDeleteMixin, TimestampMixin
from app.models.person import enum_values


class DocumentType(str, PyEnum):
    """
    Document type enum

    Reference: https://docs.python.org/3/library/enum.html
    """
    IDENTIFICATION = "IDENTIFICATION"
    PROOF_OF_ADDRESS = "PROOF_OF_ADDRESS"
    ACADEMIC_CERTIFICATE = "ACADEMIC_CERTIFICATE"
    MEDICAL_CERTIFICATE = "MEDICAL_CERTIFICATE"
    EMERGENCY_CONTACT_INFO = "EMERGENCY_CONTACT_INFO"
    PHOTO = "PHOTO"
    OTHER = "OTHER"


class Document(TimestampMixin, SoftDeleteMixin, Base):
    """
    Document model representing a file attached to a person

    The tenant scope is derived from the owning person; there is no tenant_id
    column on documents.

    Attributes:
        id: Primary key, UUID
        person_id: Owning person (CASCADE on person delete)
        name: Display name
        type: DocumentType
        url: Storage URL or S3 key
        file_name: Original filename as uploaded by user
        mime_type: MIME type
        file_size: File size in bytes
        is_active: Whether the document is current
    """
    __tablename__ = "documents"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    person_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("persons.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[DocumentType] = mapped_column(
        Enum(DocumentType, native_enum=False, values_callable=enum_values, length=30),
        default=DocumentType.OTHER,
        nullable=False,
        index=True,
    )
    url: Mapped[str] = mapped_column(String(1000), nullable=False)
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    mime_type: Mapped[str] = mapped_column(String(100), nullable=False)
    file_size: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    person: Mapped["Person"] = relationship("Person", back_populates="documents")

    def __repr__(self) -> str:
        """String representation for debugging"""
        return f"<Document(id={self.id}, name='{self.name}', type={self.type.value}, person_id={self.person_id})>"
