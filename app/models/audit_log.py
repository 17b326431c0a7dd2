"""
Audit log model
Append-only record of mutations against tenant-scoped entities
"""
import uuid
from datetime import datetime
from typing import Any, Optional
from sqlalchemy import ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base, JSONType, UTCDateTime, utcnow


class AuditLog(Base):
    """
    Audit log entry

    Never updated or deleted by application code. Deleting the tenant removes
    its entries (CASCADE); deleting the acting user keeps the entry and nulls
    user_id (SET NULL) so the trail survives.

    Attributes:
        tenant_id: Tenant the mutated entity belongs to (nullable for platform actions)
        user_id: Acting user (nullable: anonymous flows, deleted users)
        action: Dotted action name, e.g. "membership.suspend"
        entity_type / entity_id: Mutated entity
        old_values / new_values: JSON snapshots before and after the mutation
    """
    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("ix_audit_logs_tenant_id_created_at", "tenant_id", "created_at"),
        Index("ix_audit_logs_user_id_created_at", "user_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    tenant_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    action: Mapped[str] = mapped_column(String(100), nullable=False)
    entity_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    entity_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    old_values: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONType, nullable=True)
    new_values: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONType, nullable=True)
    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=utcnow,
        nullable=False,
        index=True,
    )

    def __repr__(self) -> str:
        return f"<AuditLog(id={self.id}, action='{self.action}', entity={self.entity_type}:{self.entity_id})>"
