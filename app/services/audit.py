"""
Audit service
Appends audit log entries in the caller's transaction and serves the audit trail.
Reference: https://docs.sqlalchemy.org/en/20/orm/session_basics.html
"""
import logging
import uuid
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional

from sqlalchemy import inspect, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.dependencies import Principal
from app.models.audit_log import AuditLog
from app.services.pagination import PageParams, paginate

logger = logging.getLogger(__name__)

_SENSITIVE_KEY_PATTERNS = ("password", "token", "secret")
_REDACTED_VALUE = "[REDACTED]"

# Marks "take the value from the principal" for record() arguments that may legitimately be None
_FROM_PRINCIPAL: Any = object()


def _is_sensitive_key(key: str) -> bool:
    lowered = key.lower()
    return any(pattern in lowered for pattern in _SENSITIVE_KEY_PATTERNS)


def _to_json(value: Any) -> Any:
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {str(k): _to_json(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_to_json(v) for v in value]
    return value


def snapshot(entity: Any) -> dict[str, Any]:
    """
    JSON-safe dict of an ORM entity's column values, secrets redacted.

    Keys are the mapped attribute names (e.g. "metadata_" on Group).
    """
    mapper = inspect(entity).mapper
    values: dict[str, Any] = {}
    for attr in mapper.column_attrs:
        key = attr.key
        if _is_sensitive_key(key):
            values[key] = _REDACTED_VALUE
        else:
            values[key] = _to_json(getattr(entity, key))
    return values


def redact(values: Optional[dict[str, Any]]) -> Optional[dict[str, Any]]:
    """Redact secret-looking keys of an arbitrary payload (e.g. request bodies)"""
    if values is None:
        return None
    return {
        key: _REDACTED_VALUE if _is_sensitive_key(key) else _to_json(value)
        for key, value in values.items()
    }


class AuditService:
    """
    Service for the append-only audit trail

    record() only adds the entry to the session. The route handler commits
    it together with the mutation it describes, so both persist or neither does.
    """

    def record(
        self,
        db: AsyncSession,
        action: str,
        *,
        principal: Optional[Principal] = None,
        tenant_id: Optional[uuid.UUID] = _FROM_PRINCIPAL,
        entity_type: Optional[str] = None,
        entity_id: Optional[uuid.UUID] = None,
        old_values: Optional[dict[str, Any]] = None,
        new_values: Optional[dict[str, Any]] = None,
        user_id: Optional[uuid.UUID] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> AuditLog:
        """
        Add one audit entry to the current transaction.

        Args:
            db: Database session
            action: Dotted action name, e.g. "person.create"
            principal: Acting principal; supplies user, IP and user agent
            tenant_id: Tenant owning the entity (defaults to the principal's; pass None for platform-level entries)
            entity_type / entity_id: Mutated entity
            old_values / new_values: Snapshots before/after (already redacted via snapshot())
            user_id / ip_address / user_agent: Explicit actor data for unauthenticated flows

        Returns:
            AuditLog: The pending entry
        """
        entry = AuditLog(
            tenant_id=(principal.tenant_id if principal else None) if tenant_id is _FROM_PRINCIPAL else tenant_id,
            user_id=user_id if user_id is not None else (principal.user_id if principal else None),
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            old_values=redact(old_values),
            new_values=redact(new_values),
            ip_address=ip_address if ip_address is not None else (principal.ip_address if principal else None),
            user_agent=user_agent if user_agent is not None else (principal.user_agent if principal else None),
        )
        db.add(entry)
        logger.debug(f"Audit entry queued: {action} {entity_type}:{entity_id}")
        return entry

    async def list_entries(
        self,
        db: AsyncSession,
        tenant_id: Optional[uuid.UUID],
        params: PageParams,
        entity_type: Optional[str] = None,
        entity_id: Optional[uuid.UUID] = None,
        action: Optional[str] = None,
        user_id: Optional[uuid.UUID] = None,
    ) -> tuple[list[AuditLog], int]:
        """
        List audit entries, newest first by default.

        Args:
            tenant_id: Tenant scope; None lists platform-wide (super admin only)
        """
        query = select(AuditLog)
        if tenant_id is not None:
            query = query.where(AuditLog.tenant_id == tenant_id)
        if entity_type:
            query = query.where(AuditLog.entity_type == entity_type)
        if entity_id:
            query = query.where(AuditLog.entity_id == entity_id)
        if action:
            query = query.where(AuditLog.action == action)
        if user_id:
            query = query.where(AuditLog.user_id == user_id)

        return await paginate(
            db,
            query,
            params,
            sort_columns={
                "createdAt": AuditLog.created_at,
                "action": AuditLog.action,
                "entityType": AuditLog.entity_type,
            },
        )
