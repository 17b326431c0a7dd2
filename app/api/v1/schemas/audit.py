"""
Audit log API schemas
"""
import uuid
from datetime import datetime
from typing import Any, Optional

from app.api.v1.schemas.common import CamelModel


class AuditLogResponse(CamelModel):
    """
    One audit trail entry

    user_id is null for unauthenticated actions and after the acting user was purged.
    """
    id: uuid.UUID
    tenant_id: Optional[uuid.UUID] = None
    user_id: Optional[uuid.UUID] = None
    action: str
    entity_type: Optional[str] = None
    entity_id: Optional[uuid.UUID] = None
    old_values: Optional[dict[str, Any]] = None
    new_values: Optional[dict[str, Any]] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime
