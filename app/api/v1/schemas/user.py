"""
User API schemas
"""
import uuid
from datetime import datetime
from typing import Optional
from pydantic import EmailStr, Field, field_validator

from app.api.v1.schemas.common import CamelModel
from app.models.user import UserRole, UserStatus, normalize_roles


class UserResponse(CamelModel):
    """
    Public view of a user account

    `role` is the primary (highest-privilege) role; `roles` is the full set.
    """
    id: uuid.UUID
    email: EmailStr
    first_name: str
    last_name: str
    tenant_id: Optional[uuid.UUID] = None
    roles: list[UserRole]
    role: UserRole = Field(validation_alias="primary_role")
    status: UserStatus
    is_active: bool
    is_email_verified: bool
    failed_login_attempts: int
    locked_until: Optional[datetime] = None
    last_login_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class UserSummary(CamelModel):
    """Registration response"""
    id: uuid.UUID
    email: EmailStr
    first_name: str
    last_name: str
    tenant_id: Optional[uuid.UUID] = None


class UserUpdate(CamelModel):
    """
    Administrative partial update

    Only provided fields are changed. Granting super_admin requires a super admin.
    """
    first_name: Optional[str] = Field(None, min_length=1, max_length=50)
    last_name: Optional[str] = Field(None, min_length=1, max_length=50)
    roles: Optional[list[UserRole]] = Field(None, min_length=1)
    is_active: Optional[bool] = None

    @field_validator("roles")
    @classmethod
    def dedupe_roles(cls, v: Optional[list[UserRole]]) -> Optional[list[UserRole]]:
        if v is None:
            return v
        return [UserRole(role) for role in normalize_roles(v)]
