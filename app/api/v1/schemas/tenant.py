"""
Tenant API schemas for request/response models
Reference: https://fastapi.tiangolo.com/tutorial/body/
"""
import uuid
from datetime import datetime
from typing import Any, Optional
from pydantic import EmailStr, Field, field_validator

from app.api.v1.schemas.common import CamelModel


def _validate_subdomain(v: str) -> str:
    """
    Validate subdomain format: lowercase, alphanumeric, hyphens only

    Subdomains must be DNS-safe:
    - Lowercase only
    - Alphanumeric characters and hyphens
    - Cannot start or end with a hyphen

    Reference: https://docs.pydantic.dev/latest/concepts/validators/
    """
    v = v.lower().strip()

    if not v:
        raise ValueError("Subdomain cannot be empty")

    if not all((c.isascii() and c.isalnum()) or c == "-" for c in v):
        raise ValueError("Subdomain can only contain lowercase letters, numbers, and hyphens")

    if v.startswith("-") or v.endswith("-"):
        raise ValueError("Subdomain cannot start or end with a hyphen")

    return v


def default_schema_name(subdomain: str) -> str:
    """tenant_<subdomain> with hyphens replaced by underscores"""
    return f"tenant_{subdomain.replace('-', '_')}"


class TenantBase(CamelModel):
    """
    Base schema with common Tenant fields
    Used as base for create/update schemas
    """
    name: str = Field(..., min_length=1, max_length=255, description="Tenant organization name")
    description: Optional[str] = Field(None, max_length=2000)
    contact_email: Optional[EmailStr] = None
    contact_phone: Optional[str] = Field(None, max_length=50)
    address: Optional[str] = Field(None, max_length=500)
    logo_url: Optional[str] = Field(None, max_length=1000)
    settings: Optional[dict[str, Any]] = None
    user_limit: int = Field(0, ge=0, description="Maximum number of users (0 = unlimited)")
    expires_at: Optional[datetime] = None


class TenantCreate(TenantBase):
    """
    Schema for creating a new tenant (super admin only)

    Attributes:
        name: Tenant organization name (required)
        subdomain: DNS label used to route requests (required, must be unique)
        schema_name: Reserved schema name (defaults to tenant_<subdomain>)
        is_active: Whether tenant is active (default: True)
    """
    subdomain: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Tenant subdomain (e.g., 'academia-norte')",
    )
    schema_name: Optional[str] = Field(None, min_length=1, max_length=100)
    is_active: bool = Field(default=True, description="Whether the tenant is active (can access system)")

    @field_validator("subdomain")
    @classmethod
    def validate_subdomain(cls, v: str) -> str:
        return _validate_subdomain(v)


class TenantUpdate(CamelModel):
    """
    Schema for updating a tenant (super admin only)

    All fields are optional for partial updates.
    Only provided fields will be updated.
    """
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=2000)
    subdomain: Optional[str] = Field(None, min_length=1, max_length=100)
    contact_email: Optional[EmailStr] = None
    contact_phone: Optional[str] = Field(None, max_length=50)
    address: Optional[str] = Field(None, max_length=500)
    logo_url: Optional[str] = Field(None, max_length=1000)
    settings: Optional[dict[str, Any]] = None
    user_limit: Optional[int] = Field(None, ge=0)
    expires_at: Optional[datetime] = None
    is_active: Optional[bool] = None

    @field_validator("subdomain")
    @classmethod
    def validate_subdomain(cls, v: Optional[str]) -> Optional[str]:
        """Validate subdomain format if provided"""
        if v is None:
            return v
        return _validate_subdomain(v)


class TenantResponse(TenantBase):
    """Tenant as returned by the API"""
    id: uuid.UUID
    subdomain: str
    schema_name: str
    is_active: bool
    is_expired: bool
    created_at: datetime
    updated_at: datetime
    deleted_at: Optional[datetime] = None
