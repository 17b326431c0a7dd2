"""
Group API schemas for request/response models
Reference: https://fastapi.tiangolo.com/tutorial/body/
"""
import uuid
from datetime import datetime
from typing import Any, Optional
from pydantic import AliasChoices, Field, field_validator

from app.api.v1.schemas.common import CamelModel
from app.models.group import GroupType


class GroupBase(CamelModel):
    description: Optional[str] = Field(None, max_length=500)
    parent_group_id: Optional[uuid.UUID] = None
    leader_id: Optional[uuid.UUID] = None
    max_members: Optional[int] = Field(None, ge=1, description="Capacity; omit for unlimited")
    metadata: Optional[dict[str, Any]] = Field(
        None,
        # ORM attribute is metadata_ (metadata is reserved by SQLAlchemy)
        validation_alias=AliasChoices("metadata_", "metadata"),
    )


class GroupCreate(GroupBase):
    """
    Schema for creating a group

    Attributes:
        name: Unique among siblings (same tenant and parent)
        type: GroupType
        parent_group_id: Optional parent in the same tenant
        leader_id: Optional person of the same tenant
        max_members: Optional capacity for active memberships
    """
    name: str = Field(..., min_length=1, max_length=100)
    type: GroupType
    is_active: bool = True

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Group name cannot be blank")
        return v


class GroupUpdate(GroupBase):
    """
    Partial update; only provided fields change

    Send parentGroupId: null to move a group to the top level.
    """
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    type: Optional[GroupType] = None
    is_active: Optional[bool] = None

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("Group name cannot be blank")
        return v


class GroupResponse(GroupBase):
    id: uuid.UUID
    tenant_id: uuid.UUID
    name: str
    type: GroupType
    is_active: bool
    created_at: datetime
    updated_at: datetime
    deleted_at: Optional[datetime] = None


class GroupTreeNode(CamelModel):
    """One node of the group hierarchy"""
    id: uuid.UUID
    name: str
    type: GroupType
    description: Optional[str] = None
    parent_group_id: Optional[uuid.UUID] = None
    leader_id: Optional[uuid.UUID] = None
    max_members: Optional[int] = None
    is_active: bool
    member_count: int
    subgroup_count: int
    children: list["GroupTreeNode"] = Field(default_factory=list)
