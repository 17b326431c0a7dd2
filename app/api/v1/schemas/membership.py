"""
Group membership API schemas
"""
import uuid
from datetime import date, datetime
from typing import Optional
from pydantic import Field, model_validator

from app.api.v1.schemas.common import CamelModel
from app.models.group_membership import MembershipRole, MembershipStatus


class MembershipFields(CamelModel):
    role: MembershipRole = MembershipRole.MEMBER
    start_date: date
    end_date: Optional[date] = None
    status: MembershipStatus = MembershipStatus.ACTIVE
    reason: Optional[str] = Field(None, max_length=200)

    @model_validator(mode="after")
    def check_dates(self):
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("End date must be on or after start date")
        if self.status == MembershipStatus.SUSPENDED and not (self.reason or "").strip():
            raise ValueError("A reason is required for a suspended membership")
        return self


class MembershipCreate(MembershipFields):
    """
    Schema for creating a membership

    A membership created with an end date is stored as already ended (INACTIVE).
    """
    person_id: uuid.UUID
    group_id: uuid.UUID


class GroupMemberCreate(MembershipFields):
    """Body of POST /groups/{id}/members; the group comes from the path"""
    person_id: uuid.UUID
    start_date: date = Field(default_factory=date.today)


class MembershipUpdate(CamelModel):
    """Only role and reason are editable; status changes go through the actions"""
    role: Optional[MembershipRole] = None
    reason: Optional[str] = Field(None, max_length=200)


class MembershipEnd(CamelModel):
    end_date: date = Field(default_factory=date.today)
    reason: Optional[str] = Field(None, max_length=200)


class MembershipSuspend(CamelModel):
    reason: str = Field(..., min_length=1, max_length=200)


class MembershipResponse(CamelModel):
    id: uuid.UUID
    person_id: uuid.UUID
    group_id: uuid.UUID
    role: MembershipRole
    status: MembershipStatus
    start_date: date
    end_date: Optional[date] = None
    reason: Optional[str] = None
    added_by: Optional[uuid.UUID] = None
    is_active: bool
    created_at: datetime
    updated_at: datetime
