"""
Person API schemas for request/response models
Reference: https://fastapi.tiangolo.com/tutorial/body-nested-models/
"""
import re
import uuid
from datetime import date, datetime
from typing import Literal, Optional
from pydantic import EmailStr, Field, HttpUrl, field_validator, model_validator

from app.api.v1.schemas.common import CamelModel
from app.models.person import Gender, NationalIdType

PHONE_PATTERN = re.compile(r"^[\d\s\-+()]+$")


def _validate_phone(v: str) -> str:
    v = v.strip()
    if not v or not PHONE_PATTERN.match(v):
        raise ValueError("Invalid phone number format")
    return v


class Address(CamelModel):
    street: str = Field(..., min_length=1, max_length=200)
    city: str = Field(..., min_length=1, max_length=100)
    state: str = Field(..., min_length=1, max_length=100)
    postal_code: str = Field(..., min_length=1, max_length=20)
    country: str = Field(..., min_length=1, max_length=100)


class EmergencyContact(CamelModel):
    name: str = Field(..., min_length=1, max_length=100)
    relationship: str = Field(..., min_length=1, max_length=50)
    phone: str
    email: Optional[EmailStr] = None

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: str) -> str:
        return _validate_phone(v)


class CommunicationPreferences(CamelModel):
    """At least one channel must be enabled"""
    email: bool
    sms: bool
    whatsapp: bool

    @model_validator(mode="after")
    def require_one_channel(self) -> "CommunicationPreferences":
        if not (self.email or self.sms or self.whatsapp):
            raise ValueError("At least one communication preference must be enabled")
        return self


class PersonFields(CamelModel):
    """Field rules shared by create and update; every field optional here"""
    first_name: Optional[str] = Field(None, min_length=1, max_length=50)
    last_name: Optional[str] = Field(None, min_length=1, max_length=50)
    email: Optional[EmailStr] = None
    alternate_emails: Optional[list[EmailStr]] = None
    phone: Optional[str] = None
    alternate_phones: Optional[list[str]] = None
    birth_date: Optional[date] = None
    national_id: Optional[str] = Field(None, min_length=1, max_length=20)
    national_id_type: Optional[NationalIdType] = None
    gender: Optional[Gender] = None
    address: Optional[Address] = None
    emergency_contact: Optional[EmergencyContact] = None
    preferred_language: Optional[Literal["es", "en"]] = None
    communication_preferences: Optional[CommunicationPreferences] = None
    photo_url: Optional[HttpUrl] = None
    notes: Optional[str] = Field(None, max_length=1000)
    tags: Optional[list[str]] = None

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip().lower()
        if len(v) > 100:
            raise ValueError("Email must be less than 100 characters")
        return v

    @field_validator("alternate_emails")
    @classmethod
    def normalize_alternate_emails(cls, v: Optional[list[str]]) -> Optional[list[str]]:
        return [email.strip().lower() for email in v] if v is not None else v

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: Optional[str]) -> Optional[str]:
        return _validate_phone(v) if v is not None else v

    @field_validator("alternate_phones")
    @classmethod
    def validate_alternate_phones(cls, v: Optional[list[str]]) -> Optional[list[str]]:
        return [_validate_phone(phone) for phone in v] if v is not None else v

    @field_validator("birth_date")
    @classmethod
    def validate_birth_date(cls, v: Optional[date]) -> Optional[date]:
        if v is not None and v > date.today():
            raise ValueError("Birth date must be a valid date in the past")
        return v

    @field_validator("national_id", "first_name", "last_name")
    @classmethod
    def strip_text(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("Value cannot be blank")
        return v

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, v: Optional[list[str]]) -> Optional[list[str]]:
        if v is None:
            return v
        for tag in v:
            if len(tag) > 50:
                raise ValueError("Tag must be less than 50 characters")
        # Keep first occurrence order
        return list(dict.fromkeys(tag.strip() for tag in v if tag.strip()))

    def to_columns(self, exclude_unset: bool = False) -> dict:
        """Column values for the Person model; nested documents stored in camelCase"""
        values = self.model_dump(exclude_unset=exclude_unset)
        for key in ("address", "emergency_contact", "communication_preferences"):
            nested = getattr(self, key)
            if key in values:
                values[key] = nested.model_dump(by_alias=True, exclude_none=True) if nested is not None else None
        if values.get("photo_url") is not None:
            values["photo_url"] = str(values["photo_url"])
        return values


class PersonCreate(PersonFields):
    """
    Schema for creating a person

    Required: names, email, phone, birth date, national ID, address,
    emergency contact and communication preferences.
    """
    first_name: str = Field(..., min_length=1, max_length=50)
    last_name: str = Field(..., min_length=1, max_length=50)
    email: EmailStr
    phone: str
    birth_date: date
    national_id: str = Field(..., min_length=1, max_length=20)
    national_id_type: NationalIdType = NationalIdType.DNI
    address: Address
    emergency_contact: EmergencyContact
    preferred_language: Literal["es", "en"] = "es"
    communication_preferences: CommunicationPreferences


class PersonUpdate(PersonFields):
    """
    Partial update; only provided fields change

    Required fields cannot be cleared with null.
    """

    @model_validator(mode="after")
    def forbid_clearing_required(self) -> "PersonUpdate":
        required = (
            "first_name", "last_name", "email", "phone", "birth_date", "national_id",
            "national_id_type", "address", "emergency_contact", "preferred_language",
            "communication_preferences",
        )
        for field in required:
            if field in self.model_fields_set and getattr(self, field) is None:
                raise ValueError(f"{field} cannot be null")
        return self


class PersonResponse(CamelModel):
    id: uuid.UUID
    tenant_id: uuid.UUID
    first_name: str
    last_name: str
    full_name: str
    email: str
    alternate_emails: Optional[list[str]] = None
    phone: str
    alternate_phones: Optional[list[str]] = None
    birth_date: date
    national_id: str
    national_id_type: NationalIdType
    gender: Optional[Gender] = None
    address: Address
    emergency_contact: EmergencyContact
    preferred_language: str
    communication_preferences: CommunicationPreferences
    photo_url: Optional[str] = None
    notes: Optional[str] = None
    tags: Optional[list[str]] = None
    created_at: datetime
    updated_at: datetime
    deleted_at: Optional[datetime] = None
