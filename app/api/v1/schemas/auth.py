"""
Authentication API schemas
Reference: https://fastapi.tiangolo.com/tutorial/body/
"""
from typing import Optional
from pydantic import EmailStr, Field, field_validator

from app.api.v1.schemas.common import CamelModel
from app.api.v1.schemas.user import UserResponse
from app.core.security import validate_password_strength


class RegisterRequest(CamelModel):
    """
    Self-service registration into the tenant resolved from the request

    Attributes:
        email: Login email (globally unique)
        password: 8-100 characters with at least one letter and one digit
        first_name / last_name: 1-50 characters
    """
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=100)
    first_name: str = Field(..., min_length=1, max_length=50)
    last_name: str = Field(..., min_length=1, max_length=50)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("first_name", "last_name")
    @classmethod
    def strip_names(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name cannot be blank")
        return v

    @field_validator("password")
    @classmethod
    def check_password(cls, v: str) -> str:
        return validate_password_strength(v)


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=1)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()


class RefreshRequest(CamelModel):
    """Refresh token in the body; the refresh cookie is used when omitted"""
    refresh_token: Optional[str] = Field(None, min_length=1)


class LogoutRequest(CamelModel):
    refresh_token: Optional[str] = Field(None, min_length=1)


class VerifyEmailRequest(CamelModel):
    token: str = Field(..., min_length=1)


class EmailRequest(CamelModel):
    """Body of resend-verification and forgot-password"""
    email: EmailStr

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()


class ResetPasswordRequest(CamelModel):
    token: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8, max_length=100)

    @field_validator("new_password")
    @classmethod
    def check_password(cls, v: str) -> str:
        return validate_password_strength(v)


class LoginResponse(CamelModel):
    """
    Successful login

    The same tokens are also set as the perseo_token / perseo_refresh_token cookies.
    """
    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_in: int
    user: UserResponse


class AccessTokenResponse(CamelModel):
    access_token: str
    token_type: str = "Bearer"
    expires_in: int
