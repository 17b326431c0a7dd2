"""
Domain exceptions
Services raise these; app.api.errors renders them into the JSON error envelope.
Reference: https://fastapi.tiangolo.com/tutorial/handling-errors/#install-custom-exception-handlers
"""
from typing import Any, Optional

from fastapi import status


class PerseoError(Exception):
    """
    Base class for expected, client-facing errors.

    Attributes:
        status_code: HTTP status used when rendering the error
        code: Stable machine-readable error code
        message: Human-readable message
        details: Optional structured context (field errors, ids)
    """
    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "BAD_REQUEST"

    def __init__(
        self,
        message: str,
        details: Optional[dict[str, Any]] = None,
        code: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details
        if code is not None:
            self.code = code


class ValidationError(PerseoError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "VALIDATION_ERROR"


class AuthenticationError(PerseoError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "AUTH_INVALID_CREDENTIALS"


class AccountLockedError(PerseoError):
    status_code = status.HTTP_423_LOCKED
    code = "AUTH_ACCOUNT_LOCKED"


class EmailNotVerifiedError(PerseoError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "AUTH_EMAIL_NOT_VERIFIED"


class InvalidTokenError(PerseoError):
    """Invalid or expired single-use token (email verification, password reset)"""
    status_code = status.HTTP_400_BAD_REQUEST
    code = "INVALID_TOKEN"


class AuthorizationError(PerseoError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "AUTH_FORBIDDEN"


class NotFoundError(PerseoError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"

    @classmethod
    def for_entity(cls, entity: str, entity_id: Any) -> "NotFoundError":
        return cls(f"{entity} not found", details={"id": str(entity_id)})


class ConflictError(PerseoError):
    status_code = status.HTTP_409_CONFLICT
    code = "CONFLICT"


class CapacityError(PerseoError):
    """A group or tenant has no free seats left"""
    status_code = status.HTTP_409_CONFLICT
    code = "CAPACITY_EXCEEDED"


class InvalidStateError(PerseoError):
    """The requested transition is not allowed from the entity's current state"""
    status_code = status.HTTP_409_CONFLICT
    code = "INVALID_STATE"
