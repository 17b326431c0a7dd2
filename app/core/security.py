"""
Password hashing and token primitives
bcrypt for password hashes, Authlib JOSE for signed access tokens,
secrets for opaque refresh / verification / reset tokens.
Reference: https://docs.authlib.org/en/latest/jose/jwt.html
Reference: https://pypi.org/project/bcrypt/
"""
import logging
import re
import secrets
import uuid
from datetime import datetime, timedelta
from typing import Any, Optional

import bcrypt
from authlib.jose import jwt
from authlib.jose.errors import BadSignatureError, DecodeError, ExpiredTokenError, InvalidClaimError, JoseError

from app.core.config import settings
from app.core.database import utcnow

logger = logging.getLogger(__name__)

ACCESS_TOKEN_TYPE = "access"

PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 100
_PASSWORD_LETTER = re.compile(r"[A-Za-z]")
_PASSWORD_DIGIT = re.compile(r"\d")


def validate_password_strength(password: str) -> str:
    """
    Check the password policy: 8-100 characters, at least one letter and one digit.

    Raises:
        ValueError: If the password does not satisfy the policy
    """
    if len(password) < PASSWORD_MIN_LENGTH or len(password) > PASSWORD_MAX_LENGTH:
        raise ValueError(
            f"Password must be between {PASSWORD_MIN_LENGTH} and {PASSWORD_MAX_LENGTH} characters"
        )
    if not _PASSWORD_LETTER.search(password) or not _PASSWORD_DIGIT.search(password):
        raise ValueError("Password must contain at least one letter and one digit")
    return password


def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Constant-time bcrypt comparison. Malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        logger.warning("Stored password hash is not a valid bcrypt hash")
        return False


def generate_opaque_token(nbytes: int = 48) -> str:
    """URL-safe random token for refresh, verification and reset flows"""
    return secrets.token_urlsafe(nbytes)


def create_access_token(
    user_id: uuid.UUID,
    email: str,
    roles: list[str],
    tenant_id: Optional[uuid.UUID],
    expires_delta: Optional[timedelta] = None,
    now: Optional[datetime] = None,
) -> str:
    """
    Sign a short-lived access token.

    Claims: sub, email, roles, tenantId, iat, exp, type=access.

    Args:
        user_id: Subject
        email: User email
        roles: Role values of the user
        tenant_id: Tenant of the user, None for platform users
        expires_delta: Lifetime override (defaults to ACCESS_TOKEN_EXPIRE_MINUTES)
        now: Issue time override, used by tests

    Returns:
        str: Compact JWS
    """
    issued_at = now or utcnow()
    expires_at = issued_at + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    header = {"alg": settings.JWT_ALGORITHM, "typ": "JWT"}
    payload = {
        "sub": str(user_id),
        "email": email,
        "roles": list(roles),
        "tenantId": str(tenant_id) if tenant_id else None,
        "iat": int(issued_at.timestamp()),
        "exp": int(expires_at.timestamp()),
        "type": ACCESS_TOKEN_TYPE,
    }
    token = jwt.encode(header, payload, settings.JWT_SECRET)
    return token.decode("utf-8") if isinstance(token, bytes) else token


def decode_access_token(token: str) -> dict[str, Any]:
    """
    Verify signature and expiry of an access token and return its claims.

    Raises:
        ValueError: If the token is malformed, tampered with, expired or not an access token
    """
    try:
        claims = jwt.decode(
            token,
            settings.JWT_SECRET,
            claims_options={
                "exp": {"essential": True},
                "iat": {"essential": True},
                "sub": {"essential": True},
            },
        )
        # decode() only checks the signature, expiry is checked here
        claims.validate()
    except ExpiredTokenError:
        raise ValueError("Token has expired")
    except BadSignatureError:
        raise ValueError("Invalid token signature")
    except DecodeError as e:
        raise ValueError(f"Invalid token format: {e}")
    except InvalidClaimError as e:
        raise ValueError(f"Invalid token claim: {e}")
    except JoseError as e:
        raise ValueError(f"Token verification failed: {e}")

    if claims.get("type") != ACCESS_TOKEN_TYPE:
        raise ValueError("Not an access token")
    return dict(claims)
