"""
Authentication dependencies
Builds the request Principal from a bearer token or the access-token cookie.
Reference: https://fastapi.tiangolo.com/tutorial/security/oauth2-jwt/
"""
import logging
import uuid
from dataclasses import dataclass, field
from typing import Annotated, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import ACCESS_TOKEN_COOKIE_NAME
from app.core.database import get_db
from app.core.errors import AuthenticationError, AuthorizationError
from app.core.security import decode_access_token
from app.models.tenant import Tenant
from app.models.user import User, UserRole

logger = logging.getLogger(__name__)

# auto_error=False: the cookie is an accepted alternative to the header
bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class RequestContext:
    """Client metadata recorded on refresh tokens and audit entries"""
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


@dataclass(frozen=True)
class Principal:
    """
    Authenticated identity for one request.

    Passed explicitly to services; there is no global "current user".
    """
    user_id: uuid.UUID
    email: str
    tenant_id: Optional[uuid.UUID]
    roles: tuple[str, ...] = field(default_factory=tuple)
    context: RequestContext = field(default_factory=RequestContext)

    @property
    def is_super_admin(self) -> bool:
        return UserRole.SUPER_ADMIN.value in self.roles

    def has_role(self, *roles: UserRole) -> bool:
        return any(role.value in self.roles for role in roles)

    @property
    def ip_address(self) -> Optional[str]:
        return self.context.ip_address

    @property
    def user_agent(self) -> Optional[str]:
        return self.context.user_agent


def get_request_context(request: Request) -> RequestContext:
    """
    Client IP and user agent of the request.

    X-Forwarded-For is honoured (first hop) for deployments behind a proxy.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        ip_address = forwarded.split(",")[0].strip()
    else:
        ip_address = request.client.host if request.client else None
    return RequestContext(ip_address=ip_address, user_agent=request.headers.get("user-agent"))


def extract_access_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials],
) -> Optional[str]:
    if credentials and credentials.credentials:
        return credentials.credentials
    return request.cookies.get(ACCESS_TOKEN_COOKIE_NAME)


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Dependency resolving the authenticated user.

    The token only proves identity; the user row is reloaded so that
    disabled or deleted users and unusable tenants are rejected immediately
    rather than when the token expires.

    Raises:
        AuthenticationError: Missing/invalid token, or user no longer active
        AuthorizationError: The user's tenant is inactive, deleted or expired
    """
    token = extract_access_token(request, credentials)
    if not token:
        raise AuthenticationError("Not authenticated", code="AUTH_INVALID_TOKEN")

    try:
        claims = decode_access_token(token)
        user_id = uuid.UUID(claims["sub"])
    except (ValueError, KeyError) as e:
        logger.info(f"Rejected access token: {e}")
        raise AuthenticationError("Invalid or expired token", code="AUTH_INVALID_TOKEN") from e

    user = await db.get(User, user_id)
    if user is None or user.is_disabled:
        raise AuthenticationError("Invalid or expired token", code="AUTH_INVALID_TOKEN")

    if user.tenant_id is not None:
        tenant = await db.get(Tenant, user.tenant_id)
        if tenant is None or not tenant.is_usable:
            logger.warning(f"User {user.id} rejected: tenant {user.tenant_id} is not usable")
            raise AuthorizationError("Your organization's account is not active")

    return user


async def get_current_principal(
    request: Request,
    user: User = Depends(get_current_user),
) -> Principal:
    """Dependency building the Principal passed to services"""
    return Principal(
        user_id=user.id,
        email=user.email,
        tenant_id=user.tenant_id,
        roles=tuple(user.roles or ()),
        context=get_request_context(request),
    )


def require_roles(*roles: UserRole):
    """
    Dependency factory restricting a route to the given roles.

    Usage:
        @router.get("/users")
        async def list_users(principal: Principal = Depends(require_roles(UserRole.TENANT_ADMIN))):
            ...

    super_admin always passes.
    """
    async def _check(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.is_super_admin or principal.has_role(*roles):
            return principal
        logger.warning(
            f"User {principal.user_id} with roles {list(principal.roles)} denied; "
            f"requires one of {[role.value for role in roles]}"
        )
        raise AuthorizationError("You do not have permission to perform this action")

    return _check


# Roles allowed to write people resources (persons, groups, memberships, documents)
PEOPLE_WRITE_ROLES = (UserRole.TENANT_ADMIN, UserRole.INSTRUCTOR)
ADMIN_ROLES = (UserRole.TENANT_ADMIN,)

CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]
PeopleWriter = Annotated[Principal, Depends(require_roles(*PEOPLE_WRITE_ROLES))]
TenantAdmin = Annotated[Principal, Depends(require_roles(*ADMIN_ROLES))]
SuperAdmin = Annotated[Principal, Depends(require_roles(UserRole.SUPER_ADMIN))]
