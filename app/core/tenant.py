"""
Multi-tenant context management
Extracts and enforces tenant isolation for all requests
Reference: https://fastapi.tiangolo.com/tutorial/dependencies/
"""
import logging
import uuid
from typing import Annotated, Optional
from fastapi import Depends, Header, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.dependencies import Principal, get_current_principal
from app.core.errors import AuthorizationError, NotFoundError, ValidationError
from app.models.tenant import Tenant

logger = logging.getLogger(__name__)


def authorize_tenant_access(principal: Principal, tenant_id: Optional[uuid.UUID]) -> None:
    """
    Ensure the principal may act on data owned by tenant_id.

    Allowed when the principal is a super admin or belongs to that tenant.
    Cross-tenant access is answered with 403 rather than 404.

    Usage:
        person = await person_service.get_person(db, person_id)
        authorize_tenant_access(principal, person.tenant_id)

    Args:
        principal: Authenticated principal of the request
        tenant_id: Tenant owning the resource being accessed

    Raises:
        AuthorizationError: If the tenant does not match
    """
    if principal.is_super_admin:
        return
    if principal.tenant_id is None or principal.tenant_id != tenant_id:
        logger.warning(
            f"Tenant mismatch: user {principal.user_id} (tenant {principal.tenant_id}) "
            f"attempted to access resource from tenant {tenant_id}"
        )
        raise AuthorizationError("Access denied: You can only access resources from your own organization")


async def get_acting_tenant_id(
    principal: Principal = Depends(get_current_principal),
    x_tenant_id: Optional[str] = Header(None, alias="X-Tenant-ID"),
    db: AsyncSession = Depends(get_db),
) -> uuid.UUID:
    """
    Dependency resolving the tenant a tenant-scoped request operates on.

    Regular users always act within their own tenant. A super admin may
    target any tenant through the X-Tenant-ID header; without the header the
    super admin must belong to a tenant.

    Raises:
        ValidationError: Header value is not a UUID, or no tenant can be determined
        NotFoundError: Header names an unknown tenant
        AuthorizationError: A non super admin names a different tenant
    """
    if x_tenant_id:
        try:
            requested = uuid.UUID(x_tenant_id)
        except ValueError as e:
            raise ValidationError(
                f"Invalid tenant ID format in X-Tenant-ID header: {x_tenant_id}"
            ) from e
        authorize_tenant_access(principal, requested)
        if principal.is_super_admin:
            tenant = await db.get(Tenant, requested)
            if tenant is None:
                raise NotFoundError.for_entity("Tenant", requested)
        return requested

    if principal.tenant_id is None:
        raise ValidationError("X-Tenant-ID header is required for platform users")
    return principal.tenant_id


def subdomain_from_host(host: Optional[str]) -> Optional[str]:
    """
    First DNS label of the host, or None for bare hosts.

    tenant1.perseo.app -> "tenant1"; localhost:8000 -> None
    """
    if not host:
        return None
    hostname = host.split(":")[0].strip().lower()
    labels = hostname.split(".")
    if len(labels) < 3 or hostname.replace(".", "").isdigit():
        return None
    return labels[0]


async def resolve_request_tenant(
    request: Request,
    x_tenant: Optional[str] = Header(None, alias="X-Tenant"),
    db: AsyncSession = Depends(get_db),
) -> Tenant:
    """
    Dependency resolving the tenant of an unauthenticated request (registration).

    Looks at the X-Tenant header (subdomain) first, then the first label of
    the request host.

    Raises:
        ValidationError: No tenant hint in the request
        NotFoundError: Unknown subdomain
        AuthorizationError: Tenant inactive or expired
    """
    subdomain = (x_tenant or "").strip().lower() or subdomain_from_host(request.headers.get("host"))
    if not subdomain:
        raise ValidationError("Tenant could not be determined from the request")

    result = await db.execute(select(Tenant).where(Tenant.subdomain == subdomain))
    tenant = result.scalar_one_or_none()
    if tenant is None:
        raise NotFoundError(f"Tenant '{subdomain}' not found", details={"subdomain": subdomain})
    if not tenant.is_usable:
        logger.warning(f"Request for unusable tenant {tenant.id} ({subdomain})")
        raise AuthorizationError("This organization's account is inactive")

    logger.debug(f"Tenant context resolved: {tenant.id} ({tenant.name})")
    return tenant


# Type aliases for route signatures
ActingTenantId = Annotated[uuid.UUID, Depends(get_acting_tenant_id)]
RequestTenant = Annotated[Tenant, Depends(resolve_request_tenant)]
