"""
Row factories and auth helpers for API tests
Each helper commits through its own session, like a separate client would.
"""
import uuid
from datetime import date
from typing import Optional

from app.core.database import AsyncSessionLocal
from app.core.security import create_access_token, hash_password
from app.models import Group, GroupType, Person, Tenant, User, UserRole

DEFAULT_PASSWORD = "Passw0rd!"


def _short() -> str:
    return uuid.uuid4().hex[:8]


async def create_tenant(name: str = "Test Academy", **overrides) -> Tenant:
    suffix = _short()
    values = {
        "name": name,
        "subdomain": f"t{suffix}",
        "schema_name": f"tenant_{suffix}",
        "is_active": True,
        "user_limit": 0,
    }
    values.update(overrides)
    async with AsyncSessionLocal() as session:
        tenant = Tenant(**values)
        session.add(tenant)
        await session.commit()
        return tenant


async def create_user(
    tenant: Optional[Tenant],
    roles: Optional[list[str]] = None,
    email: Optional[str] = None,
    password: str = DEFAULT_PASSWORD,
    verified: bool = True,
) -> User:
    async with AsyncSessionLocal() as session:
        user = User(
            tenant_id=tenant.id if tenant else None,
            email=email or f"user-{_short()}@example.com",
            password_hash=hash_password(password),
            first_name="Test",
            last_name="User",
            is_active=True,
            is_email_verified=verified,
            roles=roles or [UserRole.MEMBER.value],
        )
        session.add(user)
        await session.commit()
        return user


async def create_person(tenant: Tenant, **overrides) -> Person:
    suffix = _short()
    values = {
        "tenant_id": tenant.id,
        "first_name": "Ana",
        "last_name": "Garcia",
        "email": f"person-{suffix}@example.com",
        "phone": "+34 600 000 000",
        "birth_date": date(2000, 1, 15),
        "national_id": f"ID{suffix}",
        "address": {
            "street": "Calle Mayor 1",
            "city": "Madrid",
            "state": "Madrid",
            "postalCode": "28001",
            "country": "ES",
        },
        "emergency_contact": {"name": "Luis Garcia", "relationship": "Father", "phone": "+34 600 000 001"},
        "communication_preferences": {"email": True, "sms": False, "whatsapp": False},
    }
    values.update(overrides)
    async with AsyncSessionLocal() as session:
        person = Person(**values)
        session.add(person)
        await session.commit()
        return person


async def create_group(tenant: Tenant, name: Optional[str] = None, **overrides) -> Group:
    values = {
        "tenant_id": tenant.id,
        "name": name or f"Group {_short()}",
        "type": GroupType.ACADEMIC,
        "is_active": True,
    }
    values.update(overrides)
    async with AsyncSessionLocal() as session:
        group = Group(**values)
        session.add(group)
        await session.commit()
        return group


def auth_headers(user: User, tenant_id: Optional[uuid.UUID] = None) -> dict[str, str]:
    """Bearer header for the user; tenant_id adds the X-Tenant-ID override"""
    token = create_access_token(
        user_id=user.id,
        email=user.email,
        roles=user.roles,
        tenant_id=user.tenant_id,
    )
    headers = {"Authorization": f"Bearer {token}"}
    if tenant_id is not None:
        headers["X-Tenant-ID"] = str(tenant_id)
    return headers


def person_payload(**overrides) -> dict:
    """Camel-case request body for POST /persons"""
    suffix = _short()
    payload = {
        "firstName": "Marta",
        "lastName": "Lopez",
        "email": f"marta-{suffix}@example.com",
        "phone": "+34 611 222 333",
        "birthDate": "1999-05-20",
        "nationalId": f"N{suffix}",
        "nationalIdType": "DNI",
        "address": {
            "street": "Gran Via 10",
            "city": "Madrid",
            "state": "Madrid",
            "postalCode": "28013",
            "country": "ES",
        },
        "emergencyContact": {"name": "Pedro Lopez", "relationship": "Brother", "phone": "+34 611 222 334"},
        "communicationPreferences": {"email": True, "sms": True, "whatsapp": False},
    }
    payload.update(overrides)
    return payload
