from datetime import date, timedelta

from sqlalchemy import select

from app.core.database import AsyncSessionLocal, utcnow
from app.models import AuditLog, GroupMembership, User
from tests.utils.factories import (
    DEFAULT_PASSWORD,
    auth_headers,
    create_group,
    create_person,
    create_tenant,
    create_user,
)

API = "/api/v1"


async def test_tenant_admin_lists_only_own_users(client) -> None:
    tenant = await create_tenant()
    other = await create_tenant()
    admin = await create_user(tenant, roles=["tenant_admin"])
    await create_user(tenant, roles=["student"])
    await create_user(other)

    response = await client.get(f"{API}/users", headers=auth_headers(admin))
    assert response.status_code == 200
    assert response.json()["total"] == 2

    response = await client.get(f"{API}/users", params={"role": "student"}, headers=auth_headers(admin))
    assert response.json()["total"] == 1


async def test_members_cannot_manage_users(client) -> None:
    tenant = await create_tenant()
    member = await create_user(tenant)
    response = await client.get(f"{API}/users", headers=auth_headers(member))
    assert response.status_code == 403


async def test_only_super_admin_grants_super_admin(client) -> None:
    tenant = await create_tenant()
    admin = await create_user(tenant, roles=["tenant_admin"])
    target = await create_user(tenant)

    response = await client.patch(
        f"{API}/users/{target.id}", json={"roles": ["super_admin"]}, headers=auth_headers(admin)
    )
    assert response.status_code == 403

    response = await client.patch(
        f"{API}/users/{target.id}", json={"roles": ["instructor"]}, headers=auth_headers(admin)
    )
    assert response.status_code == 200
    assert response.json()["roles"] == ["instructor"]
    assert response.json()["role"] == "instructor"


async def test_unlock_user(client) -> None:
    tenant = await create_tenant()
    admin = await create_user(tenant, roles=["tenant_admin"])
    locked = await create_user(tenant, email="locked@example.com")
    async with AsyncSessionLocal() as session:
        stored = await session.get(User, locked.id)
        stored.failed_login_attempts = 5
        stored.locked_until = utcnow() + timedelta(minutes=30)
        await session.commit()

    response = await client.post(f"{API}/users/{locked.id}/unlock", headers=auth_headers(admin))
    assert response.status_code == 200
    assert response.json()["status"] == "active"
    assert response.json()["failedLoginAttempts"] == 0

    response = await client.post(
        f"{API}/auth/login", json={"email": "locked@example.com", "password": DEFAULT_PASSWORD}
    )
    assert response.status_code == 200


async def test_cannot_delete_own_account(client) -> None:
    tenant = await create_tenant()
    admin = await create_user(tenant, roles=["tenant_admin"])
    response = await client.delete(f"{API}/users/{admin.id}", headers=auth_headers(admin))
    assert response.status_code == 409


async def test_soft_deleted_user_loses_access(client) -> None:
    tenant = await create_tenant()
    admin = await create_user(tenant, roles=["tenant_admin"])
    user = await create_user(tenant, email="leaving@example.com")

    response = await client.delete(f"{API}/users/{user.id}", headers=auth_headers(admin))
    assert response.status_code == 204

    response = await client.get(f"{API}/auth/profile", headers=auth_headers(user))
    assert response.status_code == 401

    response = await client.post(
        f"{API}/auth/login", json={"email": "leaving@example.com", "password": DEFAULT_PASSWORD}
    )
    assert response.status_code == 401


async def test_purge_user_keeps_audit_and_provenance(client) -> None:
    tenant = await create_tenant()
    admin = await create_user(tenant, roles=["tenant_admin"])
    instructor = await create_user(tenant, roles=["instructor"])
    person = await create_person(tenant)
    group = await create_group(tenant)

    response = await client.post(
        f"{API}/memberships",
        json={"personId": str(person.id), "groupId": str(group.id), "startDate": date.today().isoformat()},
        headers=auth_headers(instructor),
    )
    assert response.status_code == 201
    membership_id = response.json()["id"]

    response = await client.delete(
        f"{API}/users/{instructor.id}", params={"purge": "true"}, headers=auth_headers(admin)
    )
    assert response.status_code == 204

    async with AsyncSessionLocal() as session:
        assert await session.get(User, instructor.id) is None
        entry = (
            await session.execute(select(AuditLog).where(AuditLog.action == "membership.create"))
        ).scalar_one()
        assert entry.user_id is None
        membership = (
            await session.execute(select(GroupMembership).where(GroupMembership.group_id == group.id))
        ).scalar_one()
        assert str(membership.id) == membership_id
        assert membership.added_by is None
        purge = (
            await session.execute(select(AuditLog).where(AuditLog.action == "user.purge"))
        ).scalar_one()
        assert purge.user_id == admin.id
        assert purge.old_values == {"email": instructor.email}
