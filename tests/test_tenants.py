from datetime import date

from sqlalchemy import func, select

from app.core.database import AsyncSessionLocal
from app.models import AuditLog, Document, Group, GroupMembership, Person, RefreshToken, Tenant, User
from tests.utils.factories import (
    DEFAULT_PASSWORD,
    auth_headers,
    create_group,
    create_person,
    create_tenant,
    create_user,
)

API = "/api/v1"


async def _count(session, model, *conditions) -> int:
    query = select(func.count()).select_from(model).where(*conditions).execution_options(include_deleted=True)
    return await session.scalar(query)


async def test_super_admin_manages_tenants(client) -> None:
    root = await create_user(None, roles=["super_admin"])
    headers = auth_headers(root)

    response = await client.post(
        f"{API}/tenants", json={"name": "Academia Norte", "subdomain": "Academia-Norte"}, headers=headers
    )
    assert response.status_code == 201
    tenant = response.json()
    assert tenant["subdomain"] == "academia-norte"
    assert tenant["schemaName"] == "tenant_academia_norte"
    assert tenant["isExpired"] is False

    response = await client.post(
        f"{API}/tenants", json={"name": "Copy", "subdomain": "academia-norte"}, headers=headers
    )
    assert response.status_code == 409

    response = await client.post(f"{API}/tenants/{tenant['id']}/deactivate", headers=headers)
    assert response.status_code == 200
    assert response.json()["isActive"] is False

    response = await client.get(f"{API}/tenants", headers=headers)
    assert response.json()["total"] == 0
    response = await client.get(f"{API}/tenants", params={"includeInactive": "true"}, headers=headers)
    assert response.json()["total"] == 1

    response = await client.patch(f"{API}/tenants/{tenant['id']}", json={"userLimit": 25}, headers=headers)
    assert response.status_code == 200
    assert response.json()["userLimit"] == 25


async def test_tenant_endpoints_require_super_admin(client) -> None:
    tenant = await create_tenant()
    admin = await create_user(tenant, roles=["tenant_admin"])

    response = await client.get(f"{API}/tenants", headers=auth_headers(admin))
    assert response.status_code == 403
    response = await client.post(
        f"{API}/tenants", json={"name": "Mine", "subdomain": "mine"}, headers=auth_headers(admin)
    )
    assert response.status_code == 403


async def test_soft_delete_tenant_cascades_and_revokes_sessions(client) -> None:
    root = await create_user(None, roles=["super_admin"])
    tenant = await create_tenant()
    member = await create_user(tenant, email="member@example.com")
    person = await create_person(tenant)
    await create_group(tenant)

    login = await client.post(
        f"{API}/auth/login", json={"email": "member@example.com", "password": DEFAULT_PASSWORD}
    )
    assert login.status_code == 200

    response = await client.delete(f"{API}/tenants/{tenant.id}", headers=auth_headers(root))
    assert response.status_code == 204

    async with AsyncSessionLocal() as session:
        assert await _count(session, Person, Person.id == person.id, Person.deleted_at.is_not(None)) == 1
        assert await _count(session, User, User.id == member.id, User.deleted_at.is_not(None)) == 1
        assert await _count(session, Group, Group.tenant_id == tenant.id, Group.deleted_at.is_(None)) == 0
        assert await _count(session, RefreshToken, RefreshToken.user_id == member.id, RefreshToken.is_revoked.is_(False)) == 0

    response = await client.post(
        f"{API}/auth/refresh", json={"refreshToken": login.json()["refreshToken"]}
    )
    assert response.status_code == 401

    response = await client.get(f"{API}/tenants/{tenant.id}", headers=auth_headers(root))
    assert response.status_code == 404


async def test_purge_tenant_removes_all_owned_rows(client) -> None:
    root = await create_user(None, roles=["super_admin"])
    tenant = await create_tenant()
    survivor = await create_tenant()
    await create_user(tenant)
    person = await create_person(tenant)
    group = await create_group(tenant)
    kept_person = await create_person(survivor)
    async with AsyncSessionLocal() as session:
        session.add(GroupMembership(person_id=person.id, group_id=group.id, start_date=date(2024, 1, 1)))
        session.add(
            Document(
                person_id=person.id,
                name="Photo",
                url="tenants/x/photo.png",
                file_name="photo.png",
                mime_type="image/png",
                file_size=10,
            )
        )
        session.add(AuditLog(tenant_id=tenant.id, action="person.create", entity_type="person", entity_id=person.id))
        await session.commit()

    response = await client.delete(
        f"{API}/tenants/{tenant.id}", params={"purge": "true"}, headers=auth_headers(root)
    )
    assert response.status_code == 204

    async with AsyncSessionLocal() as session:
        assert await _count(session, Tenant, Tenant.id == tenant.id) == 0
        assert await _count(session, User, User.tenant_id == tenant.id) == 0
        assert await _count(session, Person, Person.tenant_id == tenant.id) == 0
        assert await _count(session, Group, Group.tenant_id == tenant.id) == 0
        assert await _count(session, GroupMembership) == 0
        assert await _count(session, Document) == 0
        assert await _count(session, AuditLog, AuditLog.tenant_id == tenant.id) == 0
        assert await _count(session, Person, Person.id == kept_person.id) == 1

        purge = (
            await session.execute(select(AuditLog).where(AuditLog.action == "tenant.purge"))
        ).scalar_one()
        assert purge.tenant_id is None
        assert purge.user_id == root.id
        assert purge.entity_id == tenant.id
