from datetime import date

from sqlalchemy import select

from app.core.database import AsyncSessionLocal
from app.models import AuditLog, Document, GroupMembership, MembershipStatus, Person
from tests.utils.factories import (
    auth_headers,
    create_group,
    create_person,
    create_tenant,
    create_user,
    person_payload,
)

API = "/api/v1"


async def _admin_of(tenant):
    return await create_user(tenant, roles=["tenant_admin"])


async def test_create_and_get_person(client) -> None:
    tenant = await create_tenant()
    admin = await _admin_of(tenant)
    headers = auth_headers(admin)

    payload = person_payload(email="Marta.Lopez@Example.com", tags=["new", "new", "scholarship"])
    response = await client.post(f"{API}/persons", json=payload, headers=headers)
    assert response.status_code == 201
    body = response.json()
    assert body["tenantId"] == str(tenant.id)
    assert body["email"] == "marta.lopez@example.com"
    assert body["fullName"] == "Marta Lopez"
    assert body["tags"] == ["new", "scholarship"]
    assert body["address"]["postalCode"] == "28013"

    response = await client.get(f"{API}/persons/{body['id']}", headers=headers)
    assert response.status_code == 200
    assert response.json()["nationalId"] == payload["nationalId"]

    async with AsyncSessionLocal() as session:
        entry = (
            await session.execute(select(AuditLog).where(AuditLog.action == "person.create"))
        ).scalar_one()
        assert entry.user_id == admin.id
        assert entry.tenant_id == tenant.id
        assert str(entry.entity_id) == body["id"]


async def test_person_email_and_national_id_are_globally_unique(client) -> None:
    tenant_a = await create_tenant()
    tenant_b = await create_tenant()
    await create_person(tenant_a, email="shared@example.com", national_id="X123")
    headers = auth_headers(await _admin_of(tenant_b))

    response = await client.post(f"{API}/persons", json=person_payload(email="shared@example.com"), headers=headers)
    assert response.status_code == 409
    assert response.json()["error"]["details"]["field"] == "email"

    response = await client.post(f"{API}/persons", json=person_payload(nationalId="X123"), headers=headers)
    assert response.status_code == 409
    assert response.json()["error"]["details"]["field"] == "nationalId"


async def test_deleted_person_still_holds_its_email(client) -> None:
    tenant = await create_tenant()
    headers = auth_headers(await _admin_of(tenant))
    person = await create_person(tenant, email="ghost@example.com")

    response = await client.delete(f"{API}/persons/{person.id}", headers=headers)
    assert response.status_code == 204

    response = await client.post(f"{API}/persons", json=person_payload(email="ghost@example.com"), headers=headers)
    assert response.status_code == 409


async def test_person_validation_errors(client) -> None:
    tenant = await create_tenant()
    headers = auth_headers(await _admin_of(tenant))

    response = await client.post(
        f"{API}/persons",
        json=person_payload(phone="call me", birthDate="2999-01-01"),
        headers=headers,
    )
    assert response.status_code == 422
    fields = {error["field"] for error in response.json()["error"]["details"]["errors"]}
    assert "phone" in fields
    assert "birthDate" in fields


async def test_students_cannot_write_persons(client) -> None:
    tenant = await create_tenant()
    student = await create_user(tenant, roles=["student"])
    response = await client.post(f"{API}/persons", json=person_payload(), headers=auth_headers(student))
    assert response.status_code == 403
    assert response.json()["error"]["code"] == "AUTH_FORBIDDEN"


async def test_instructor_can_create_persons(client) -> None:
    tenant = await create_tenant()
    instructor = await create_user(tenant, roles=["instructor"])
    response = await client.post(f"{API}/persons", json=person_payload(), headers=auth_headers(instructor))
    assert response.status_code == 201


async def test_cross_tenant_person_access_is_forbidden(client) -> None:
    tenant_a = await create_tenant()
    tenant_b = await create_tenant()
    person = await create_person(tenant_a)
    headers = auth_headers(await _admin_of(tenant_b))

    response = await client.get(f"{API}/persons/{person.id}", headers=headers)
    assert response.status_code == 403

    response = await client.patch(f"{API}/persons/{person.id}", json={"firstName": "Eve"}, headers=headers)
    assert response.status_code == 403

    # Tenant admins cannot borrow another tenant through the override header
    response = await client.get(f"{API}/persons", headers=auth_headers(await _admin_of(tenant_b), tenant_a.id))
    assert response.status_code == 403


async def test_super_admin_acts_on_any_tenant(client) -> None:
    tenant = await create_tenant()
    await create_person(tenant, first_name="Zoe")
    root = await create_user(None, roles=["super_admin"])

    response = await client.get(f"{API}/persons", headers=auth_headers(root))
    assert response.status_code == 422

    response = await client.get(f"{API}/persons", headers=auth_headers(root, tenant.id))
    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 1
    assert body["data"][0]["firstName"] == "Zoe"


async def test_list_persons_search_and_pagination(client) -> None:
    tenant = await create_tenant()
    other = await create_tenant()
    headers = auth_headers(await _admin_of(tenant))
    for name in ("Alba", "Bruno", "Carla"):
        await create_person(tenant, first_name=name)
    await create_person(other, first_name="Alba")

    response = await client.get(
        f"{API}/persons",
        params={"page": 1, "limit": 2, "sortBy": "firstName", "sortOrder": "ASC"},
        headers=headers,
    )
    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 3
    assert body["totalPages"] == 2
    assert [p["firstName"] for p in body["data"]] == ["Alba", "Bruno"]

    response = await client.get(f"{API}/persons", params={"search": "carl"}, headers=headers)
    assert [p["firstName"] for p in response.json()["data"]] == ["Carla"]

    response = await client.get(f"{API}/persons", params={"sortBy": "password"}, headers=headers)
    assert response.status_code == 422


async def test_search_by_email_and_national_id(client) -> None:
    tenant = await create_tenant()
    headers = auth_headers(await _admin_of(tenant))
    person = await create_person(tenant, email="find.me@example.com", national_id="FIND1")

    response = await client.get(f"{API}/persons/search/email", params={"email": "Find.Me@example.com"}, headers=headers)
    assert response.status_code == 200
    assert response.json()["id"] == str(person.id)

    response = await client.get(
        f"{API}/persons/search/national-id", params={"nationalId": "FIND1"}, headers=headers
    )
    assert response.status_code == 200

    response = await client.get(
        f"{API}/persons/search/national-id", params={"nationalId": "NOPE"}, headers=headers
    )
    assert response.status_code == 404


async def test_delete_person_ends_memberships_and_hides_documents(client) -> None:
    tenant = await create_tenant()
    headers = auth_headers(await _admin_of(tenant))
    person = await create_person(tenant)
    group = await create_group(tenant)
    async with AsyncSessionLocal() as session:
        session.add(
            GroupMembership(person_id=person.id, group_id=group.id, start_date=date(2024, 9, 1))
        )
        session.add(
            Document(
                person_id=person.id,
                name="DNI",
                url="tenants/x/dni.pdf",
                file_name="dni.pdf",
                mime_type="application/pdf",
                file_size=1024,
            )
        )
        await session.commit()

    response = await client.delete(f"{API}/persons/{person.id}", headers=headers)
    assert response.status_code == 204

    response = await client.get(f"{API}/persons/{person.id}", headers=headers)
    assert response.status_code == 404

    async with AsyncSessionLocal() as session:
        membership = (
            await session.execute(select(GroupMembership).where(GroupMembership.person_id == person.id))
        ).scalar_one()
        assert membership.status == MembershipStatus.INACTIVE
        assert membership.end_date is not None
        documents = (
            await session.execute(
                select(Document).where(Document.person_id == person.id).execution_options(include_deleted=True)
            )
        ).scalars().all()
        assert all(d.deleted_at is not None for d in documents)

    response = await client.post(f"{API}/persons/{person.id}/restore", headers=headers)
    assert response.status_code == 200
    assert response.json()["deletedAt"] is None

    response = await client.post(f"{API}/persons/{person.id}/restore", headers=headers)
    assert response.status_code == 409


async def test_update_person_checks_uniqueness_and_audits(client) -> None:
    tenant = await create_tenant()
    headers = auth_headers(await _admin_of(tenant))
    await create_person(tenant, email="first@example.com")
    second = await create_person(tenant, email="second@example.com")

    response = await client.patch(
        f"{API}/persons/{second.id}", json={"email": "first@example.com"}, headers=headers
    )
    assert response.status_code == 409

    response = await client.patch(
        f"{API}/persons/{second.id}", json={"lastName": "Perez", "gender": "F"}, headers=headers
    )
    assert response.status_code == 200
    assert response.json()["lastName"] == "Perez"

    async with AsyncSessionLocal() as session:
        entry = (
            await session.execute(select(AuditLog).where(AuditLog.action == "person.update"))
        ).scalar_one()
        assert entry.old_values["last_name"] == "Garcia"
        assert entry.new_values["last_name"] == "Perez"
        stored = await session.get(Person, second.id)
        assert stored.gender.value == "F"
