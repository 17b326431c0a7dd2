import os
import uuid
from datetime import date, timedelta

import pytest
from sqlalchemy import select

from app.core.database import AsyncSessionLocal
from app.models import AuditLog
from tests.utils.factories import auth_headers, create_group, create_person, create_tenant, create_user

API = "/api/v1"


async def _setup(max_members=None):
    tenant = await create_tenant()
    admin = await create_user(tenant, roles=["tenant_admin"])
    group = await create_group(tenant, "G1", max_members=max_members)
    return tenant, auth_headers(admin), group


async def _create(client, headers, person, group, start="2024-09-01", **extra):
    body = {"personId": str(person.id), "groupId": str(group.id), "startDate": start}
    body.update(extra)
    return await client.post(f"{API}/memberships", json=body, headers=headers)


async def test_capacity_frees_up_when_membership_ends(client) -> None:
    tenant, headers, group = await _setup(max_members=1)
    p1 = await create_person(tenant)
    p2 = await create_person(tenant)

    first = await _create(client, headers, p1, group)
    assert first.status_code == 201

    response = await _create(client, headers, p2, group)
    assert response.status_code == 409
    error = response.json()["error"]
    assert error["code"] == "CAPACITY_EXCEEDED"
    assert error["details"]["maxMembers"] == 1

    response = await client.post(
        f"{API}/memberships/{first.json()['id']}/end",
        json={"endDate": date.today().isoformat(), "reason": "Moved away"},
        headers=headers,
    )
    assert response.status_code == 200
    assert response.json()["status"] == "INACTIVE"

    response = await _create(client, headers, p2, group)
    assert response.status_code == 201


async def test_duplicate_triple_conflicts(client) -> None:
    tenant, headers, group = await _setup()
    person = await create_person(tenant)

    assert (await _create(client, headers, person, group)).status_code == 201
    response = await _create(client, headers, person, group)
    assert response.status_code == 409
    assert response.json()["error"]["code"] == "CONFLICT"

    # Same person and group on another start date is a separate membership
    response = await _create(client, headers, person, group, start="2025-01-01", endDate="2025-06-30")
    assert response.status_code == 201
    assert response.json()["status"] == "INACTIVE"


async def test_end_date_before_start_is_rejected(client) -> None:
    tenant, headers, group = await _setup()
    person = await create_person(tenant)

    response = await _create(client, headers, person, group, start="2024-09-01", endDate="2024-08-01")
    assert response.status_code == 422

    created = await _create(client, headers, person, group, start="2024-09-01")
    response = await client.post(
        f"{API}/memberships/{created.json()['id']}/end", json={"endDate": "2024-01-01"}, headers=headers
    )
    assert response.status_code == 422


async def test_reending_membership_is_noop(client) -> None:
    tenant, headers, group = await _setup()
    person = await create_person(tenant)
    membership_id = (await _create(client, headers, person, group, start="2024-01-01")).json()["id"]

    response = await client.post(
        f"{API}/memberships/{membership_id}/end", json={"endDate": "2024-06-01"}, headers=headers
    )
    assert response.status_code == 200

    # Earlier than the start date, but the membership is already over
    response = await client.post(
        f"{API}/memberships/{membership_id}/end", json={"endDate": "2023-01-01"}, headers=headers
    )
    assert response.status_code == 200
    assert response.json()["endDate"] == "2024-06-01"
    assert response.json()["status"] == "INACTIVE"

    async with AsyncSessionLocal() as session:
        ends = (
            await session.execute(
                select(AuditLog.id).where(
                    AuditLog.entity_id == uuid.UUID(membership_id), AuditLog.action == "membership.end"
                )
            )
        ).scalars().all()
    assert len(ends) == 1


async def test_suspended_membership_requires_reason_at_creation(client) -> None:
    tenant, headers, group = await _setup()
    person = await create_person(tenant)

    response = await _create(client, headers, person, group, status="SUSPENDED")
    assert response.status_code == 422
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    response = await _create(client, headers, person, group, status="SUSPENDED", reason="   ")
    assert response.status_code == 422

    response = await _create(client, headers, person, group, status="SUSPENDED", reason="Medical leave")
    assert response.status_code == 201
    assert response.json()["status"] == "SUSPENDED"
    assert response.json()["reason"] == "Medical leave"


async def test_end_without_body_uses_today(client) -> None:
    tenant, headers, group = await _setup()
    person = await create_person(tenant)
    created = await _create(client, headers, person, group, start=(date.today() - timedelta(days=30)).isoformat())

    response = await client.post(f"{API}/memberships/{created.json()['id']}/end", headers=headers)
    assert response.status_code == 200
    assert response.json()["endDate"] == date.today().isoformat()


async def test_suspend_and_reactivate(client) -> None:
    tenant, headers, group = await _setup(max_members=1)
    person = await create_person(tenant)
    other = await create_person(tenant)
    membership_id = (await _create(client, headers, person, group)).json()["id"]

    response = await client.post(
        f"{API}/memberships/{membership_id}/suspend", json={"reason": "Unpaid fees"}, headers=headers
    )
    assert response.status_code == 200
    assert response.json()["status"] == "SUSPENDED"
    assert response.json()["reason"] == "Unpaid fees"

    # Suspended members do not hold a seat
    response = await _create(client, headers, other, group)
    assert response.status_code == 201

    response = await client.post(f"{API}/memberships/{membership_id}/reactivate", headers=headers)
    assert response.status_code == 409
    assert response.json()["error"]["code"] == "CAPACITY_EXCEEDED"

    await client.delete(f"{API}/groups/{group.id}/members/{other.id}", headers=headers)

    response = await client.post(f"{API}/memberships/{membership_id}/reactivate", headers=headers)
    assert response.status_code == 200
    assert response.json()["status"] == "ACTIVE"

    async with AsyncSessionLocal() as session:
        actions = (
            await session.execute(
                select(AuditLog.action)
                .where(AuditLog.entity_id == uuid.UUID(membership_id))
                .order_by(AuditLog.created_at)
            )
        ).scalars().all()
    assert actions == ["membership.create", "membership.suspend", "membership.reactivate"]


async def test_ended_membership_cannot_be_suspended(client) -> None:
    tenant, headers, group = await _setup()
    person = await create_person(tenant)
    membership_id = (
        await _create(client, headers, person, group, start="2024-01-01", endDate="2024-06-30")
    ).json()["id"]

    response = await client.post(
        f"{API}/memberships/{membership_id}/suspend", json={"reason": "Late"}, headers=headers
    )
    assert response.status_code == 409
    assert response.json()["error"]["code"] == "INVALID_STATE"

    response = await client.post(f"{API}/memberships/{membership_id}/reactivate", headers=headers)
    assert response.status_code == 409


async def test_membership_person_and_group_must_share_tenant(client) -> None:
    tenant, headers, group = await _setup()
    other = await create_tenant()
    outsider = await create_person(other)

    response = await _create(client, headers, outsider, group)
    assert response.status_code in (403, 404)


async def test_list_filters_and_group_members(client) -> None:
    tenant, headers, group = await _setup()
    leader = await create_person(tenant)
    member = await create_person(tenant)
    await _create(client, headers, leader, group, role="LEADER")
    await _create(client, headers, member, group, start="2023-01-01", endDate="2023-12-31")

    response = await client.get(f"{API}/memberships", params={"role": "LEADER"}, headers=headers)
    assert response.json()["total"] == 1
    assert response.json()["data"][0]["personId"] == str(leader.id)

    response = await client.get(f"{API}/groups/{group.id}/members", headers=headers)
    assert response.json()["total"] == 2

    response = await client.get(f"{API}/groups/{group.id}/members/active", headers=headers)
    assert [m["personId"] for m in response.json()["data"]] == [str(leader.id)]

    response = await client.get(f"{API}/persons/{member.id}/memberships", headers=headers)
    assert response.status_code == 200
    assert response.json()["total"] == 1


async def test_update_group_member_role(client) -> None:
    tenant, headers, group = await _setup()
    person = await create_person(tenant)
    response = await client.post(
        f"{API}/groups/{group.id}/members", json={"personId": str(person.id)}, headers=headers
    )
    assert response.status_code == 201
    assert response.json()["startDate"] == date.today().isoformat()

    response = await client.patch(
        f"{API}/groups/{group.id}/members/{person.id}", json={"role": "COORDINATOR"}, headers=headers
    )
    assert response.status_code == 200
    assert response.json()["role"] == "COORDINATOR"

    response = await client.patch(
        f"{API}/groups/{group.id}/members/{person.id}", json={"role": None}, headers=headers
    )
    assert response.status_code == 422


@pytest.mark.skipif(
    not os.environ.get("PERSEO_TEST_POSTGRES_URL"),
    reason="row locks need PostgreSQL; set PERSEO_TEST_POSTGRES_URL to run",
)
async def test_concurrent_adds_do_not_oversubscribe() -> None:
    import asyncio

    from sqlalchemy.ext.asyncio import async_sessionmaker

    from app.api.v1.schemas.membership import MembershipCreate
    from app.core.database import create_engine_for_url
    from app.core.dependencies import Principal, RequestContext
    from app.core.errors import CapacityError
    from app.models import Base, Group, GroupType, Person, Tenant
    from app.services.membership import MembershipService

    pg_engine = create_engine_for_url(os.environ["PERSEO_TEST_POSTGRES_URL"])
    async with pg_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    sessions = async_sessionmaker(pg_engine, expire_on_commit=False)

    async with sessions() as session:
        tenant = Tenant(name="Race", subdomain="race", schema_name="race")
        session.add(tenant)
        await session.flush()
        group = Group(tenant_id=tenant.id, name="Race group", type=GroupType.ACADEMIC, max_members=1)
        people = [
            Person(
                tenant_id=tenant.id,
                first_name="P",
                last_name=str(i),
                email=f"race{i}@example.com",
                phone="600000000",
                birth_date=date(2000, 1, 1),
                national_id=f"RACE{i}",
                address={},
                emergency_contact={},
                communication_preferences={},
            )
            for i in range(5)
        ]
        session.add(group)
        session.add_all(people)
        await session.commit()

    principal = Principal(
        user_id=None,
        email="root@example.com",
        tenant_id=None,
        roles=("super_admin",),
        context=RequestContext(ip_address=None, user_agent=None),
    )

    async def add(person):
        async with sessions() as session:
            try:
                await MembershipService().create_membership(
                    session,
                    principal,
                    tenant.id,
                    MembershipCreate(person_id=person.id, group_id=group.id, start_date=date.today()),
                )
                await session.commit()
                return True
            except CapacityError:
                await session.rollback()
                return False

    results = await asyncio.gather(*(add(p) for p in people))
    await pg_engine.dispose()
    assert results.count(True) == 1
