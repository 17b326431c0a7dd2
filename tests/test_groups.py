import uuid
from datetime import date
from types import SimpleNamespace

from app.core.database import AsyncSessionLocal
from app.models import GroupMembership, GroupType
from app.services.hierarchy import build_group_forest, would_create_cycle
from tests.utils.factories import auth_headers, create_group, create_person, create_tenant, create_user

API = "/api/v1"


def _group(name, parent=None):
    return SimpleNamespace(
        id=uuid.uuid4(),
        name=name,
        type=GroupType.ACADEMIC,
        description=None,
        parent_group_id=parent.id if parent else None,
        leader_id=None,
        max_members=None,
        is_active=True,
    )


def test_forest_nests_chain_and_counts():
    a = _group("A")
    b = _group("B", a)
    c = _group("C", b)
    forest = build_group_forest([c, a, b], {a.id: 2, c.id: 1})

    assert [node.name for node in forest] == ["A"]
    root = forest[0]
    assert root.member_count == 2
    assert root.subgroup_count == 1
    assert root.children[0].name == "B"
    assert root.children[0].children[0].name == "C"
    assert root.children[0].children[0].member_count == 1
    assert root.children[0].children[0].subgroup_count == 0


def test_forest_handles_deep_chains():
    groups = [_group("g0")]
    for i in range(1, 5000):
        groups.append(_group(f"g{i}", groups[-1]))
    forest = build_group_forest(groups, {})

    depth = 0
    node = forest[0]
    while node.children:
        node = node.children[0]
        depth += 1
    assert depth == 4999


def test_forest_skips_groups_in_a_cycle():
    a = _group("A")
    b = _group("B", a)
    # A and B point at each other: neither is reachable from a root
    a.parent_group_id = b.id
    top = _group("Top")
    assert [node.name for node in build_group_forest([a, b, top], {})] == ["Top"]


def test_would_create_cycle():
    a, b, c = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
    parents = {a: None, b: a, c: b}
    assert would_create_cycle(parents, a, c) is True
    assert would_create_cycle(parents, a, a) is True
    assert would_create_cycle(parents, c, a) is False
    assert would_create_cycle(parents, b, None) is False
    # Pre-existing loop that does not involve the group terminates
    loop = {a: b, b: a, c: None}
    assert would_create_cycle(loop, c, a) is False


async def test_hierarchy_endpoint_returns_nested_tree(client) -> None:
    tenant = await create_tenant()
    headers = auth_headers(await create_user(tenant, roles=["tenant_admin"]))

    ids = {}
    parent = None
    for name in ("A", "B", "C"):
        response = await client.post(
            f"{API}/groups",
            json={"name": name, "type": "ACADEMIC", "parentGroupId": parent},
            headers=headers,
        )
        assert response.status_code == 201
        ids[name] = parent = response.json()["id"]

    person = await create_person(tenant)
    response = await client.post(
        f"{API}/groups/{ids['B']}/members", json={"personId": str(person.id)}, headers=headers
    )
    assert response.status_code == 201

    response = await client.get(f"{API}/groups/hierarchy", headers=headers)
    assert response.status_code == 200
    tree = response.json()
    assert len(tree) == 1
    a = tree[0]
    assert a["name"] == "A"
    assert (a["memberCount"], a["subgroupCount"]) == (0, 1)
    b = a["children"][0]
    assert b["name"] == "B"
    assert (b["memberCount"], b["subgroupCount"]) == (1, 1)
    c = b["children"][0]
    assert c["name"] == "C"
    assert c["children"] == []

    response = await client.get(f"{API}/groups/hierarchy", params={"parentId": ids["B"]}, headers=headers)
    assert [node["name"] for node in response.json()] == ["C"]


async def test_reparenting_under_descendant_is_rejected(client) -> None:
    tenant = await create_tenant()
    headers = auth_headers(await create_user(tenant, roles=["tenant_admin"]))
    a = await create_group(tenant, "A")
    b = await create_group(tenant, "B", parent_group_id=a.id)

    response = await client.patch(f"{API}/groups/{a.id}", json={"parentGroupId": str(b.id)}, headers=headers)
    assert response.status_code == 422
    assert response.json()["error"]["details"]["field"] == "parentGroupId"

    response = await client.patch(f"{API}/groups/{a.id}", json={"parentGroupId": str(a.id)}, headers=headers)
    assert response.status_code == 422


async def test_parent_must_belong_to_same_tenant(client) -> None:
    tenant = await create_tenant()
    other = await create_tenant()
    foreign = await create_group(other, "Foreign")
    headers = auth_headers(await create_user(tenant, roles=["tenant_admin"]))

    response = await client.post(
        f"{API}/groups",
        json={"name": "Child", "type": "SOCIAL", "parentGroupId": str(foreign.id)},
        headers=headers,
    )
    assert response.status_code == 404


async def test_sibling_names_are_unique(client) -> None:
    tenant = await create_tenant()
    headers = auth_headers(await create_user(tenant, roles=["tenant_admin"]))
    await create_group(tenant, "Choir")

    response = await client.post(f"{API}/groups", json={"name": "Choir", "type": "SOCIAL"}, headers=headers)
    assert response.status_code == 409


async def test_delete_group_guards(client) -> None:
    tenant = await create_tenant()
    headers = auth_headers(await create_user(tenant, roles=["tenant_admin"]))
    parent = await create_group(tenant, "Parent")
    child = await create_group(tenant, "Child", parent_group_id=parent.id)
    person = await create_person(tenant)
    async with AsyncSessionLocal() as session:
        session.add(GroupMembership(person_id=person.id, group_id=child.id, start_date=date(2024, 1, 10)))
        await session.commit()

    response = await client.delete(f"{API}/groups/{parent.id}", headers=headers)
    assert response.status_code == 409
    assert response.json()["error"]["details"]["childGroups"] == 1

    response = await client.delete(f"{API}/groups/{child.id}", headers=headers)
    assert response.status_code == 409
    assert response.json()["error"]["details"]["activeMembers"] == 1

    response = await client.delete(f"{API}/groups/{child.id}/members/{person.id}", headers=headers)
    assert response.status_code == 200
    assert response.json()["status"] == "INACTIVE"

    response = await client.delete(f"{API}/groups/{child.id}", headers=headers)
    assert response.status_code == 204
    response = await client.delete(f"{API}/groups/{parent.id}", headers=headers)
    assert response.status_code == 204


async def test_cross_tenant_group_access_is_forbidden(client) -> None:
    tenant = await create_tenant()
    other = await create_tenant()
    group = await create_group(other)
    headers = auth_headers(await create_user(tenant, roles=["tenant_admin"]))

    response = await client.get(f"{API}/groups/{group.id}", headers=headers)
    assert response.status_code == 403
    response = await client.get(f"{API}/groups/{group.id}/members", headers=headers)
    assert response.status_code == 403
