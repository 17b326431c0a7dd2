from tests.utils.factories import auth_headers, create_tenant, create_user, person_payload

API = "/api/v1"


async def test_health(client) -> None:
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert response.headers["X-Request-Id"]


async def test_request_id_is_echoed_in_error_envelope(client) -> None:
    response = await client.get(f"{API}/persons", headers={"X-Request-Id": "req-123"})
    assert response.status_code == 401
    assert response.headers["X-Request-Id"] == "req-123"
    body = response.json()
    assert body["error"]["code"] == "AUTH_INVALID_TOKEN"
    assert body["error"]["message"]
    assert body["meta"]["requestId"] == "req-123"


async def test_unknown_route_uses_error_envelope(client) -> None:
    response = await client.get(f"{API}/nothing-here")
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "NOT_FOUND"


async def test_invalid_tenant_header_is_a_validation_error(client) -> None:
    root = await create_user(None, roles=["super_admin"])
    headers = {**auth_headers(root), "X-Tenant-ID": "not-a-uuid"}
    response = await client.get(f"{API}/persons", headers=headers)
    assert response.status_code == 422
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


async def test_page_limit_is_capped(client) -> None:
    tenant = await create_tenant()
    headers = auth_headers(await create_user(tenant, roles=["tenant_admin"]))
    response = await client.get(f"{API}/persons", params={"limit": 500}, headers=headers)
    assert response.status_code == 422


async def test_audit_log_is_tenant_scoped(client) -> None:
    tenant = await create_tenant()
    other = await create_tenant()
    admin = await create_user(tenant, roles=["tenant_admin"])
    other_admin = await create_user(other, roles=["tenant_admin"])

    response = await client.post(f"{API}/persons", json=person_payload(), headers=auth_headers(admin))
    assert response.status_code == 201
    person_id = response.json()["id"]
    await client.patch(f"{API}/persons/{person_id}", json={"notes": "Prefers mornings"}, headers=auth_headers(admin))

    response = await client.get(
        f"{API}/audit-logs", params={"entityType": "person"}, headers=auth_headers(admin)
    )
    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 2
    assert {entry["action"] for entry in body["data"]} == {"person.create", "person.update"}
    assert all(entry["userId"] == str(admin.id) for entry in body["data"])

    response = await client.get(f"{API}/audit-logs", headers=auth_headers(other_admin))
    assert response.json()["total"] == 0

    response = await client.get(
        f"{API}/audit-logs", headers=auth_headers(await create_user(tenant, roles=["instructor"]))
    )
    assert response.status_code == 403


async def test_audit_snapshots_redact_secrets(client) -> None:
    tenant = await create_tenant()
    admin = await create_user(tenant, roles=["tenant_admin"])
    target = await create_user(tenant)

    await client.patch(f"{API}/users/{target.id}", json={"firstName": "Renamed"}, headers=auth_headers(admin))
    response = await client.get(f"{API}/audit-logs", params={"action": "user.update"}, headers=auth_headers(admin))
    entry = response.json()["data"][0]
    assert entry["oldValues"]["password_hash"] == "[REDACTED]"
    assert entry["newValues"]["first_name"] == "Renamed"
