from datetime import timedelta

from sqlalchemy import select

from app.core.database import AsyncSessionLocal, utcnow
from app.core.security import create_access_token
from app.models import AuditLog, RefreshToken, User
from tests.utils.factories import DEFAULT_PASSWORD, auth_headers, create_tenant, create_user

API = "/api/v1"


async def _load_user(user_id) -> User:
    async with AsyncSessionLocal() as session:
        return await session.get(User, user_id)


async def test_register_verify_and_login(client) -> None:
    tenant = await create_tenant(subdomain="academy")

    response = await client.post(
        f"{API}/auth/register",
        json={
            "email": "New.Student@Example.com",
            "password": "Secret123",
            "firstName": "New",
            "lastName": "Student",
        },
        headers={"X-Tenant": "academy"},
    )
    assert response.status_code == 201
    body = response.json()
    assert body["email"] == "new.student@example.com"

    async with AsyncSessionLocal() as session:
        user = (await session.execute(select(User).where(User.email == "new.student@example.com"))).scalar_one()
        assert user.tenant_id == tenant.id
        assert user.roles == ["member"]
        assert user.is_email_verified is False
        token = user.email_verification_token

    response = await client.post(
        f"{API}/auth/login", json={"email": "new.student@example.com", "password": "Secret123"}
    )
    assert response.status_code == 403
    assert response.json()["error"]["code"] == "AUTH_EMAIL_NOT_VERIFIED"

    response = await client.post(f"{API}/auth/verify-email", json={"token": token})
    assert response.status_code == 200

    response = await client.post(
        f"{API}/auth/login", json={"email": "new.student@example.com", "password": "Secret123"}
    )
    assert response.status_code == 200
    body = response.json()
    assert body["tokenType"] == "Bearer"
    assert body["accessToken"]
    assert body["refreshToken"]
    assert body["user"]["email"] == "new.student@example.com"
    assert body["user"]["role"] == "member"


async def test_register_resolves_tenant_from_subdomain(client) -> None:
    await create_tenant(subdomain="north")
    response = await client.post(
        f"{API}/auth/register",
        json={"email": "sub@example.com", "password": "Secret123", "firstName": "S", "lastName": "D"},
        headers={"Host": "north.perseo.app"},
    )
    assert response.status_code == 201


async def test_register_duplicate_email_conflicts(client) -> None:
    tenant = await create_tenant(subdomain="dup")
    await create_user(tenant, email="taken@example.com")
    response = await client.post(
        f"{API}/auth/register",
        json={"email": "taken@example.com", "password": "Secret123", "firstName": "A", "lastName": "B"},
        headers={"X-Tenant": "dup"},
    )
    assert response.status_code == 409
    assert response.json()["error"]["code"] == "CONFLICT"


async def test_register_respects_user_limit(client) -> None:
    tenant = await create_tenant(subdomain="small", user_limit=1)
    await create_user(tenant)
    response = await client.post(
        f"{API}/auth/register",
        json={"email": "late@example.com", "password": "Secret123", "firstName": "A", "lastName": "B"},
        headers={"X-Tenant": "small"},
    )
    assert response.status_code == 409
    assert response.json()["error"]["code"] == "CAPACITY_EXCEEDED"


async def test_register_rejects_weak_password(client) -> None:
    await create_tenant(subdomain="weak")
    response = await client.post(
        f"{API}/auth/register",
        json={"email": "weak@example.com", "password": "onlyletters", "firstName": "A", "lastName": "B"},
        headers={"X-Tenant": "weak"},
    )
    assert response.status_code == 422
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


async def test_lockout_after_repeated_failures(client) -> None:
    tenant = await create_tenant()
    user = await create_user(tenant, email="lock@example.com")

    for _ in range(5):
        response = await client.post(f"{API}/auth/login", json={"email": "lock@example.com", "password": "wrong-1"})
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "AUTH_INVALID_CREDENTIALS"

    stored = await _load_user(user.id)
    assert stored.failed_login_attempts == 5
    assert stored.locked_until is not None

    # Correct password is refused while the lock is in force
    response = await client.post(
        f"{API}/auth/login", json={"email": "lock@example.com", "password": DEFAULT_PASSWORD}
    )
    assert response.status_code == 423
    assert response.json()["error"]["code"] == "AUTH_ACCOUNT_LOCKED"

    async with AsyncSessionLocal() as session:
        actions = (
            await session.execute(select(AuditLog.action).where(AuditLog.entity_id == user.id))
        ).scalars().all()
    assert "auth.account_locked" in actions


async def test_expired_lock_resets_counter(client) -> None:
    tenant = await create_tenant()
    user = await create_user(tenant, email="expired-lock@example.com")
    async with AsyncSessionLocal() as session:
        stored = await session.get(User, user.id)
        stored.failed_login_attempts = 5
        stored.locked_until = utcnow() - timedelta(minutes=1)
        await session.commit()

    response = await client.post(
        f"{API}/auth/login", json={"email": "expired-lock@example.com", "password": DEFAULT_PASSWORD}
    )
    assert response.status_code == 200

    stored = await _load_user(user.id)
    assert stored.failed_login_attempts == 0
    assert stored.locked_until is None
    assert stored.last_login_at is not None


async def test_unknown_email_and_wrong_password_look_the_same(client) -> None:
    tenant = await create_tenant()
    await create_user(tenant, email="known@example.com")

    unknown = await client.post(f"{API}/auth/login", json={"email": "nobody@example.com", "password": "x"})
    wrong = await client.post(f"{API}/auth/login", json={"email": "known@example.com", "password": "x"})
    assert unknown.status_code == wrong.status_code == 401
    assert unknown.json()["error"]["message"] == wrong.json()["error"]["message"]


async def test_refresh_and_logout(client) -> None:
    tenant = await create_tenant()
    await create_user(tenant, email="session@example.com")

    login = await client.post(
        f"{API}/auth/login", json={"email": "session@example.com", "password": DEFAULT_PASSWORD}
    )
    refresh_token = login.json()["refreshToken"]

    response = await client.post(f"{API}/auth/refresh", json={"refreshToken": refresh_token})
    assert response.status_code == 200
    assert response.json()["accessToken"]

    response = await client.post(f"{API}/auth/logout", json={"refreshToken": refresh_token})
    assert response.status_code == 200

    async with AsyncSessionLocal() as session:
        stored = (
            await session.execute(select(RefreshToken).where(RefreshToken.token == refresh_token))
        ).scalar_one()
        assert stored.is_revoked is True

    response = await client.post(f"{API}/auth/refresh", json={"refreshToken": refresh_token})
    assert response.status_code == 401


async def test_refresh_rejects_unknown_token(client) -> None:
    response = await client.post(f"{API}/auth/refresh", json={"refreshToken": "not-a-real-token"})
    assert response.status_code == 401


async def test_forgot_password_is_silent_for_unknown_email(client) -> None:
    response = await client.post(f"{API}/auth/forgot-password", json={"email": "ghost@example.com"})
    assert response.status_code == 200


async def test_reset_password_flow(client) -> None:
    tenant = await create_tenant()
    user = await create_user(tenant, email="reset@example.com")

    response = await client.post(f"{API}/auth/forgot-password", json={"email": "reset@example.com"})
    assert response.status_code == 200
    token = (await _load_user(user.id)).password_reset_token
    assert token

    response = await client.post(
        f"{API}/auth/reset-password", json={"token": token, "newPassword": "Another123"}
    )
    assert response.status_code == 200

    response = await client.post(
        f"{API}/auth/login", json={"email": "reset@example.com", "password": "Another123"}
    )
    assert response.status_code == 200

    # Reset tokens are single use
    response = await client.post(
        f"{API}/auth/reset-password", json={"token": token, "newPassword": "Third1234"}
    )
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INVALID_TOKEN"


async def test_profile_requires_valid_token(client) -> None:
    tenant = await create_tenant()
    user = await create_user(tenant, roles=["instructor"])

    response = await client.get(f"{API}/auth/profile")
    assert response.status_code == 401

    response = await client.get(f"{API}/auth/profile", headers=auth_headers(user))
    assert response.status_code == 200
    assert response.json()["email"] == user.email

    expired = create_access_token(
        user_id=user.id,
        email=user.email,
        roles=user.roles,
        tenant_id=user.tenant_id,
        now=utcnow() - timedelta(hours=2),
    )
    response = await client.get(f"{API}/auth/profile", headers={"Authorization": f"Bearer {expired}"})
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "AUTH_INVALID_TOKEN"


async def test_inactive_tenant_blocks_its_users(client) -> None:
    tenant = await create_tenant(is_active=False)
    user = await create_user(tenant)
    response = await client.get(f"{API}/auth/profile", headers=auth_headers(user))
    assert response.status_code == 403


async def test_login_refused_for_inactive_tenant(client) -> None:
    tenant = await create_tenant(is_active=False)
    user = await create_user(tenant, email="dormant@example.com")

    response = await client.post(
        f"{API}/auth/login", json={"email": "dormant@example.com", "password": DEFAULT_PASSWORD}
    )
    assert response.status_code == 403
    assert response.json()["error"]["code"] == "AUTH_FORBIDDEN"
    assert "refreshToken" not in response.json()

    async with AsyncSessionLocal() as session:
        tokens = (
            await session.execute(select(RefreshToken).where(RefreshToken.user_id == user.id))
        ).scalars().all()
    assert tokens == []
