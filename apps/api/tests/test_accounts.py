from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest
import redis.asyncio as redis
from fastapi import HTTPException
from sqlalchemy.future import select

from config import settings
from main import app
from models.password_reset_token import PasswordResetToken
from models.user import User
from routers import rate_limit
from services.accounts import ensure_default_admin, request_password_reset
from services.session_token import decode_session_token
from tests.conftest import ADMIN_HEADER, ADMIN_ID, CLIENT_HEADER, CLIENT_ID, TEST_PASSWORD


@pytest.mark.asyncio
async def test_login_returns_session_token_with_role(api_client):
    response = await api_client.post(
        "/auth/login",
        json={"email": " Cliente@Example.com ", "password": TEST_PASSWORD},
    )
    assert response.status_code == 200
    payload = response.json()
    assert payload["user_id"] == CLIENT_ID
    assert payload["role"] == "client"

    claims = decode_session_token(payload["session_token"])
    assert claims.user_id == CLIENT_ID
    assert claims.role == "client"
    assert claims.expires_at == payload["session_expires_at"]


@pytest.mark.asyncio
async def test_login_rejects_wrong_password(api_client):
    response = await api_client.post(
        "/auth/login",
        json={"email": "cliente@example.com", "password": "incorrecta"},
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_me_reports_profile_for_session(api_client):
    response = await api_client.get("/auth/me", headers=CLIENT_HEADER)
    assert response.status_code == 200
    assert response.json()["company_name"] == "Talleres Ana"

    assert (await api_client.get("/auth/me")).status_code == 401
    bogus = {"Authorization": "Bearer not-a-token"}
    assert (await api_client.get("/auth/me", headers=bogus)).status_code == 401


@pytest.mark.asyncio
async def test_admin_creates_client_account(api_client):
    response = await api_client.post(
        "/users",
        json={"email": "Nuevo@Example.com", "password": "clave-segura", "name": "Nuevo Cliente"},
        headers=ADMIN_HEADER,
    )
    assert response.status_code == 201
    assert response.json()["email"] == "nuevo@example.com"
    assert response.json()["role"] == "client"

    login = await api_client.post("/auth/login", json={"email": "nuevo@example.com", "password": "clave-segura"})
    assert login.status_code == 200

    clients = await api_client.get("/users/clients", headers=ADMIN_HEADER)
    assert "nuevo@example.com" in {item["email"] for item in clients.json()}
    assert "admin@bonos.local" not in {item["email"] for item in clients.json()}


@pytest.mark.asyncio
async def test_create_account_rejects_duplicates_and_short_passwords(api_client):
    duplicate = await api_client.post(
        "/users",
        json={"email": "cliente@example.com", "password": "clave-segura"},
        headers=ADMIN_HEADER,
    )
    assert duplicate.status_code == 409

    weak = await api_client.post(
        "/users",
        json={"email": "debil@example.com", "password": "123"},
        headers=ADMIN_HEADER,
    )
    assert weak.status_code == 422


@pytest.mark.asyncio
async def test_user_management_is_admin_only(api_client):
    assert (await api_client.get("/users", headers=CLIENT_HEADER)).status_code == 403
    response = await api_client.post(
        "/users",
        json={"email": "colado@example.com", "password": "clave-segura", "role": "admin"},
        headers=CLIENT_HEADER,
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_admin_updates_and_deletes_client(api_client):
    patched = await api_client.patch(f"/users/{CLIENT_ID}", json={"phone": "600123123"}, headers=ADMIN_HEADER)
    assert patched.status_code == 200
    assert patched.json()["phone"] == "600123123"

    assert (await api_client.delete(f"/users/{ADMIN_ID}", headers=ADMIN_HEADER)).status_code == 422
    assert (await api_client.delete(f"/users/{CLIENT_ID}", headers=ADMIN_HEADER)).status_code == 200
    assert (await api_client.patch(f"/users/{CLIENT_ID}", json={}, headers=ADMIN_HEADER)).status_code == 404


@pytest.mark.asyncio
async def test_password_reset_request_does_not_reveal_accounts(api_client):
    known = await api_client.post("/auth/password-reset", json={"email": "cliente@example.com"})
    unknown = await api_client.post("/auth/password-reset", json={"email": "nadie@example.com"})
    assert known.status_code == unknown.status_code == 202
    assert known.json() == unknown.json()


@pytest.mark.asyncio
async def test_password_reset_confirm_changes_password_once(api_client, session_maker):
    async with session_maker() as session:
        token = await request_password_reset(session, "cliente@example.com")
    assert token

    confirmed = await api_client.post(
        "/auth/password-reset/confirm",
        json={"token": token, "new_password": "nueva-clave"},
    )
    assert confirmed.status_code == 200

    old_login = await api_client.post("/auth/login", json={"email": "cliente@example.com", "password": TEST_PASSWORD})
    assert old_login.status_code == 401
    new_login = await api_client.post("/auth/login", json={"email": "cliente@example.com", "password": "nueva-clave"})
    assert new_login.status_code == 200

    reused = await api_client.post(
        "/auth/password-reset/confirm",
        json={"token": token, "new_password": "otra-clave"},
    )
    assert reused.status_code == 400


@pytest.mark.asyncio
async def test_password_reset_confirm_rejects_expired_token(api_client, session_maker):
    async with session_maker() as session:
        token = await request_password_reset(session, "cliente@example.com")
        result = await session.execute(select(PasswordResetToken).where(PasswordResetToken.user_id == CLIENT_ID))
        reset = result.scalar_one()
        reset.expires_at = datetime.now(timezone.utc) - timedelta(minutes=1)
        await session.commit()

    response = await api_client.post(
        "/auth/password-reset/confirm",
        json={"token": token, "new_password": "nueva-clave"},
    )
    assert response.status_code == 410


@pytest.mark.asyncio
async def test_request_password_reset_unknown_email_returns_none(session_maker):
    async with session_maker() as session:
        assert await request_password_reset(session, "nadie@example.com") is None


@pytest.mark.asyncio
async def test_ensure_default_admin_creates_configured_account(session_maker):
    with patch.object(settings, "DEFAULT_ADMIN_EMAIL", "Jefe@Bonos.local"), patch.object(
        settings, "DEFAULT_ADMIN_PASSWORD", "clave-de-arranque"
    ):
        async with session_maker() as session:
            admin = await ensure_default_admin(session)
        async with session_maker() as session:
            again = await ensure_default_admin(session)

    assert admin.email == "jefe@bonos.local"
    assert admin.role == "admin"
    assert again.id == admin.id


@pytest.mark.asyncio
async def test_ensure_default_admin_promotes_existing_account(session_maker):
    with patch.object(settings, "DEFAULT_ADMIN_EMAIL", "otro@example.com"), patch.object(
        settings, "DEFAULT_ADMIN_PASSWORD", "clave-de-arranque"
    ):
        async with session_maker() as session:
            admin = await ensure_default_admin(session)
    assert admin.role == "admin"

    async with session_maker() as session:
        result = await session.execute(select(User).where(User.email == "otro@example.com"))
        assert result.scalar_one().role == "admin"


@pytest.mark.asyncio
async def test_ensure_default_admin_skips_without_credentials(session_maker):
    with patch.object(settings, "DEFAULT_ADMIN_EMAIL", ""):
        async with session_maker() as session:
            assert await ensure_default_admin(session) is None


def _fake_request(host="10.0.0.7", headers=None):
    return SimpleNamespace(
        app=SimpleNamespace(state=SimpleNamespace(disable_rate_limits=False)),
        headers=headers or {},
        client=SimpleNamespace(host=host),
    )


@pytest.mark.asyncio
async def test_rate_limit_falls_back_to_local_counter_when_redis_is_down():
    dependency = rate_limit.rate_limit("test_scope", limit=2, window_seconds=60)
    request = _fake_request()

    with patch.object(
        rate_limit, "_count_in_redis", AsyncMock(side_effect=redis.ConnectionError("redis down"))
    ):
        await dependency(request)
        await dependency(request)
        with pytest.raises(HTTPException) as excinfo:
            await dependency(request)
        await dependency(_fake_request(host="10.0.0.8"))

    assert excinfo.value.status_code == 429
    assert excinfo.value.headers["Retry-After"] == "60"


@pytest.mark.asyncio
async def test_rate_limit_uses_shared_redis_count():
    dependency = rate_limit.rate_limit("test_scope", limit=5, window_seconds=60)
    with patch.object(rate_limit, "_count_in_redis", AsyncMock(return_value=6)) as counter:
        with pytest.raises(HTTPException):
            await dependency(_fake_request())
    counter.assert_awaited_once_with("bonos:rate:test_scope:10.0.0.7", 60)
    assert rate_limit._local_counters == {}


@pytest.mark.asyncio
async def test_login_throttle_ignores_rotating_forwarded_for(api_client):
    app.state.disable_rate_limits = False
    codes = []
    with patch.object(
        rate_limit, "_count_in_redis", AsyncMock(side_effect=redis.ConnectionError("redis down"))
    ):
        for attempt in range(settings.LOGIN_RATE_LIMIT + 1):
            response = await api_client.post(
                "/auth/login",
                json={"email": "cliente@example.com", "password": "incorrecta"},
                headers={"X-Forwarded-For": f"203.0.113.{attempt}"},
            )
            codes.append(response.status_code)

    assert set(codes[:-1]) == {401}
    assert codes[-1] == 429


@pytest.mark.asyncio
async def test_rate_limit_keys_on_peer_address_before_forwarded_header():
    dependency = rate_limit.rate_limit("test_scope", limit=5, window_seconds=60)
    request = _fake_request(headers={"x-forwarded-for": "198.51.100.9"})
    with patch.object(rate_limit, "_count_in_redis", AsyncMock(return_value=1)) as counter:
        await dependency(request)
    counter.assert_awaited_once_with("bonos:rate:test_scope:10.0.0.7", 60)


@pytest.mark.asyncio
async def test_local_counters_drop_expired_windows():
    rate_limit._local_counters["bonos:rate:old:10.0.0.1"] = (3, 0.0)
    assert await rate_limit._count_locally("bonos:rate:new:10.0.0.2", 60) == 1
    assert "bonos:rate:old:10.0.0.1" not in rate_limit._local_counters
    assert await rate_limit._count_locally("bonos:rate:new:10.0.0.2", 60) == 2


@pytest.mark.asyncio
async def test_passwords_over_bcrypt_byte_limit_are_rejected(api_client, session_maker):
    long_password = "ñ" * 40
    created = await api_client.post(
        "/users",
        json={"email": "largo@example.com", "password": long_password},
        headers=ADMIN_HEADER,
    )
    assert created.status_code == 422

    async with session_maker() as session:
        token = await request_password_reset(session, "cliente@example.com")
    confirmed = await api_client.post(
        "/auth/password-reset/confirm",
        json={"token": token, "new_password": long_password},
    )
    assert confirmed.status_code == 422

    login = await api_client.post("/auth/login", json={"email": "cliente@example.com", "password": long_password})
    assert login.status_code == 401
