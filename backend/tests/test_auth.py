"""
Tests for login, JWT cookie handling and protected endpoints.
"""
import logging
import time
from datetime import timedelta

import pytest
from pydantic import ValidationError

from app.core.config import Settings
from app.core.security import create_access_token, decode_token, get_password_hash, verify_password
from app.models import User

TEST_PASSWORD = "Test123!"


def audit_events(caplog, event: str):
    return [
        r for r in caplog.records
        if r.name == "security" and getattr(r, "audit", {}).get("event") == event
    ]


def jwt_cookie(token: str) -> dict:
    return {"Cookie": f"JWT={token}"}


class TestPasswordHashing:

    def test_hash_and_verify(self):
        hashed = get_password_hash(TEST_PASSWORD)
        assert hashed != TEST_PASSWORD
        assert verify_password(TEST_PASSWORD, hashed)
        assert not verify_password("Wrong123!", hashed)

    def test_malformed_hash(self):
        assert not verify_password(TEST_PASSWORD, "not-a-bcrypt-hash")

    def test_long_password_truncated_consistently(self):
        long_password = "Aa1!" * 30
        assert verify_password(long_password, get_password_hash(long_password))


class TestTokens:

    def test_round_trip(self):
        token = create_access_token("42", username="alice")
        payload = decode_token(token)
        assert payload["sub"] == "42"
        assert payload["username"] == "alice"
        assert payload["type"] == "access"
        assert payload["exp"] - payload["iat"] == 3600
        assert payload["jti"]

    def test_expired(self):
        token = create_access_token("42", expires_delta=timedelta(seconds=-1))
        assert decode_token(token) is None

    def test_tampered(self):
        token = create_access_token("42")
        header, payload, signature = token.split(".")
        tampered = ".".join([header, payload, signature[::-1]])
        assert decode_token(tampered) is None
        assert decode_token("garbage") is None


class TestCookieSettings:

    @pytest.mark.parametrize("field", ["COOKIE_HTTPONLY", "COOKIE_SECURE"])
    def test_insecure_cookie_refused_outside_development(self, field):
        with pytest.raises(ValidationError):
            Settings(
                ENVIRONMENT="staging",
                DATABASE_URL="postgresql+asyncpg://db.internal/trips",
                SECRET_KEY="k" * 40,
                **{field: False},
            )

    def test_insecure_cookie_allowed_in_development(self):
        config = Settings(
            ENVIRONMENT="development",
            DATABASE_URL="sqlite+aiosqlite:///:memory:",
            SECRET_KEY="k" * 40,
            COOKIE_SECURE=False,
        )
        assert config.COOKIE_SECURE is False

    def test_malformed_rate_limit_refused(self):
        with pytest.raises(ValidationError):
            Settings(
                ENVIRONMENT="development",
                DATABASE_URL="sqlite+aiosqlite:///:memory:",
                SECRET_KEY="k" * 40,
                RATE_LIMIT_LOGIN="lots",
            )


class TestLogin:

    @pytest.mark.asyncio
    async def test_login_success(self, client, user, login, caplog):
        caplog.set_level(logging.INFO, logger="security")

        response = await login("alice")

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Login successful"
        assert body["user"]["username"] == "alice"
        assert "hashed_password" not in body["user"]
        assert decode_token(body["token"])["sub"] == str(user.id)

        cookie = response.headers["set-cookie"]
        assert cookie.startswith(f"JWT={body['token']}")
        assert "HttpOnly" in cookie
        assert "Secure" in cookie
        assert "Max-Age=3600" in cookie
        assert "Path=/" in cookie
        assert "samesite=lax" in cookie.lower()

        events = audit_events(caplog, "login_success")
        assert len(events) == 1
        assert events[0].audit["actor"] == "alice"

    @pytest.mark.asyncio
    async def test_login_with_email(self, client, user, login):
        response = await login("Alice@Example.com")
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_email_login_ignores_email_shaped_username(self, client, session_factory, login):
        # An account whose username is somebody else's email (created before "@" was refused)
        async with session_factory() as session:
            session.add(User(
                username="bob@example.com",
                email="mallory@example.com",
                hashed_password=get_password_hash("Mallory1!"),
            ))
            await session.commit()

        response = await client.post(
            "/api/users/register",
            json={"username": "bob", "email": "bob@example.com", "password": "BobPass1!"},
        )
        assert response.status_code == 201

        response = await login("bob@example.com", "BobPass1!")

        assert response.status_code == 200
        assert response.json()["user"]["username"] == "bob"

    @pytest.mark.asyncio
    async def test_wrong_password_and_unknown_user_look_the_same(self, client, user, login, caplog):
        caplog.set_level(logging.INFO, logger="security")

        wrong_password = await login("alice", "Wrong123!")
        unknown_user = await login("nobody", TEST_PASSWORD)

        assert wrong_password.status_code == unknown_user.status_code == 401
        assert wrong_password.json() == unknown_user.json() == {"message": "Invalid credentials."}
        assert "set-cookie" not in wrong_password.headers

        failures = audit_events(caplog, "login_failure")
        assert [e.audit["actor"] for e in failures] == ["alice", "nobody"]
        assert all(e.audit["reason"] == "invalid_credentials" for e in failures)
        assert all("password" not in e.audit for e in failures)

    @pytest.mark.asyncio
    async def test_missing_credentials(self, client):
        response = await client.post("/api/login", json={"username": "alice"})
        assert response.status_code == 400
        assert response.json() == {"error": "Missing credentials"}

    @pytest.mark.asyncio
    async def test_login_throttled_per_username(self, client, user, login, caplog):
        caplog.set_level(logging.INFO, logger="security")

        for _ in range(5):
            assert (await login("alice", "Wrong123!")).status_code == 401

        started = time.monotonic()
        response = await login("alice")
        elapsed = time.monotonic() - started

        # Even the right password is refused once the budget is spent
        assert response.status_code == 401
        assert "Too many login attempts" in response.json()["message"]
        assert elapsed >= 0.1
        assert len(audit_events(caplog, "rate_limit_exceeded")) == 1

        # Other usernames are unaffected
        assert (await login("nobody")).json() == {"message": "Invalid credentials."}

    @pytest.mark.asyncio
    async def test_login_throttle_ignores_username_case(self, client, user, login):
        for _ in range(5):
            await login("ALICE", "Wrong123!")
        response = await login("alice")
        assert "Too many login attempts" in response.json()["message"]


class TestProtectedEndpoints:

    @pytest.mark.asyncio
    async def test_missing_cookie(self, client):
        response = await client.get("/api/items")
        assert response.status_code == 401
        assert response.json() == {"message": "JWT Token not found"}

    @pytest.mark.asyncio
    async def test_items_with_cookie(self, client, user, items, login):
        token = (await login("alice")).json()["token"]

        response = await client.get("/api/items", headers=jwt_cookie(token))

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 2
        assert [i["name"] for i in body["items"]] == ["Tent", "Passport"]

    @pytest.mark.asyncio
    async def test_bearer_header_not_accepted(self, client, user, login):
        token = (await login("alice")).json()["token"]
        client.cookies.clear()
        response = await client.get("/api/items", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_expired_token_treated_as_missing(self, client, user):
        token = create_access_token(str(user.id), expires_delta=timedelta(seconds=-5))
        response = await client.get("/api/items", headers=jwt_cookie(token))
        assert response.status_code == 401
        assert response.json() == {"message": "JWT Token not found"}

    @pytest.mark.asyncio
    async def test_tampered_token_treated_as_missing(self, client, user):
        token = create_access_token(str(user.id)) + "x"
        response = await client.get("/api/items", headers=jwt_cookie(token))
        assert response.status_code == 401
        assert response.json() == {"message": "JWT Token not found"}

    @pytest.mark.asyncio
    async def test_token_for_deleted_user(self, client):
        response = await client.get("/api/items", headers=jwt_cookie(create_access_token("9999")))
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_me(self, client, user):
        response = await client.get("/api/users/me", headers=jwt_cookie(create_access_token(str(user.id))))
        assert response.status_code == 200
        assert response.json()["email"] == "alice@example.com"

    @pytest.mark.asyncio
    async def test_security_headers(self, client):
        response = await client.get("/api/items")
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"


class TestLogout:

    @pytest.mark.asyncio
    async def test_logout_clears_cookie(self, client, user, caplog):
        caplog.set_level(logging.INFO, logger="security")

        response = await client.post("/api/logout", headers=jwt_cookie(create_access_token(str(user.id))))

        assert response.status_code == 200
        assert response.json() == {"message": "Logged out successfully"}
        cookie = response.headers["set-cookie"]
        assert cookie.startswith('JWT=""') or cookie.startswith("JWT=;")
        assert "Max-Age=0" in cookie
        assert len(audit_events(caplog, "logout")) == 1

    @pytest.mark.asyncio
    async def test_logout_without_session(self, client):
        response = await client.post("/api/logout")
        assert response.status_code == 200


class TestAdminAccess:

    @pytest.mark.asyncio
    async def test_non_admin_denied(self, client, user, caplog):
        caplog.set_level(logging.INFO, logger="security")

        response = await client.get("/api/users", headers=jwt_cookie(create_access_token(str(user.id))))

        assert response.status_code == 403
        assert response.json() == {"error": "Admin access required"}
        denied = audit_events(caplog, "access_denied")
        assert len(denied) == 1
        assert denied[0].audit["resource"] == "/api/users"
        assert denied[0].audit["actor"] == "alice"

    @pytest.mark.asyncio
    async def test_admin_lists_users(self, client, user, admin):
        response = await client.get("/api/users", headers=jwt_cookie(create_access_token(str(admin.id))))
        assert response.status_code == 200
        assert {u["username"] for u in response.json()} == {"alice", "root"}

    @pytest.mark.asyncio
    async def test_admin_user_lookup_audited(self, client, user, admin, caplog):
        caplog.set_level(logging.INFO, logger="security")

        response = await client.get(
            f"/api/users/{user.id}",
            headers=jwt_cookie(create_access_token(str(admin.id))),
        )

        assert response.status_code == 200
        events = audit_events(caplog, "sensitive_data_access")
        assert len(events) == 1
        assert events[0].audit["resource"] == f"user/{user.id}"

    @pytest.mark.asyncio
    async def test_admin_user_lookup_not_found(self, client, admin):
        response = await client.get("/api/users/9999", headers=jwt_cookie(create_access_token(str(admin.id))))
        assert response.status_code == 404
        assert response.json() == {"error": "User not found"}
