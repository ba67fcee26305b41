"""
API tests for authentication and password reset endpoints.
"""
import pytest
from unittest.mock import patch
from httpx import AsyncClient

from db.models.passcode import PasscodePurpose
from services.password_service import RESET_COMPLETED_MESSAGE, RESET_REQUESTED_MESSAGE


DEFAULT_PASSWORD = "secret123"
RESET = PasscodePurpose.PASSWORD_RESET
VERIFY = PasscodePurpose.EMAIL_VERIFICATION


@pytest.mark.api
class TestSignupAndSignin:
    """Account registration and login."""

    @pytest.mark.asyncio
    async def test_signup_creates_unverified_account_and_sends_code(self, async_client: AsyncClient, dispatcher):
        response = await async_client.post(
            "/auth/signup",
            json={"username": "alice_1", "email": "Alice@Example.com", "password": "secret123"},
        )

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        user = body["data"]["user"]
        assert user["email"] == "alice@example.com"
        assert user["email_verified"] is False
        assert "hashed_password" not in user
        assert dispatcher.last_code("alice@example.com", VERIFY)
        assert response.headers["Cache-Control"].startswith("no-store")

    @pytest.mark.asyncio
    async def test_signup_survives_dispatch_failure(self, async_client: AsyncClient, dispatcher):
        dispatcher.fail = True
        response = await async_client.post(
            "/auth/signup",
            json={"username": "alice_1", "email": "alice@example.com", "password": "secret123"},
        )
        assert response.status_code == 201

    @pytest.mark.asyncio
    async def test_signup_duplicate_is_conflict(self, async_client: AsyncClient, make_user):
        await make_user(email="alice@example.com", username="alice_1")

        response = await async_client.post(
            "/auth/signup",
            json={"username": "alice_2", "email": "alice@example.com", "password": "secret123"},
        )
        assert response.status_code == 409
        assert response.json() == {"success": False, "error": "User with this email or username already exists"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload,error",
        [
            ({"username": "al", "email": "alice@example.com", "password": "secret123"}, "Username must be at least 3 characters long"),
            ({"username": "al ice", "email": "alice@example.com", "password": "secret123"}, "Username can only contain letters, numbers and underscores"),
            ({"username": "alice", "email": "alice", "password": "secret123"}, "Invalid email format"),
            ({"username": "alice", "email": "alice..smith@example.com", "password": "secret123"}, "Invalid email format"),
            ({"username": "alice", "email": "alice@example.com", "password": "abc"}, "Password must be at least 6 characters long"),
        ],
    )
    async def test_signup_validation(self, async_client: AsyncClient, payload, error):
        response = await async_client.post("/auth/signup", json=payload)
        assert response.status_code == 400
        assert response.json()["error"] == error

    @pytest.mark.asyncio
    async def test_signin_with_email_or_username(self, async_client: AsyncClient, make_user):
        user = await make_user(email="alice@example.com", username="alice_1")

        by_email = await async_client.post("/auth/signin", json={"login": "ALICE@example.com", "password": DEFAULT_PASSWORD})
        by_name = await async_client.post("/auth/signin", json={"login": "alice_1", "password": DEFAULT_PASSWORD})

        assert by_email.status_code == 200
        assert by_name.status_code == 200
        data = by_email.json()["data"]
        assert data["token"]
        assert data["user"]["id"] == user.id

    @pytest.mark.asyncio
    async def test_signin_wrong_password(self, async_client: AsyncClient, make_user):
        await make_user(email="alice@example.com")
        response = await async_client.post("/auth/signin", json={"login": "alice@example.com", "password": "wrongpass"})
        assert response.status_code == 401
        assert response.json()["error"] == "Invalid email or password"

    @pytest.mark.asyncio
    async def test_signin_unknown_account_matches_wrong_password(self, async_client: AsyncClient):
        response = await async_client.post("/auth/signin", json={"login": "nobody@example.com", "password": "wrongpass"})
        assert response.status_code == 401
        assert response.json()["error"] == "Invalid email or password"

    @pytest.mark.asyncio
    async def test_signin_requires_verified_email(self, async_client: AsyncClient, make_user):
        await make_user(email="alice@example.com", verified=False)
        response = await async_client.post("/auth/signin", json={"login": "alice@example.com", "password": DEFAULT_PASSWORD})
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_profile_requires_token(self, async_client: AsyncClient):
        response = await async_client.get("/auth/profile")
        assert response.status_code == 401
        assert response.json()["error"] == "Access token required"

    @pytest.mark.asyncio
    async def test_profile_with_token(self, async_client: AsyncClient, make_user, user_headers):
        user = await make_user()
        response = await async_client.get("/auth/profile", headers=user_headers(user))
        assert response.status_code == 200
        assert response.json()["data"]["user"]["email"] == user.email

    @pytest.mark.asyncio
    async def test_admin_token_rejected_on_user_route(self, async_client: AsyncClient, admin_headers):
        response = await async_client.get("/auth/profile", headers=admin_headers)
        assert response.status_code == 401


@pytest.mark.api
class TestPasswordResetEndpoints:
    """Forgot / reset password over HTTP."""

    @pytest.mark.asyncio
    async def test_forgot_password_identical_for_known_and_unknown(self, async_client: AsyncClient, make_user, dispatcher):
        await make_user(email="alice@example.com")

        known = await async_client.post("/auth/forgot-password", json={"email": "alice@example.com"})
        unknown = await async_client.post("/auth/forgot-password", json={"email": "nobody@example.com"})

        assert known.status_code == unknown.status_code == 200
        assert known.json() == unknown.json() == {"success": True, "message": RESET_REQUESTED_MESSAGE}
        assert len(dispatcher.sent) == 1

    @pytest.mark.asyncio
    async def test_forgot_password_invalid_email(self, async_client: AsyncClient):
        response = await async_client.post("/auth/forgot-password", json={"email": "not-an-email"})
        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "Invalid email format"}

    @pytest.mark.asyncio
    async def test_forgot_password_delivery_failure_is_generic_500(self, async_client: AsyncClient, make_user, dispatcher):
        await make_user(email="alice@example.com")
        dispatcher.fail = True

        response = await async_client.post("/auth/forgot-password", json={"email": "alice@example.com"})

        assert response.status_code == 500
        assert response.json() == {"success": False, "error": "Failed to send email"}
        assert "simulated" not in response.text

    @pytest.mark.asyncio
    async def test_full_reset_flow(self, async_client: AsyncClient, make_user, dispatcher):
        await make_user(email="alice@example.com", password="oldpass1")
        await async_client.post("/auth/forgot-password", json={"email": "alice@example.com"})
        code = dispatcher.last_code("alice@example.com", RESET)

        response = await async_client.post(
            "/auth/reset-password",
            json={"email": "alice@example.com", "otp": f" {code} ", "new_password": "newpass1"},
        )
        assert response.status_code == 200
        assert response.json() == {"success": True, "message": RESET_COMPLETED_MESSAGE}

        old = await async_client.post("/auth/signin", json={"login": "alice@example.com", "password": "oldpass1"})
        new = await async_client.post("/auth/signin", json={"login": "alice@example.com", "password": "newpass1"})
        assert old.status_code == 401
        assert new.status_code == 200

        replay = await async_client.post(
            "/auth/reset-password",
            json={"email": "alice@example.com", "otp": code, "new_password": "another1"},
        )
        assert replay.status_code == 400
        assert replay.json()["error"] == "Invalid or expired OTP"

    @pytest.mark.asyncio
    async def test_reset_with_wrong_code(self, async_client: AsyncClient, make_user):
        await make_user(email="alice@example.com")
        with patch("services.otp_service.generate_code", return_value="123456"):
            await async_client.post("/auth/forgot-password", json={"email": "alice@example.com"})

        response = await async_client.post(
            "/auth/reset-password",
            json={"email": "alice@example.com", "otp": "999999", "new_password": "newpass1"},
        )
        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "Invalid or expired OTP"}

    @pytest.mark.asyncio
    async def test_reset_unknown_account(self, async_client: AsyncClient):
        response = await async_client.post(
            "/auth/reset-password",
            json={"email": "nobody@example.com", "otp": "123456", "new_password": "newpass1"},
        )
        assert response.status_code == 404
        assert response.json()["error"] == "User not found"

    @pytest.mark.asyncio
    async def test_reset_short_password(self, async_client: AsyncClient, make_user):
        await make_user(email="alice@example.com")
        response = await async_client.post(
            "/auth/reset-password",
            json={"email": "alice@example.com", "otp": "123456", "new_password": "abc"},
        )
        assert response.status_code == 400
        assert response.json()["error"] == "Password must be at least 6 characters long"

    @pytest.mark.asyncio
    async def test_reset_missing_fields(self, async_client: AsyncClient):
        response = await async_client.post("/auth/reset-password", json={"email": "alice@example.com"})
        assert response.status_code == 400
        assert response.json()["error"] == "Email, OTP and new password are required"
