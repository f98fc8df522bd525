"""
Integration tests for the single-admin registration gate.

Tests:
- GET /api/auth/registration-status
- POST /api/auth/register
"""

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.security import verify_password
from app.models.user import User
from tests.factories import UserFactory

VALID_PAYLOAD = {
    "name": "Ann Admin",
    "email": "Ann@Example.com",
    "password": "longpass1",
    "confirmPassword": "longpass1",
}


@pytest.mark.asyncio
class TestRegistrationStatus:

    async def test_open_on_empty_database(self, client: AsyncClient):
        response = await client.get("/api/auth/registration-status")

        assert response.status_code == 200
        assert response.json() == {"success": True, "data": {"registrationOpen": True}}

    async def test_closed_after_admin_exists(self, client: AsyncClient, user):
        response = await client.get("/api/auth/registration-status")

        assert response.json()["data"]["registrationOpen"] is False

    async def test_unregistered_identity_keeps_it_open(self, client: AsyncClient, db_session: AsyncSession):
        await UserFactory.create_unregistered_async(db_session, email="imported@example.com")
        await db_session.commit()

        response = await client.get("/api/auth/registration-status")

        assert response.json()["data"]["registrationOpen"] is True


@pytest.mark.asyncio
class TestRegisterEndpoint:

    async def test_register_first_admin(self, client: AsyncClient, db_session: AsyncSession):
        response = await client.post("/api/auth/register", json=VALID_PAYLOAD)

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["message"] == "Registration successful. You are the admin."
        assert body["data"]["user"]["email"] == "ann@example.com"
        assert body["data"]["user"]["role"] == "admin"
        assert "password" not in body["data"]["user"]
        assert body["data"]["accessToken"]
        assert body["data"]["refreshToken"]

        set_cookie = " ".join(response.headers.get_list("set-cookie"))
        assert "accessToken=" in set_cookie
        assert "refreshToken=" in set_cookie

        user = (await db_session.execute(select(User))).scalar_one()
        assert user.email == "ann@example.com"
        assert user.password != "longpass1"
        assert verify_password("longpass1", user.password)

    async def test_register_sets_http_only_cookies(self, client: AsyncClient):
        response = await client.post("/api/auth/register", json=VALID_PAYLOAD)

        set_cookie = " ".join(response.headers.get_list("set-cookie")).lower()
        assert "httponly" in set_cookie
        assert "samesite=lax" in set_cookie

    async def test_second_registration_is_closed(self, client: AsyncClient, user):
        response = await client.post(
            "/api/auth/register",
            json={**VALID_PAYLOAD, "email": "bob@example.com"},
        )

        assert response.status_code == 403
        assert response.json() == {
            "success": False,
            "error": "Registration is closed. An account already exists.",
            "code": "REGISTRATION_CLOSED",
        }

    async def test_registration_closed_wins_over_duplicate(self, client: AsyncClient, user):
        response = await client.post(
            "/api/auth/register",
            json={**VALID_PAYLOAD, "email": user.email},
        )

        assert response.status_code == 403

    async def test_duplicate_email_of_unregistered_identity(self, client: AsyncClient, db_session: AsyncSession):
        await UserFactory.create_unregistered_async(db_session, email="ann@example.com")
        await db_session.commit()

        response = await client.post("/api/auth/register", json=VALID_PAYLOAD)

        assert response.status_code == 409
        assert response.json()["code"] == "CONFLICT"

    @pytest.mark.parametrize(
        "override, message",
        [
            ({"name": "A"}, "Name must be at least 2 characters."),
            ({"password": "short", "confirmPassword": "short"}, "Password must be at least 8 characters."),
            ({"confirmPassword": "different1"}, "Passwords do not match."),
        ],
    )
    async def test_validation_errors(self, client: AsyncClient, override, message):
        response = await client.post("/api/auth/register", json={**VALID_PAYLOAD, **override})

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["code"] == "VALIDATION_ERROR"
        assert message in body["error"]

    async def test_missing_field(self, client: AsyncClient):
        payload = {key: value for key, value in VALID_PAYLOAD.items() if key != "name"}

        response = await client.post("/api/auth/register", json=payload)

        assert response.status_code == 400
        assert "name is required." in response.json()["error"]

    async def test_invalid_email(self, client: AsyncClient):
        response = await client.post("/api/auth/register", json={**VALID_PAYLOAD, "email": "not-an-email"})

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    async def test_only_one_registration_claim_can_exist(self, db_session: AsyncSession, user):
        """The unique claim column is what closes the race between two registrations."""
        db_session.add(User(name="Bob", email="bob@example.com", password="x", role="admin", registration_claim=True))

        with pytest.raises(IntegrityError):
            await db_session.flush()
        await db_session.rollback()

    async def test_lost_race_reports_registration_closed(self, client: AsyncClient, user, mocker):
        """Both requests saw an empty table; the loser hits the unique claim on commit."""
        mocker.patch("app.api.endpoints.auth.count_registered_users", return_value=0)

        response = await client.post("/api/auth/register", json={**VALID_PAYLOAD, "email": "bob@example.com"})

        assert response.status_code == 403
        assert response.json()["code"] == "REGISTRATION_CLOSED"
