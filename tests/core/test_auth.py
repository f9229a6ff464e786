import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.auth.jwt import create_refresh_token, decode_token
from src.core.auth.models import UserRole
from src.core.auth.service import AuthService
from src.core.exceptions import AuthenticationError, DuplicateError


@pytest.fixture
async def bursar(db_session: AsyncSession):
    user = await AuthService(db_session).create_user(
        email="Bursar@School.com ",
        password="Password123",
        full_name="School Bursar",
        role=UserRole.ACCOUNTANT,
    )
    await db_session.commit()
    return user


class TestAuthService:
    """Tests for AuthService."""

    async def test_create_user_normalises_email(self, bursar):
        assert bursar.id is not None
        assert bursar.email == "bursar@school.com"
        assert bursar.role == "Accountant"
        assert bursar.password_hash != "Password123"

    async def test_duplicate_email(self, db_session: AsyncSession, bursar):
        with pytest.raises(DuplicateError) as exc_info:
            await AuthService(db_session).create_user(
                email="bursar@school.com",
                password="Another123",
                full_name="Someone Else",
                role=UserRole.USER,
            )
        assert "already exists" in str(exc_info.value)

    async def test_authenticate(self, db_session: AsyncSession, bursar):
        user, access_token, refresh_token = await AuthService(db_session).authenticate(
            email="bursar@school.com", password="Password123"
        )

        assert user.id == bursar.id
        assert user.last_login_at is not None
        assert decode_token(access_token)["role"] == "Accountant"
        assert decode_token(refresh_token, token_type="refresh")["sub"] == str(bursar.id)

    async def test_wrong_password(self, db_session: AsyncSession, bursar):
        with pytest.raises(AuthenticationError):
            await AuthService(db_session).authenticate(
                email="bursar@school.com", password="WrongPassword"
            )

    async def test_deactivated_account(self, db_session: AsyncSession, bursar):
        bursar.is_active = False
        await db_session.flush()

        with pytest.raises(AuthenticationError) as exc_info:
            await AuthService(db_session).authenticate(
                email="bursar@school.com", password="Password123"
            )
        assert "deactivated" in str(exc_info.value)

        with pytest.raises(AuthenticationError):
            await AuthService(db_session).refresh_tokens(create_refresh_token(bursar.id))

    async def test_user_without_password_cannot_sign_in(self, db_session: AsyncSession):
        service = AuthService(db_session)
        user = await service.create_user(
            email="driver@school.com", password=None, full_name="Driver", role=UserRole.USER
        )
        assert user.can_login is False

        with pytest.raises(AuthenticationError):
            await service.authenticate(email="driver@school.com", password="anything")


class TestRoles:
    async def test_finance_roles(self, db_session: AsyncSession, bursar):
        teacher = await AuthService(db_session).create_user(
            email="teacher@school.com",
            password="Password123",
            full_name="Class Teacher",
            role=UserRole.USER,
        )

        assert bursar.has_role(UserRole.ADMIN, UserRole.ACCOUNTANT) is True
        assert bursar.has_role(UserRole.SUPER_ADMIN) is False
        assert bursar.can_manage_ledger is True
        assert teacher.can_manage_ledger is False


class TestAuthEndpoints:
    """Tests for auth API endpoints."""

    async def _login(self, client: AsyncClient) -> dict:
        response = await client.post(
            "/api/v1/auth/login",
            json={"email": "BURSAR@school.com", "password": "Password123"},
        )
        assert response.status_code == 200
        return response.json()["data"]

    async def test_login(self, client: AsyncClient, bursar):
        data = await self._login(client)

        assert data["token_type"] == "bearer"
        assert data["user"]["email"] == "bursar@school.com"
        assert data["user"]["can_manage_ledger"] is True

    async def test_login_wrong_credentials(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/auth/login",
            json={"email": "nobody@school.com", "password": "WrongPass"},
        )

        assert response.status_code == 401
        assert response.json()["success"] is False

    async def test_me(self, client: AsyncClient, bursar):
        tokens = await self._login(client)

        response = await client.get(
            "/api/v1/auth/me", headers={"Authorization": f"Bearer {tokens['access_token']}"}
        )

        assert response.status_code == 200
        assert response.json()["data"]["role"] == "Accountant"

    async def test_me_without_token(self, client: AsyncClient):
        response = await client.get("/api/v1/auth/me")
        assert response.status_code == 401

    async def test_me_with_garbage_token(self, client: AsyncClient):
        response = await client.get("/api/v1/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    async def test_refresh(self, client: AsyncClient, bursar):
        tokens = await self._login(client)

        response = await client.post(
            "/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]}
        )
        assert response.status_code == 200
        assert "access_token" in response.json()["data"]

        # An access token is not a refresh token
        response = await client.post(
            "/api/v1/auth/refresh", json={"refresh_token": tokens["access_token"]}
        )
        assert response.status_code == 401
