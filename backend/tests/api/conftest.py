"""Test fixtures for API tests."""

from collections.abc import AsyncGenerator

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from tierplan.main import app
from tierplan.models.user import User, UserRole
from tierplan.utils.db import get_db


@pytest_asyncio.fixture(scope="function")
async def test_app(session_factory):
    """The application wired to the per-test database."""

    async def override_get_db():
        """Commit after each request like production get_db()."""
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    yield app
    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def test_client(test_app) -> AsyncGenerator[AsyncClient, None]:
    """Create an async HTTP client for testing."""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest_asyncio.fixture(scope="function")
async def register(test_client):
    """Register through the API and return (body, auth headers)."""

    async def _register(name: str, email: str, referral_code: str | None = None):
        payload = {"name": name, "email": email, "password": "SecurePass123"}
        if referral_code is not None:
            payload["referralCode"] = referral_code
        response = await test_client.post("/api/v1/auth/register", json=payload)
        assert response.status_code == 201, response.text
        body = response.json()
        return body, {"Authorization": f"Bearer {body['accessToken']}"}

    return _register


@pytest_asyncio.fixture(scope="function")
async def admin_headers(register, session_factory):
    """Auth headers for a registered user promoted to admin."""
    body, headers = await register("Operator", "operator@example.com")
    async with session_factory() as session:
        user = await session.get(User, body["user"]["id"])
        user.role = UserRole.ADMIN.value
        await session.commit()
    return headers
