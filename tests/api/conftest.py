"""Shared fixtures for API tests."""
import os
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from unittest.mock import patch

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from api.main import app
from core.config import Settings, get_settings
from db.session import get_async_session
from models.user import User

# Constant for non-existent entity ID
FAKE_UUID = "00000000-0000-0000-0000-000000000000"


@asynccontextmanager
async def authenticated_client(
    db_session: AsyncSession,
    token: str | None = None,
) -> AsyncGenerator[AsyncClient]:
    """
    Yield a client that goes through real authentication (dev mode off).

    Restores the previous dependency overrides on exit, so the dev-mode
    `client` fixture keeps working afterwards.
    """
    previous = dict(app.dependency_overrides)

    async def override_get_async_session() -> AsyncGenerator[AsyncSession]:
        yield db_session

    def override_get_settings() -> Settings:
        return Settings(database_url=os.environ["DATABASE_URL"], dev_mode=False)

    app.dependency_overrides[get_async_session] = override_get_async_session
    app.dependency_overrides[get_settings] = override_get_settings

    headers = {"Authorization": f"Bearer {token}"} if token else {}
    try:
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
            headers=headers,
        ) as auth_client:
            yield auth_client
    finally:
        app.dependency_overrides.clear()
        app.dependency_overrides.update(previous)


@asynccontextmanager
async def create_user2_client(
    db_session: AsyncSession,
    auth0_id: str = "auth0|user2",
    email: str = "user2@example.com",
) -> AsyncGenerator[AsyncClient]:
    """
    Create an authenticated AsyncClient for a second user.

    The user row exists up front and the bearer token verifies to its Auth0
    subject, so requests go through real owner resolution.
    """
    user2 = User(auth0_id=auth0_id, email=email)
    db_session.add(user2)
    await db_session.flush()

    claims = {"sub": auth0_id, "email": email}
    with patch("core.auth.decode_jwt", return_value=claims):
        async with authenticated_client(db_session, "user2-access-token") as user2_client:
            yield user2_client


@pytest.fixture
async def category_id(client: AsyncClient) -> str:
    """Id of a category owned by the dev user."""
    response = await client.post("/categories/", json={"name": "Reading"})
    assert response.status_code == 201
    return response.json()["id"]
