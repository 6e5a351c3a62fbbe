"""Pytest fixtures for API-level tests."""

import uuid
from collections.abc import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from src.app import app
from src.database.session import get_db
from src.models.enums import UserRole
from src.modules.members.auth import AuthenticatedUser, get_current_user


@pytest.fixture
def mock_session() -> AsyncMock:
    session = AsyncMock()
    session.add = MagicMock()
    return session


@pytest.fixture
def current_user() -> AuthenticatedUser:
    """The caller for API tests; override the role per test when needed."""
    return AuthenticatedUser(
        id=uuid.uuid4(), email="council@example.com", role=UserRole.COUNCIL, xp_total=500
    )


@pytest_asyncio.fixture
async def async_client(
    mock_session: AsyncMock, current_user: AuthenticatedUser
) -> AsyncGenerator[AsyncClient, None]:
    """Yield an httpx AsyncClient wired to the app with auth and the DB session stubbed."""

    async def override_get_db() -> AsyncGenerator[AsyncMock, None]:
        yield mock_session

    async def override_get_current_user() -> AuthenticatedUser:
        return current_user

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
