"""Tests for JWT authentication and role gating."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.security import HTTPAuthorizationCredentials
from jose import jwt

from src.config import settings
from src.exceptions import ForbiddenException, UnauthorizedException
from src.models.enums import UserRole
from src.modules.members.auth import AuthenticatedUser, get_current_user
from src.modules.members.dependencies import require_admin, require_council


def _token(sub: str | None, expires_in: timedelta = timedelta(minutes=5)) -> str:
    claims = {"exp": datetime.now(UTC) + expires_in}
    if sub is not None:
        claims["sub"] = sub
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def _credentials(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)


def _db_returning(profile) -> AsyncMock:
    db = AsyncMock()
    result = MagicMock()
    result.scalar_one_or_none.return_value = profile
    db.execute.return_value = result
    return db


def _request() -> SimpleNamespace:
    return SimpleNamespace(state=SimpleNamespace())


class TestGetCurrentUser:
    @pytest.mark.asyncio
    async def test_role_comes_from_profile(self):
        user_id = uuid.uuid4()
        profile = SimpleNamespace(
            id=user_id, email="ada@example.com", role=UserRole.COUNCIL, xp_total=320
        )
        request = _request()

        user = await get_current_user(
            request, _credentials(_token(str(user_id))), _db_returning(profile)
        )

        assert user.id == user_id
        assert user.role == UserRole.COUNCIL
        assert user.xp_total == 320
        assert request.state.user is user

    @pytest.mark.asyncio
    async def test_missing_credentials(self):
        with pytest.raises(UnauthorizedException):
            await get_current_user(_request(), None, _db_returning(None))

    @pytest.mark.asyncio
    async def test_expired_token(self):
        token = _token(str(uuid.uuid4()), expires_in=timedelta(minutes=-1))
        with pytest.raises(UnauthorizedException):
            await get_current_user(_request(), _credentials(token), _db_returning(None))

    @pytest.mark.asyncio
    async def test_bad_signature(self):
        token = jwt.encode(
            {"sub": str(uuid.uuid4())}, "some-other-secret", algorithm=settings.jwt_algorithm
        )
        with pytest.raises(UnauthorizedException):
            await get_current_user(_request(), _credentials(token), _db_returning(None))

    @pytest.mark.asyncio
    async def test_subject_must_be_uuid(self):
        with pytest.raises(UnauthorizedException):
            await get_current_user(_request(), _credentials(_token("not-a-uuid")), _db_returning(None))

    @pytest.mark.asyncio
    async def test_unknown_profile(self):
        token = _token(str(uuid.uuid4()))
        with pytest.raises(UnauthorizedException):
            await get_current_user(_request(), _credentials(token), _db_returning(None))


class TestRoleGates:
    def _user(self, role: UserRole) -> AuthenticatedUser:
        return AuthenticatedUser(id=uuid.uuid4(), email="x@example.com", role=role)

    @pytest.mark.asyncio
    async def test_council_gate(self):
        assert (await require_council(self._user(UserRole.COUNCIL))).role == UserRole.COUNCIL
        assert (await require_council(self._user(UserRole.ADMIN))).role == UserRole.ADMIN
        with pytest.raises(ForbiddenException):
            await require_council(self._user(UserRole.MEMBER))

    @pytest.mark.asyncio
    async def test_admin_gate(self):
        with pytest.raises(ForbiddenException):
            await require_admin(self._user(UserRole.COUNCIL))

    def test_capability_properties(self) -> None:
        assert self._user(UserRole.ADMIN).is_admin
        assert self._user(UserRole.COUNCIL).is_council_or_admin
        assert not self._user(UserRole.MEMBER).is_council_or_admin
