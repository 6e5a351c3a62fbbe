"""JWT authentication dependency.

Bearer tokens are validated with the shared secret; the token only supplies
the subject. Role and XP are always read from ``user_profiles`` so a demoted
member cannot keep acting on a stale token.
"""

import logging
import uuid
from dataclasses import dataclass

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.database.session import get_db
from src.exceptions import UnauthorizedException
from src.models.enums import UserRole
from src.models.user_profile import UserProfile

logger = logging.getLogger(__name__)

_bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class AuthenticatedUser:
    """The caller, as known to the database at request time."""

    id: uuid.UUID
    email: str
    role: UserRole
    xp_total: int = 0

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def is_council_or_admin(self) -> bool:
        return self.role in (UserRole.COUNCIL, UserRole.ADMIN)


def _decode_token(token: str) -> dict:
    try:
        return jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError as exc:
        logger.warning("JWT validation failed: %s", exc)
        raise UnauthorizedException("Invalid or expired token") from exc


def _subject_id(payload: dict) -> uuid.UUID:
    try:
        return uuid.UUID(payload["sub"])
    except (KeyError, TypeError, ValueError) as exc:
        raise UnauthorizedException("Token is missing required claims") from exc


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> AuthenticatedUser:
    if credentials is None:
        raise UnauthorizedException("Authentication required")

    user_id = _subject_id(_decode_token(credentials.credentials))
    result = await db.execute(select(UserProfile).where(UserProfile.id == user_id))
    profile = result.scalar_one_or_none()
    if profile is None:
        raise UnauthorizedException("Unknown user")

    user = AuthenticatedUser(
        id=profile.id,
        email=profile.email,
        role=profile.role,
        xp_total=profile.xp_total,
    )
    request.state.user = user
    return user
