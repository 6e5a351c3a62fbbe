"""FastAPI dependency factories for role gating."""

from fastapi import Depends

from src.exceptions import ForbiddenException
from src.models.enums import UserRole
from src.modules.members.auth import AuthenticatedUser, get_current_user


def require_roles(*roles: UserRole):
    """Return a dependency that admits only callers holding one of ``roles``."""
    allowed = frozenset(roles)

    async def _check(user: AuthenticatedUser = Depends(get_current_user)) -> AuthenticatedUser:
        if user.role not in allowed:
            names = ", ".join(sorted(r.value for r in allowed))
            raise ForbiddenException(f"Requires one of roles: {names}")
        return user

    return _check


require_council = require_roles(UserRole.COUNCIL, UserRole.ADMIN)
require_admin = require_roles(UserRole.ADMIN)
