"""Members module — authentication, role gating and the XP ledger."""

from src.modules.members.auth import AuthenticatedUser, get_current_user
from src.modules.members.dependencies import require_admin, require_council, require_roles
from src.modules.members.service import ProfileService

__all__ = [
    "AuthenticatedUser",
    "get_current_user",
    "require_roles",
    "require_council",
    "require_admin",
    "ProfileService",
]
