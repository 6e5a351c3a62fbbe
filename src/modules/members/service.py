"""ProfileService — member lookup and the XP / points ledger."""

from __future__ import annotations

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.exceptions import NotFoundException
from src.models.org import Org
from src.models.user_profile import UserProfile

logger = logging.getLogger(__name__)


class ProfileService:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get_profile(self, user_id: uuid.UUID, *, for_update: bool = False) -> UserProfile:
        stmt = select(UserProfile).where(UserProfile.id == user_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.db.execute(stmt)
        profile = result.scalar_one_or_none()
        if profile is None:
            raise NotFoundException(f"Profile {user_id} not found")
        return profile

    async def adjust_xp(self, user_id: uuid.UUID, delta: int, reason: str) -> int:
        """Apply an XP delta, floored at zero. Returns the new balance."""
        if delta == 0:
            profile = await self.get_profile(user_id)
            return profile.xp_total
        profile = await self.get_profile(user_id, for_update=True)
        before = profile.xp_total
        profile.xp_total = max(0, before + delta)
        logger.info(
            "XP %s for %s: %d -> %d (%s)", f"{delta:+d}", user_id, before, profile.xp_total, reason
        )
        return profile.xp_total

    async def adjust_points(self, user_id: uuid.UUID, delta: int) -> int:
        """Apply a task-points delta, floored at zero. Returns the new total."""
        profile = await self.get_profile(user_id, for_update=delta != 0)
        profile.total_points = max(0, profile.total_points + delta)
        return profile.total_points

    async def get_org(self) -> Org | None:
        """Single-org install: the oldest org row carries the platform config."""
        result = await self.db.execute(select(Org).order_by(Org.created_at.asc()).limit(1))
        return result.scalar_one_or_none()
