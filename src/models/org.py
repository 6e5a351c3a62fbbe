"""Org model — single-organization install carrying gamification and rewards config."""

from __future__ import annotations

from sqlalchemy import String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from src.database.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class Org(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "orgs"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    gamification_config: Mapped[dict] = mapped_column(
        JSONB, nullable=False, server_default="{}"
    )
    rewards_config: Mapped[dict] = mapped_column(JSONB, nullable=False, server_default="{}")
