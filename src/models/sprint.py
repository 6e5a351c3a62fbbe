"""Sprint model — iteration cycle driven through the phase engine."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.database.base import Base, TimestampMixin, UUIDPrimaryKeyMixin, pg_enum
from src.models.enums import RewardSettlementStatus, SprintStatus


class Sprint(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "sprints"

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    goal: Mapped[str | None] = mapped_column(Text)
    capacity_points: Mapped[int | None] = mapped_column(Integer)
    start_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[SprintStatus] = mapped_column(
        pg_enum(SprintStatus, "sprintstatus"), nullable=False, server_default="planning"
    )
    created_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("user_profiles.id", ondelete="SET NULL")
    )

    # Phase timestamps
    active_started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    review_started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    dispute_window_started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    dispute_window_ends_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    settlement_started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Settlement gating
    settlement_blocked_reason: Mapped[str | None] = mapped_column(Text)
    settlement_integrity_flags: Mapped[list] = mapped_column(
        JSONB, nullable=False, server_default="[]"
    )

    # Reward settlement bookkeeping
    reward_pool: Mapped[Decimal | None] = mapped_column(Numeric(20, 9))
    reward_settlement_status: Mapped[RewardSettlementStatus] = mapped_column(
        pg_enum(RewardSettlementStatus, "rewardsettlementstatus"),
        nullable=False,
        server_default="pending",
    )
    reward_settlement_idempotency_key: Mapped[str | None] = mapped_column(String(255))
    reward_settlement_committed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True)
    )
    reward_settlement_kill_switch_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True)
    )
    reward_emission_cap: Mapped[Decimal | None] = mapped_column(Numeric(20, 9))
    reward_carryover_amount: Mapped[Decimal] = mapped_column(
        Numeric(20, 9), nullable=False, server_default="0"
    )
    reward_carryover_sprint_count: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default="0"
    )

    __table_args__ = (
        Index("ix_sprints_status", "status"),
        Index("ix_sprints_completed_at", "completed_at"),
    )
