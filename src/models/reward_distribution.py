"""RewardDistribution model — per-member reward allocations."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Index, Integer, Numeric
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.database.base import Base, UUIDPrimaryKeyMixin, pg_enum
from src.models.enums import DistributionType


class RewardDistribution(UUIDPrimaryKeyMixin, Base):
    __tablename__ = "reward_distributions"

    sprint_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("sprints.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("user_profiles.id", ondelete="CASCADE"),
        nullable=False,
    )
    distribution_type: Mapped[DistributionType] = mapped_column(
        pg_enum(DistributionType, "distributiontype"), nullable=False, server_default="epoch"
    )
    points: Mapped[int] = mapped_column(Integer, nullable=False)
    share: Mapped[Decimal] = mapped_column(Numeric(12, 9), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(20, 9), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default="now()", nullable=False
    )

    __table_args__ = (
        Index("ix_reward_distributions_sprint_type", "sprint_id", "distribution_type"),
    )
