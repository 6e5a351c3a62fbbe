"""SprintSnapshot model — immutable record written when a sprint completes."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Integer, Numeric
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.database.base import Base, UUIDPrimaryKeyMixin, pg_enum
from src.models.enums import IncompleteAction


class SprintSnapshot(UUIDPrimaryKeyMixin, Base):
    __tablename__ = "sprint_snapshots"

    sprint_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("sprints.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    completed_by: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("user_profiles.id", ondelete="RESTRICT"),
        nullable=False,
    )
    total_tasks: Mapped[int] = mapped_column(Integer, nullable=False)
    completed_tasks: Mapped[int] = mapped_column(Integer, nullable=False)
    incomplete_tasks: Mapped[int] = mapped_column(Integer, nullable=False)
    total_points: Mapped[int] = mapped_column(Integer, nullable=False)
    completed_points: Mapped[int] = mapped_column(Integer, nullable=False)
    completion_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    task_summary: Mapped[list] = mapped_column(JSONB, nullable=False, server_default="[]")
    incomplete_action: Mapped[IncompleteAction] = mapped_column(
        pg_enum(IncompleteAction, "incompleteaction"), nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default="now()", nullable=False
    )
