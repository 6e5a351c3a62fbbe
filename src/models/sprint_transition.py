"""SprintTransition model — phase transition audit log for sprints."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.database.base import Base, UUIDPrimaryKeyMixin, pg_enum
from src.models.enums import SprintStatus


class SprintTransition(UUIDPrimaryKeyMixin, Base):
    __tablename__ = "sprint_transitions"

    sprint_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("sprints.id", ondelete="CASCADE"),
        nullable=False,
    )
    from_status: Mapped[SprintStatus] = mapped_column(
        pg_enum(SprintStatus, "sprintstatus"), nullable=False
    )
    to_status: Mapped[SprintStatus] = mapped_column(
        pg_enum(SprintStatus, "sprintstatus"), nullable=False
    )
    transitioned_by: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("user_profiles.id", ondelete="RESTRICT"),
        nullable=False,
    )
    metadata_extra: Mapped[dict] = mapped_column(JSONB, nullable=False, server_default="{}")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default="now()", nullable=False
    )

    __table_args__ = (Index("ix_sprint_transitions_sprint_id", "sprint_id"),)
