"""Dispute model — challenges against a submission review."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, Integer, Text, text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.database.base import Base, TimestampMixin, UUIDPrimaryKeyMixin, pg_enum
from src.models.enums import (
    DisputeReason,
    DisputeResolution,
    DisputeStatus,
    DisputeTier,
)

if TYPE_CHECKING:
    from src.models.dispute_comment import DisputeComment
    from src.models.dispute_transition import DisputeTransition


class Dispute(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "disputes"

    # Links
    submission_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("task_submissions.id", ondelete="CASCADE"),
        nullable=False,
    )
    task_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=False,
    )
    sprint_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("sprints.id", ondelete="SET NULL")
    )

    # Parties
    disputant_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("user_profiles.id", ondelete="RESTRICT"),
        nullable=False,
    )
    reviewer_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("user_profiles.id", ondelete="RESTRICT"),
        nullable=False,
    )
    arbitrator_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("user_profiles.id", ondelete="SET NULL")
    )

    status: Mapped[DisputeStatus] = mapped_column(
        pg_enum(DisputeStatus, "disputestatus"), nullable=False, server_default="open"
    )
    tier: Mapped[DisputeTier] = mapped_column(
        pg_enum(DisputeTier, "disputetier"), nullable=False, server_default="council"
    )
    reason: Mapped[DisputeReason] = mapped_column(
        pg_enum(DisputeReason, "disputereason"), nullable=False
    )

    # Evidence
    evidence_text: Mapped[str] = mapped_column(Text, nullable=False)
    evidence_links: Mapped[list] = mapped_column(JSONB, nullable=False, server_default="[]")
    evidence_files: Mapped[list] = mapped_column(JSONB, nullable=False, server_default="[]")
    response_text: Mapped[str | None] = mapped_column(Text)
    response_links: Mapped[list] = mapped_column(JSONB, nullable=False, server_default="[]")
    response_submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Deadlines
    response_deadline: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    mediation_deadline: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    appeal_deadline: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Two-party mediation confirmation
    mediation_proposed_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("user_profiles.id", ondelete="SET NULL")
    )
    mediation_proposed_outcome: Mapped[str | None] = mapped_column(Text)
    mediation_proposed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Resolution
    resolution: Mapped[DisputeResolution | None] = mapped_column(
        pg_enum(DisputeResolution, "disputeresolution")
    )
    resolution_notes: Mapped[str | None] = mapped_column(Text)
    new_quality_score: Mapped[int | None] = mapped_column(Integer)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # XP
    xp_stake: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    xp_refunded: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    # Submission review state captured at filing; an upheld ruling restores it
    review_snapshot: Mapped[dict] = mapped_column(JSONB, nullable=False, server_default="{}")

    # Relationships
    comments: Mapped[list[DisputeComment]] = relationship(
        "DisputeComment", back_populates="dispute", lazy="noload", cascade="all, delete-orphan"
    )
    transitions: Mapped[list[DisputeTransition]] = relationship(
        "DisputeTransition", back_populates="dispute", lazy="noload", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_disputes_sprint_id", "sprint_id", postgresql_where=text("sprint_id IS NOT NULL")),
        Index("ix_disputes_disputant_created", "disputant_id", "created_at"),
        Index("ix_disputes_arbitrator_id", "arbitrator_id"),
        Index("ix_disputes_status", "status"),
        Index(
            "ux_disputes_active_submission",
            "submission_id",
            unique=True,
            postgresql_where=text(
                "status NOT IN ('resolved', 'dismissed', 'withdrawn', 'mediated')"
            ),
        ),
    )

    def __repr__(self) -> str:
        return f"<Dispute id={self.id} status={self.status} tier={self.tier}>"
