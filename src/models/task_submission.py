"""TaskSubmission model — work handed in for review."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.database.base import Base, TimestampMixin, UUIDPrimaryKeyMixin, pg_enum
from src.models.enums import SubmissionReviewStatus


class TaskSubmission(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "task_submissions"

    task_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("user_profiles.id", ondelete="CASCADE"),
        nullable=False,
    )
    reviewer_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("user_profiles.id", ondelete="SET NULL")
    )
    content: Mapped[str | None] = mapped_column(Text)
    review_status: Mapped[SubmissionReviewStatus] = mapped_column(
        pg_enum(SubmissionReviewStatus, "submissionreviewstatus"),
        nullable=False,
        server_default="pending",
    )
    quality_score: Mapped[int | None] = mapped_column(Integer)
    earned_points: Mapped[int | None] = mapped_column(Integer)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        Index("ix_task_submissions_task_id", "task_id"),
        Index("ix_task_submissions_user_id", "user_id"),
    )
