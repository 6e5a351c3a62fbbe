"""DisputeComment model — discussion thread on a dispute."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.database.base import Base, UUIDPrimaryKeyMixin, pg_enum
from src.models.enums import CommentVisibility

if TYPE_CHECKING:
    from src.models.dispute import Dispute


class DisputeComment(UUIDPrimaryKeyMixin, Base):
    __tablename__ = "dispute_comments"

    dispute_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("disputes.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("user_profiles.id", ondelete="RESTRICT"),
        nullable=False,
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    visibility: Mapped[CommentVisibility] = mapped_column(
        pg_enum(CommentVisibility, "commentvisibility"),
        nullable=False,
        server_default="parties_only",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default="now()", nullable=False
    )

    dispute: Mapped[Dispute] = relationship(
        "Dispute", back_populates="comments", lazy="noload"
    )

    __table_args__ = (
        Index("ix_dispute_comments_dispute_id", "dispute_id"),
    )
