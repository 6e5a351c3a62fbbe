"""EventOutbox model — domain events written in the same transaction as the state change."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, String, Text, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from src.database.base import Base, TimestampMixin, UUIDPrimaryKeyMixin, pg_enum
from src.models.enums import EventStatus


class EventOutbox(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "event_outbox"

    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    # "dispute" or "sprint"
    aggregate_type: Mapped[str] = mapped_column(String(50), nullable=False)
    aggregate_id: Mapped[str] = mapped_column(String(64), nullable=False)
    payload: Mapped[dict] = mapped_column(JSONB, nullable=False, server_default="{}")
    status: Mapped[EventStatus] = mapped_column(
        pg_enum(EventStatus, "eventstatus"),
        nullable=False,
        server_default="PENDING",
    )
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    max_attempts: Mapped[int] = mapped_column(Integer, nullable=False, server_default="5")
    last_error: Mapped[str | None] = mapped_column(Text)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        Index("ix_event_outbox_aggregate", "aggregate_type", "aggregate_id"),
        Index(
            "ix_event_outbox_pending",
            "created_at",
            postgresql_where=text("status = 'PENDING'"),
        ),
    )

    def __repr__(self) -> str:
        return f"<EventOutbox {self.event_type} {self.aggregate_type}/{self.aggregate_id}>"
