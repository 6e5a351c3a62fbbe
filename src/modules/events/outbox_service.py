"""OutboxService — publish domain events and walk them through delivery states."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.enums import EventStatus
from src.models.event_outbox import EventOutbox


class OutboxService:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def publish_event(
        self,
        event_type: str,
        aggregate_type: str,
        aggregate_id: uuid.UUID | str,
        payload: dict,
    ) -> EventOutbox:
        """Stage an event; it becomes visible only when the caller's transaction commits."""
        event = EventOutbox(
            event_type=event_type,
            aggregate_type=aggregate_type,
            aggregate_id=str(aggregate_id),
            payload=payload,
            status=EventStatus.PENDING,
        )
        self.session.add(event)
        return event

    async def claim_pending(self, batch_size: int = 50) -> list[EventOutbox]:
        """Lock a batch of pending events, skipping rows held by other workers."""
        result = await self.session.execute(
            select(EventOutbox)
            .where(EventOutbox.status == EventStatus.PENDING)
            .order_by(EventOutbox.created_at.asc())
            .limit(batch_size)
            .with_for_update(skip_locked=True)
        )
        return list(result.scalars().all())

    @staticmethod
    def mark_completed(event: EventOutbox) -> None:
        event.status = EventStatus.COMPLETED
        event.processed_at = datetime.now(UTC)
        event.last_error = None

    @staticmethod
    def mark_failed(event: EventOutbox, error: str) -> None:
        """Record a failed attempt; the event is retried until max_attempts is reached."""
        event.attempts += 1
        event.last_error = error[:2000]
        event.status = (
            EventStatus.FAILED if event.attempts >= event.max_attempts else EventStatus.PENDING
        )
