"""Outbox processor — delivers pending events to registered handlers."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from src.database.engine import async_session
from src.models.enums import EventStatus
from src.models.event_outbox import EventOutbox
from src.modules.events.handlers import EventHandlerRegistry
from src.modules.events.outbox_service import OutboxService

logger = logging.getLogger(__name__)


class OutboxProcessor:
    """Processes one batch per call inside a single transaction.

    Rows are claimed with FOR UPDATE SKIP LOCKED so several workers can run
    concurrently without double delivery.
    """

    def __init__(self, session_factory: Callable[[], AsyncSession] = async_session) -> None:
        self.session_factory = session_factory

    async def process_batch(self, batch_size: int = 50) -> dict:
        processed = 0
        failed = 0

        async with self.session_factory() as session:
            outbox = OutboxService(session)
            events = await outbox.claim_pending(batch_size)
            for event in events:
                errors = EventHandlerRegistry.dispatch(event.event_type, event.payload)
                if errors:
                    outbox.mark_failed(event, "; ".join(errors))
                    failed += 1
                else:
                    outbox.mark_completed(event)
                    processed += 1
            await session.commit()

        if events:
            logger.info("Outbox batch: %d delivered, %d failed", processed, failed)
        return {"processed": processed, "failed": failed}

    async def cleanup_completed(self, retention_days: int = 30) -> int:
        """Delete delivered events older than the retention window."""
        cutoff = datetime.now(UTC) - timedelta(days=retention_days)
        async with self.session_factory() as session:
            result = await session.execute(
                delete(EventOutbox).where(
                    EventOutbox.status == EventStatus.COMPLETED,
                    EventOutbox.processed_at < cutoff,
                )
            )
            await session.commit()
        logger.info("Removed %d delivered outbox events", result.rowcount)
        return result.rowcount
