"""Celery tasks for event outbox delivery."""

import asyncio

from celery_app import celery
from src.config import settings
from src.modules.dispute.handlers import register_dispute_handlers
from src.modules.events.outbox_processor import OutboxProcessor


@celery.task(name="src.modules.events.tasks.process_outbox")
def process_outbox():
    """Deliver a batch of pending outbox events."""
    register_dispute_handlers()
    return asyncio.run(OutboxProcessor().process_batch(settings.event_outbox_batch_size))


@celery.task(name="src.modules.events.tasks.cleanup_outbox")
def cleanup_outbox():
    """Drop delivered outbox events past retention."""
    return asyncio.run(OutboxProcessor().cleanup_completed())
