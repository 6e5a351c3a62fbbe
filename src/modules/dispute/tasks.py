"""Celery tasks for dispute SLA enforcement."""

from __future__ import annotations

import asyncio
import logging

from celery_app import celery
from src.database.session import session_scope
from src.modules.dispute.escalation import DisputeEscalationService

logger = logging.getLogger(__name__)


async def _sweep_reviewer_sla_async() -> dict:
    async with session_scope() as session:
        result = await DisputeEscalationService(session).sweep_reviewer_sla()
    return result.as_dict()


@celery.task(name="src.modules.dispute.tasks.sweep_reviewer_sla")
def sweep_reviewer_sla():
    """Platform-wide reviewer response SLA sweep."""
    stats = asyncio.run(_sweep_reviewer_sla_async())
    logger.info("Reviewer SLA sweep complete: %s", stats)
    return stats
