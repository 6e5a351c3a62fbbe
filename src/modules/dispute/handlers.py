"""Outbox handlers for dispute events."""

import logging

from src.modules.dispute.constants import (
    EVENT_DISPUTE_ADMIN_ATTENTION,
    EVENT_DISPUTE_ESCALATED,
)
from src.modules.events.handlers import EventHandlerRegistry

logger = logging.getLogger(__name__)


def log_admin_attention(payload: dict) -> None:
    """Surface disputes that reached the admin tier without a reviewer response."""
    logger.warning(
        "Dispute %s needs admin attention (%s, sprint=%s)",
        payload["dispute_id"], payload.get("reason", "unspecified"), payload.get("sprint_id"),
    )


def log_escalation(payload: dict) -> None:
    logger.info(
        "Dispute %s escalated %s -> %s (%s)",
        payload["dispute_id"], payload.get("from_tier"), payload.get("tier"), payload.get("trigger"),
    )


def register_dispute_handlers() -> None:
    EventHandlerRegistry.register(EVENT_DISPUTE_ADMIN_ATTENTION, log_admin_attention)
    EventHandlerRegistry.register(EVENT_DISPUTE_ESCALATED, log_escalation)
