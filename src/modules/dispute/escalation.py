"""Automatic dispute escalation.

Two system-driven passes share this module:

* the sprint-close pass, run when a sprint completes, which pushes every
  still-open dispute bound to that sprint up a tier (or extends admin-tier
  appeal deadlines);
* the reviewer SLA sweep, run when a sprint opens its dispute window and
  periodically from Celery beat, which extends overdue reviewer response
  windows and escalates the dispute one tier.

Both record ``DisputeTransition`` rows with no actor and publish outbox
events in the caller's transaction.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.models.dispute import Dispute
from src.models.dispute_transition import DisputeTransition
from src.modules.dispute.constants import (
    ACTIVE_STATUSES,
    EVENT_DISPUTE_ADMIN_ATTENTION,
    EVENT_DISPUTE_DEADLINE_EXTENDED,
    EVENT_DISPUTE_ESCALATED,
    SLA_WATCHED_STATUSES,
)
from src.modules.dispute.policy import plan_reviewer_sla, plan_sprint_close_escalation
from src.modules.events.outbox_service import OutboxService

logger = logging.getLogger(__name__)


@dataclass
class SprintCloseEscalationResult:
    escalated_count: int = 0
    admin_extended_count: int = 0


@dataclass
class ReviewerSlaResult:
    escalated_count: int = 0
    extended_count: int = 0
    admin_notified_count: int = 0

    def as_dict(self) -> dict:
        return {
            "escalated_count": self.escalated_count,
            "extended_count": self.extended_count,
            "admin_notified_count": self.admin_notified_count,
        }


class DisputeEscalationService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.outbox = OutboxService(db)

    def _record(self, dispute: Dispute, from_status, from_tier, reason: str) -> None:
        self.db.add(
            DisputeTransition(
                dispute_id=dispute.id,
                from_status=from_status,
                to_status=dispute.status,
                from_tier=from_tier,
                to_tier=dispute.tier,
                transitioned_by=None,
                reason=reason,
            )
        )

    async def _publish(self, event_type: str, dispute: Dispute, **extra) -> None:
        payload = {
            "dispute_id": str(dispute.id),
            "status": dispute.status.value,
            "tier": dispute.tier.value,
            "sprint_id": str(dispute.sprint_id) if dispute.sprint_id else None,
        }
        payload.update(extra)
        await self.outbox.publish_event(event_type, "dispute", dispute.id, payload)

    async def escalate_for_sprint_close(
        self,
        sprint_id: uuid.UUID,
        now: datetime | None = None,
    ) -> SprintCloseEscalationResult:
        now = now or datetime.now(UTC)
        result = await self.db.execute(
            select(Dispute)
            .where(Dispute.sprint_id == sprint_id, Dispute.status.in_(ACTIVE_STATUSES))
            .order_by(Dispute.created_at.asc())
            .with_for_update()
        )
        outcome = SprintCloseEscalationResult()

        for dispute in result.scalars().all():
            plan = plan_sprint_close_escalation(
                dispute.status,
                dispute.tier,
                dispute.appeal_deadline,
                now,
                settings.dispute_admin_extension_hours,
            )
            if plan is None:
                continue

            from_status, from_tier = dispute.status, dispute.tier
            if plan.is_admin_extension:
                dispute.appeal_deadline = plan.appeal_deadline
                outcome.admin_extended_count += 1
                self._record(dispute, from_status, from_tier, "Sprint closed: admin deadline extended")
                await self._publish(
                    EVENT_DISPUTE_DEADLINE_EXTENDED,
                    dispute,
                    appeal_deadline=plan.appeal_deadline.isoformat(),
                    trigger="sprint_close",
                )
                continue

            dispute.status = plan.to_status
            dispute.tier = plan.to_tier
            if plan.clear_arbitrator:
                dispute.arbitrator_id = None
            outcome.escalated_count += 1
            self._record(dispute, from_status, from_tier, "Sprint closed: auto-escalated")
            await self._publish(
                EVENT_DISPUTE_ESCALATED,
                dispute,
                from_tier=from_tier.value,
                trigger="sprint_close",
            )

        await self.db.flush()
        if outcome.escalated_count or outcome.admin_extended_count:
            logger.info(
                "Sprint %s close escalation: %d escalated, %d admin extensions",
                sprint_id, outcome.escalated_count, outcome.admin_extended_count,
            )
        return outcome

    async def sweep_reviewer_sla(
        self,
        sprint_id: uuid.UUID | None = None,
        now: datetime | None = None,
    ) -> ReviewerSlaResult:
        """Extend and escalate disputes whose reviewer missed the response deadline.

        Scoped to one sprint when ``sprint_id`` is given, otherwise platform-wide.
        """
        now = now or datetime.now(UTC)
        query = select(Dispute).where(
            Dispute.status.in_(SLA_WATCHED_STATUSES),
            Dispute.response_submitted_at.is_(None),
            Dispute.response_deadline <= now,
        )
        if sprint_id is not None:
            query = query.where(Dispute.sprint_id == sprint_id)
        result = await self.db.execute(
            query.order_by(Dispute.response_deadline.asc()).with_for_update(skip_locked=True)
        )
        outcome = ReviewerSlaResult()

        for dispute in result.scalars().all():
            plan = plan_reviewer_sla(
                dispute.status,
                dispute.tier,
                dispute.response_deadline,
                dispute.response_submitted_at,
                now,
                settings.dispute_sla_extension_hours,
            )
            if plan is None:
                continue

            from_status, from_tier = dispute.status, dispute.tier
            dispute.response_deadline = plan.response_deadline
            dispute.status = plan.to_status
            dispute.tier = plan.to_tier
            outcome.extended_count += 1
            if plan.escalated:
                outcome.escalated_count += 1
            self._record(dispute, from_status, from_tier, "Reviewer response SLA missed")
            await self._publish(
                EVENT_DISPUTE_ESCALATED if plan.escalated else EVENT_DISPUTE_DEADLINE_EXTENDED,
                dispute,
                from_tier=from_tier.value,
                response_deadline=plan.response_deadline.isoformat(),
                trigger="reviewer_sla",
            )
            if plan.needs_admin:
                outcome.admin_notified_count += 1
                await self._publish(
                    EVENT_DISPUTE_ADMIN_ATTENTION, dispute, reason="reviewer_sla"
                )

        await self.db.flush()
        if outcome.extended_count:
            logger.info(
                "Reviewer SLA sweep%s: %d extended, %d escalated, %d admin notified",
                f" for sprint {sprint_id}" if sprint_id else "",
                outcome.extended_count, outcome.escalated_count, outcome.admin_notified_count,
            )
        return outcome
