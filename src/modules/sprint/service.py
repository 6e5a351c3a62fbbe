"""SprintService — sprint CRUD and the forward-only phase engine."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.exceptions import (
    ConflictException,
    NotFoundException,
    ValidationException,
)
from src.models.enums import IncompleteAction, SprintStatus, TaskStatus
from src.models.sprint import Sprint
from src.models.sprint_snapshot import SprintSnapshot
from src.models.sprint_transition import SprintTransition
from src.models.task import Task
from src.models.user_profile import UserProfile
from src.modules.dispute.escalation import DisputeEscalationService
from src.modules.events.outbox_service import OutboxService
from src.modules.members.auth import AuthenticatedUser
from src.modules.rewards.service import RewardSettlementResult, RewardSettlementService
from src.modules.sprint.blockers import SettlementBlockerResolver, SettlementBlockers
from src.modules.sprint.constants import (
    EVENT_SPRINT_COMPLETED,
    EVENT_SPRINT_CREATED,
    EVENT_SPRINT_DELETED,
    EVENT_SPRINT_PHASE_CHANGED,
    EVENT_SPRINT_SETTLEMENT_BLOCKED,
    EXECUTION_STATUSES,
    can_transition,
    next_phase,
)
from src.modules.sprint.schemas import SprintCompleteRequest, SprintCreate, SprintUpdate
from src.modules.task.template_service import TaskTemplateService

logger = logging.getLogger(__name__)

CODE_SETTLEMENT_BLOCKED = "SETTLEMENT_BLOCKED"


@dataclass
class AdvanceRefusal:
    """A refused advance whose side effects (blocked reason, hold) must still commit."""

    code: str
    message: str
    context: dict = field(default_factory=dict)


@dataclass
class AdvanceOutcome:
    sprint: Sprint
    from_status: SprintStatus
    to_status: SprintStatus | None = None
    snapshot: SprintSnapshot | None = None
    refusal: AdvanceRefusal | None = None
    settlement_blockers: SettlementBlockers | None = None
    reward_settlement: RewardSettlementResult | None = None
    recurring_tasks_cloned: int | None = None
    disputes_escalated: int | None = None
    admin_dispute_extensions: int | None = None
    reviewer_sla: dict | None = None

    @property
    def refused(self) -> bool:
        return self.refusal is not None


def summarize_tasks(rows: list[tuple[Task, str | None]]) -> dict:
    """Totals and per-task summary for a sprint snapshot.

    ``rows`` pairs each task with its assignee's display name.
    """
    tasks = [task for task, _ in rows]
    completed = [t for t in tasks if t.status == TaskStatus.DONE]
    total = len(tasks)
    rate = Decimal(0)
    if total:
        rate = (Decimal(len(completed)) * 100 / Decimal(total)).quantize(
            Decimal("0.01"), rounding=ROUND_HALF_UP
        )
    return {
        "total_tasks": total,
        "completed_tasks": len(completed),
        "incomplete_tasks": total - len(completed),
        "total_points": sum(t.points or 0 for t in tasks),
        "completed_points": sum(t.points or 0 for t in completed),
        "completion_rate": rate,
        "task_summary": [
            {
                "id": str(task.id),
                "title": task.title,
                "status": task.status.value,
                "points": task.points,
                "assignee_name": name,
            }
            for task, name in rows
        ],
    }


class SprintService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.outbox = OutboxService(db)
        self.blockers = SettlementBlockerResolver(db)

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    async def get_sprint(self, sprint_id: uuid.UUID, *, for_update: bool = False) -> Sprint:
        stmt = select(Sprint).where(Sprint.id == sprint_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.db.execute(stmt)
        sprint = result.scalar_one_or_none()
        if sprint is None:
            raise NotFoundException(f"Sprint {sprint_id} not found")
        return sprint

    async def list_sprints(
        self,
        status: SprintStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Sprint], int]:
        query = select(Sprint)
        count_query = select(func.count(Sprint.id))
        if status is not None:
            query = query.where(Sprint.status == status)
            count_query = count_query.where(Sprint.status == status)

        total = (await self.db.execute(count_query)).scalar() or 0
        result = await self.db.execute(
            query.order_by(Sprint.created_at.desc()).limit(limit).offset(offset)
        )
        return list(result.scalars().all()), total

    async def create_sprint(self, data: SprintCreate, user: AuthenticatedUser) -> Sprint:
        sprint = Sprint(
            name=data.name,
            goal=data.goal,
            start_at=data.start_at,
            end_at=data.end_at,
            capacity_points=data.capacity_points,
            reward_pool=data.reward_pool,
            status=SprintStatus.PLANNING,
            created_by=user.id,
            settlement_integrity_flags=[],
        )
        self.db.add(sprint)
        await self.db.flush()
        await self.outbox.publish_event(
            EVENT_SPRINT_CREATED, "sprint", sprint.id, {"sprint_id": str(sprint.id), "name": sprint.name}
        )
        logger.info("Sprint %s created by %s", sprint.id, user.id)
        return sprint

    async def update_sprint(self, sprint_id: uuid.UUID, data: SprintUpdate) -> Sprint:
        sprint = await self.get_sprint(sprint_id, for_update=True)
        if sprint.status != SprintStatus.PLANNING:
            raise ConflictException("Only sprints in planning can be edited")

        for name, value in data.model_dump(exclude_unset=True).items():
            setattr(sprint, name, value)
        if sprint.end_at <= sprint.start_at:
            raise ValidationException("end_at must be after start_at")
        await self.db.flush()
        return sprint

    async def delete_sprint(self, sprint_id: uuid.UUID, user: AuthenticatedUser) -> None:
        """Delete a sprint that never started; its tasks go back to the backlog."""
        sprint = await self.get_sprint(sprint_id, for_update=True)
        if sprint.status != SprintStatus.PLANNING:
            raise ConflictException("Only sprints in planning can be deleted")

        await self.db.execute(
            update(Task)
            .where(Task.sprint_id == sprint.id)
            .values(sprint_id=None, status=TaskStatus.BACKLOG)
            .execution_options(synchronize_session=False)
        )
        await self.db.delete(sprint)
        await self.outbox.publish_event(
            EVENT_SPRINT_DELETED, "sprint", sprint.id, {"sprint_id": str(sprint.id), "name": sprint.name}
        )
        await self.db.flush()
        logger.info("Sprint %s deleted by %s", sprint.id, user.id)

    async def list_transitions(self, sprint_id: uuid.UUID) -> list[SprintTransition]:
        await self.get_sprint(sprint_id)
        result = await self.db.execute(
            select(SprintTransition)
            .where(SprintTransition.sprint_id == sprint_id)
            .order_by(SprintTransition.created_at.asc())
        )
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Integrity flags
    # ------------------------------------------------------------------

    async def add_integrity_flag(
        self, sprint_id: uuid.UUID, code: str, reason: str, user: AuthenticatedUser
    ) -> Sprint:
        sprint = await self.get_sprint(sprint_id, for_update=True)
        if sprint.status == SprintStatus.COMPLETED:
            raise ConflictException("Completed sprints cannot be flagged")
        flag = {
            "id": str(uuid.uuid4()),
            "code": code,
            "reason": reason,
            "raised_by": str(user.id),
            "raised_at": datetime.now(UTC).isoformat(),
        }
        # Reassign so the JSONB column is marked dirty
        sprint.settlement_integrity_flags = [*(sprint.settlement_integrity_flags or []), flag]
        await self.db.flush()
        logger.info("Integrity flag %s raised on sprint %s by %s", code, sprint.id, user.id)
        return sprint

    async def clear_integrity_flags(
        self, sprint_id: uuid.UUID, user: AuthenticatedUser, flag_id: str | None = None
    ) -> Sprint:
        """Clear one flag by id, or all flags when ``flag_id`` is omitted."""
        sprint = await self.get_sprint(sprint_id, for_update=True)
        flags = list(sprint.settlement_integrity_flags or [])
        if flag_id is None:
            remaining = []
        else:
            remaining = [f for f in flags if not (isinstance(f, dict) and f.get("id") == flag_id)]
            if len(remaining) == len(flags):
                raise NotFoundException(f"Integrity flag {flag_id} not found")
        sprint.settlement_integrity_flags = remaining
        await self.db.flush()
        logger.info(
            "Cleared %d integrity flag(s) on sprint %s by %s",
            len(flags) - len(remaining), sprint.id, user.id,
        )
        return sprint

    async def preview_blockers(self, sprint_id: uuid.UUID) -> SettlementBlockers:
        sprint = await self.get_sprint(sprint_id)
        return await self.blockers.resolve(sprint)

    # ------------------------------------------------------------------
    # Phase engine
    # ------------------------------------------------------------------

    async def _record_transition(
        self,
        sprint: Sprint,
        from_status: SprintStatus,
        to_status: SprintStatus,
        user: AuthenticatedUser,
        extra: dict | None = None,
    ) -> None:
        if not can_transition(from_status, to_status):
            raise ConflictException(
                f"Cannot move sprint from '{from_status.value}' to '{to_status.value}'"
            )
        sprint.status = to_status
        self.db.add(
            SprintTransition(
                sprint_id=sprint.id,
                from_status=from_status,
                to_status=to_status,
                transitioned_by=user.id,
                metadata_extra=extra or {},
            )
        )
        await self.outbox.publish_event(
            EVENT_SPRINT_COMPLETED if to_status == SprintStatus.COMPLETED else EVENT_SPRINT_PHASE_CHANGED,
            "sprint",
            sprint.id,
            {
                "sprint_id": str(sprint.id),
                "from": from_status.value,
                "to": to_status.value,
                "actor_id": str(user.id),
            },
        )
        logger.info(
            "Sprint %s: %s -> %s by %s", sprint.id, from_status.value, to_status.value, user.id
        )

    async def start_sprint(self, sprint_id: uuid.UUID, user: AuthenticatedUser) -> Sprint:
        sprint = await self.get_sprint(sprint_id, for_update=True)
        if sprint.status != SprintStatus.PLANNING:
            raise ConflictException("Only sprints in planning status can be started")

        result = await self.db.execute(
            select(Sprint)
            .where(Sprint.id != sprint.id, Sprint.status.in_(EXECUTION_STATUSES))
            .limit(1)
        )
        running = result.scalar_one_or_none()
        if running is not None:
            raise ConflictException(
                f'Cannot start sprint: "{running.name}" is already running',
                context={"active_sprint": {"id": str(running.id), "name": running.name}},
            )

        sprint.active_started_at = datetime.now(UTC)
        await self._record_transition(sprint, SprintStatus.PLANNING, SprintStatus.ACTIVE, user)
        await self.db.flush()
        return sprint

    async def _refuse_if_blocked(
        self, sprint: Sprint, outcome: AdvanceOutcome, *, disputes_block: bool = True
    ) -> bool:
        blockers = await self.blockers.resolve(sprint, disputes_block=disputes_block)
        outcome.settlement_blockers = blockers
        if not blockers.blocked:
            return False

        sprint.settlement_blocked_reason = blockers.message
        outcome.refusal = AdvanceRefusal(
            code=CODE_SETTLEMENT_BLOCKED,
            message=f"Settlement is blocked: {blockers.message}",
            context={"settlement_blockers": blockers.as_dict()},
        )
        await self.outbox.publish_event(
            EVENT_SPRINT_SETTLEMENT_BLOCKED, "sprint", sprint.id,
            {"sprint_id": str(sprint.id), **blockers.as_dict()},
        )
        await self.db.flush()
        logger.info("Sprint %s settlement blocked: %s", sprint.id, blockers.message)
        return True

    async def advance(
        self,
        sprint_id: uuid.UUID,
        user: AuthenticatedUser,
        request: SprintCompleteRequest | None = None,
        now: datetime | None = None,
    ) -> AdvanceOutcome:
        """Move the sprint exactly one phase forward.

        Blocked and held transitions come back as a refused outcome rather
        than an exception so the blocked reason and hold status persist.
        """
        now = now or datetime.now(UTC)
        request = request or SprintCompleteRequest()
        sprint = await self.get_sprint(sprint_id, for_update=True)
        from_status = sprint.status

        if from_status == SprintStatus.PLANNING:
            raise ConflictException("Sprint has not started; use start instead")
        target = next_phase(from_status)
        if target is None:
            raise ConflictException("Sprint is already completed")

        outcome = AdvanceOutcome(sprint=sprint, from_status=from_status)

        if from_status == SprintStatus.ACTIVE:
            sprint.review_started_at = now
            sprint.settlement_blocked_reason = None

        elif from_status == SprintStatus.REVIEW:
            outcome.reviewer_sla = await self._sweep_reviewer_sla(sprint, now)
            if sprint.dispute_window_ends_at is None:
                sprint.dispute_window_ends_at = now + timedelta(
                    hours=settings.sprint_dispute_window_hours
                )
            sprint.dispute_window_started_at = now

        elif from_status == SprintStatus.DISPUTE_WINDOW:
            if sprint.dispute_window_ends_at is not None and sprint.dispute_window_ends_at > now:
                raise ConflictException(
                    "Dispute window is still open",
                    details=[{"dispute_window_ends_at": sprint.dispute_window_ends_at.isoformat()}],
                )
            if await self._refuse_if_blocked(sprint, outcome):
                return outcome
            sprint.settlement_started_at = now
            sprint.settlement_blocked_reason = None

        else:
            # Open disputes do not hold completion; the escalation pass takes them
            if await self._refuse_if_blocked(sprint, outcome, disputes_block=False):
                return outcome
            await self._complete(sprint, user, request, now, outcome)
            if outcome.refused:
                return outcome

        await self._record_transition(
            sprint,
            from_status,
            target,
            user,
            extra={"reviewer_sla": outcome.reviewer_sla} if outcome.reviewer_sla else None,
        )
        outcome.to_status = target
        await self.db.flush()
        return outcome

    async def _sweep_reviewer_sla(self, sprint: Sprint, now: datetime) -> dict | None:
        try:
            async with self.db.begin_nested():
                result = await DisputeEscalationService(self.db).sweep_reviewer_sla(sprint.id, now)
        except Exception:
            logger.exception("Reviewer SLA sweep failed for sprint %s; continuing", sprint.id)
            return None
        return result.as_dict()

    async def _validate_next_sprint(self, sprint: Sprint, request: SprintCompleteRequest) -> None:
        if request.incomplete_action != IncompleteAction.NEXT_SPRINT:
            return
        if request.next_sprint_id is None:
            raise ValidationException(
                "next_sprint_id is required when incomplete_action is next_sprint"
            )
        if request.next_sprint_id == sprint.id:
            raise ValidationException("next_sprint_id must reference a different sprint")
        target = await self.db.get(Sprint, request.next_sprint_id)
        if target is None:
            raise NotFoundException(f"Next sprint {request.next_sprint_id} not found")
        if target.status != SprintStatus.PLANNING:
            raise ValidationException("Next sprint must be in planning status")

    async def _load_tasks(self, sprint_id: uuid.UUID) -> list[tuple[Task, str | None]]:
        result = await self.db.execute(
            select(Task, UserProfile.name)
            .outerjoin(UserProfile, UserProfile.id == Task.assignee_id)
            .where(Task.sprint_id == sprint_id)
            .order_by(Task.created_at.asc())
        )
        return [(task, name) for task, name in result.all()]

    async def _clone_target(self, request: SprintCompleteRequest) -> uuid.UUID | None:
        # next_sprint_id is only validated when incomplete tasks move there
        if request.incomplete_action == IncompleteAction.NEXT_SPRINT:
            return request.next_sprint_id
        result = await self.db.execute(
            select(Sprint.id)
            .where(Sprint.status == SprintStatus.PLANNING)
            .order_by(Sprint.start_at.asc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def _complete(
        self,
        sprint: Sprint,
        user: AuthenticatedUser,
        request: SprintCompleteRequest,
        now: datetime,
        outcome: AdvanceOutcome,
    ) -> None:
        await self._validate_next_sprint(sprint, request)

        settlement = await RewardSettlementService(self.db).commit_sprint_settlement(
            sprint, user.id, now=now
        )
        outcome.reward_settlement = settlement
        if not settlement.ok:
            outcome.refusal = AdvanceRefusal(
                code=settlement.code or "REWARD_SETTLEMENT_HELD",
                message=settlement.message or "Reward settlement was not committed",
                context={"reward_settlement": settlement.as_dict()},
            )
            return

        rows = await self._load_tasks(sprint.id)
        summary = summarize_tasks(rows)
        snapshot = SprintSnapshot(
            sprint_id=sprint.id,
            completed_by=user.id,
            incomplete_action=request.incomplete_action,
            **summary,
        )
        self.db.add(snapshot)
        outcome.snapshot = snapshot

        incomplete_ids = [task.id for task, _ in rows if task.status != TaskStatus.DONE]
        if incomplete_ids:
            if request.incomplete_action == IncompleteAction.BACKLOG:
                values = {"sprint_id": None, "status": TaskStatus.BACKLOG}
            else:
                values = {"sprint_id": request.next_sprint_id}
            await self.db.execute(
                update(Task)
                .where(Task.id.in_(incomplete_ids))
                .values(**values)
                .execution_options(synchronize_session=False)
            )

        sprint.completed_at = now
        sprint.settlement_blocked_reason = None

        escalation = await DisputeEscalationService(self.db).escalate_for_sprint_close(sprint.id, now)
        outcome.disputes_escalated = escalation.escalated_count
        outcome.admin_dispute_extensions = escalation.admin_extended_count

        outcome.recurring_tasks_cloned = await self._clone_templates(request)

    async def _clone_templates(self, request: SprintCompleteRequest) -> int:
        target = await self._clone_target(request)
        if target is None:
            return 0
        try:
            async with self.db.begin_nested():
                return await TaskTemplateService(self.db).clone_recurring_templates(target)
        except Exception:
            logger.exception("Recurring template cloning failed for sprint %s; continuing", target)
            return 0
