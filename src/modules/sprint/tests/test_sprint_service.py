"""Unit tests for SprintService — CRUD, integrity flags and the phase engine."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from src.config import settings
from src.exceptions import ConflictException, NotFoundException, ValidationException
from src.models.dispute_transition import DisputeTransition
from src.models.enums import (
    DisputeStatus,
    DisputeTier,
    IncompleteAction,
    RewardSettlementStatus,
    SprintStatus,
    TaskStatus,
    UserRole,
)
from src.models.sprint_snapshot import SprintSnapshot
from src.models.sprint_transition import SprintTransition
from src.modules.dispute.escalation import ReviewerSlaResult, SprintCloseEscalationResult
from src.modules.members.auth import AuthenticatedUser
from src.modules.rewards.service import RewardSettlementResult
from src.modules.sprint.blockers import evaluate_blockers
from src.modules.sprint.constants import (
    EVENT_SPRINT_COMPLETED,
    EVENT_SPRINT_DELETED,
    EVENT_SPRINT_PHASE_CHANGED,
    EVENT_SPRINT_SETTLEMENT_BLOCKED,
)
from src.modules.sprint.schemas import SprintCompleteRequest, SprintUpdate
from src.modules.sprint.service import CODE_SETTLEMENT_BLOCKED, SprintService, summarize_tasks

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=UTC)

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_db():
    session = AsyncMock()
    session.add = MagicMock()
    session.flush = AsyncMock()
    session.begin_nested = MagicMock()
    return session


@pytest.fixture
def council():
    return AuthenticatedUser(id=uuid.uuid4(), email="council@example.com", role=UserRole.COUNCIL)


def _make_sprint(status=SprintStatus.ACTIVE, **overrides) -> SimpleNamespace:
    values = {
        "id": uuid.uuid4(),
        "name": "Sprint 12",
        "status": status,
        "start_at": NOW - timedelta(days=14),
        "end_at": NOW,
        "active_started_at": None,
        "review_started_at": None,
        "dispute_window_started_at": None,
        "dispute_window_ends_at": None,
        "settlement_started_at": None,
        "completed_at": None,
        "settlement_blocked_reason": None,
        "settlement_integrity_flags": [],
        "reward_pool": Decimal("100"),
        "reward_settlement_status": RewardSettlementStatus.PENDING,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def _service(mock_db, sprint, unresolved_disputes=0) -> SprintService:
    svc = SprintService(mock_db)
    svc.get_sprint = AsyncMock(return_value=sprint)
    svc.outbox = AsyncMock()
    svc.blockers = AsyncMock()
    svc.blockers.resolve.side_effect = lambda s, disputes_block=True: evaluate_blockers(
        unresolved_disputes, s.settlement_integrity_flags, disputes_block=disputes_block
    )
    return svc


def _event_types(svc) -> list[str]:
    return [c.args[0] for c in svc.outbox.publish_event.await_args_list]


def _task(status=TaskStatus.DONE, points=5, title="Task"):
    return SimpleNamespace(id=uuid.uuid4(), title=title, status=status, points=points)


def _dispute(sprint_id, status, tier, arbitrator_id=None, appeal_deadline=None):
    return SimpleNamespace(
        id=uuid.uuid4(),
        sprint_id=sprint_id,
        status=status,
        tier=tier,
        arbitrator_id=arbitrator_id,
        appeal_deadline=appeal_deadline,
    )


def _committed(sprint_id) -> RewardSettlementResult:
    return RewardSettlementResult(
        ok=True,
        status="committed",
        idempotency_key=f"sprint:{sprint_id}:reward-settlement",
        pool="100",
        distributed_count=2,
        distributed_total="100",
    )


# ---------------------------------------------------------------------------
# Snapshot summary
# ---------------------------------------------------------------------------


class TestSummarizeTasks:
    def test_totals_and_rate(self) -> None:
        rows = [
            (_task(TaskStatus.DONE, 5, "a"), "Ada"),
            (_task(TaskStatus.DONE, 3, "b"), None),
            (_task(TaskStatus.IN_PROGRESS, 8, "c"), "Grace"),
        ]
        summary = summarize_tasks(rows)

        assert summary["total_tasks"] == 3
        assert summary["completed_tasks"] == 2
        assert summary["incomplete_tasks"] == 1
        assert summary["total_points"] == 16
        assert summary["completed_points"] == 8
        assert summary["completion_rate"] == Decimal("66.67")
        assert summary["task_summary"][2] == {
            "id": str(rows[2][0].id),
            "title": "c",
            "status": "in_progress",
            "points": 8,
            "assignee_name": "Grace",
        }

    def test_empty_sprint(self) -> None:
        summary = summarize_tasks([])
        assert summary["completion_rate"] == Decimal(0)
        assert summary["task_summary"] == []


# ---------------------------------------------------------------------------
# CRUD and flags
# ---------------------------------------------------------------------------


class TestSprintCrud:
    @pytest.mark.asyncio
    async def test_update_requires_planning(self, mock_db):
        svc = _service(mock_db, _make_sprint(SprintStatus.ACTIVE))

        with pytest.raises(ConflictException):
            await svc.update_sprint(uuid.uuid4(), SprintUpdate(name="Renamed"))

    @pytest.mark.asyncio
    async def test_update_rejects_inverted_dates(self, mock_db):
        sprint = _make_sprint(SprintStatus.PLANNING)
        svc = _service(mock_db, sprint)

        with pytest.raises(ValidationException):
            await svc.update_sprint(sprint.id, SprintUpdate(end_at=sprint.start_at - timedelta(days=1)))

    @pytest.mark.asyncio
    async def test_update_applies_only_sent_fields(self, mock_db):
        sprint = _make_sprint(SprintStatus.PLANNING, goal="Ship it")
        svc = _service(mock_db, sprint)

        await svc.update_sprint(sprint.id, SprintUpdate(name="Renamed"))

        assert sprint.name == "Renamed"
        assert sprint.goal == "Ship it"

    @pytest.mark.asyncio
    async def test_get_missing_sprint(self, mock_db):
        result = MagicMock()
        result.scalar_one_or_none.return_value = None
        mock_db.execute.return_value = result

        with pytest.raises(NotFoundException):
            await SprintService(mock_db).get_sprint(uuid.uuid4())

    @pytest.mark.asyncio
    async def test_delete_planning_sprint_returns_tasks_to_backlog(self, mock_db, council):
        sprint = _make_sprint(SprintStatus.PLANNING)
        svc = _service(mock_db, sprint)

        await svc.delete_sprint(sprint.id, council)

        # One bulk UPDATE detaches the sprint's tasks
        assert mock_db.execute.await_count == 1
        mock_db.delete.assert_awaited_once_with(sprint)
        assert _event_types(svc) == [EVENT_SPRINT_DELETED]

    @pytest.mark.asyncio
    async def test_delete_started_sprint_conflicts(self, mock_db, council):
        sprint = _make_sprint(SprintStatus.ACTIVE)
        svc = _service(mock_db, sprint)

        with pytest.raises(ConflictException):
            await svc.delete_sprint(sprint.id, council)

        mock_db.delete.assert_not_awaited()
        assert _event_types(svc) == []


class TestIntegrityFlags:
    @pytest.mark.asyncio
    async def test_add_flag_appends(self, mock_db, council):
        sprint = _make_sprint(SprintStatus.SETTLEMENT)
        svc = _service(mock_db, sprint)

        await svc.add_integrity_flag(sprint.id, "SYBIL", "duplicate accounts", council)

        assert len(sprint.settlement_integrity_flags) == 1
        flag = sprint.settlement_integrity_flags[0]
        assert flag["code"] == "SYBIL"
        assert flag["raised_by"] == str(council.id)
        assert flag["id"]

    @pytest.mark.asyncio
    async def test_completed_sprint_cannot_be_flagged(self, mock_db, council):
        svc = _service(mock_db, _make_sprint(SprintStatus.COMPLETED))

        with pytest.raises(ConflictException):
            await svc.add_integrity_flag(uuid.uuid4(), "SYBIL", "late", council)

    @pytest.mark.asyncio
    async def test_clear_one_flag(self, mock_db, council):
        sprint = _make_sprint(
            SprintStatus.SETTLEMENT,
            settlement_integrity_flags=[{"id": "a", "code": "X"}, {"id": "b", "code": "Y"}],
        )
        svc = _service(mock_db, sprint)

        await svc.clear_integrity_flags(sprint.id, council, flag_id="a")

        assert sprint.settlement_integrity_flags == [{"id": "b", "code": "Y"}]

    @pytest.mark.asyncio
    async def test_clear_unknown_flag(self, mock_db, council):
        sprint = _make_sprint(SprintStatus.SETTLEMENT, settlement_integrity_flags=[{"id": "a"}])
        svc = _service(mock_db, sprint)

        with pytest.raises(NotFoundException):
            await svc.clear_integrity_flags(sprint.id, council, flag_id="zzz")

    @pytest.mark.asyncio
    async def test_clear_all_flags(self, mock_db, council):
        sprint = _make_sprint(SprintStatus.SETTLEMENT, settlement_integrity_flags=[{"id": "a"}])
        svc = _service(mock_db, sprint)

        await svc.clear_integrity_flags(sprint.id, council)

        assert sprint.settlement_integrity_flags == []


# ---------------------------------------------------------------------------
# Start
# ---------------------------------------------------------------------------


class TestStartSprint:
    @pytest.mark.asyncio
    async def test_start_moves_to_active(self, mock_db, council):
        sprint = _make_sprint(SprintStatus.PLANNING)
        svc = _service(mock_db, sprint)
        result = MagicMock()
        result.scalar_one_or_none.return_value = None
        mock_db.execute.return_value = result

        started = await svc.start_sprint(sprint.id, council)

        assert started.status == SprintStatus.ACTIVE
        assert started.active_started_at is not None
        assert _event_types(svc) == [EVENT_SPRINT_PHASE_CHANGED]

    @pytest.mark.asyncio
    async def test_second_running_sprint_conflicts(self, mock_db, council):
        sprint = _make_sprint(SprintStatus.PLANNING)
        svc = _service(mock_db, sprint)
        running = SimpleNamespace(id=uuid.uuid4(), name="Sprint 11")
        result = MagicMock()
        result.scalar_one_or_none.return_value = running
        mock_db.execute.return_value = result

        with pytest.raises(ConflictException) as exc_info:
            await svc.start_sprint(sprint.id, council)

        assert exc_info.value.context["active_sprint"] == {
            "id": str(running.id), "name": "Sprint 11",
        }
        assert sprint.status == SprintStatus.PLANNING

    @pytest.mark.asyncio
    async def test_only_planning_can_start(self, mock_db, council):
        svc = _service(mock_db, _make_sprint(SprintStatus.REVIEW))

        with pytest.raises(ConflictException):
            await svc.start_sprint(uuid.uuid4(), council)


# ---------------------------------------------------------------------------
# Advance
# ---------------------------------------------------------------------------


class TestAdvanceEarlyPhases:
    @pytest.mark.asyncio
    async def test_planning_must_use_start(self, mock_db, council):
        svc = _service(mock_db, _make_sprint(SprintStatus.PLANNING))

        with pytest.raises(ConflictException):
            await svc.advance(uuid.uuid4(), council, now=NOW)

    @pytest.mark.asyncio
    async def test_completed_cannot_advance(self, mock_db, council):
        svc = _service(mock_db, _make_sprint(SprintStatus.COMPLETED))

        with pytest.raises(ConflictException):
            await svc.advance(uuid.uuid4(), council, now=NOW)

    @pytest.mark.asyncio
    async def test_active_to_review(self, mock_db, council):
        sprint = _make_sprint(SprintStatus.ACTIVE, settlement_blocked_reason="stale")
        svc = _service(mock_db, sprint)

        outcome = await svc.advance(sprint.id, council, now=NOW)

        assert outcome.to_status == SprintStatus.REVIEW
        assert sprint.status == SprintStatus.REVIEW
        assert sprint.review_started_at == NOW
        assert sprint.settlement_blocked_reason is None
        transition = mock_db.add.call_args.args[0]
        assert isinstance(transition, SprintTransition)
        assert transition.from_status == SprintStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_review_opens_dispute_window_and_sweeps_sla(self, mock_db, council):
        sprint = _make_sprint(SprintStatus.REVIEW)
        svc = _service(mock_db, sprint)

        with patch("src.modules.sprint.service.DisputeEscalationService") as escalation_cls:
            escalation_cls.return_value.sweep_reviewer_sla = AsyncMock(
                return_value=ReviewerSlaResult(escalated_count=1, extended_count=1)
            )
            outcome = await svc.advance(sprint.id, council, now=NOW)

        assert outcome.to_status == SprintStatus.DISPUTE_WINDOW
        assert outcome.reviewer_sla["escalated_count"] == 1
        assert sprint.dispute_window_started_at == NOW
        assert sprint.dispute_window_ends_at == NOW + timedelta(
            hours=settings.sprint_dispute_window_hours
        )

    @pytest.mark.asyncio
    async def test_sla_sweep_failure_does_not_block_advance(self, mock_db, council):
        preset_end = NOW + timedelta(hours=6)
        sprint = _make_sprint(SprintStatus.REVIEW, dispute_window_ends_at=preset_end)
        svc = _service(mock_db, sprint)

        with patch("src.modules.sprint.service.DisputeEscalationService") as escalation_cls:
            escalation_cls.return_value.sweep_reviewer_sla = AsyncMock(
                side_effect=RuntimeError("lock timeout")
            )
            outcome = await svc.advance(sprint.id, council, now=NOW)

        assert outcome.to_status == SprintStatus.DISPUTE_WINDOW
        assert outcome.reviewer_sla is None
        assert sprint.dispute_window_ends_at == preset_end


class TestAdvanceIntoSettlement:
    @pytest.mark.asyncio
    async def test_open_window_conflicts(self, mock_db, council):
        sprint = _make_sprint(
            SprintStatus.DISPUTE_WINDOW, dispute_window_ends_at=NOW + timedelta(hours=1)
        )
        svc = _service(mock_db, sprint)

        with pytest.raises(ConflictException) as exc_info:
            await svc.advance(sprint.id, council, now=NOW)

        assert "dispute_window_ends_at" in exc_info.value.details[0]
        assert sprint.status == SprintStatus.DISPUTE_WINDOW

    @pytest.mark.asyncio
    async def test_unresolved_disputes_refuse(self, mock_db, council):
        sprint = _make_sprint(
            SprintStatus.DISPUTE_WINDOW, dispute_window_ends_at=NOW - timedelta(hours=1)
        )
        svc = _service(mock_db, sprint, unresolved_disputes=3)

        outcome = await svc.advance(sprint.id, council, now=NOW)

        assert outcome.refused
        assert outcome.refusal.code == CODE_SETTLEMENT_BLOCKED
        assert outcome.refusal.context["settlement_blockers"]["unresolved_disputes"] == 3
        assert sprint.status == SprintStatus.DISPUTE_WINDOW
        assert sprint.settlement_blocked_reason == "3 unresolved dispute(s)"
        assert _event_types(svc) == [EVENT_SPRINT_SETTLEMENT_BLOCKED]

    @pytest.mark.asyncio
    async def test_clear_sprint_enters_settlement(self, mock_db, council):
        sprint = _make_sprint(
            SprintStatus.DISPUTE_WINDOW, dispute_window_ends_at=NOW - timedelta(hours=1)
        )
        svc = _service(mock_db, sprint)

        outcome = await svc.advance(sprint.id, council, now=NOW)

        assert outcome.to_status == SprintStatus.SETTLEMENT
        assert sprint.settlement_started_at == NOW
        assert outcome.settlement_blockers.blocked is False


class TestAdvanceToCompleted:
    @pytest.mark.asyncio
    async def test_integrity_flags_refuse(self, mock_db, council):
        sprint = _make_sprint(
            SprintStatus.SETTLEMENT, settlement_integrity_flags=[{"id": "a", "code": "SYBIL"}]
        )
        svc = _service(mock_db, sprint)

        with patch("src.modules.sprint.service.RewardSettlementService") as reward_cls:
            outcome = await svc.advance(sprint.id, council, now=NOW)

        assert outcome.refused
        assert sprint.status == SprintStatus.SETTLEMENT
        assert sprint.settlement_blocked_reason == "unresolved integrity flags are present"
        reward_cls.assert_not_called()

    @pytest.mark.asyncio
    async def test_held_settlement_refuses(self, mock_db, council):
        sprint = _make_sprint(SprintStatus.SETTLEMENT)
        svc = _service(mock_db, sprint)
        held = RewardSettlementResult(
            ok=False,
            status="held",
            idempotency_key="k",
            code="EMISSION_CAP_BREACH",
            message="reward pool exceeds emission cap",
            pool="25",
            emission_cap="5",
        )

        with patch("src.modules.sprint.service.RewardSettlementService") as reward_cls:
            reward_cls.return_value.commit_sprint_settlement = AsyncMock(return_value=held)
            outcome = await svc.advance(sprint.id, council, now=NOW)

        assert outcome.refused
        assert outcome.refusal.code == "EMISSION_CAP_BREACH"
        assert outcome.refusal.context["reward_settlement"]["status"] == "held"
        assert sprint.status == SprintStatus.SETTLEMENT
        assert outcome.snapshot is None

    @pytest.mark.asyncio
    async def test_completion_snapshots_and_moves_incomplete_to_backlog(self, mock_db, council):
        sprint = _make_sprint(SprintStatus.SETTLEMENT)
        svc = _service(mock_db, sprint)
        rows = [(_task(TaskStatus.DONE, 5), "Ada"), (_task(TaskStatus.TODO, 3), None)]
        svc._load_tasks = AsyncMock(return_value=rows)
        svc._clone_target = AsyncMock(return_value=uuid.uuid4())

        with (
            patch("src.modules.sprint.service.RewardSettlementService") as reward_cls,
            patch("src.modules.sprint.service.DisputeEscalationService") as escalation_cls,
            patch("src.modules.sprint.service.TaskTemplateService") as template_cls,
        ):
            reward_cls.return_value.commit_sprint_settlement = AsyncMock(
                return_value=_committed(sprint.id)
            )
            escalation_cls.return_value.escalate_for_sprint_close = AsyncMock(
                return_value=SprintCloseEscalationResult()
            )
            template_cls.return_value.clone_recurring_templates = AsyncMock(return_value=4)
            outcome = await svc.advance(sprint.id, council, now=NOW)

        assert not outcome.refused
        assert outcome.to_status == SprintStatus.COMPLETED
        assert sprint.status == SprintStatus.COMPLETED
        assert sprint.completed_at == NOW
        assert isinstance(outcome.snapshot, SprintSnapshot)
        assert outcome.snapshot.completion_rate == Decimal("50.00")
        assert outcome.snapshot.incomplete_action == IncompleteAction.BACKLOG
        assert outcome.disputes_escalated == 0
        assert outcome.admin_dispute_extensions == 0
        assert outcome.recurring_tasks_cloned == 4
        assert outcome.reward_settlement.distributed_count == 2
        # Incomplete tasks are moved with a single bulk UPDATE
        assert mock_db.execute.await_count == 1
        assert _event_types(svc) == [EVENT_SPRINT_COMPLETED]

    @pytest.mark.asyncio
    async def test_open_disputes_are_escalated_at_completion(self, mock_db, council):
        sprint = _make_sprint(SprintStatus.SETTLEMENT)
        svc = SprintService(mock_db)
        svc.get_sprint = AsyncMock(return_value=sprint)
        svc.outbox = AsyncMock()
        svc._load_tasks = AsyncMock(return_value=[])
        svc._clone_target = AsyncMock(return_value=None)

        arbitrator = uuid.uuid4()
        appeal_deadline = NOW + timedelta(hours=6)
        mediation = _dispute(sprint.id, DisputeStatus.MEDIATION, DisputeTier.MEDIATION)
        council_review = _dispute(
            sprint.id, DisputeStatus.UNDER_REVIEW, DisputeTier.COUNCIL, arbitrator_id=arbitrator
        )
        admin_appeal = _dispute(
            sprint.id,
            DisputeStatus.APPEAL_REVIEW,
            DisputeTier.ADMIN,
            appeal_deadline=appeal_deadline,
        )
        count_result = MagicMock()
        count_result.scalar.return_value = 3
        disputes_result = MagicMock()
        disputes_result.scalars.return_value.all.return_value = [
            mediation, council_review, admin_appeal,
        ]
        mock_db.execute.side_effect = [count_result, disputes_result]

        with patch("src.modules.sprint.service.RewardSettlementService") as reward_cls:
            reward_cls.return_value.commit_sprint_settlement = AsyncMock(
                return_value=_committed(sprint.id)
            )
            outcome = await svc.advance(sprint.id, council, now=NOW)

        assert not outcome.refused
        assert sprint.status == SprintStatus.COMPLETED
        assert outcome.settlement_blockers.blocked is False
        assert outcome.settlement_blockers.unresolved_disputes == 3
        assert sprint.settlement_blocked_reason is None
        assert outcome.disputes_escalated == 2
        assert outcome.admin_dispute_extensions == 1

        assert (mediation.status, mediation.tier) == (DisputeStatus.UNDER_REVIEW, DisputeTier.COUNCIL)
        assert (council_review.status, council_review.tier) == (
            DisputeStatus.APPEALED, DisputeTier.ADMIN,
        )
        assert council_review.arbitrator_id is None
        assert admin_appeal.status == DisputeStatus.APPEAL_REVIEW
        assert admin_appeal.appeal_deadline == appeal_deadline + timedelta(
            hours=settings.dispute_admin_extension_hours
        )
        transitions = [
            c.args[0] for c in mock_db.add.call_args_list if isinstance(c.args[0], DisputeTransition)
        ]
        assert len(transitions) == 3
        assert all(t.transitioned_by is None for t in transitions)

    @pytest.mark.asyncio
    async def test_integrity_flags_still_hold_completion_with_open_disputes(
        self, mock_db, council
    ):
        sprint = _make_sprint(
            SprintStatus.SETTLEMENT, settlement_integrity_flags=[{"id": "a", "code": "SYBIL"}]
        )
        svc = _service(mock_db, sprint, unresolved_disputes=3)

        with (
            patch("src.modules.sprint.service.RewardSettlementService") as reward_cls,
            patch("src.modules.sprint.service.DisputeEscalationService") as escalation_cls,
        ):
            outcome = await svc.advance(sprint.id, council, now=NOW)

        assert outcome.refused
        assert outcome.refusal.context["settlement_blockers"]["unresolved_disputes"] == 3
        # Only the flags are named; the disputes alone would not hold completion
        assert sprint.settlement_blocked_reason == "unresolved integrity flags are present"
        reward_cls.assert_not_called()
        escalation_cls.assert_not_called()

    @pytest.mark.asyncio
    async def test_backlog_completion_ignores_next_sprint_id_for_templates(
        self, mock_db, council
    ):
        sprint = _make_sprint(SprintStatus.SETTLEMENT)
        svc = _service(mock_db, sprint)
        svc._load_tasks = AsyncMock(return_value=[])
        upcoming = uuid.uuid4()
        planning_result = MagicMock()
        planning_result.scalar_one_or_none.return_value = upcoming
        mock_db.execute.return_value = planning_result
        request = SprintCompleteRequest(
            incomplete_action=IncompleteAction.BACKLOG, next_sprint_id=sprint.id
        )

        with (
            patch("src.modules.sprint.service.RewardSettlementService") as reward_cls,
            patch("src.modules.sprint.service.DisputeEscalationService") as escalation_cls,
            patch("src.modules.sprint.service.TaskTemplateService") as template_cls,
        ):
            reward_cls.return_value.commit_sprint_settlement = AsyncMock(
                return_value=_committed(sprint.id)
            )
            escalation_cls.return_value.escalate_for_sprint_close = AsyncMock(
                return_value=SprintCloseEscalationResult()
            )
            template_cls.return_value.clone_recurring_templates = AsyncMock(return_value=2)
            outcome = await svc.advance(sprint.id, council, request, now=NOW)

        assert outcome.to_status == SprintStatus.COMPLETED
        assert outcome.recurring_tasks_cloned == 2
        template_cls.return_value.clone_recurring_templates.assert_awaited_once_with(upcoming)

    @pytest.mark.asyncio
    async def test_next_sprint_completion_clones_into_next_sprint(self, mock_db, council):
        sprint = _make_sprint(SprintStatus.SETTLEMENT)
        svc = _service(mock_db, sprint)
        next_id = uuid.uuid4()
        request = SprintCompleteRequest(
            incomplete_action=IncompleteAction.NEXT_SPRINT, next_sprint_id=next_id
        )

        assert await svc._clone_target(request) == next_id
        mock_db.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_template_clone_failure_reports_zero(self, mock_db, council):
        sprint = _make_sprint(SprintStatus.SETTLEMENT)
        svc = _service(mock_db, sprint)
        svc._load_tasks = AsyncMock(return_value=[])
        svc._clone_target = AsyncMock(return_value=uuid.uuid4())

        with (
            patch("src.modules.sprint.service.RewardSettlementService") as reward_cls,
            patch("src.modules.sprint.service.DisputeEscalationService") as escalation_cls,
            patch("src.modules.sprint.service.TaskTemplateService") as template_cls,
        ):
            reward_cls.return_value.commit_sprint_settlement = AsyncMock(
                return_value=_committed(sprint.id)
            )
            escalation_cls.return_value.escalate_for_sprint_close = AsyncMock(
                return_value=SprintCloseEscalationResult()
            )
            template_cls.return_value.clone_recurring_templates = AsyncMock(
                side_effect=RuntimeError("boom")
            )
            outcome = await svc.advance(sprint.id, council, now=NOW)

        assert outcome.to_status == SprintStatus.COMPLETED
        assert outcome.recurring_tasks_cloned == 0

    @pytest.mark.asyncio
    async def test_next_sprint_must_differ(self, mock_db, council):
        sprint = _make_sprint(SprintStatus.SETTLEMENT)
        svc = _service(mock_db, sprint)
        request = SprintCompleteRequest(
            incomplete_action=IncompleteAction.NEXT_SPRINT, next_sprint_id=sprint.id
        )

        with pytest.raises(ValidationException):
            await svc.advance(sprint.id, council, request, now=NOW)

    @pytest.mark.asyncio
    async def test_next_sprint_missing(self, mock_db, council):
        sprint = _make_sprint(SprintStatus.SETTLEMENT)
        svc = _service(mock_db, sprint)
        mock_db.get = AsyncMock(return_value=None)
        request = SprintCompleteRequest(
            incomplete_action=IncompleteAction.NEXT_SPRINT, next_sprint_id=uuid.uuid4()
        )

        with pytest.raises(NotFoundException):
            await svc.advance(sprint.id, council, request, now=NOW)

    @pytest.mark.asyncio
    async def test_next_sprint_must_be_planning(self, mock_db, council):
        sprint = _make_sprint(SprintStatus.SETTLEMENT)
        svc = _service(mock_db, sprint)
        mock_db.get = AsyncMock(return_value=_make_sprint(SprintStatus.ACTIVE))
        request = SprintCompleteRequest(
            incomplete_action=IncompleteAction.NEXT_SPRINT, next_sprint_id=uuid.uuid4()
        )

        with pytest.raises(ValidationException):
            await svc.advance(sprint.id, council, request, now=NOW)
