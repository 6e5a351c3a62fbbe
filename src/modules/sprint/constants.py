"""Sprint phase ordering, transition rules and outbox event types."""

from __future__ import annotations

from src.models.enums import SprintStatus

PHASE_ORDER: tuple[SprintStatus, ...] = (
    SprintStatus.PLANNING,
    SprintStatus.ACTIVE,
    SprintStatus.REVIEW,
    SprintStatus.DISPUTE_WINDOW,
    SprintStatus.SETTLEMENT,
    SprintStatus.COMPLETED,
)

# Phases in which a sprint is "running"; at most one sprint may be in any of them
EXECUTION_STATUSES: frozenset[SprintStatus] = frozenset({
    SprintStatus.ACTIVE,
    SprintStatus.REVIEW,
    SprintStatus.DISPUTE_WINDOW,
    SprintStatus.SETTLEMENT,
})

REWARD_SETTLEMENT_KEY_TEMPLATE = "sprint:{sprint_id}:reward-settlement"

EVENT_SPRINT_CREATED = "sprint.created"
EVENT_SPRINT_DELETED = "sprint.deleted"
EVENT_SPRINT_PHASE_CHANGED = "sprint.phase_changed"
EVENT_SPRINT_SETTLEMENT_BLOCKED = "sprint.settlement_blocked"
EVENT_SPRINT_COMPLETED = "sprint.completed"


def phase_rank(status: SprintStatus) -> int:
    return PHASE_ORDER.index(status)


def next_phase(status: SprintStatus) -> SprintStatus | None:
    rank = phase_rank(status)
    if rank + 1 >= len(PHASE_ORDER):
        return None
    return PHASE_ORDER[rank + 1]


def can_transition(from_status: SprintStatus, to_status: SprintStatus) -> bool:
    """Only single forward steps are allowed."""
    return next_phase(from_status) == to_status
