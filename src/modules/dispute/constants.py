"""Dispute lifecycle tables, capability map, defaults and outbox event types."""

from __future__ import annotations

from src.models.enums import DisputeResolution, DisputeStatus, DisputeTier, UserRole

TERMINAL_STATUSES: frozenset[DisputeStatus] = frozenset({
    DisputeStatus.RESOLVED,
    DisputeStatus.DISMISSED,
    DisputeStatus.WITHDRAWN,
    DisputeStatus.MEDIATED,
})

ACTIVE_STATUSES: frozenset[DisputeStatus] = frozenset(DisputeStatus) - TERMINAL_STATUSES

# Statuses from which each action may be taken
RESPONDABLE_STATUSES = frozenset({
    DisputeStatus.OPEN,
    DisputeStatus.MEDIATION,
    DisputeStatus.AWAITING_RESPONSE,
})
ASSIGNABLE_STATUSES = frozenset({
    DisputeStatus.OPEN,
    DisputeStatus.AWAITING_RESPONSE,
    DisputeStatus.UNDER_REVIEW,
    DisputeStatus.APPEALED,
    DisputeStatus.APPEAL_REVIEW,
})
RESOLVABLE_STATUSES = frozenset({DisputeStatus.UNDER_REVIEW, DisputeStatus.APPEAL_REVIEW})
APPEALABLE_STATUSES = frozenset({DisputeStatus.RESOLVED, DisputeStatus.DISMISSED})
WITHDRAWABLE_STATUSES = frozenset({
    DisputeStatus.OPEN,
    DisputeStatus.MEDIATION,
    DisputeStatus.AWAITING_RESPONSE,
    DisputeStatus.UNDER_REVIEW,
})
# Still waiting on the reviewer; swept by the response SLA
SLA_WATCHED_STATUSES = frozenset({
    DisputeStatus.OPEN,
    DisputeStatus.AWAITING_RESPONSE,
    DisputeStatus.MEDIATION,
})

# Which role may arbitrate a dispute at each tier
TIER_ARBITRATOR_ROLE: dict[DisputeTier, UserRole] = {
    DisputeTier.MEDIATION: UserRole.COUNCIL,
    DisputeTier.COUNCIL: UserRole.COUNCIL,
    DisputeTier.ADMIN: UserRole.ADMIN,
}

NEXT_TIER: dict[DisputeTier, DisputeTier] = {
    DisputeTier.MEDIATION: DisputeTier.COUNCIL,
    DisputeTier.COUNCIL: DisputeTier.ADMIN,
}

# Share of task points awarded for a compromise ruling, keyed by new quality score
COMPROMISE_MULTIPLIERS: dict[int, float] = {1: 0.2, 2: 0.4, 3: 0.6, 4: 0.8, 5: 1.0}

FORFEITING_RESOLUTIONS = frozenset({DisputeResolution.UPHELD, DisputeResolution.DISMISSED})

DEFAULT_DISPUTE_CONFIG: dict[str, int] = {
    "xp_dispute_stake": 50,
    "xp_dispute_arbitrator_reward": 25,
    "xp_dispute_reviewer_penalty": 30,
    "xp_dispute_withdrawal_fee": 10,
    "dispute_mediation_hours": 24,
    "dispute_response_hours": 48,
    "dispute_appeal_hours": 48,
    "dispute_cooldown_days": 7,
    "dispute_dismissed_cooldown_days": 14,
    "dispute_min_xp_to_file": 100,
}

MAX_EVIDENCE_FILES = 5
MAX_EVIDENCE_LINKS = 10

# Eligibility failure codes
INELIGIBLE_GUEST = "guest"
INELIGIBLE_MIN_XP = "min_xp"
INELIGIBLE_STAKE = "stake"
INELIGIBLE_COOLDOWN = "cooldown"
INELIGIBLE_ACTIVE_DISPUTE = "active_dispute"

# Event type strings for the outbox
EVENT_DISPUTE_FILED = "dispute.filed"
EVENT_DISPUTE_RESPONDED = "dispute.responded"
EVENT_DISPUTE_ASSIGNED = "dispute.assigned"
EVENT_DISPUTE_UNASSIGNED = "dispute.unassigned"
EVENT_DISPUTE_RESOLVED = "dispute.resolved"
EVENT_DISPUTE_APPEALED = "dispute.appealed"
EVENT_DISPUTE_MEDIATION_PROPOSED = "dispute.mediation_proposed"
EVENT_DISPUTE_MEDIATED = "dispute.mediated"
EVENT_DISPUTE_WITHDRAWN = "dispute.withdrawn"
EVENT_DISPUTE_COMMENTED = "dispute.commented"
EVENT_DISPUTE_ESCALATED = "dispute.escalated"
EVENT_DISPUTE_DEADLINE_EXTENDED = "dispute.deadline_extended"
EVENT_DISPUTE_ADMIN_ATTENTION = "dispute.admin_attention"
