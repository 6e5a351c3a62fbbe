"""Dispute policy engine.

Pure decision functions: eligibility, cooldown, evidence normalization,
arbitration capability and the escalation / SLA plans applied by
``escalation.py``. Nothing here touches the database; callers pass in
snapshots and apply the returned decisions.
"""

from __future__ import annotations

import math
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Protocol

from src.exceptions import ValidationException
from src.models.enums import DisputeStatus, DisputeTier, UserRole
from src.modules.dispute.constants import (
    COMPROMISE_MULTIPLIERS,
    DEFAULT_DISPUTE_CONFIG,
    INELIGIBLE_ACTIVE_DISPUTE,
    INELIGIBLE_COOLDOWN,
    INELIGIBLE_GUEST,
    INELIGIBLE_MIN_XP,
    INELIGIBLE_STAKE,
    MAX_EVIDENCE_FILES,
    NEXT_TIER,
    SLA_WATCHED_STATUSES,
    TERMINAL_STATUSES,
    TIER_ARBITRATOR_ROLE,
)


class _Profile(Protocol):
    role: UserRole
    xp_total: int


class _PriorDispute(Protocol):
    status: DisputeStatus
    created_at: datetime


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DisputeConfig:
    xp_dispute_stake: int = 50
    xp_dispute_arbitrator_reward: int = 25
    xp_dispute_reviewer_penalty: int = 30
    xp_dispute_withdrawal_fee: int = 10
    dispute_mediation_hours: int = 24
    dispute_response_hours: int = 48
    dispute_appeal_hours: int = 48
    dispute_cooldown_days: int = 7
    dispute_dismissed_cooldown_days: int = 14
    dispute_min_xp_to_file: int = 100

    @classmethod
    def from_overrides(cls, overrides: dict[str, Any] | None) -> DisputeConfig:
        """Merge org overrides onto the defaults.

        Non-numeric, boolean and negative overrides are ignored. The dismissed
        cooldown is never shorter than the base cooldown.
        """
        values = dict(DEFAULT_DISPUTE_CONFIG)
        for key, raw in (overrides or {}).items():
            if key not in values or isinstance(raw, bool):
                continue
            if isinstance(raw, (int, float)) and math.isfinite(raw) and raw >= 0:
                values[key] = int(raw)
        values["dispute_dismissed_cooldown_days"] = max(
            values["dispute_dismissed_cooldown_days"], values["dispute_cooldown_days"]
        )
        return cls(**values)

    def as_dict(self) -> dict[str, int]:
        return {key: getattr(self, key) for key in DEFAULT_DISPUTE_CONFIG}


# ---------------------------------------------------------------------------
# Cooldown and eligibility
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CooldownState:
    active: bool
    cooldown_days: int
    remaining_days: int = 0
    message: str | None = None


@dataclass(frozen=True)
class EligibilityResult:
    eligible: bool
    reason: str | None = None
    code: str | None = None
    cooldown_remaining_days: int = 0


def get_cooldown_state(
    config: DisputeConfig,
    recent_dispute: _PriorDispute | None,
    now: datetime,
) -> CooldownState:
    """Cooldown derived from the actor's most recent prior dispute."""
    if recent_dispute is None:
        return CooldownState(active=False, cooldown_days=config.dispute_cooldown_days)

    dismissed = recent_dispute.status == DisputeStatus.DISMISSED
    days = (
        max(config.dispute_cooldown_days, config.dispute_dismissed_cooldown_days)
        if dismissed
        else config.dispute_cooldown_days
    )
    ends_at = recent_dispute.created_at + timedelta(days=days)
    if now >= ends_at:
        return CooldownState(active=False, cooldown_days=days)

    remaining = math.ceil((ends_at - now) / timedelta(days=1))
    if dismissed:
        message = (
            f"Dismissed disputes carry an extended {days}-day cooldown "
            f"({remaining} day(s) remaining)"
        )
    else:
        message = f"You must wait {days} days between disputes ({remaining} day(s) remaining)"
    return CooldownState(active=True, cooldown_days=days, remaining_days=remaining, message=message)


def can_file_dispute(
    profile: _Profile,
    config: DisputeConfig,
    active_dispute_exists: bool,
    recent_dispute: _PriorDispute | None,
    now: datetime,
) -> EligibilityResult:
    """Check filing eligibility; the first failing rule wins."""
    if profile.role == UserRole.GUEST:
        return EligibilityResult(False, "Guests cannot file disputes", INELIGIBLE_GUEST)

    if profile.xp_total < config.dispute_min_xp_to_file:
        return EligibilityResult(
            False,
            f"You need at least {config.dispute_min_xp_to_file} XP to file a dispute "
            f"(you have {profile.xp_total})",
            INELIGIBLE_MIN_XP,
        )

    if profile.xp_total < config.xp_dispute_stake:
        return EligibilityResult(
            False,
            f"Insufficient XP. Filing requires {config.xp_dispute_stake} XP stake "
            f"(you have {profile.xp_total})",
            INELIGIBLE_STAKE,
        )

    cooldown = get_cooldown_state(config, recent_dispute, now)
    if cooldown.active:
        return EligibilityResult(
            False, cooldown.message, INELIGIBLE_COOLDOWN, cooldown.remaining_days
        )

    if active_dispute_exists:
        return EligibilityResult(
            False,
            "An active dispute already exists for this submission",
            INELIGIBLE_ACTIVE_DISPUTE,
        )

    return EligibilityResult(True)


# ---------------------------------------------------------------------------
# Evidence
# ---------------------------------------------------------------------------


def normalize_links(links: list[str] | None) -> list[str]:
    """Strip, drop blanks and de-duplicate while keeping first-seen order."""
    seen: dict[str, None] = {}
    for link in links or []:
        cleaned = str(link).strip()
        if cleaned:
            seen.setdefault(cleaned, None)
    return list(seen)


def normalize_evidence_files(paths: list[str] | None, actor_id: uuid.UUID) -> list[str]:
    """Validate uploaded evidence paths against the actor's storage namespace."""
    prefix = f"{actor_id}/"
    normalized = normalize_links(paths)
    for path in normalized:
        if "\\" in path or not path.startswith(prefix):
            raise ValidationException(
                "Evidence files must be stored under your own upload folder",
                details=[{"field": "evidence_files", "value": path}],
            )
        segments = path[len(prefix):].split("/")
        if any(segment in ("", ".", "..") for segment in segments):
            raise ValidationException(
                "Evidence file path is not allowed",
                details=[{"field": "evidence_files", "value": path}],
            )
    if len(normalized) > MAX_EVIDENCE_FILES:
        raise ValidationException(f"At most {MAX_EVIDENCE_FILES} evidence files are allowed")
    return normalized


# ---------------------------------------------------------------------------
# Deadlines, capability and payouts
# ---------------------------------------------------------------------------


def is_deadline_past(deadline: datetime | None, now: datetime) -> bool:
    if deadline is None:
        return False
    return deadline <= now


def is_terminal(status: DisputeStatus) -> bool:
    return status in TERMINAL_STATUSES


def can_arbitrate(role: UserRole, tier: DisputeTier) -> bool:
    return TIER_ARBITRATOR_ROLE[tier] == role


def compromise_points(task_points: int, quality_score: int) -> int:
    """Scaled points for a compromise ruling, rounded half up."""
    scaled = Decimal(task_points) * Decimal(str(COMPROMISE_MULTIPLIERS[quality_score]))
    return int(scaled.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def withdrawal_refund(config: DisputeConfig, xp_stake: int) -> int:
    return max(0, xp_stake - config.xp_dispute_withdrawal_fee)


# ---------------------------------------------------------------------------
# Escalation plans
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EscalationPlan:
    to_status: DisputeStatus
    to_tier: DisputeTier
    clear_arbitrator: bool = False
    appeal_deadline: datetime | None = None

    @property
    def is_admin_extension(self) -> bool:
        return self.appeal_deadline is not None


def plan_sprint_close_escalation(
    status: DisputeStatus,
    tier: DisputeTier,
    appeal_deadline: datetime | None,
    now: datetime,
    admin_extension_hours: int,
) -> EscalationPlan | None:
    """What happens to a still-open dispute when its sprint completes.

    Mediation moves to council review, council moves to an admin appeal, and
    admin-tier disputes get their appeal deadline pushed out.
    """
    if is_terminal(status):
        return None
    if tier == DisputeTier.MEDIATION:
        return EscalationPlan(DisputeStatus.UNDER_REVIEW, DisputeTier.COUNCIL)
    if tier == DisputeTier.COUNCIL:
        return EscalationPlan(DisputeStatus.APPEALED, DisputeTier.ADMIN, clear_arbitrator=True)
    base = max(appeal_deadline, now) if appeal_deadline else now
    return EscalationPlan(
        status, tier, appeal_deadline=base + timedelta(hours=admin_extension_hours)
    )


@dataclass(frozen=True)
class ReviewerSlaPlan:
    response_deadline: datetime
    to_status: DisputeStatus
    to_tier: DisputeTier
    escalated: bool
    needs_admin: bool


def plan_reviewer_sla(
    status: DisputeStatus,
    tier: DisputeTier,
    response_deadline: datetime | None,
    response_submitted_at: datetime | None,
    now: datetime,
    extension_hours: int,
) -> ReviewerSlaPlan | None:
    """Decide the SLA action for a dispute whose reviewer has not responded.

    Returns None when the dispute is not overdue.
    """
    if status not in SLA_WATCHED_STATUSES or response_submitted_at is not None:
        return None
    if not is_deadline_past(response_deadline, now):
        return None

    next_tier = NEXT_TIER.get(tier)
    new_deadline = now + timedelta(hours=extension_hours)
    if next_tier is None:
        return ReviewerSlaPlan(new_deadline, status, tier, escalated=False, needs_admin=True)
    return ReviewerSlaPlan(
        new_deadline,
        DisputeStatus.UNDER_REVIEW,
        next_tier,
        escalated=True,
        needs_admin=next_tier == DisputeTier.ADMIN,
    )
