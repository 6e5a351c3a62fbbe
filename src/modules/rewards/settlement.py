"""Reward settlement policy.

Pure functions over ``Decimal`` amounts quantized to 9 places: policy
normalization from the org's ``rewards_config``, the per-sprint emission cap,
carryover bookkeeping, integrity classification and the pro-rata split of a
pool across contributors.
"""

from __future__ import annotations

import math
import uuid
from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal, InvalidOperation
from typing import Any

DEFAULT_EMISSION_PERCENT = Decimal("0.01")
DEFAULT_FIXED_CAP = Decimal("10000")
MAX_CARRYOVER_SPRINTS = 3

TOKEN_QUANTUM = Decimal("0.000000001")
_EPSILON = Decimal("0.000000001")

INTEGRITY_NEGATIVE_POOL = "NEGATIVE_REWARD_POOL"
INTEGRITY_EMISSION_CAP_BREACH = "EMISSION_CAP_BREACH"


def quantize(value: Decimal) -> Decimal:
    return value.quantize(TOKEN_QUANTUM)


def parse_numeric(value: Any) -> Decimal | None:
    """Accept finite ints, floats and numeric strings; anything else is None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, Decimal)):
        return Decimal(value)
    if isinstance(value, float):
        return Decimal(str(value)) if math.isfinite(value) else None
    if isinstance(value, str) and value.strip():
        try:
            parsed = Decimal(value.strip())
        except InvalidOperation:
            return None
        return parsed if parsed.is_finite() else None
    return None


@dataclass(frozen=True)
class RewardSettlementPolicy:
    emission_percent: Decimal = DEFAULT_EMISSION_PERCENT
    fixed_cap_per_sprint: Decimal = DEFAULT_FIXED_CAP
    carryover_sprint_cap: int = MAX_CARRYOVER_SPRINTS


def normalize_reward_settlement_policy(config: dict | None) -> RewardSettlementPolicy:
    source = config if isinstance(config, dict) else {}
    percent = parse_numeric(source.get("settlement_emission_percent"))
    fixed_cap = parse_numeric(source.get("settlement_fixed_cap_per_sprint"))
    carryover = parse_numeric(source.get("settlement_carryover_sprint_cap"))

    if percent is None or not (0 < percent <= 1):
        percent = DEFAULT_EMISSION_PERCENT
    if fixed_cap is None or fixed_cap < 0:
        fixed_cap = DEFAULT_FIXED_CAP
    carryover_cap = int(carryover) if carryover is not None else MAX_CARRYOVER_SPRINTS
    carryover_cap = max(1, min(MAX_CARRYOVER_SPRINTS, carryover_cap))

    return RewardSettlementPolicy(percent, fixed_cap, carryover_cap)


def compute_emission_cap(treasury_balance: Decimal | None, policy: RewardSettlementPolicy) -> Decimal:
    """min(treasury x percent, fixed cap), never negative."""
    treasury = max(Decimal(0), treasury_balance or Decimal(0))
    cap = min(treasury * policy.emission_percent, policy.fixed_cap_per_sprint)
    return quantize(max(Decimal(0), cap))


def compute_carryover_in(
    previous_amount: Decimal | None,
    previous_streak: int | None,
    carryover_sprint_cap: int,
) -> Decimal:
    """Unspent cap inherited from the previous sprint, until the streak limit."""
    amount = max(Decimal(0), previous_amount or Decimal(0))
    streak = max(0, int(previous_streak or 0))
    if streak >= carryover_sprint_cap:
        return Decimal(0)
    return quantize(amount)


def compute_carryover_out(
    emission_cap: Decimal,
    distributed: Decimal,
    previous_streak: int | None,
    carryover_sprint_cap: int,
) -> tuple[Decimal, int]:
    """Return (carryover amount, streak) to record on the settled sprint."""
    leftover = quantize(max(Decimal(0), max(Decimal(0), emission_cap) - max(Decimal(0), distributed)))
    if leftover <= 0:
        return Decimal(0), 0
    streak = max(1, min(carryover_sprint_cap, max(0, int(previous_streak or 0)) + 1))
    return leftover, streak


@dataclass(frozen=True)
class IntegrityClassification:
    blocked: bool
    code: str | None = None
    reason: str | None = None


def classify_settlement_integrity(requested_pool: Decimal, emission_cap: Decimal) -> IntegrityClassification:
    cap = max(Decimal(0), emission_cap)
    if requested_pool < 0:
        return IntegrityClassification(
            True, INTEGRITY_NEGATIVE_POOL, "negative reward pool is not allowed"
        )
    if requested_pool > cap + _EPSILON:
        return IntegrityClassification(
            True, INTEGRITY_EMISSION_CAP_BREACH, "reward pool exceeds emission cap"
        )
    return IntegrityClassification(False)


@dataclass(frozen=True)
class Allocation:
    user_id: uuid.UUID
    points: int
    share: Decimal
    amount: Decimal


def allocate_pool(pool: Decimal, points_by_user: dict[uuid.UUID, int]) -> list[Allocation]:
    """Split ``pool`` pro rata by points.

    Amounts are truncated to 9 places so the total never exceeds the pool.
    Contributors with no points are skipped.
    """
    eligible = {uid: pts for uid, pts in points_by_user.items() if pts > 0}
    total_points = sum(eligible.values())
    if pool <= 0 or total_points == 0:
        return []

    allocations = []
    for user_id, points in sorted(eligible.items(), key=lambda item: str(item[0])):
        share = Decimal(points) / Decimal(total_points)
        amount = (pool * share).quantize(TOKEN_QUANTUM, rounding=ROUND_DOWN)
        allocations.append(
            Allocation(user_id, points, share.quantize(TOKEN_QUANTUM, rounding=ROUND_DOWN), amount)
        )
    return allocations
