"""Tests for the reward settlement policy math."""

from __future__ import annotations

import uuid
from decimal import Decimal

from src.modules.rewards.settlement import (
    DEFAULT_EMISSION_PERCENT,
    DEFAULT_FIXED_CAP,
    INTEGRITY_EMISSION_CAP_BREACH,
    INTEGRITY_NEGATIVE_POOL,
    MAX_CARRYOVER_SPRINTS,
    allocate_pool,
    classify_settlement_integrity,
    compute_carryover_in,
    compute_carryover_out,
    compute_emission_cap,
    normalize_reward_settlement_policy,
    parse_numeric,
)


class TestParseNumeric:
    def test_accepts_numbers_and_numeric_strings(self) -> None:
        assert parse_numeric(5) == Decimal(5)
        assert parse_numeric(0.5) == Decimal("0.5")
        assert parse_numeric(" 12.25 ") == Decimal("12.25")

    def test_rejects_everything_else(self) -> None:
        assert parse_numeric(True) is None
        assert parse_numeric(float("nan")) is None
        assert parse_numeric(float("inf")) is None
        assert parse_numeric("abc") is None
        assert parse_numeric("") is None
        assert parse_numeric(None) is None
        assert parse_numeric([1]) is None


class TestPolicy:
    def test_defaults(self) -> None:
        policy = normalize_reward_settlement_policy(None)
        assert policy.emission_percent == DEFAULT_EMISSION_PERCENT
        assert policy.fixed_cap_per_sprint == DEFAULT_FIXED_CAP
        assert policy.carryover_sprint_cap == MAX_CARRYOVER_SPRINTS

    def test_valid_overrides(self) -> None:
        policy = normalize_reward_settlement_policy({
            "settlement_emission_percent": "0.05",
            "settlement_fixed_cap_per_sprint": 250,
            "settlement_carryover_sprint_cap": 2,
        })
        assert policy.emission_percent == Decimal("0.05")
        assert policy.fixed_cap_per_sprint == Decimal(250)
        assert policy.carryover_sprint_cap == 2

    def test_out_of_range_values_fall_back(self) -> None:
        policy = normalize_reward_settlement_policy({
            "settlement_emission_percent": 1.5,
            "settlement_fixed_cap_per_sprint": -1,
            "settlement_carryover_sprint_cap": 99,
        })
        assert policy.emission_percent == DEFAULT_EMISSION_PERCENT
        assert policy.fixed_cap_per_sprint == DEFAULT_FIXED_CAP
        assert policy.carryover_sprint_cap == MAX_CARRYOVER_SPRINTS

    def test_carryover_cap_floor_is_one(self) -> None:
        policy = normalize_reward_settlement_policy({"settlement_carryover_sprint_cap": 0})
        assert policy.carryover_sprint_cap == 1


class TestEmissionCap:
    def test_percent_of_treasury(self) -> None:
        policy = normalize_reward_settlement_policy(None)
        assert compute_emission_cap(Decimal(500), policy) == Decimal("5.000000000")

    def test_fixed_cap_applies(self) -> None:
        policy = normalize_reward_settlement_policy(None)
        assert compute_emission_cap(Decimal(10_000_000), policy) == DEFAULT_FIXED_CAP

    def test_missing_or_negative_treasury(self) -> None:
        policy = normalize_reward_settlement_policy(None)
        assert compute_emission_cap(None, policy) == 0
        assert compute_emission_cap(Decimal(-50), policy) == 0


class TestCarryover:
    def test_inherits_under_streak_cap(self) -> None:
        assert compute_carryover_in(Decimal("12.5"), 1, 3) == Decimal("12.5")

    def test_streak_cap_resets_inheritance(self) -> None:
        assert compute_carryover_in(Decimal("12.5"), 3, 3) == 0

    def test_no_previous_sprint(self) -> None:
        assert compute_carryover_in(None, None, 3) == 0

    def test_leftover_extends_streak(self) -> None:
        assert compute_carryover_out(Decimal(100), Decimal(40), 1, 3) == (Decimal("60.000000000"), 2)

    def test_streak_is_capped(self) -> None:
        _, streak = compute_carryover_out(Decimal(100), Decimal(0), 3, 3)
        assert streak == 3

    def test_fully_spent_cap_resets(self) -> None:
        assert compute_carryover_out(Decimal(100), Decimal(100), 2, 3) == (Decimal(0), 0)


class TestIntegrity:
    def test_within_cap(self) -> None:
        assert not classify_settlement_integrity(Decimal(5), Decimal(5)).blocked

    def test_negative_pool(self) -> None:
        result = classify_settlement_integrity(Decimal(-1), Decimal(5))
        assert result.blocked
        assert result.code == INTEGRITY_NEGATIVE_POOL

    def test_cap_breach(self) -> None:
        result = classify_settlement_integrity(Decimal(25), Decimal(5))
        assert result.blocked
        assert result.code == INTEGRITY_EMISSION_CAP_BREACH
        assert result.reason == "reward pool exceeds emission cap"


class TestAllocatePool:
    def test_pro_rata_split(self) -> None:
        a, b = uuid.UUID(int=1), uuid.UUID(int=2)
        allocations = allocate_pool(Decimal(100), {b: 1, a: 3})

        assert [x.user_id for x in allocations] == [a, b]
        assert allocations[0].amount == Decimal("75.000000000")
        assert allocations[1].amount == Decimal("25.000000000")
        assert allocations[0].share == Decimal("0.750000000")

    def test_truncation_never_exceeds_pool(self) -> None:
        users = {uuid.UUID(int=i): 1 for i in range(1, 4)}
        allocations = allocate_pool(Decimal(10), users)

        total = sum(a.amount for a in allocations)
        assert total <= Decimal(10)
        assert all(a.amount == Decimal("3.333333333") for a in allocations)

    def test_zero_point_contributors_skipped(self) -> None:
        a, b = uuid.UUID(int=1), uuid.UUID(int=2)
        allocations = allocate_pool(Decimal(10), {a: 2, b: 0})
        assert [x.user_id for x in allocations] == [a]

    def test_empty_pool_or_no_points(self) -> None:
        assert allocate_pool(Decimal(0), {uuid.UUID(int=1): 3}) == []
        assert allocate_pool(Decimal(10), {}) == []
