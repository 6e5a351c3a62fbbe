"""Tests for the dispute policy engine — config, eligibility, evidence and plans."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta
from types import SimpleNamespace

import pytest

from src.exceptions import ValidationException
from src.models.enums import DisputeStatus, DisputeTier, UserRole
from src.modules.dispute.constants import (
    INELIGIBLE_ACTIVE_DISPUTE,
    INELIGIBLE_COOLDOWN,
    INELIGIBLE_GUEST,
    INELIGIBLE_MIN_XP,
    INELIGIBLE_STAKE,
)
from src.modules.dispute.policy import (
    DisputeConfig,
    can_arbitrate,
    can_file_dispute,
    compromise_points,
    get_cooldown_state,
    is_deadline_past,
    normalize_evidence_files,
    normalize_links,
    plan_reviewer_sla,
    plan_sprint_close_escalation,
    withdrawal_refund,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def _profile(role: UserRole = UserRole.MEMBER, xp: int = 500) -> SimpleNamespace:
    return SimpleNamespace(role=role, xp_total=xp)


def _prior(status: DisputeStatus, days_ago: float) -> SimpleNamespace:
    return SimpleNamespace(status=status, created_at=NOW - timedelta(days=days_ago))


class TestDisputeConfig:
    def test_defaults(self) -> None:
        config = DisputeConfig.from_overrides(None)
        assert config.xp_dispute_stake == 50
        assert config.dispute_cooldown_days == 7
        assert config.dispute_dismissed_cooldown_days == 14
        assert config.dispute_min_xp_to_file == 100

    def test_valid_overrides_applied(self) -> None:
        config = DisputeConfig.from_overrides({"xp_dispute_stake": 80, "dispute_response_hours": 72.0})
        assert config.xp_dispute_stake == 80
        assert config.dispute_response_hours == 72

    def test_invalid_overrides_ignored(self) -> None:
        config = DisputeConfig.from_overrides({
            "xp_dispute_stake": "lots",
            "xp_dispute_withdrawal_fee": -5,
            "dispute_appeal_hours": True,
            "unknown_key": 3,
        })
        assert config.xp_dispute_stake == 50
        assert config.xp_dispute_withdrawal_fee == 10
        assert config.dispute_appeal_hours == 48

    def test_dismissed_cooldown_never_below_base(self) -> None:
        config = DisputeConfig.from_overrides({
            "dispute_cooldown_days": 10,
            "dispute_dismissed_cooldown_days": 3,
        })
        assert config.dispute_dismissed_cooldown_days == 10

    def test_as_dict_round_trips_all_keys(self) -> None:
        data = DisputeConfig().as_dict()
        assert len(data) == 10
        assert data["xp_dispute_reviewer_penalty"] == 30


class TestCooldown:
    def test_no_prior_dispute(self) -> None:
        state = get_cooldown_state(DisputeConfig(), None, NOW)
        assert state.active is False

    def test_dismissed_prior_uses_extended_window(self) -> None:
        state = get_cooldown_state(DisputeConfig(), _prior(DisputeStatus.DISMISSED, 10), NOW)
        assert state.active is True
        assert state.cooldown_days == 14
        assert state.remaining_days == 4
        assert "Dismissed" in state.message

    def test_resolved_prior_elapsed_after_base_window(self) -> None:
        state = get_cooldown_state(DisputeConfig(), _prior(DisputeStatus.RESOLVED, 10), NOW)
        assert state.active is False

    def test_partial_day_rounds_up(self) -> None:
        state = get_cooldown_state(DisputeConfig(), _prior(DisputeStatus.RESOLVED, 6.5), NOW)
        assert state.active is True
        assert state.remaining_days == 1


class TestCanFileDispute:
    def test_guest_rejected_first(self) -> None:
        result = can_file_dispute(_profile(UserRole.GUEST, 0), DisputeConfig(), True, None, NOW)
        assert result.eligible is False
        assert result.code == INELIGIBLE_GUEST

    def test_min_xp(self) -> None:
        result = can_file_dispute(_profile(xp=99), DisputeConfig(), False, None, NOW)
        assert result.code == INELIGIBLE_MIN_XP

    def test_stake_affordability(self) -> None:
        config = DisputeConfig.from_overrides({"dispute_min_xp_to_file": 0, "xp_dispute_stake": 60})
        result = can_file_dispute(_profile(xp=40), config, False, None, NOW)
        assert result.code == INELIGIBLE_STAKE

    def test_cooldown_reports_remaining_days(self) -> None:
        result = can_file_dispute(
            _profile(), DisputeConfig(), False, _prior(DisputeStatus.DISMISSED, 10), NOW
        )
        assert result.eligible is False
        assert result.code == INELIGIBLE_COOLDOWN
        assert result.cooldown_remaining_days == 4

    def test_active_dispute_checked_last(self) -> None:
        result = can_file_dispute(_profile(), DisputeConfig(), True, None, NOW)
        assert result.code == INELIGIBLE_ACTIVE_DISPUTE

    def test_eligible(self) -> None:
        result = can_file_dispute(
            _profile(), DisputeConfig(), False, _prior(DisputeStatus.RESOLVED, 10), NOW
        )
        assert result.eligible is True
        assert result.code is None


class TestEvidence:
    def test_links_deduplicated_in_order(self) -> None:
        links = [" https://a.example/x ", "https://b.example", "https://a.example/x", ""]
        assert normalize_links(links) == ["https://a.example/x", "https://b.example"]

    def test_files_scoped_to_actor(self) -> None:
        actor = uuid.uuid4()
        files = [f"{actor}/one.png", f"{actor}/sub/two.pdf", f"{actor}/one.png"]
        assert normalize_evidence_files(files, actor) == [f"{actor}/one.png", f"{actor}/sub/two.pdf"]

    def test_foreign_namespace_rejected(self) -> None:
        with pytest.raises(ValidationException, match="own upload folder"):
            normalize_evidence_files([f"{uuid.uuid4()}/x.png"], uuid.uuid4())

    @pytest.mark.parametrize("suffix", ["../secret.txt", "a/../b.png", "a//b.png", "./a.png"])
    def test_traversal_rejected(self, suffix: str) -> None:
        actor = uuid.uuid4()
        with pytest.raises(ValidationException, match="not allowed"):
            normalize_evidence_files([f"{actor}/{suffix}"], actor)

    def test_backslash_rejected(self) -> None:
        actor = uuid.uuid4()
        with pytest.raises(ValidationException):
            normalize_evidence_files([f"{actor}/a\\b.png"], actor)

    def test_at_most_five_files(self) -> None:
        actor = uuid.uuid4()
        with pytest.raises(ValidationException, match="At most 5"):
            normalize_evidence_files([f"{actor}/{i}.png" for i in range(6)], actor)


class TestHelpers:
    def test_deadline_past_is_inclusive(self) -> None:
        assert is_deadline_past(NOW, NOW) is True
        assert is_deadline_past(NOW + timedelta(seconds=1), NOW) is False
        assert is_deadline_past(None, NOW) is False

    def test_capability_table(self) -> None:
        assert can_arbitrate(UserRole.COUNCIL, DisputeTier.MEDIATION)
        assert can_arbitrate(UserRole.COUNCIL, DisputeTier.COUNCIL)
        assert not can_arbitrate(UserRole.ADMIN, DisputeTier.COUNCIL)
        assert not can_arbitrate(UserRole.COUNCIL, DisputeTier.ADMIN)
        assert not can_arbitrate(UserRole.MEMBER, DisputeTier.COUNCIL)

    def test_compromise_points_round_half_up(self) -> None:
        assert compromise_points(10, 3) == 6
        assert compromise_points(5, 1) == 1
        assert compromise_points(13, 5) == 13
        assert compromise_points(25, 2) == 10

    def test_withdrawal_refund_floored(self) -> None:
        assert withdrawal_refund(DisputeConfig(), 50) == 40
        assert withdrawal_refund(DisputeConfig(), 5) == 0


class TestSprintCloseEscalation:
    def test_mediation_goes_to_council_review(self) -> None:
        plan = plan_sprint_close_escalation(
            DisputeStatus.MEDIATION, DisputeTier.MEDIATION, None, NOW, 48
        )
        assert plan.to_status == DisputeStatus.UNDER_REVIEW
        assert plan.to_tier == DisputeTier.COUNCIL
        assert plan.is_admin_extension is False

    def test_council_goes_to_admin_appeal(self) -> None:
        plan = plan_sprint_close_escalation(
            DisputeStatus.UNDER_REVIEW, DisputeTier.COUNCIL, None, NOW, 48
        )
        assert plan.to_status == DisputeStatus.APPEALED
        assert plan.to_tier == DisputeTier.ADMIN
        assert plan.clear_arbitrator is True

    def test_admin_deadline_extended_from_later_of_deadline_and_now(self) -> None:
        future = NOW + timedelta(hours=10)
        plan = plan_sprint_close_escalation(
            DisputeStatus.APPEAL_REVIEW, DisputeTier.ADMIN, future, NOW, 48
        )
        assert plan.is_admin_extension
        assert plan.appeal_deadline == future + timedelta(hours=48)

        past = NOW - timedelta(hours=10)
        plan = plan_sprint_close_escalation(
            DisputeStatus.APPEALED, DisputeTier.ADMIN, past, NOW, 48
        )
        assert plan.appeal_deadline == NOW + timedelta(hours=48)

    def test_terminal_untouched(self) -> None:
        assert plan_sprint_close_escalation(
            DisputeStatus.RESOLVED, DisputeTier.COUNCIL, None, NOW, 48
        ) is None


class TestReviewerSla:
    def test_not_overdue(self) -> None:
        assert plan_reviewer_sla(
            DisputeStatus.OPEN, DisputeTier.COUNCIL, NOW + timedelta(hours=1), None, NOW, 24
        ) is None

    def test_response_already_in(self) -> None:
        assert plan_reviewer_sla(
            DisputeStatus.OPEN, DisputeTier.COUNCIL, NOW - timedelta(hours=1), NOW, NOW, 24
        ) is None

    def test_unwatched_status(self) -> None:
        assert plan_reviewer_sla(
            DisputeStatus.UNDER_REVIEW, DisputeTier.COUNCIL, NOW - timedelta(hours=1), None, NOW, 24
        ) is None

    def test_mediation_escalates_to_council(self) -> None:
        plan = plan_reviewer_sla(
            DisputeStatus.MEDIATION, DisputeTier.MEDIATION, NOW - timedelta(hours=1), None, NOW, 24
        )
        assert plan.escalated is True
        assert plan.needs_admin is False
        assert plan.to_tier == DisputeTier.COUNCIL
        assert plan.to_status == DisputeStatus.UNDER_REVIEW
        assert plan.response_deadline == NOW + timedelta(hours=24)

    def test_council_escalates_to_admin_and_notifies(self) -> None:
        plan = plan_reviewer_sla(
            DisputeStatus.OPEN, DisputeTier.COUNCIL, NOW - timedelta(hours=1), None, NOW, 24
        )
        assert plan.to_tier == DisputeTier.ADMIN
        assert plan.needs_admin is True

    def test_admin_tier_only_extended(self) -> None:
        plan = plan_reviewer_sla(
            DisputeStatus.OPEN, DisputeTier.ADMIN, NOW - timedelta(hours=1), None, NOW, 24
        )
        assert plan.escalated is False
        assert plan.needs_admin is True
        assert plan.to_status == DisputeStatus.OPEN
