"""Router tests for the sprint endpoints.

The service layer is mocked; these verify wiring, role gates and the shape
of the advance and refusal responses.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest

from src.models.enums import RewardSettlementStatus, SprintStatus, UserRole
from src.modules.sprint.blockers import evaluate_blockers
from src.modules.sprint.router import router
from src.modules.sprint.service import AdvanceOutcome, AdvanceRefusal

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=UTC)


def _sprint(status=SprintStatus.REVIEW, **overrides) -> SimpleNamespace:
    values = {
        "id": uuid.uuid4(),
        "name": "Sprint 12",
        "goal": None,
        "capacity_points": 40,
        "start_at": NOW - timedelta(days=14),
        "end_at": NOW,
        "status": status,
        "created_by": uuid.uuid4(),
        "active_started_at": NOW - timedelta(days=14),
        "review_started_at": NOW,
        "dispute_window_started_at": None,
        "dispute_window_ends_at": None,
        "settlement_started_at": None,
        "completed_at": None,
        "settlement_blocked_reason": None,
        "settlement_integrity_flags": [],
        "reward_pool": Decimal("100"),
        "reward_settlement_status": RewardSettlementStatus.PENDING,
        "reward_settlement_committed_at": None,
        "reward_emission_cap": None,
        "reward_carryover_amount": Decimal(0),
        "reward_carryover_sprint_count": 0,
        "created_at": NOW - timedelta(days=20),
        "updated_at": NOW,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


class TestRouterPaths:
    def test_expected_paths(self):
        paths = {(r.path, tuple(sorted(r.methods))) for r in router.routes}
        assert ("/sprints", ("GET",)) in paths
        assert ("/sprints", ("POST",)) in paths
        assert ("/sprints/{sprint_id}", ("DELETE",)) in paths
        assert ("/sprints/{sprint_id}/start", ("POST",)) in paths
        assert ("/sprints/{sprint_id}/complete", ("POST",)) in paths
        assert ("/sprints/{sprint_id}/settlement-blockers", ("GET",)) in paths
        assert ("/sprints/{sprint_id}/integrity-flags", ("DELETE",)) in paths


class TestAdvanceEndpoint:
    @pytest.mark.asyncio
    async def test_successful_step(self, async_client):
        sprint = _sprint(SprintStatus.REVIEW)
        outcome = AdvanceOutcome(
            sprint=sprint, from_status=SprintStatus.ACTIVE, to_status=SprintStatus.REVIEW
        )
        with patch("src.modules.sprint.router.SprintService") as svc_cls:
            svc_cls.return_value.advance = AsyncMock(return_value=outcome)
            response = await async_client.post(f"/api/v1/sprints/{sprint.id}/complete")

        assert response.status_code == 200
        body = response.json()
        assert body["phase_transition"] == {"from": "active", "to": "review"}
        assert body["sprint"]["status"] == "review"
        assert body["snapshot"] is None

    @pytest.mark.asyncio
    async def test_blocked_step_returns_conflict_with_blockers(self, async_client):
        sprint = _sprint(
            SprintStatus.DISPUTE_WINDOW, settlement_blocked_reason="2 unresolved dispute(s)"
        )
        blockers = evaluate_blockers(2, [])
        outcome = AdvanceOutcome(
            sprint=sprint,
            from_status=SprintStatus.DISPUTE_WINDOW,
            settlement_blockers=blockers,
            refusal=AdvanceRefusal(
                code="SETTLEMENT_BLOCKED",
                message="Settlement is blocked: 2 unresolved dispute(s)",
                context={"settlement_blockers": blockers.as_dict()},
            ),
        )
        with patch("src.modules.sprint.router.SprintService") as svc_cls:
            svc_cls.return_value.advance = AsyncMock(return_value=outcome)
            response = await async_client.post(
                f"/api/v1/sprints/{sprint.id}/complete",
                headers={"X-Request-ID": "req-123"},
            )

        assert response.status_code == 409
        body = response.json()
        assert body["error"]["code"] == "SETTLEMENT_BLOCKED"
        assert body["error"]["requestId"] == "req-123"
        assert body["settlement_blockers"]["unresolved_disputes"] == 2
        assert body["sprint"]["settlement_blocked_reason"] == "2 unresolved dispute(s)"

    @pytest.mark.asyncio
    async def test_completion_body_is_forwarded(self, async_client):
        sprint = _sprint(SprintStatus.COMPLETED)
        next_id = uuid.uuid4()
        outcome = AdvanceOutcome(
            sprint=sprint, from_status=SprintStatus.SETTLEMENT, to_status=SprintStatus.COMPLETED
        )
        with patch("src.modules.sprint.router.SprintService") as svc_cls:
            svc_cls.return_value.advance = AsyncMock(return_value=outcome)
            await async_client.post(
                f"/api/v1/sprints/{sprint.id}/complete",
                json={"incomplete_action": "next_sprint", "next_sprint_id": str(next_id)},
            )

        request_body = svc_cls.return_value.advance.await_args.args[2]
        assert request_body.next_sprint_id == next_id

    @pytest.mark.asyncio
    async def test_members_cannot_advance(self, async_client, current_user):
        current_user.role = UserRole.MEMBER

        response = await async_client.post(f"/api/v1/sprints/{uuid.uuid4()}/complete")

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "FORBIDDEN"


class TestCreateEndpoint:
    @pytest.mark.asyncio
    async def test_inverted_dates_are_rejected(self, async_client):
        response = await async_client.post(
            "/api/v1/sprints",
            json={
                "name": "Sprint 13",
                "start_at": NOW.isoformat(),
                "end_at": (NOW - timedelta(days=1)).isoformat(),
            },
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_create(self, async_client):
        sprint = _sprint(SprintStatus.PLANNING)
        with patch("src.modules.sprint.router.SprintService") as svc_cls:
            svc_cls.return_value.create_sprint = AsyncMock(return_value=sprint)
            response = await async_client.post(
                "/api/v1/sprints",
                json={
                    "name": "Sprint 12",
                    "start_at": sprint.start_at.isoformat(),
                    "end_at": sprint.end_at.isoformat(),
                },
            )

        assert response.status_code == 201
        assert response.json()["status"] == "planning"


class TestDeleteEndpoint:
    @pytest.mark.asyncio
    async def test_council_cannot_delete(self, async_client):
        response = await async_client.delete(f"/api/v1/sprints/{uuid.uuid4()}")

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "FORBIDDEN"

    @pytest.mark.asyncio
    async def test_admin_deletes(self, async_client, current_user):
        current_user.role = UserRole.ADMIN
        sprint_id = uuid.uuid4()
        with patch("src.modules.sprint.router.SprintService") as svc_cls:
            svc_cls.return_value.delete_sprint = AsyncMock(return_value=None)
            response = await async_client.delete(f"/api/v1/sprints/{sprint_id}")

        assert response.status_code == 204
        svc_cls.return_value.delete_sprint.assert_awaited_once_with(sprint_id, current_user)


class TestBlockersEndpoint:
    @pytest.mark.asyncio
    async def test_preview(self, async_client):
        with patch("src.modules.sprint.router.SprintService") as svc_cls:
            svc_cls.return_value.preview_blockers = AsyncMock(
                return_value=evaluate_blockers(0, [{"id": "f1", "code": "SYBIL"}])
            )
            response = await async_client.get(f"/api/v1/sprints/{uuid.uuid4()}/settlement-blockers")

        assert response.status_code == 200
        assert response.json()["blocked"] is True
        assert response.json()["integrity_flag_count"] == 1
