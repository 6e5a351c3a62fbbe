"""Pydantic v2 schemas for the sprint API."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from src.models.enums import IncompleteAction, RewardSettlementStatus, SprintStatus

# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class SprintCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    goal: str | None = Field(None, max_length=500)
    start_at: datetime
    end_at: datetime
    capacity_points: int | None = Field(None, ge=0)
    reward_pool: Decimal | None = Field(None, ge=0, max_digits=20, decimal_places=9)

    @model_validator(mode="after")
    def _ends_after_start(self) -> SprintCreate:
        if self.end_at <= self.start_at:
            raise ValueError("end_at must be after start_at")
        return self


class SprintUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=100)
    goal: str | None = Field(None, max_length=500)
    start_at: datetime | None = None
    end_at: datetime | None = None
    capacity_points: int | None = Field(None, ge=0)
    reward_pool: Decimal | None = Field(None, ge=0, max_digits=20, decimal_places=9)


class SprintCompleteRequest(BaseModel):
    incomplete_action: IncompleteAction = IncompleteAction.BACKLOG
    next_sprint_id: uuid.UUID | None = None


class IntegrityFlagCreate(BaseModel):
    code: str = Field(..., min_length=1, max_length=64)
    reason: str = Field(..., min_length=1, max_length=1000)


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class SprintResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    goal: str | None = None
    capacity_points: int | None = None
    start_at: datetime
    end_at: datetime
    status: SprintStatus
    created_by: uuid.UUID | None = None
    active_started_at: datetime | None = None
    review_started_at: datetime | None = None
    dispute_window_started_at: datetime | None = None
    dispute_window_ends_at: datetime | None = None
    settlement_started_at: datetime | None = None
    completed_at: datetime | None = None
    settlement_blocked_reason: str | None = None
    settlement_integrity_flags: list = Field(default_factory=list)
    reward_pool: Decimal | None = None
    reward_settlement_status: RewardSettlementStatus
    reward_settlement_committed_at: datetime | None = None
    reward_emission_cap: Decimal | None = None
    reward_carryover_amount: Decimal = Decimal(0)
    reward_carryover_sprint_count: int = 0
    created_at: datetime
    updated_at: datetime


class SprintListResponse(BaseModel):
    items: list[SprintResponse]
    total: int
    limit: int
    offset: int


class SprintSnapshotResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    sprint_id: uuid.UUID
    completed_by: uuid.UUID
    total_tasks: int
    completed_tasks: int
    incomplete_tasks: int
    total_points: int
    completed_points: int
    completion_rate: Decimal
    task_summary: list = Field(default_factory=list)
    incomplete_action: IncompleteAction
    created_at: datetime


class SprintTransitionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    sprint_id: uuid.UUID
    from_status: SprintStatus
    to_status: SprintStatus
    transitioned_by: uuid.UUID
    metadata_extra: dict = Field(default_factory=dict)
    created_at: datetime


class PhaseTransition(BaseModel):
    from_status: SprintStatus = Field(..., serialization_alias="from")
    to_status: SprintStatus = Field(..., serialization_alias="to")


class SettlementBlockersResponse(BaseModel):
    blocked: bool
    unresolved_disputes: int
    integrity_flag_count: int
    integrity_flags: list = Field(default_factory=list)
    reasons: list[str] = Field(default_factory=list)


class SprintAdvanceResponse(BaseModel):
    sprint: SprintResponse
    snapshot: SprintSnapshotResponse | None = None
    phase_transition: PhaseTransition
    recurring_tasks_cloned: int | None = None
    epoch_distributions: int | None = None
    reward_settlement: dict | None = None
    disputes_escalated: int | None = None
    admin_dispute_extensions: int | None = None
    settlement_blockers: SettlementBlockersResponse | None = None
