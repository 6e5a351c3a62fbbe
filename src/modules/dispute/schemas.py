"""Pydantic v2 schemas for the dispute API."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import AnyHttpUrl, BaseModel, ConfigDict, Field, model_validator

from src.models.enums import (
    CommentVisibility,
    DisputeReason,
    DisputeResolution,
    DisputeStatus,
    DisputeTier,
)
from src.modules.dispute.constants import MAX_EVIDENCE_FILES, MAX_EVIDENCE_LINKS

# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class DisputeCreate(BaseModel):
    submission_id: uuid.UUID
    reason: DisputeReason
    evidence_text: str = Field(..., min_length=20, max_length=5000)
    evidence_links: list[AnyHttpUrl] = Field(default_factory=list, max_length=MAX_EVIDENCE_LINKS)
    # Checked for namespace and traversal in the service
    evidence_files: list[str] = Field(default_factory=list, max_length=MAX_EVIDENCE_FILES * 2)
    request_mediation: bool = False


class RespondRequest(BaseModel):
    response_text: str = Field(..., min_length=20, max_length=5000)
    response_links: list[AnyHttpUrl] = Field(default_factory=list, max_length=MAX_EVIDENCE_LINKS)


class ResolveRequest(BaseModel):
    resolution: DisputeResolution
    resolution_notes: str = Field(..., min_length=10, max_length=3000)
    new_quality_score: int | None = Field(None, ge=1, le=5)

    @model_validator(mode="after")
    def _score_matches_resolution(self) -> ResolveRequest:
        if self.resolution == DisputeResolution.COMPROMISE and self.new_quality_score is None:
            raise ValueError("new_quality_score is required for a compromise")
        if self.resolution != DisputeResolution.COMPROMISE and self.new_quality_score is not None:
            raise ValueError("new_quality_score is only accepted for a compromise")
        return self


class AppealRequest(BaseModel):
    appeal_reason: str = Field(..., min_length=20, max_length=3000)


class MediateRequest(BaseModel):
    agreed_outcome: str = Field(..., min_length=10, max_length=2000)


class CommentCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=2000)
    visibility: CommentVisibility = CommentVisibility.PARTIES_ONLY


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class DisputeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    submission_id: uuid.UUID
    task_id: uuid.UUID
    sprint_id: uuid.UUID | None = None
    disputant_id: uuid.UUID
    reviewer_id: uuid.UUID
    arbitrator_id: uuid.UUID | None = None
    status: DisputeStatus
    tier: DisputeTier
    reason: DisputeReason
    evidence_text: str
    evidence_links: list[str] = Field(default_factory=list)
    evidence_files: list[str] = Field(default_factory=list)
    response_text: str | None = None
    response_links: list[str] = Field(default_factory=list)
    response_submitted_at: datetime | None = None
    response_deadline: datetime
    mediation_deadline: datetime | None = None
    appeal_deadline: datetime | None = None
    mediation_proposed_by: uuid.UUID | None = None
    mediation_proposed_at: datetime | None = None
    resolution: DisputeResolution | None = None
    resolution_notes: str | None = None
    new_quality_score: int | None = None
    resolved_at: datetime | None = None
    xp_stake: int
    xp_refunded: int
    created_at: datetime
    updated_at: datetime


class DisputeSummaryResponse(BaseModel):
    """What non-parties may see of a dispute."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    task_id: uuid.UUID
    sprint_id: uuid.UUID | None = None
    status: DisputeStatus
    tier: DisputeTier
    reason: DisputeReason
    resolution: DisputeResolution | None = None
    resolved_at: datetime | None = None
    created_at: datetime


class DisputeListResponse(BaseModel):
    items: list[DisputeResponse]
    total: int
    limit: int
    offset: int


class MediationPendingResponse(BaseModel):
    status: str = "pending_confirmation"
    dispute: DisputeResponse


class DisputeCommentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    dispute_id: uuid.UUID
    user_id: uuid.UUID
    content: str
    visibility: CommentVisibility
    created_at: datetime


class DisputeConfigResponse(BaseModel):
    xp_dispute_stake: int
    xp_dispute_arbitrator_reward: int
    xp_dispute_reviewer_penalty: int
    xp_dispute_withdrawal_fee: int
    dispute_mediation_hours: int
    dispute_response_hours: int
    dispute_appeal_hours: int
    dispute_cooldown_days: int
    dispute_dismissed_cooldown_days: int
    dispute_min_xp_to_file: int


class EligibilityResponse(BaseModel):
    eligible: bool
    reason: str | None = None
    code: str | None = None
    cooldown_remaining_days: int = 0
    xp_stake: int
    user_xp: int


class PendingCountResponse(BaseModel):
    count: int


class ArbitratorStatsResponse(BaseModel):
    resolved_count: int
    overturn_rate: float  # percent
    avg_resolution_hours: float


class ReviewerAccuracyResponse(BaseModel):
    reviewer_id: uuid.UUID | None = None
    total_disputed: int
    overturned_count: int
    accuracy_rate: float
