"""Dispute API router — filing, lifecycle actions, comments and dashboards."""

import uuid

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.ext.asyncio import AsyncSession

from src.database.session import get_db
from src.exceptions import ValidationException
from src.models.enums import DisputeStatus, DisputeTier
from src.modules.dispute.schemas import (
    AppealRequest,
    ArbitratorStatsResponse,
    CommentCreate,
    DisputeCommentResponse,
    DisputeConfigResponse,
    DisputeCreate,
    DisputeListResponse,
    DisputeResponse,
    DisputeSummaryResponse,
    EligibilityResponse,
    MediateRequest,
    MediationPendingResponse,
    PendingCountResponse,
    ResolveRequest,
    RespondRequest,
    ReviewerAccuracyResponse,
)
from src.modules.dispute.service import DisputeService
from src.modules.members.auth import AuthenticatedUser, get_current_user

router = APIRouter(prefix="/disputes", tags=["disputes"])
limiter = Limiter(key_func=get_remote_address)


# ---------------------------------------------------------------------------
# Collection
# ---------------------------------------------------------------------------


@router.get("")
async def list_disputes(
    config: bool = Query(False),
    check_eligibility: uuid.UUID | None = Query(None),
    pending_count: bool = Query(False),
    stats: bool = Query(False),
    reviewer_accuracy: bool = Query(False),
    reviewer_id: uuid.UUID | None = Query(None),
    status: DisputeStatus | None = Query(None),
    tier: DisputeTier | None = Query(None),
    sprint_id: uuid.UUID | None = Query(None),
    my_disputes: bool = Query(False),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """List disputes, or answer one of the dashboard queries selected by flag."""
    svc = DisputeService(db)

    if config:
        effective = await svc.get_config()
        return DisputeConfigResponse(**effective.as_dict())
    if check_eligibility is not None:
        return EligibilityResponse(**await svc.check_eligibility(user, check_eligibility))
    if pending_count:
        return PendingCountResponse(count=await svc.pending_count(user))
    if stats:
        return ArbitratorStatsResponse(**await svc.arbitrator_stats(user))
    if reviewer_accuracy:
        rows = await svc.reviewer_accuracy(user, reviewer_id)
        return [ReviewerAccuracyResponse(**row) for row in rows]

    items, total = await svc.list_disputes(
        user,
        status=status,
        tier=tier,
        sprint_id=sprint_id,
        my_disputes=my_disputes,
        limit=limit,
        offset=offset,
    )
    return DisputeListResponse(
        items=[DisputeResponse.model_validate(d) for d in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.post("", response_model=DisputeResponse, status_code=201)
@limiter.limit("10/minute")
async def file_dispute(
    request: Request,
    body: DisputeCreate,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """File a dispute against the review of one of your submissions."""
    svc = DisputeService(db)
    dispute = await svc.file_dispute(body, user)
    return DisputeResponse.model_validate(dispute)


@router.get("/{dispute_id}")
async def get_dispute(
    dispute_id: uuid.UUID,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Full record for parties and arbitrators, a summary for everyone else."""
    svc = DisputeService(db)
    dispute, full = await svc.get_for_viewer(dispute_id, user)
    if full:
        return DisputeResponse.model_validate(dispute)
    return DisputeSummaryResponse.model_validate(dispute)


# ---------------------------------------------------------------------------
# Lifecycle actions
# ---------------------------------------------------------------------------


@router.post("/{dispute_id}/respond", response_model=DisputeResponse)
async def respond_to_dispute(
    dispute_id: uuid.UUID,
    body: RespondRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    svc = DisputeService(db)
    dispute = await svc.respond(
        dispute_id,
        response_text=body.response_text,
        response_links=[str(link) for link in body.response_links],
        user=user,
    )
    return DisputeResponse.model_validate(dispute)


@router.post("/{dispute_id}/assign", response_model=DisputeResponse)
async def assign_arbitrator(
    dispute_id: uuid.UUID,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Self-assign as arbitrator."""
    svc = DisputeService(db)
    return DisputeResponse.model_validate(await svc.assign(dispute_id, user))


@router.delete("/{dispute_id}/assign", response_model=DisputeResponse)
async def recuse_arbitrator(
    dispute_id: uuid.UUID,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Recuse the current arbitrator."""
    svc = DisputeService(db)
    return DisputeResponse.model_validate(await svc.recuse(dispute_id, user))


@router.post("/{dispute_id}/resolve", response_model=DisputeResponse)
async def resolve_dispute(
    dispute_id: uuid.UUID,
    body: ResolveRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    svc = DisputeService(db)
    dispute = await svc.resolve(
        dispute_id,
        resolution=body.resolution,
        resolution_notes=body.resolution_notes,
        new_quality_score=body.new_quality_score,
        user=user,
    )
    return DisputeResponse.model_validate(dispute)


@router.post("/{dispute_id}/appeal", response_model=DisputeResponse)
async def appeal_dispute(
    dispute_id: uuid.UUID,
    body: AppealRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    svc = DisputeService(db)
    return DisputeResponse.model_validate(await svc.appeal(dispute_id, body.appeal_reason, user))


@router.post("/{dispute_id}/mediate")
async def mediate_dispute(
    dispute_id: uuid.UUID,
    body: MediateRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Confirm a mediated outcome; 202 until the other party confirms too."""
    svc = DisputeService(db)
    outcome = await svc.mediate(dispute_id, body.agreed_outcome, user)
    dispute = DisputeResponse.model_validate(outcome.dispute)
    if not outcome.confirmed:
        return JSONResponse(
            status_code=202,
            content=MediationPendingResponse(dispute=dispute).model_dump(mode="json"),
        )
    return dispute


@router.post("/{dispute_id}/withdraw", response_model=DisputeResponse)
async def withdraw_dispute(
    dispute_id: uuid.UUID,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    svc = DisputeService(db)
    return DisputeResponse.model_validate(await svc.withdraw(dispute_id, user))


# ---------------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------------


@router.get("/{dispute_id}/comments", response_model=list[DisputeCommentResponse])
async def list_comments(
    dispute_id: uuid.UUID,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    svc = DisputeService(db)
    comments = await svc.list_comments(dispute_id, user)
    return [DisputeCommentResponse.model_validate(c) for c in comments]


@router.post(
    "/{dispute_id}/comments",
    response_model=DisputeCommentResponse,
    status_code=201,
)
async def add_comment(
    dispute_id: uuid.UUID,
    body: CommentCreate,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if not body.content.strip():
        raise ValidationException("Comment cannot be blank")
    svc = DisputeService(db)
    comment = await svc.add_comment(dispute_id, body.content, body.visibility, user)
    return DisputeCommentResponse.model_validate(comment)
