"""Sprint API router — CRUD, start, phase advance and settlement gating."""

import uuid

from fastapi import APIRouter, Depends, Query, Request, Response
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.ext.asyncio import AsyncSession

from src.database.session import get_db
from src.models.enums import SprintStatus
from src.modules.members.auth import AuthenticatedUser, get_current_user
from src.modules.members.dependencies import require_admin, require_council
from src.modules.sprint.schemas import (
    IntegrityFlagCreate,
    PhaseTransition,
    SettlementBlockersResponse,
    SprintAdvanceResponse,
    SprintCompleteRequest,
    SprintCreate,
    SprintListResponse,
    SprintResponse,
    SprintSnapshotResponse,
    SprintTransitionResponse,
    SprintUpdate,
)
from src.modules.sprint.service import AdvanceOutcome, SprintService
from src.schemas.responses import ErrorResponse, error_response, get_request_id

router = APIRouter(prefix="/sprints", tags=["sprints"])
limiter = Limiter(key_func=get_remote_address)


def _advance_response(outcome: AdvanceOutcome) -> SprintAdvanceResponse:
    settlement = outcome.reward_settlement
    blockers = outcome.settlement_blockers
    return SprintAdvanceResponse(
        sprint=SprintResponse.model_validate(outcome.sprint),
        snapshot=(
            SprintSnapshotResponse.model_validate(outcome.snapshot) if outcome.snapshot else None
        ),
        phase_transition=PhaseTransition(
            from_status=outcome.from_status, to_status=outcome.to_status
        ),
        recurring_tasks_cloned=outcome.recurring_tasks_cloned,
        epoch_distributions=settlement.distributed_count if settlement else None,
        reward_settlement=settlement.as_dict() if settlement else None,
        disputes_escalated=outcome.disputes_escalated,
        admin_dispute_extensions=outcome.admin_dispute_extensions,
        settlement_blockers=(
            SettlementBlockersResponse(**blockers.as_dict()) if blockers else None
        ),
    )


@router.get("", response_model=SprintListResponse)
async def list_sprints(
    status: SprintStatus | None = Query(None),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    svc = SprintService(db)
    items, total = await svc.list_sprints(status=status, limit=limit, offset=offset)
    return SprintListResponse(
        items=[SprintResponse.model_validate(s) for s in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.post("", response_model=SprintResponse, status_code=201)
async def create_sprint(
    body: SprintCreate,
    user: AuthenticatedUser = Depends(require_council),
    db: AsyncSession = Depends(get_db),
):
    svc = SprintService(db)
    return SprintResponse.model_validate(await svc.create_sprint(body, user))


@router.get("/{sprint_id}", response_model=SprintResponse)
async def get_sprint(
    sprint_id: uuid.UUID,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    svc = SprintService(db)
    return SprintResponse.model_validate(await svc.get_sprint(sprint_id))


@router.patch("/{sprint_id}", response_model=SprintResponse)
async def update_sprint(
    sprint_id: uuid.UUID,
    body: SprintUpdate,
    user: AuthenticatedUser = Depends(require_council),
    db: AsyncSession = Depends(get_db),
):
    """Edit a sprint that is still in planning."""
    svc = SprintService(db)
    return SprintResponse.model_validate(await svc.update_sprint(sprint_id, body))


@router.delete("/{sprint_id}", status_code=204)
async def delete_sprint(
    sprint_id: uuid.UUID,
    user: AuthenticatedUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Delete a sprint that is still in planning."""
    svc = SprintService(db)
    await svc.delete_sprint(sprint_id, user)
    return Response(status_code=204)


@router.post("/{sprint_id}/start", response_model=SprintResponse)
async def start_sprint(
    sprint_id: uuid.UUID,
    user: AuthenticatedUser = Depends(require_council),
    db: AsyncSession = Depends(get_db),
):
    svc = SprintService(db)
    return SprintResponse.model_validate(await svc.start_sprint(sprint_id, user))


@router.post(
    "/{sprint_id}/complete",
    response_model=SprintAdvanceResponse,
    responses={409: {"model": ErrorResponse}},
)
@limiter.limit("20/minute")
async def advance_sprint(
    request: Request,
    sprint_id: uuid.UUID,
    body: SprintCompleteRequest | None = None,
    user: AuthenticatedUser = Depends(require_council),
    db: AsyncSession = Depends(get_db),
):
    """Advance the sprint one phase.

    ``incomplete_action`` and ``next_sprint_id`` only matter on the final
    settlement -> completed step. A blocked or held settlement answers 409
    with the blocker or settlement detail at the top level.
    """
    svc = SprintService(db)
    outcome = await svc.advance(sprint_id, user, body)
    if outcome.refused:
        refusal = outcome.refusal
        return error_response(
            status_code=409,
            code=refusal.code,
            message=refusal.message,
            request_id=get_request_id(request),
            context={
                **refusal.context,
                "sprint": SprintResponse.model_validate(outcome.sprint).model_dump(mode="json"),
            },
        )
    return _advance_response(outcome)


@router.get("/{sprint_id}/settlement-blockers", response_model=SettlementBlockersResponse)
async def get_settlement_blockers(
    sprint_id: uuid.UUID,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    svc = SprintService(db)
    blockers = await svc.preview_blockers(sprint_id)
    return SettlementBlockersResponse(**blockers.as_dict())


@router.post("/{sprint_id}/integrity-flags", response_model=SprintResponse, status_code=201)
async def add_integrity_flag(
    sprint_id: uuid.UUID,
    body: IntegrityFlagCreate,
    user: AuthenticatedUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    svc = SprintService(db)
    sprint = await svc.add_integrity_flag(sprint_id, body.code, body.reason, user)
    return SprintResponse.model_validate(sprint)


@router.delete("/{sprint_id}/integrity-flags", response_model=SprintResponse)
async def clear_integrity_flags(
    sprint_id: uuid.UUID,
    flag_id: str | None = Query(None),
    user: AuthenticatedUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    svc = SprintService(db)
    return SprintResponse.model_validate(await svc.clear_integrity_flags(sprint_id, user, flag_id))


@router.get("/{sprint_id}/transitions", response_model=list[SprintTransitionResponse])
async def list_sprint_transitions(
    sprint_id: uuid.UUID,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    svc = SprintService(db)
    return [SprintTransitionResponse.model_validate(t) for t in await svc.list_transitions(sprint_id)]
