"""Board approval API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, status

from equity_engine.api.dependencies import Authorizer, CurrentActor, DbSession, Emitter
from equity_engine.api.schemas import (
    BoardApprovalCreate,
    BoardApprovalResponse,
    ErrorResponse,
    RejectRequest,
)
from equity_engine.calculators.validation import ProposedUpdate
from equity_engine.services.board_approval_service import BoardApprovalService

router = APIRouter(prefix="/board-approvals", tags=["board-approvals"])

ApprovalId = Annotated[UUID, Path()]

ERROR_RESPONSES = {
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
}


@router.post(
    "",
    response_model=BoardApprovalResponse,
    status_code=status.HTTP_201_CREATED,
    responses=ERROR_RESPONSES,
)
async def create_board_approval(
    db: DbSession,
    actor: CurrentActor,
    authorizer: Authorizer,
    emitter: Emitter,
    payload: BoardApprovalCreate,
) -> BoardApprovalResponse:
    """Create a draft approval."""
    service = BoardApprovalService(db, authorizer, emitter=emitter)
    approval = await service.create_draft(
        fiscal_year=payload.fiscal_year,
        approval_type=payload.approval_type,
        title=payload.title,
        updates=[
            ProposedUpdate(u.member_id, u.new_percentage, u.change_reason)
            for u in payload.updates
        ],
        submitted_by=actor.actor_id,
        effective_date=payload.effective_date,
        description=payload.description,
        notes=payload.notes,
    )
    await db.commit()
    return BoardApprovalResponse.model_validate(approval)


@router.get("/{approval_id}", response_model=BoardApprovalResponse, responses=ERROR_RESPONSES)
async def get_board_approval(
    db: DbSession, authorizer: Authorizer, approval_id: ApprovalId
) -> BoardApprovalResponse:
    approval = await BoardApprovalService(db, authorizer).get_approval(approval_id)
    return BoardApprovalResponse.model_validate(approval)


@router.post(
    "/{approval_id}/submit", response_model=BoardApprovalResponse, responses=ERROR_RESPONSES
)
async def submit_board_approval(
    db: DbSession,
    actor: CurrentActor,
    authorizer: Authorizer,
    emitter: Emitter,
    approval_id: ApprovalId,
) -> BoardApprovalResponse:
    service = BoardApprovalService(db, authorizer, emitter=emitter)
    approval = await service.submit(approval_id, actor.actor_id)
    await db.commit()
    return BoardApprovalResponse.model_validate(approval)


@router.post(
    "/{approval_id}/approve", response_model=BoardApprovalResponse, responses=ERROR_RESPONSES
)
async def approve_board_approval(
    db: DbSession,
    actor: CurrentActor,
    authorizer: Authorizer,
    emitter: Emitter,
    approval_id: ApprovalId,
) -> BoardApprovalResponse:
    service = BoardApprovalService(db, authorizer, emitter=emitter)
    approval = await service.approve(approval_id, actor)
    await db.commit()
    return BoardApprovalResponse.model_validate(approval)


@router.post(
    "/{approval_id}/apply", response_model=BoardApprovalResponse, responses=ERROR_RESPONSES
)
async def apply_board_approval(
    db: DbSession,
    actor: CurrentActor,
    authorizer: Authorizer,
    emitter: Emitter,
    approval_id: ApprovalId,
) -> BoardApprovalResponse:
    """Apply an approved change set to the member snapshots."""
    service = BoardApprovalService(db, authorizer, emitter=emitter)
    approval = await service.apply(approval_id, actor)
    await db.commit()
    return BoardApprovalResponse.model_validate(approval)


@router.post(
    "/{approval_id}/reject", response_model=BoardApprovalResponse, responses=ERROR_RESPONSES
)
async def reject_board_approval(
    db: DbSession,
    actor: CurrentActor,
    authorizer: Authorizer,
    emitter: Emitter,
    approval_id: ApprovalId,
    payload: RejectRequest,
) -> BoardApprovalResponse:
    service = BoardApprovalService(db, authorizer, emitter=emitter)
    approval = await service.reject(approval_id, actor, payload.reason)
    await db.commit()
    return BoardApprovalResponse.model_validate(approval)


@router.post(
    "/{approval_id}/revise",
    response_model=BoardApprovalResponse,
    status_code=status.HTTP_201_CREATED,
    responses=ERROR_RESPONSES,
)
async def revise_board_approval(
    db: DbSession,
    actor: CurrentActor,
    authorizer: Authorizer,
    emitter: Emitter,
    approval_id: ApprovalId,
) -> BoardApprovalResponse:
    """Start a new draft from a rejected approval."""
    service = BoardApprovalService(db, authorizer, emitter=emitter)
    approval = await service.revise(approval_id, actor.actor_id)
    await db.commit()
    return BoardApprovalResponse.model_validate(approval)
