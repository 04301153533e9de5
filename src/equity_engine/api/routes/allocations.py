"""Allocation and reconciliation API endpoints."""

from typing import Annotated

from fastapi import APIRouter, Path

from equity_engine.api.dependencies import CurrentActor, DbSession, Emitter
from equity_engine.api.schemas import (
    AllocationPreviewResponse,
    CommitRequest,
    CommitResponse,
    ErrorResponse,
    MemberAllocationResponse,
    PeriodResponse,
    ReconciliationResponse,
    ReverseRequest,
)
from equity_engine.services.allocation_service import AllocationService

router = APIRouter(prefix="/periods/{fiscal_year}", tags=["allocations"])

FiscalYear = Annotated[int, Path(ge=1900, le=2999)]


@router.get(
    "/allocation/preview",
    response_model=AllocationPreviewResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def preview_allocation(db: DbSession, fiscal_year: FiscalYear) -> AllocationPreviewResponse:
    """Calculate the allocation without writing it."""
    result = await AllocationService(db).preview(fiscal_year)
    return AllocationPreviewResponse.from_result(result)


@router.post(
    "/allocation",
    response_model=CommitResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def commit_allocation(
    db: DbSession,
    actor: CurrentActor,
    emitter: Emitter,
    fiscal_year: FiscalYear,
    payload: CommitRequest,
) -> CommitResponse:
    """Write the allocation and lock the period.

    An unreconciled period needs ``override_reason``.
    """
    service = AllocationService(db, emitter=emitter)
    outcome = await service.commit(
        fiscal_year, actor.actor_id, override_reason=payload.override_reason
    )
    await db.commit()
    return CommitResponse(
        fiscal_year=fiscal_year,
        member_count=outcome.result.member_count,
        total_allocated=outcome.result.total_allocated,
        rounding_remainder=outcome.result.rounding_remainder,
        is_reconciled=outcome.report.is_reconciled,
        overridden=outcome.overridden,
        allocations=[
            MemberAllocationResponse.model_validate(a) for a in outcome.allocations
        ],
    )


@router.post(
    "/allocation/reverse",
    response_model=PeriodResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def reverse_allocation(
    db: DbSession,
    actor: CurrentActor,
    emitter: Emitter,
    fiscal_year: FiscalYear,
    payload: ReverseRequest,
) -> PeriodResponse:
    """Remove a committed allocation and reopen the period."""
    service = AllocationService(db, emitter=emitter)
    period = await service.reverse(fiscal_year, actor.actor_id, payload.reason)
    await db.commit()
    return PeriodResponse.model_validate(period)


@router.get(
    "/allocations",
    response_model=list[MemberAllocationResponse],
    responses={404: {"model": ErrorResponse}},
)
async def list_allocations(
    db: DbSession, fiscal_year: FiscalYear
) -> list[MemberAllocationResponse]:
    allocations = await AllocationService(db).list_allocations(fiscal_year)
    return [MemberAllocationResponse.model_validate(a) for a in allocations]


@router.get(
    "/reconciliation",
    response_model=ReconciliationResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_reconciliation(db: DbSession, fiscal_year: FiscalYear) -> ReconciliationResponse:
    report = await AllocationService(db).check_reconciliation(fiscal_year)
    return ReconciliationResponse.from_report(fiscal_year, report)
