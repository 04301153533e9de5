"""Financial period API endpoints."""

from typing import Annotated

from fastapi import APIRouter, Path, status

from equity_engine.api.dependencies import CurrentActor, DbSession, Emitter, SofrSource
from equity_engine.api.schemas import (
    ErrorResponse,
    PeriodCreate,
    PeriodResponse,
    PeriodUpdate,
)
from equity_engine.services.period_service import PeriodService

router = APIRouter(prefix="/periods", tags=["periods"])

FiscalYear = Annotated[int, Path(ge=1900, le=2999)]


@router.post(
    "",
    response_model=PeriodResponse,
    status_code=status.HTTP_201_CREATED,
    responses={422: {"model": ErrorResponse}},
)
async def create_period(
    db: DbSession,
    actor: CurrentActor,
    emitter: Emitter,
    sofr_source: SofrSource,
    payload: PeriodCreate,
) -> PeriodResponse:
    """Create the financial period for a fiscal year."""
    service = PeriodService(db, sofr_source=sofr_source, emitter=emitter)
    period = await service.create_period(
        **payload.model_dump(), created_by=actor.actor_id
    )
    await db.commit()
    return PeriodResponse.model_validate(period)


@router.get(
    "/{fiscal_year}",
    response_model=PeriodResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_period(db: DbSession, fiscal_year: FiscalYear) -> PeriodResponse:
    period = await PeriodService(db).get_period(fiscal_year)
    return PeriodResponse.model_validate(period)


@router.patch(
    "/{fiscal_year}",
    response_model=PeriodResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def update_period(
    db: DbSession,
    actor: CurrentActor,
    emitter: Emitter,
    fiscal_year: FiscalYear,
    payload: PeriodUpdate,
) -> PeriodResponse:
    """Change editable fields of an unallocated period."""
    service = PeriodService(db, emitter=emitter)
    period = await service.update_period(
        fiscal_year, actor_id=actor.actor_id, **payload.model_dump(exclude_unset=True)
    )
    await db.commit()
    return PeriodResponse.model_validate(period)
