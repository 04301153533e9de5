"""Service health, including where the allocation calendar stands."""

import logging

from fastapi import APIRouter
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from equity_engine.api.dependencies import DbSession
from equity_engine.config import get_settings
from equity_engine.models import FinancialPeriod

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    status: str
    engine_version: str
    database: str
    open_fiscal_years: list[int] = []
    last_allocated_year: int | None = None


@router.get("/health", response_model=HealthResponse)
async def health_check(db: DbSession) -> HealthResponse:
    """Report whether periods can be read, and which years are still open."""
    version = get_settings().engine_version
    try:
        rows = (
            await db.execute(
                select(FinancialPeriod.fiscal_year, FinancialPeriod.is_allocated).order_by(
                    FinancialPeriod.fiscal_year
                )
            )
        ).all()
    except SQLAlchemyError:
        logger.warning("Health check could not read financial periods", exc_info=True)
        return HealthResponse(status="degraded", engine_version=version, database="unhealthy")

    allocated = [year for year, is_allocated in rows if is_allocated]
    return HealthResponse(
        status="healthy",
        engine_version=version,
        database="healthy",
        open_fiscal_years=[year for year, is_allocated in rows if not is_allocated],
        last_allocated_year=allocated[-1] if allocated else None,
    )
