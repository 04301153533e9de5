"""Financial period service."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from equity_engine.calculators.types import ZERO, as_decimal
from equity_engine.errors import ImmutableStateError, NotFoundError, ValidationError
from equity_engine.events import EventEmitter, EventMetadata, PeriodCreated, PeriodUpdated
from equity_engine.models import FinancialPeriod
from equity_engine.services.audit import record_audit
from equity_engine.stores.base import FinancialPeriodStore, SofrRateSource
from equity_engine.stores.sofr import MANUAL_SOURCE
from equity_engine.stores.sql import SqlFinancialPeriodStore

logger = logging.getLogger(__name__)

MIN_FISCAL_YEAR = 1900
MAX_FISCAL_YEAR = 2999

EDITABLE_FIELDS = frozenset({
    "net_income",
    "accruals",
    "adjustments",
    "sofr_rate",
    "sofr_source",
    "sofr_period",
    "total_equity_balance_sheet",
    "notes",
})
DECIMAL_FIELDS = frozenset({
    "net_income",
    "accruals",
    "adjustments",
    "sofr_rate",
    "total_equity_balance_sheet",
})


def _validate_fiscal_year(fiscal_year: int) -> None:
    if not MIN_FISCAL_YEAR <= fiscal_year <= MAX_FISCAL_YEAR:
        raise ValidationError(
            f"Fiscal year {fiscal_year} outside {MIN_FISCAL_YEAR}-{MAX_FISCAL_YEAR}",
            field="fiscal_year",
        )


def _validate_sofr_rate(rate: Decimal) -> None:
    if rate < 0:
        raise ValidationError(f"SOFR rate cannot be negative: {rate}", field="sofr_rate")


class PeriodService:
    """Creates and edits fiscal-year financial periods.

    An allocated period is frozen: edits raise ImmutableStateError until the
    allocation is reversed.
    """

    def __init__(
        self,
        session: AsyncSession,
        period_store: FinancialPeriodStore | None = None,
        sofr_source: SofrRateSource | None = None,
        emitter: EventEmitter | None = None,
    ):
        self.session = session
        self.period_store = period_store or SqlFinancialPeriodStore(session)
        self.sofr_source = sofr_source
        self.emitter = emitter or EventEmitter()

    async def get_period(self, fiscal_year: int) -> FinancialPeriod:
        period = await self.period_store.get(fiscal_year)
        if period is None:
            raise NotFoundError("FinancialPeriod", fiscal_year)
        return period

    async def list_periods(self) -> list[FinancialPeriod]:
        return await self.period_store.list_all()

    async def create_period(
        self,
        fiscal_year: int,
        net_income: Any,
        accruals: Any = ZERO,
        adjustments: Any = ZERO,
        sofr_rate: Any | None = None,
        sofr_source: str | None = None,
        total_equity_balance_sheet: Any = ZERO,
        sofr_period: str | None = None,
        notes: str | None = None,
        created_by: str | None = None,
    ) -> FinancialPeriod:
        """Create the period for a fiscal year.

        Without an explicit ``sofr_rate`` the injected rate source supplies
        the rate, source and period; an explicit rate is a manual entry.
        """
        _validate_fiscal_year(fiscal_year)
        if await self.period_store.get(fiscal_year) is not None:
            raise ValidationError(
                f"A financial period already exists for {fiscal_year}",
                field="fiscal_year",
            )

        if sofr_rate is None:
            if self.sofr_source is None:
                raise ValidationError("SOFR rate is required", field="sofr_rate")
            quote = await self.sofr_source.get_rate(fiscal_year)
            rate = quote.rate
            sofr_source = sofr_source or quote.source
            sofr_period = sofr_period or quote.period
        else:
            rate = as_decimal(sofr_rate)
            sofr_source = sofr_source or MANUAL_SOURCE
        _validate_sofr_rate(rate)

        period = FinancialPeriod(
            fiscal_year=fiscal_year,
            net_income=as_decimal(net_income),
            accruals=as_decimal(accruals),
            adjustments=as_decimal(adjustments),
            sofr_rate=rate,
            sofr_source=sofr_source,
            sofr_period=sofr_period,
            total_equity_balance_sheet=as_decimal(total_equity_balance_sheet),
            is_reconciled=False,
            is_allocated=False,
            notes=notes,
            created_by=created_by,
            version=1,
        )
        await self.period_store.add(period)

        record_audit(
            self.session,
            entity_type="financial_period",
            entity_id=fiscal_year,
            action="created",
            actor_id=created_by,
            details={"final_allocable_amount": str(period.final_allocable_amount)},
        )
        logger.info(
            "Created financial period %s (allocable %s, SOFR %s from %s)",
            fiscal_year,
            period.final_allocable_amount,
            rate,
            sofr_source,
        )
        self.emitter.emit(
            PeriodCreated(
                metadata=EventMetadata.create(actor_id=created_by),
                fiscal_year=fiscal_year,
                final_allocable_amount=period.final_allocable_amount,
                sofr_rate=rate,
                sofr_source=sofr_source,
            )
        )
        return period

    async def update_period(
        self,
        fiscal_year: int,
        actor_id: str | None = None,
        **fields: Any,
    ) -> FinancialPeriod:
        """Apply a partial update to an unallocated period."""
        period = await self.get_period(fiscal_year)
        if period.is_allocated:
            raise ImmutableStateError(
                "FinancialPeriod", fiscal_year, "allocation has been processed"
            )

        for name in fields:
            if name not in EDITABLE_FIELDS:
                raise ValidationError(f"Field '{name}' cannot be updated", field=name)
        if not fields:
            raise ValidationError("No fields to update")

        values = {
            name: as_decimal(value) if name in DECIMAL_FIELDS and value is not None else value
            for name, value in fields.items()
        }
        for name in DECIMAL_FIELDS & values.keys():
            if values[name] is None:
                raise ValidationError(f"Field '{name}' cannot be null", field=name)
        if "sofr_rate" in values:
            _validate_sofr_rate(values["sofr_rate"])

        for name, value in values.items():
            setattr(period, name, value)
        period.recompute_allocable_amount()
        # Stored reconciliation results describe the old figures
        period.is_reconciled = False
        period.reconciliation_difference = None
        period.version += 1
        await self.session.flush()

        changed = tuple(sorted(values))
        record_audit(
            self.session,
            entity_type="financial_period",
            entity_id=fiscal_year,
            action="updated",
            actor_id=actor_id,
            details={"fields": list(changed)},
        )
        logger.info("Updated financial period %s: %s", fiscal_year, ", ".join(changed))
        self.emitter.emit(
            PeriodUpdated(
                metadata=EventMetadata.create(actor_id=actor_id),
                fiscal_year=fiscal_year,
                changed_fields=changed,
                final_allocable_amount=period.final_allocable_amount,
            )
        )
        return period
