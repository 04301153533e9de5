"""Allocation service - preview, commit and reversal of year-end allocations."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlalchemy.ext.asyncio import AsyncSession

from equity_engine.calculators.allocation import AllocationCalculator
from equity_engine.calculators.types import ZERO, AllocationResult, MemberPosition
from equity_engine.config import Settings, get_settings
from equity_engine.database import acquire_fiscal_year_lock
from equity_engine.errors import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ReconciliationVarianceError,
    ValidationError,
)
from equity_engine.events import (
    AllocationCommitted,
    AllocationReversed,
    DomainEvent,
    EventEmitter,
    EventMetadata,
    ReconciliationOverridden,
)
from equity_engine.models import utcnow
from equity_engine.services.audit import record_audit
from equity_engine.services.reconciliation import (
    ALLOCATED_AMOUNT,
    MEMBER_CAPITAL_ACCOUNTS,
    TOTAL_EQUITY_PERCENTAGE,
    ReconciliationReport,
    build_balance_sheet_totals,
    build_system_totals,
    default_tolerances,
    reconcile,
)
from equity_engine.stores.base import (
    AllocationStore,
    FinancialPeriodStore,
    MemberStore,
    RosterEntry,
)
from equity_engine.stores.sql import (
    SqlAllocationStore,
    SqlFinancialPeriodStore,
    SqlMemberStore,
)

if TYPE_CHECKING:
    from equity_engine.models import FinancialPeriod, MemberAllocation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AllocationOutcome:
    """What a successful commit wrote."""

    period: FinancialPeriod
    result: AllocationResult
    report: ReconciliationReport
    allocations: list[MemberAllocation]

    @property
    def overridden(self) -> bool:
        return not self.report.is_reconciled


class AllocationService:
    """Service for running a fiscal year's allocation.

    Operations:
    - preview: calculate without writing
    - commit: reconcile, write every allocation and lock the period as one unit
    - reverse: explicit reopen path that removes a committed allocation
    - recompute: reverse then commit in the same unit of work

    Commits for the same fiscal year are serialized by an advisory lock on
    Postgres and, on every backend, by a version-checked update of the
    period row; the loser gets ConflictError.
    """

    def __init__(
        self,
        session: AsyncSession,
        member_store: MemberStore | None = None,
        period_store: FinancialPeriodStore | None = None,
        allocation_store: AllocationStore | None = None,
        calculator: AllocationCalculator | None = None,
        emitter: EventEmitter | None = None,
        settings: Settings | None = None,
    ):
        settings = settings or get_settings()
        self.session = session
        self.member_store = member_store or SqlMemberStore(session)
        self.period_store = period_store or SqlFinancialPeriodStore(session)
        self.allocation_store = allocation_store or SqlAllocationStore(session)
        self.calculator = calculator or AllocationCalculator(
            incentive_spread=settings.incentive_spread,
            incentive_rate_cap=settings.incentive_rate_cap,
        )
        self.emitter = emitter or EventEmitter()
        self.tolerances = default_tolerances(
            settings.capital_tolerance, settings.percentage_tolerance
        )

    async def _load_period(self, fiscal_year: int) -> FinancialPeriod:
        period = await self.period_store.get(fiscal_year)
        if period is None:
            raise NotFoundError("FinancialPeriod", fiscal_year)
        return period

    async def _load_roster(
        self, fiscal_year: int
    ) -> tuple[list[RosterEntry], list[MemberPosition]]:
        roster = await self.member_store.get_active_members(fiscal_year)
        positions = []
        for entry in roster:
            snapshot = entry.snapshot
            positions.append(
                MemberPosition(
                    member_id=entry.member_id,
                    capital_balance=await self.member_store.get_capital_balance(
                        entry.member_id, fiscal_year
                    ),
                    estimated_percentage=snapshot.estimated_percentage,
                    final_percentage=snapshot.final_percentage,
                    is_finalized=snapshot.is_finalized,
                    distributions=await self.member_store.get_distributions_total(
                        entry.member_id, fiscal_year
                    ),
                )
            )
        return roster, positions

    async def preview(self, fiscal_year: int) -> AllocationResult:
        """Calculate the allocation for an unallocated period without writing."""
        period = await self._load_period(fiscal_year)
        _, positions = await self._load_roster(fiscal_year)
        result = self.calculator.calculate_for_period(period, positions)
        if result.remaining_net_income_negative:
            logger.warning(
                "Fiscal year %s: incentive returns exceed allocable amount (remaining %s)",
                fiscal_year,
                result.remaining_net_income,
            )
        return result

    async def check_reconciliation(self, fiscal_year: int) -> ReconciliationReport:
        """Reconcile a period against its balance sheet.

        Allocated periods are checked from their stored allocations; open
        periods from a fresh preview.
        """
        period = await self._load_period(fiscal_year)
        if not period.is_allocated:
            roster, positions = await self._load_roster(fiscal_year)
            result = self.calculator.calculate_for_period(period, positions)
            system = build_system_totals(result, [entry.snapshot for entry in roster])
        else:
            allocations = await self.allocation_store.list_for_year(fiscal_year)
            system = {
                MEMBER_CAPITAL_ACCOUNTS: sum(
                    (a.ending_capital_balance for a in allocations), ZERO
                ),
                ALLOCATED_AMOUNT: sum((a.allocation_amount for a in allocations), ZERO),
                TOTAL_EQUITY_PERCENTAGE: sum(
                    (a.equity_percentage for a in allocations), ZERO
                ),
            }
        return reconcile(system, build_balance_sheet_totals(period), self.tolerances)

    async def list_allocations(self, fiscal_year: int) -> list[MemberAllocation]:
        await self._load_period(fiscal_year)
        return await self.allocation_store.list_for_year(fiscal_year)

    async def commit(
        self,
        fiscal_year: int,
        actor_id: str,
        override_reason: str | None = None,
    ) -> AllocationOutcome:
        """Allocate a fiscal year and lock its period.

        Raises:
            PeriodLockedError: the period is already allocated
            ReconciliationVarianceError: totals do not reconcile and no
                override reason was given
            ConflictError: another commit for the year is in flight or won
        """
        period = await self._load_period(fiscal_year)
        if not await acquire_fiscal_year_lock(self.session, fiscal_year):
            raise ConflictError(fiscal_year, "another allocation is in progress")

        roster, positions = await self._load_roster(fiscal_year)
        result = self.calculator.calculate_for_period(period, positions)
        if result.remaining_net_income_negative:
            logger.warning(
                "Fiscal year %s: incentive returns exceed allocable amount (remaining %s)",
                fiscal_year,
                result.remaining_net_income,
            )

        report = reconcile(
            build_system_totals(result, [entry.snapshot for entry in roster]),
            build_balance_sheet_totals(period),
            self.tolerances,
        )
        override_reason = (override_reason or "").strip() or None
        if not report.is_reconciled and override_reason is None:
            raise ReconciliationVarianceError(fiscal_year, report)

        events: list[DomainEvent] = []
        period.total_member_capital_accounts = result.total_ending_capital
        period.reconciliation_difference = report.item(MEMBER_CAPITAL_ACCOUNTS).variance
        period.is_reconciled = report.is_reconciled
        period.reconciliation_override_reason = None

        if not report.is_reconciled:
            failing = tuple(item.key for item in report.items if item.status != "matched")
            period.reconciliation_override_reason = override_reason
            logger.warning(
                "Fiscal year %s allocated over unreconciled lines %s by %s: %s",
                fiscal_year,
                ", ".join(failing),
                actor_id,
                override_reason,
            )
            record_audit(
                self.session,
                entity_type="financial_period",
                entity_id=fiscal_year,
                action="reconciliation_overridden",
                actor_id=actor_id,
                details={"reason": override_reason, "report": report.to_dict()},
            )
            events.append(
                ReconciliationOverridden(
                    metadata=EventMetadata.create(actor_id=actor_id),
                    fiscal_year=fiscal_year,
                    override_reason=override_reason,
                    variance_keys=failing,
                )
            )

        allocation_date = utcnow()
        allocations = await self.allocation_store.replace_for_year(
            period, result.lines, allocation_date
        )
        if not await self.period_store.mark_allocated(period, actor_id, allocation_date):
            raise ConflictError(fiscal_year, "period changed while allocating")

        record_audit(
            self.session,
            entity_type="financial_period",
            entity_id=fiscal_year,
            action="allocated",
            actor_id=actor_id,
            details={
                "member_count": result.member_count,
                "total_allocated": str(result.total_allocated),
                "rounding_remainder": str(result.rounding_remainder),
            },
        )
        events.append(
            AllocationCommitted(
                metadata=EventMetadata.create(actor_id=actor_id),
                fiscal_year=fiscal_year,
                member_count=result.member_count,
                total_allocated=result.total_allocated,
                rounding_remainder=result.rounding_remainder,
                is_reconciled=report.is_reconciled,
            )
        )
        logger.info(
            "Allocated fiscal year %s: %d members, %s allocated, remainder %s",
            fiscal_year,
            result.member_count,
            result.total_allocated,
            result.rounding_remainder,
        )

        for event in events:
            self.emitter.emit(event)
        return AllocationOutcome(
            period=period, result=result, report=report, allocations=allocations
        )

    async def reverse(self, fiscal_year: int, actor_id: str, reason: str) -> FinancialPeriod:
        """Remove a committed allocation and reopen the period."""
        if not reason or not reason.strip():
            raise ValidationError("A reason is required to reverse an allocation", field="reason")

        period = await self._load_period(fiscal_year)
        if not await acquire_fiscal_year_lock(self.session, fiscal_year):
            raise ConflictError(fiscal_year, "another allocation is in progress")
        if not period.is_allocated:
            raise InvalidTransitionError(
                "unallocated", "reversed", f"fiscal year {fiscal_year} has no allocation"
            )

        removed = await self.allocation_store.delete_for_year(fiscal_year)
        if not await self.period_store.mark_unallocated(period):
            raise ConflictError(fiscal_year, "period changed while reversing")

        record_audit(
            self.session,
            entity_type="financial_period",
            entity_id=fiscal_year,
            action="allocation_reversed",
            actor_id=actor_id,
            details={"reason": reason, "removed": removed},
        )
        logger.info(
            "Reversed allocation for fiscal year %s (%d rows) by %s: %s",
            fiscal_year,
            removed,
            actor_id,
            reason,
        )
        self.emitter.emit(
            AllocationReversed(
                metadata=EventMetadata.create(actor_id=actor_id),
                fiscal_year=fiscal_year,
                removed_count=removed,
                reason=reason,
            )
        )
        return period

    async def recompute(
        self,
        fiscal_year: int,
        actor_id: str,
        reason: str,
        override_reason: str | None = None,
    ) -> AllocationOutcome:
        """Reverse the existing allocation and commit a fresh one."""
        await self.reverse(fiscal_year, actor_id, reason)
        return await self.commit(fiscal_year, actor_id, override_reason)
