"""SQLAlchemy implementations of the store protocols."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from equity_engine.models import (
    ACTIVE_STATUSES,
    Distribution,
    FinancialPeriod,
    Member,
    MemberAllocation,
    MemberEquitySnapshot,
    utcnow,
)
from equity_engine.stores.base import RosterEntry

if TYPE_CHECKING:
    from equity_engine.calculators.types import AllocationLine


class SqlMemberStore:
    """Member store backed by the member and snapshot tables."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_active_members(self, fiscal_year: int) -> list[RosterEntry]:
        result = await self.session.execute(
            select(MemberEquitySnapshot)
            .join(Member, Member.member_id == MemberEquitySnapshot.member_id)
            .where(
                MemberEquitySnapshot.fiscal_year == fiscal_year,
                Member.status.in_(ACTIVE_STATUSES),
            )
            .order_by(Member.last_name, Member.first_name, Member.member_id)
        )
        return [
            RosterEntry(
                member_id=snapshot.member_id,
                name=snapshot.member.full_name,
                status=snapshot.member.status,
                snapshot=snapshot,
            )
            for snapshot in result.unique().scalars()
        ]

    async def get_capital_balance(self, member_id: UUID, fiscal_year: int) -> Decimal:
        result = await self.session.execute(
            select(MemberEquitySnapshot.capital_balance).where(
                MemberEquitySnapshot.member_id == member_id,
                MemberEquitySnapshot.fiscal_year == fiscal_year,
            )
        )
        balance = result.scalar_one_or_none()
        return balance if balance is not None else Decimal("0")

    async def get_distributions_total(self, member_id: UUID, fiscal_year: int) -> Decimal:
        result = await self.session.execute(
            select(func.coalesce(func.sum(Distribution.amount), 0)).where(
                Distribution.member_id == member_id,
                Distribution.fiscal_year == fiscal_year,
            )
        )
        return Decimal(str(result.scalar_one()))

    async def get_snapshots(self, fiscal_year: int) -> list[MemberEquitySnapshot]:
        result = await self.session.execute(
            select(MemberEquitySnapshot)
            .where(MemberEquitySnapshot.fiscal_year == fiscal_year)
            .order_by(MemberEquitySnapshot.member_id)
        )
        return list(result.unique().scalars())


class SqlFinancialPeriodStore:
    """Financial period store with version-checked state flips."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, fiscal_year: int) -> FinancialPeriod | None:
        result = await self.session.execute(
            select(FinancialPeriod).where(FinancialPeriod.fiscal_year == fiscal_year)
        )
        return result.scalar_one_or_none()

    async def add(self, period: FinancialPeriod) -> FinancialPeriod:
        self.session.add(period)
        await self.session.flush()
        return period

    async def list_all(self) -> list[FinancialPeriod]:
        result = await self.session.execute(
            select(FinancialPeriod).order_by(FinancialPeriod.fiscal_year)
        )
        return list(result.scalars())

    async def mark_allocated(
        self, period: FinancialPeriod, actor_id: str, allocation_date: datetime
    ) -> bool:
        # Pending attribute changes must reach the row before the guarded update
        await self.session.flush()
        result = await self.session.execute(
            update(FinancialPeriod)
            .where(
                FinancialPeriod.financial_period_id == period.financial_period_id,
                FinancialPeriod.is_allocated == False,  # noqa: E712
                FinancialPeriod.version == period.version,
            )
            .values(
                is_allocated=True,
                allocation_date=allocation_date,
                allocated_by=actor_id,
                version=period.version + 1,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session="evaluate")
        )
        return result.rowcount == 1

    async def mark_unallocated(self, period: FinancialPeriod) -> bool:
        await self.session.flush()
        result = await self.session.execute(
            update(FinancialPeriod)
            .where(
                FinancialPeriod.financial_period_id == period.financial_period_id,
                FinancialPeriod.is_allocated == True,  # noqa: E712
                FinancialPeriod.version == period.version,
            )
            .values(
                is_allocated=False,
                allocation_date=None,
                allocated_by=None,
                version=period.version + 1,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session="evaluate")
        )
        return result.rowcount == 1


class SqlAllocationStore:
    """Allocation store writing a fiscal year's rows as one batch."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def replace_for_year(
        self,
        period: FinancialPeriod,
        lines: Sequence[AllocationLine],
        allocation_date: datetime,
    ) -> list[MemberAllocation]:
        await self.delete_for_year(period.fiscal_year)

        allocations = [
            MemberAllocation(
                financial_period_id=period.financial_period_id,
                member_id=line.member_id,
                fiscal_year=period.fiscal_year,
                equity_percentage=line.equity_percentage,
                beginning_capital_balance=line.beginning_capital_balance,
                balance_incentive_return=line.balance_incentive_return,
                equity_based_allocation=line.equity_based_allocation,
                allocation_amount=line.allocation_amount,
                distributions=line.distributions,
                ending_capital_balance=line.ending_capital_balance,
                effective_return_rate=line.effective_return_rate,
                allocation_date=allocation_date,
            )
            for line in lines
        ]
        self.session.add_all(allocations)
        await self.session.flush()
        return allocations

    async def delete_for_year(self, fiscal_year: int) -> int:
        result = await self.session.execute(
            delete(MemberAllocation)
            .where(MemberAllocation.fiscal_year == fiscal_year)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount

    async def list_for_year(self, fiscal_year: int) -> list[MemberAllocation]:
        result = await self.session.execute(
            select(MemberAllocation)
            .where(MemberAllocation.fiscal_year == fiscal_year)
            .order_by(MemberAllocation.member_id)
        )
        return list(result.scalars())
