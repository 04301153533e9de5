"""Member equity snapshot service."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from equity_engine.calculators.types import HUNDRED, ZERO, as_decimal
from equity_engine.errors import ImmutableStateError, NotFoundError, ValidationError
from equity_engine.models import Member, MemberEquitySnapshot
from equity_engine.services.audit import record_audit
from equity_engine.stores.base import AllocationStore, FinancialPeriodStore, MemberStore
from equity_engine.stores.sql import (
    SqlAllocationStore,
    SqlFinancialPeriodStore,
    SqlMemberStore,
)

logger = logging.getLogger(__name__)


class SnapshotService:
    """Creates and maintains per-year equity snapshots.

    Snapshots of a fiscal year whose allocation has been processed are
    read-only.
    """

    def __init__(
        self,
        session: AsyncSession,
        member_store: MemberStore | None = None,
        period_store: FinancialPeriodStore | None = None,
        allocation_store: AllocationStore | None = None,
    ):
        self.session = session
        self.member_store = member_store or SqlMemberStore(session)
        self.period_store = period_store or SqlFinancialPeriodStore(session)
        self.allocation_store = allocation_store or SqlAllocationStore(session)

    async def get_snapshot(self, member_id: UUID, fiscal_year: int) -> MemberEquitySnapshot:
        result = await self.session.execute(
            select(MemberEquitySnapshot).where(
                MemberEquitySnapshot.member_id == member_id,
                MemberEquitySnapshot.fiscal_year == fiscal_year,
            )
        )
        snapshot = result.scalar_one_or_none()
        if snapshot is None:
            raise NotFoundError("MemberEquitySnapshot", f"{member_id}/{fiscal_year}")
        return snapshot

    async def list_snapshots(self, fiscal_year: int) -> list[MemberEquitySnapshot]:
        return await self.member_store.get_snapshots(fiscal_year)

    async def ensure_mutable(self, fiscal_year: int) -> None:
        """Raise ImmutableStateError if the year's allocation is processed."""
        period = await self.period_store.get(fiscal_year)
        if period is not None and period.is_allocated:
            raise ImmutableStateError(
                "MemberEquitySnapshot", fiscal_year, "fiscal year has been allocated"
            )

    async def create_initial(
        self,
        member_id: UUID,
        fiscal_year: int,
        percentage: Any,
        capital_balance: Any = ZERO,
        actor_id: str | None = None,
    ) -> MemberEquitySnapshot:
        """Initial equity on hire or admission."""
        member = await self.session.get(Member, member_id)
        if member is None:
            raise NotFoundError("Member", member_id)
        await self.ensure_mutable(fiscal_year)

        pct = as_decimal(percentage)
        if pct < 0 or pct > HUNDRED:
            raise ValidationError(
                f"Equity percentage must be between 0 and 100, got {pct}",
                field="percentage",
            )
        balance = as_decimal(capital_balance)
        if balance < 0:
            raise ValidationError("Capital balance cannot be negative", field="capital_balance")

        existing = await self.session.execute(
            select(MemberEquitySnapshot.snapshot_id).where(
                MemberEquitySnapshot.member_id == member_id,
                MemberEquitySnapshot.fiscal_year == fiscal_year,
            )
        )
        if existing.scalar_one_or_none() is not None:
            raise ValidationError(
                f"{member.full_name} already has a snapshot for {fiscal_year}",
                field="fiscal_year",
            )

        snapshot = MemberEquitySnapshot(
            member_id=member_id,
            fiscal_year=fiscal_year,
            estimated_percentage=pct,
            final_percentage=None,
            capital_balance=balance,
            is_finalized=False,
        )
        self.session.add(snapshot)
        await self.session.flush()

        record_audit(
            self.session,
            entity_type="member_equity_snapshot",
            entity_id=snapshot.snapshot_id,
            action="created",
            actor_id=actor_id,
            details={"fiscal_year": fiscal_year, "percentage": str(pct)},
        )
        return snapshot

    async def set_capital_balance(
        self,
        member_id: UUID,
        fiscal_year: int,
        capital_balance: Any,
        actor_id: str | None = None,
    ) -> MemberEquitySnapshot:
        await self.ensure_mutable(fiscal_year)
        balance = as_decimal(capital_balance)
        if balance < 0:
            raise ValidationError("Capital balance cannot be negative", field="capital_balance")

        snapshot = await self.get_snapshot(member_id, fiscal_year)
        previous = snapshot.capital_balance
        snapshot.capital_balance = balance
        await self.session.flush()

        record_audit(
            self.session,
            entity_type="member_equity_snapshot",
            entity_id=snapshot.snapshot_id,
            action="capital_balance_changed",
            actor_id=actor_id,
            details={"before": str(previous), "after": str(balance)},
        )
        return snapshot

    async def roll_forward(
        self,
        from_year: int,
        to_year: int,
        actor_id: str | None = None,
    ) -> list[MemberEquitySnapshot]:
        """Open ``to_year`` from the active members' ``from_year`` snapshots.

        Capital carries forward from the prior allocation's ending balance
        when that year was allocated, otherwise from the prior snapshot.
        Percentages carry forward as next year's estimate.
        """
        if to_year <= from_year:
            raise ValidationError(
                f"Cannot roll forward from {from_year} to {to_year}", field="to_year"
            )
        await self.ensure_mutable(to_year)

        existing = await self.member_store.get_snapshots(to_year)
        if existing:
            raise ValidationError(
                f"Snapshots already exist for {to_year}", field="to_year"
            )

        roster = await self.member_store.get_active_members(from_year)
        prior_period = await self.period_store.get(from_year)
        ending_balances: dict[UUID, Decimal] = {}
        if prior_period is not None and prior_period.is_allocated:
            for allocation in await self.allocation_store.list_for_year(from_year):
                ending_balances[allocation.member_id] = allocation.ending_capital_balance

        created = []
        for entry in roster:
            prior = entry.snapshot
            snapshot = MemberEquitySnapshot(
                member_id=entry.member_id,
                fiscal_year=to_year,
                estimated_percentage=prior.effective_percentage,
                final_percentage=None,
                capital_balance=ending_balances.get(entry.member_id, prior.capital_balance),
                is_finalized=False,
            )
            self.session.add(snapshot)
            created.append(snapshot)
        await self.session.flush()

        record_audit(
            self.session,
            entity_type="member_equity_snapshot",
            entity_id=to_year,
            action="rolled_forward",
            actor_id=actor_id,
            details={"from_year": from_year, "count": len(created)},
        )
        logger.info(
            "Rolled %d snapshots forward from %s to %s", len(created), from_year, to_year
        )
        return created
