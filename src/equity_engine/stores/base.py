"""Collaborator protocols consumed by the services.

Services depend on these protocols rather than on SQLAlchemy directly, so
a different persistence layer or rate feed can be swapped in.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Protocol
from uuid import UUID

if TYPE_CHECKING:
    from equity_engine.calculators.types import AllocationLine
    from equity_engine.models import FinancialPeriod, MemberAllocation, MemberEquitySnapshot


@dataclass(frozen=True)
class RosterEntry:
    """An active member with their equity snapshot for a fiscal year."""

    member_id: UUID
    name: str
    status: str
    snapshot: MemberEquitySnapshot


@dataclass(frozen=True)
class SofrQuote:
    """Benchmark rate for a fiscal year."""

    rate: Decimal
    source: str
    period: str | None = None


@dataclass(frozen=True)
class Actor:
    """Caller identity plus the capabilities it holds."""

    actor_id: str
    capabilities: frozenset[str] = field(default_factory=frozenset)


class MemberStore(Protocol):
    """Member roster and capital account lookups."""

    async def get_active_members(self, fiscal_year: int) -> list[RosterEntry]:
        """Active members with a snapshot for the year, in a stable order."""
        ...

    async def get_capital_balance(self, member_id: UUID, fiscal_year: int) -> Decimal:
        ...

    async def get_distributions_total(self, member_id: UUID, fiscal_year: int) -> Decimal:
        """Cash paid to the member during the year."""
        ...

    async def get_snapshots(self, fiscal_year: int) -> list[MemberEquitySnapshot]:
        """Every snapshot for the year regardless of member status."""
        ...


class FinancialPeriodStore(Protocol):
    """CRUD for financial periods keyed by fiscal year."""

    async def get(self, fiscal_year: int) -> FinancialPeriod | None:
        ...

    async def add(self, period: FinancialPeriod) -> FinancialPeriod:
        ...

    async def list_all(self) -> list[FinancialPeriod]:
        ...

    async def mark_allocated(
        self, period: FinancialPeriod, actor_id: str, allocation_date: datetime
    ) -> bool:
        """Flip ``is_allocated`` if the period is unchanged since it was read.

        Returns False when another writer got there first.
        """
        ...

    async def mark_unallocated(self, period: FinancialPeriod) -> bool:
        ...


class AllocationStore(Protocol):
    """Bulk persistence of a fiscal year's allocations."""

    async def replace_for_year(
        self,
        period: FinancialPeriod,
        lines: Sequence[AllocationLine],
        allocation_date: datetime,
    ) -> list[MemberAllocation]:
        ...

    async def delete_for_year(self, fiscal_year: int) -> int:
        ...

    async def list_for_year(self, fiscal_year: int) -> list[MemberAllocation]:
        ...


class SofrRateSource(Protocol):
    """External benchmark rate reference data."""

    async def get_rate(self, fiscal_year: int) -> SofrQuote:
        ...


class ApprovalAuthorizer(Protocol):
    """Decides whether an actor holds a capability."""

    def has_capability(self, actor: Actor, capability: str) -> bool:
        ...
