"""Type definitions for the allocation pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Hashable, Protocol

from equity_engine.models.member import resolve_percentage

ZERO = Decimal("0")
HUNDRED = Decimal("100")


class PeriodInputs(Protocol):
    """What the calculator reads from a financial period."""

    fiscal_year: int
    final_allocable_amount: Decimal
    sofr_rate: Decimal
    is_allocated: bool


@dataclass(frozen=True)
class MemberPosition:
    """A member's calculation inputs for one fiscal year."""

    member_id: Hashable
    capital_balance: Decimal
    estimated_percentage: Decimal | None = None
    final_percentage: Decimal | None = None
    is_finalized: bool = False
    distributions: Decimal = ZERO

    @property
    def equity_percentage(self) -> Decimal | None:
        return resolve_percentage(
            self.estimated_percentage, self.final_percentage, self.is_finalized
        )


@dataclass(frozen=True)
class AllocationLine:
    """Calculated allocation for one member."""

    member_id: Hashable
    equity_percentage: Decimal
    beginning_capital_balance: Decimal
    balance_incentive_return: Decimal
    equity_based_allocation: Decimal
    distributions: Decimal
    effective_return_rate: Decimal

    @property
    def allocation_amount(self) -> Decimal:
        return self.balance_incentive_return + self.equity_based_allocation

    @property
    def ending_capital_balance(self) -> Decimal:
        return self.beginning_capital_balance + self.allocation_amount - self.distributions

    def to_canonical_dict(self) -> dict[str, Any]:
        """Return canonical dict for export and hashing (deterministic ordering)."""
        return {
            "member_id": str(self.member_id),
            "equity_percentage": str(self.equity_percentage),
            "beginning_capital_balance": str(self.beginning_capital_balance),
            "balance_incentive_return": str(self.balance_incentive_return),
            "equity_based_allocation": str(self.equity_based_allocation),
            "allocation_amount": str(self.allocation_amount),
            "distributions": str(self.distributions),
            "ending_capital_balance": str(self.ending_capital_balance),
            "effective_return_rate": str(self.effective_return_rate),
        }


@dataclass(frozen=True)
class AllocationResult:
    """Result of a two-pass allocation for a fiscal year."""

    fiscal_year: int
    final_allocable_amount: Decimal
    sofr_rate: Decimal
    effective_return_rate: Decimal
    total_balance_incentive_returns: Decimal
    remaining_net_income: Decimal
    lines: tuple[AllocationLine, ...]
    warnings: tuple[str, ...] = field(default_factory=tuple)

    @property
    def member_count(self) -> int:
        return len(self.lines)

    @property
    def total_equity_based_allocations(self) -> Decimal:
        return sum((line.equity_based_allocation for line in self.lines), ZERO)

    @property
    def total_allocated(self) -> Decimal:
        return sum((line.allocation_amount for line in self.lines), ZERO)

    @property
    def rounding_remainder(self) -> Decimal:
        """Allocable amount left unassigned by per-member truncation."""
        return self.final_allocable_amount - self.total_allocated

    @property
    def total_equity_percentage(self) -> Decimal:
        return sum((line.equity_percentage for line in self.lines), ZERO)

    @property
    def total_ending_capital(self) -> Decimal:
        return sum((line.ending_capital_balance for line in self.lines), ZERO)

    @property
    def remaining_net_income_negative(self) -> bool:
        return self.remaining_net_income < 0

    def line_for(self, member_id: Hashable) -> AllocationLine:
        for line in self.lines:
            if line.member_id == member_id:
                return line
        raise KeyError(member_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "fiscal_year": self.fiscal_year,
            "final_allocable_amount": str(self.final_allocable_amount),
            "sofr_rate": str(self.sofr_rate),
            "effective_return_rate": str(self.effective_return_rate),
            "total_balance_incentive_returns": str(self.total_balance_incentive_returns),
            "remaining_net_income": str(self.remaining_net_income),
            "total_allocated": str(self.total_allocated),
            "rounding_remainder": str(self.rounding_remainder),
            "total_equity_percentage": str(self.total_equity_percentage),
            "warnings": list(self.warnings),
            "lines": [line.to_canonical_dict() for line in self.lines],
        }


def as_decimal(value: Any) -> Decimal:
    """Coerce ints, strings and floats to Decimal without binary float noise."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))
