"""Reconciliation of system totals against balance-sheet figures.

The checker is a pure function: it never reads the database and never
raises on a variance. Callers decide what an unreconciled report means;
the allocation service refuses to commit one without an override reason.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any

from equity_engine.calculators.types import HUNDRED, ZERO

if TYPE_CHECKING:
    from equity_engine.calculators.types import AllocationResult
    from equity_engine.models import FinancialPeriod, MemberEquitySnapshot


class ItemStatus(str, Enum):
    """Outcome of comparing one line."""

    MATCHED = "matched"
    VARIANCE = "variance"
    MISSING = "missing"


class ToleranceKind(str, Enum):
    CURRENCY = "currency"
    PERCENTAGE = "percentage"


@dataclass(frozen=True)
class Tolerance:
    """Largest variance (exclusive) still treated as a match."""

    kind: ToleranceKind
    amount: Decimal


DEFAULT_CAPITAL_TOLERANCE = Decimal("10000")
DEFAULT_PERCENTAGE_TOLERANCE = Decimal("0.1")

MEMBER_CAPITAL_ACCOUNTS = "member_capital_accounts"
TOTAL_EQUITY = "total_equity"
ALLOCATED_AMOUNT = "allocated_amount"
RETAINED_EARNINGS = "retained_earnings"
TOTAL_EQUITY_PERCENTAGE = "total_equity_percentage"

DESCRIPTIONS = {
    MEMBER_CAPITAL_ACCOUNTS: "Member capital accounts",
    TOTAL_EQUITY: "Total equity",
    ALLOCATED_AMOUNT: "Allocated net income",
    RETAINED_EARNINGS: "Retained earnings",
    TOTAL_EQUITY_PERCENTAGE: "Total equity percentage",
}


def default_tolerances(
    capital_tolerance: Decimal = DEFAULT_CAPITAL_TOLERANCE,
    percentage_tolerance: Decimal = DEFAULT_PERCENTAGE_TOLERANCE,
) -> dict[str, Tolerance]:
    """Tolerances for the standard comparison lines."""
    currency = Tolerance(ToleranceKind.CURRENCY, Decimal(capital_tolerance))
    return {
        MEMBER_CAPITAL_ACCOUNTS: currency,
        TOTAL_EQUITY: currency,
        ALLOCATED_AMOUNT: currency,
        RETAINED_EARNINGS: currency,
        TOTAL_EQUITY_PERCENTAGE: Tolerance(
            ToleranceKind.PERCENTAGE, Decimal(percentage_tolerance)
        ),
    }


def tolerance_for(key: str, tolerances: Mapping[str, Tolerance]) -> Tolerance:
    """Look up a line's tolerance, inferring the kind from the key when unknown."""
    if key in tolerances:
        return tolerances[key]
    defaults = default_tolerances()
    if key.endswith("_percentage"):
        return defaults[TOTAL_EQUITY_PERCENTAGE]
    return defaults[MEMBER_CAPITAL_ACCOUNTS]


def _describe(key: str) -> str:
    return DESCRIPTIONS.get(key, key.replace("_", " ").capitalize())


@dataclass(frozen=True)
class ReconciliationItem:
    """One compared line."""

    key: str
    description: str
    system_amount: Decimal | None
    balance_sheet_amount: Decimal | None
    variance: Decimal | None
    status: ItemStatus
    tolerance: Tolerance

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "description": self.description,
            "system_amount": _str_or_none(self.system_amount),
            "balance_sheet_amount": _str_or_none(self.balance_sheet_amount),
            "variance": _str_or_none(self.variance),
            "status": self.status.value,
            "tolerance": str(self.tolerance.amount),
            "tolerance_kind": self.tolerance.kind.value,
        }


def _str_or_none(value: Decimal | None) -> str | None:
    return None if value is None else str(value)


def _to_decimal(value: Any) -> Decimal | None:
    return None if value is None else Decimal(value)


@dataclass(frozen=True)
class ReconciliationReport:
    """All compared lines plus aggregate status."""

    items: tuple[ReconciliationItem, ...]

    @property
    def is_reconciled(self) -> bool:
        return all(item.status == ItemStatus.MATCHED for item in self.items)

    @property
    def matched_count(self) -> int:
        return self._count(ItemStatus.MATCHED)

    @property
    def variance_count(self) -> int:
        return self._count(ItemStatus.VARIANCE)

    @property
    def missing_count(self) -> int:
        return self._count(ItemStatus.MISSING)

    @property
    def total_currency_variance(self) -> Decimal:
        """Sum of absolute variances across currency lines."""
        return sum(
            (
                abs(item.variance)
                for item in self.items
                if item.variance is not None
                and item.tolerance.kind == ToleranceKind.CURRENCY
            ),
            ZERO,
        )

    def item(self, key: str) -> ReconciliationItem:
        for item in self.items:
            if item.key == key:
                return item
        raise KeyError(key)

    def _count(self, status: ItemStatus) -> int:
        return sum(1 for item in self.items if item.status == status)

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_reconciled": self.is_reconciled,
            "matched_count": self.matched_count,
            "variance_count": self.variance_count,
            "missing_count": self.missing_count,
            "total_currency_variance": str(self.total_currency_variance),
            "items": [item.to_dict() for item in self.items],
        }


def reconcile(
    system_totals: Mapping[str, Decimal | None],
    balance_sheet_totals: Mapping[str, Decimal | None],
    tolerances: Mapping[str, Tolerance] | None = None,
) -> ReconciliationReport:
    """Compare two sets of totals line by line.

    A line present on only one side (or ``None`` on one side) is
    ``missing``. Otherwise ``variance = system - balance_sheet`` and the
    line is ``matched`` when ``abs(variance)`` is below its tolerance.
    """
    tolerances = tolerances if tolerances is not None else default_tolerances()

    keys = list(system_totals)
    keys.extend(key for key in balance_sheet_totals if key not in system_totals)

    items = []
    for key in keys:
        system_amount = _to_decimal(system_totals.get(key))
        sheet_amount = _to_decimal(balance_sheet_totals.get(key))
        tolerance = tolerance_for(key, tolerances)

        if system_amount is None or sheet_amount is None:
            variance = None
            status = ItemStatus.MISSING
        else:
            variance = system_amount - sheet_amount
            status = (
                ItemStatus.MATCHED
                if abs(variance) < tolerance.amount
                else ItemStatus.VARIANCE
            )

        items.append(
            ReconciliationItem(
                key=key,
                description=_describe(key),
                system_amount=system_amount,
                balance_sheet_amount=sheet_amount,
                variance=variance,
                status=status,
                tolerance=tolerance,
            )
        )

    return ReconciliationReport(items=tuple(items))


def build_system_totals(
    result: AllocationResult,
    snapshots: Iterable[MemberEquitySnapshot] | None = None,
) -> dict[str, Decimal]:
    """System side of the standard comparison, taken from a computed allocation."""
    if snapshots is None:
        total_pct = result.total_equity_percentage
    else:
        total_pct = sum(
            (s.effective_percentage or ZERO for s in snapshots), ZERO
        )
    return {
        MEMBER_CAPITAL_ACCOUNTS: result.total_ending_capital,
        ALLOCATED_AMOUNT: result.total_allocated,
        TOTAL_EQUITY_PERCENTAGE: total_pct,
    }


def build_balance_sheet_totals(period: FinancialPeriod) -> dict[str, Decimal | None]:
    """Reported side of the standard comparison, taken from the period."""
    return {
        MEMBER_CAPITAL_ACCOUNTS: period.total_equity_balance_sheet,
        ALLOCATED_AMOUNT: period.final_allocable_amount,
        TOTAL_EQUITY_PERCENTAGE: HUNDRED,
    }
