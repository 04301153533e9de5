"""Pro-rata redistribution of unallocated equity percentage."""

from __future__ import annotations

from collections.abc import Collection, Sequence
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Hashable

from equity_engine.calculators.types import HUNDRED, ZERO
from equity_engine.errors import ValidationError

_PERCENT_PLACES = Decimal("0.0001")


@dataclass(frozen=True)
class EquityHolding:
    member_id: Hashable
    percentage: Decimal


@dataclass(frozen=True)
class ProRataAllocation:
    """A member's share of redistributed equity."""

    member_id: Hashable
    original_percentage: Decimal
    additional_allocation: Decimal

    @property
    def final_percentage(self) -> Decimal:
        return self.original_percentage + self.additional_allocation


def pro_rata_adjustment(
    holdings: Sequence[EquityHolding],
    unallocated: Decimal,
    exclude_member_ids: Collection[Hashable] = (),
) -> list[ProRataAllocation]:
    """Spread ``unallocated`` points over eligible members by current weight.

    Shares are rounded to four decimals; the last eligible member takes
    whatever rounding leaves over so the additions sum exactly to
    ``unallocated``. When every eligible member holds zero, the amount is
    split equally. A negative ``unallocated`` shrinks holdings the same way.
    """
    excluded = set(exclude_member_ids)
    eligible = [h for h in holdings if h.member_id not in excluded]
    if not eligible:
        raise ValidationError(
            "No eligible members for pro-rata distribution",
            field="exclude_member_ids",
        )

    unallocated = Decimal(unallocated)
    eligible_total = sum((h.percentage for h in eligible), ZERO)
    last_eligible = eligible[-1].member_id

    allocations: list[ProRataAllocation] = []
    allocated_so_far = ZERO
    for holding in holdings:
        if holding.member_id in excluded:
            share = ZERO
        elif holding.member_id == last_eligible:
            share = unallocated - allocated_so_far
        else:
            if eligible_total == 0:
                raw = unallocated / len(eligible)
            else:
                raw = holding.percentage / eligible_total * unallocated
            share = raw.quantize(_PERCENT_PLACES, rounding=ROUND_HALF_UP)
            allocated_so_far += share

        allocations.append(
            ProRataAllocation(
                member_id=holding.member_id,
                original_percentage=holding.percentage,
                additional_allocation=share,
            )
        )

    return allocations


def total_deviation(allocations: Sequence[ProRataAllocation]) -> Decimal:
    """Absolute distance of the final percentages from 100."""
    total = sum((a.final_percentage for a in allocations), ZERO)
    return abs(HUNDRED - total)


def adjust_to_exact_total(
    allocations: Sequence[ProRataAllocation],
) -> list[ProRataAllocation]:
    """Let the largest final holding absorb any residual difference from 100."""
    if not allocations:
        return []
    total = sum((a.final_percentage for a in allocations), ZERO)
    difference = HUNDRED - total
    if difference == 0:
        return list(allocations)

    largest = max(range(len(allocations)), key=lambda i: allocations[i].final_percentage)
    adjusted = list(allocations)
    target = adjusted[largest]
    adjusted[largest] = ProRataAllocation(
        member_id=target.member_id,
        original_percentage=target.original_percentage,
        additional_allocation=target.additional_allocation + difference,
    )
    return adjusted
