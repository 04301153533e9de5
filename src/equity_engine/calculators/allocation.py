"""Two-tier year-end allocation calculator.

Pipeline (fixed order):
1) Effective return rate = min(SOFR + spread, cap)
2) Pass 1: balance incentive return per member from capital balance
3) Remaining net income = allocable amount - sum(pass 1)
4) Pass 2: equity-based share of the remaining income per member
5) Ending capital = beginning + allocation - distributions

Every per-member amount is floored to whole currency units where it is
computed, so the sum of allocations may fall short of the allocable amount
by less than one unit per member. That shortfall is reported as
``rounding_remainder`` rather than absorbed.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal

from equity_engine.calculators.types import (
    HUNDRED,
    ZERO,
    AllocationLine,
    AllocationResult,
    MemberPosition,
    PeriodInputs,
)
from equity_engine.errors import InputError, PeriodLockedError

DEFAULT_INCENTIVE_SPREAD = Decimal("5.0")
DEFAULT_INCENTIVE_RATE_CAP = Decimal("10.0")

_WHOLE_UNIT = Decimal("1")
_RATE_PLACES = Decimal("0.01")


def effective_return_rate(
    sofr_rate: Decimal,
    spread: Decimal = DEFAULT_INCENTIVE_SPREAD,
    cap: Decimal = DEFAULT_INCENTIVE_RATE_CAP,
) -> Decimal:
    """Benchmark-linked incentive rate, capped, in percent."""
    rate = min(Decimal(sofr_rate) + spread, cap)
    return rate.quantize(_RATE_PLACES, rounding=ROUND_HALF_UP)


def floor_currency(value: Decimal) -> Decimal:
    """Truncate toward negative infinity to a whole currency unit."""
    return value.to_integral_value(rounding=ROUND_FLOOR)


def _validate_positions(positions: Sequence[MemberPosition]) -> None:
    if not positions:
        raise InputError("Allocation requires at least one member", field="members")

    seen: set = set()
    for position in positions:
        if position.member_id in seen:
            raise InputError(
                f"Member {position.member_id} appears more than once",
                member_id=str(position.member_id),
                field="member_id",
            )
        seen.add(position.member_id)

        percentage = position.equity_percentage
        if percentage is None:
            raise InputError(
                f"Member {position.member_id} has neither a final nor an "
                "estimated equity percentage",
                member_id=str(position.member_id),
                field="equity_percentage",
            )
        if percentage < 0:
            raise InputError(
                f"Member {position.member_id} has negative equity percentage {percentage}",
                member_id=str(position.member_id),
                field="equity_percentage",
            )
        if position.distributions < 0:
            raise InputError(
                f"Member {position.member_id} has negative distributions",
                member_id=str(position.member_id),
                field="distributions",
            )


class AllocationCalculator:
    """Deterministic two-pass allocation over a member roster."""

    def __init__(
        self,
        incentive_spread: Decimal = DEFAULT_INCENTIVE_SPREAD,
        incentive_rate_cap: Decimal = DEFAULT_INCENTIVE_RATE_CAP,
    ):
        self.incentive_spread = Decimal(incentive_spread)
        self.incentive_rate_cap = Decimal(incentive_rate_cap)

    def calculate_for_period(
        self,
        period: PeriodInputs,
        positions: Iterable[MemberPosition],
    ) -> AllocationResult:
        """Calculate against a financial period, refusing allocated ones."""
        if period.is_allocated:
            raise PeriodLockedError(period.fiscal_year)
        return self.calculate(
            fiscal_year=period.fiscal_year,
            final_allocable_amount=period.final_allocable_amount,
            sofr_rate=period.sofr_rate,
            positions=positions,
        )

    def calculate(
        self,
        fiscal_year: int,
        final_allocable_amount: Decimal,
        sofr_rate: Decimal,
        positions: Iterable[MemberPosition],
    ) -> AllocationResult:
        """Run both passes and return per-member lines with totals."""
        roster = list(positions)
        _validate_positions(roster)

        allocable = Decimal(final_allocable_amount)
        rate = effective_return_rate(
            sofr_rate, self.incentive_spread, self.incentive_rate_cap
        )

        # Pass 1 completes (and its sum is fixed) before pass 2 reads it
        incentive_returns = [
            floor_currency(position.capital_balance * rate / HUNDRED)
            for position in roster
        ]
        total_incentive = sum(incentive_returns, ZERO)
        remaining = allocable - total_incentive

        lines = []
        for position, incentive in zip(roster, incentive_returns):
            percentage = position.equity_percentage
            equity_share = floor_currency(remaining * percentage / HUNDRED)
            lines.append(
                AllocationLine(
                    member_id=position.member_id,
                    equity_percentage=percentage,
                    beginning_capital_balance=position.capital_balance,
                    balance_incentive_return=incentive,
                    equity_based_allocation=equity_share,
                    distributions=position.distributions,
                    effective_return_rate=rate,
                )
            )

        warnings: list[str] = []
        if remaining < 0:
            warnings.append(
                f"Balance incentive returns ({total_incentive}) exceed the "
                f"allocable amount ({allocable}); remaining net income is {remaining}"
            )
        for position in roster:
            if position.capital_balance < 0:
                warnings.append(
                    f"Member {position.member_id} carries a negative capital balance "
                    f"({position.capital_balance}); its incentive return is negative"
                )
        total_pct = sum((line.equity_percentage for line in lines), ZERO)
        if total_pct != HUNDRED:
            warnings.append(f"Equity percentages total {total_pct}%, not 100%")

        return AllocationResult(
            fiscal_year=fiscal_year,
            final_allocable_amount=allocable,
            sofr_rate=Decimal(sofr_rate),
            effective_return_rate=rate,
            total_balance_incentive_returns=total_incentive,
            remaining_net_income=remaining,
            lines=tuple(lines),
            warnings=tuple(warnings),
        )
