"""Pure allocation and equity calculations."""

from equity_engine.calculators.allocation import (
    AllocationCalculator,
    effective_return_rate,
    floor_currency,
)
from equity_engine.calculators.pro_rata import (
    EquityHolding,
    ProRataAllocation,
    adjust_to_exact_total,
    pro_rata_adjustment,
)
from equity_engine.calculators.types import (
    AllocationLine,
    AllocationResult,
    MemberPosition,
)
from equity_engine.calculators.validation import (
    CurrentEquity,
    EquityUpdateValidation,
    ProposedUpdate,
    validate_equity_updates,
)

__all__ = [
    "AllocationCalculator",
    "AllocationLine",
    "AllocationResult",
    "CurrentEquity",
    "EquityHolding",
    "EquityUpdateValidation",
    "MemberPosition",
    "ProRataAllocation",
    "ProposedUpdate",
    "adjust_to_exact_total",
    "pro_rata_adjustment",
    "effective_return_rate",
    "floor_currency",
    "validate_equity_updates",
]
