"""Validation of proposed equity percentage changes."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Hashable

from equity_engine.calculators.types import HUNDRED, ZERO

DEFAULT_LARGE_CHANGE_THRESHOLD = Decimal("10")
TOTAL_WARNING_TOLERANCE = Decimal("0.01")
REASON_REQUIRED_THRESHOLD = Decimal("0.01")


@dataclass(frozen=True)
class CurrentEquity:
    """A member's current position as seen by the validator."""

    member_id: Hashable
    name: str
    percentage: Decimal
    is_active: bool = True
    status: str = "active"


@dataclass(frozen=True)
class ProposedUpdate:
    member_id: Hashable
    new_percentage: Decimal
    change_reason: str | None = None


@dataclass(frozen=True)
class LargeChange:
    member_id: Hashable
    member_name: str
    change_percentage: Decimal


@dataclass
class EquityUpdateValidation:
    """Outcome of validating a batch of equity updates."""

    total_before: Decimal = ZERO
    total_after: Decimal = ZERO
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    large_changes: list[LargeChange] = field(default_factory=list)
    member_warnings: dict[Hashable, list[str]] = field(default_factory=dict)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    @property
    def total_deviation(self) -> Decimal:
        return abs(self.total_after - HUNDRED)


def validate_equity_updates(
    current: Mapping[Hashable, CurrentEquity],
    updates: Sequence[ProposedUpdate],
    large_change_threshold: Decimal = DEFAULT_LARGE_CHANGE_THRESHOLD,
) -> EquityUpdateValidation:
    """Check a batch of updates against the current roster.

    Errors (block the batch): unknown member, duplicate member, percentage
    outside [0, 100]. Everything else is a warning, including a total that
    is not 100%.
    """
    result = EquityUpdateValidation()
    proposed: dict[Hashable, Decimal] = {}

    for update in updates:
        member = current.get(update.member_id)
        if member is None:
            result.errors.append(f"Member {update.member_id} not found")
            continue
        if update.member_id in proposed:
            result.errors.append(f"Member {member.name} appears more than once")
            continue

        new_pct = Decimal(update.new_percentage)
        proposed[update.member_id] = new_pct
        member_warnings: list[str] = []

        if new_pct < 0 or new_pct > HUNDRED:
            result.errors.append(f"Invalid equity percentage {new_pct} for {member.name}")

        change = new_pct - member.percentage
        if abs(change) > large_change_threshold:
            result.large_changes.append(
                LargeChange(
                    member_id=update.member_id,
                    member_name=member.name,
                    change_percentage=change,
                )
            )
            result.warnings.append(f"Large equity change of {change:.4f}% for {member.name}")
            member_warnings.append(f"Large change: {change:.4f}%")

        if abs(change) > REASON_REQUIRED_THRESHOLD and not update.change_reason:
            result.warnings.append(
                f"No reason provided for equity change of {change:.4f}% for {member.name}"
            )
            member_warnings.append("No reason provided for change")

        if not member.is_active and new_pct > 0:
            result.warnings.append(
                f"{member.name} has status {member.status} but is assigned {new_pct}% equity"
            )
            member_warnings.append(f"Member status is {member.status}")

        result.member_warnings[update.member_id] = member_warnings

    for member_id, member in current.items():
        counted = member.is_active or member_id in proposed
        if not counted:
            continue
        result.total_before += member.percentage
        result.total_after += proposed.get(member_id, member.percentage)
        if member.is_active and member_id not in proposed:
            result.warnings.append(f"Active member {member.name} not included in update")

    deviation = result.total_deviation
    if deviation > TOTAL_WARNING_TOLERANCE:
        result.warnings.append(
            f"Total equity after update is {result.total_after:.4f}%, not 100%. "
            f"Difference: {deviation:.4f}%"
        )

    return result
