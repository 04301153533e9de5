"""Pydantic schemas for API request/response models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from equity_engine.calculators.types import AllocationLine, AllocationResult
from equity_engine.services.reconciliation import ReconciliationReport


# ============================================================================
# Financial period schemas
# ============================================================================


class PeriodCreate(BaseModel):
    """Schema for creating a financial period.

    Omit ``sofr_rate`` to take the rate from the configured SOFR source.
    """

    fiscal_year: int
    net_income: Decimal
    accruals: Decimal = Decimal("0")
    adjustments: Decimal = Decimal("0")
    sofr_rate: Decimal | None = None
    sofr_source: str | None = None
    sofr_period: str | None = None
    total_equity_balance_sheet: Decimal = Decimal("0")
    notes: str | None = None


class PeriodUpdate(BaseModel):
    """Partial update; only fields that are sent are changed."""

    model_config = ConfigDict(extra="forbid")

    net_income: Decimal | None = None
    accruals: Decimal | None = None
    adjustments: Decimal | None = None
    sofr_rate: Decimal | None = None
    sofr_source: str | None = None
    sofr_period: str | None = None
    total_equity_balance_sheet: Decimal | None = None
    notes: str | None = None


class PeriodResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    financial_period_id: UUID
    fiscal_year: int
    net_income: Decimal
    accruals: Decimal
    adjustments: Decimal
    final_allocable_amount: Decimal
    sofr_rate: Decimal
    sofr_source: str | None = None
    sofr_period: str | None = None
    total_equity_balance_sheet: Decimal
    total_member_capital_accounts: Decimal | None = None
    reconciliation_difference: Decimal | None = None
    is_reconciled: bool
    reconciliation_override_reason: str | None = None
    is_allocated: bool
    allocation_date: datetime | None = None
    allocated_by: str | None = None
    notes: str | None = None
    version: int


# ============================================================================
# Allocation schemas
# ============================================================================


class AllocationLineResponse(BaseModel):
    member_id: UUID
    equity_percentage: Decimal
    beginning_capital_balance: Decimal
    balance_incentive_return: Decimal
    equity_based_allocation: Decimal
    allocation_amount: Decimal
    distributions: Decimal
    ending_capital_balance: Decimal
    effective_return_rate: Decimal

    @classmethod
    def from_line(cls, line: AllocationLine) -> AllocationLineResponse:
        return cls(
            member_id=line.member_id,
            equity_percentage=line.equity_percentage,
            beginning_capital_balance=line.beginning_capital_balance,
            balance_incentive_return=line.balance_incentive_return,
            equity_based_allocation=line.equity_based_allocation,
            allocation_amount=line.allocation_amount,
            distributions=line.distributions,
            ending_capital_balance=line.ending_capital_balance,
            effective_return_rate=line.effective_return_rate,
        )


class AllocationPreviewResponse(BaseModel):
    """Calculated allocation that has not been written."""

    fiscal_year: int
    final_allocable_amount: Decimal
    sofr_rate: Decimal
    effective_return_rate: Decimal
    total_balance_incentive_returns: Decimal
    remaining_net_income: Decimal
    total_allocated: Decimal
    rounding_remainder: Decimal
    total_equity_percentage: Decimal
    warnings: list[str]
    lines: list[AllocationLineResponse]

    @classmethod
    def from_result(cls, result: AllocationResult) -> AllocationPreviewResponse:
        return cls(
            fiscal_year=result.fiscal_year,
            final_allocable_amount=result.final_allocable_amount,
            sofr_rate=result.sofr_rate,
            effective_return_rate=result.effective_return_rate,
            total_balance_incentive_returns=result.total_balance_incentive_returns,
            remaining_net_income=result.remaining_net_income,
            total_allocated=result.total_allocated,
            rounding_remainder=result.rounding_remainder,
            total_equity_percentage=result.total_equity_percentage,
            warnings=list(result.warnings),
            lines=[AllocationLineResponse.from_line(line) for line in result.lines],
        )


class MemberAllocationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    allocation_id: UUID
    member_id: UUID
    fiscal_year: int
    equity_percentage: Decimal
    beginning_capital_balance: Decimal
    balance_incentive_return: Decimal
    equity_based_allocation: Decimal
    allocation_amount: Decimal
    distributions: Decimal
    ending_capital_balance: Decimal
    effective_return_rate: Decimal
    allocation_date: datetime


class CommitRequest(BaseModel):
    override_reason: str | None = None


class CommitResponse(BaseModel):
    fiscal_year: int
    member_count: int
    total_allocated: Decimal
    rounding_remainder: Decimal
    is_reconciled: bool
    overridden: bool
    allocations: list[MemberAllocationResponse]


class ReverseRequest(BaseModel):
    reason: str = Field(min_length=1)


# ============================================================================
# Reconciliation schemas
# ============================================================================


class ReconciliationItemResponse(BaseModel):
    key: str
    description: str
    system_amount: Decimal | None = None
    balance_sheet_amount: Decimal | None = None
    variance: Decimal | None = None
    status: str
    tolerance: Decimal


class ReconciliationResponse(BaseModel):
    fiscal_year: int
    is_reconciled: bool
    matched_count: int
    variance_count: int
    missing_count: int
    total_currency_variance: Decimal
    items: list[ReconciliationItemResponse]

    @classmethod
    def from_report(
        cls, fiscal_year: int, report: ReconciliationReport
    ) -> ReconciliationResponse:
        return cls(
            fiscal_year=fiscal_year,
            is_reconciled=report.is_reconciled,
            matched_count=report.matched_count,
            variance_count=report.variance_count,
            missing_count=report.missing_count,
            total_currency_variance=report.total_currency_variance,
            items=[
                ReconciliationItemResponse(
                    key=item.key,
                    description=item.description,
                    system_amount=item.system_amount,
                    balance_sheet_amount=item.balance_sheet_amount,
                    variance=item.variance,
                    status=item.status.value,
                    tolerance=item.tolerance.amount,
                )
                for item in report.items
            ],
        )


# ============================================================================
# Board approval schemas
# ============================================================================


class EquityUpdateRequest(BaseModel):
    member_id: UUID
    new_percentage: Decimal
    change_reason: str | None = None


class BoardApprovalCreate(BaseModel):
    fiscal_year: int
    approval_type: str
    title: str
    effective_date: date
    description: str | None = None
    notes: str | None = None
    updates: list[EquityUpdateRequest] = []


class RejectRequest(BaseModel):
    reason: str | None = None


class EquityUpdateResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    member_id: UUID
    previous_percentage: Decimal
    new_percentage: Decimal
    change_percentage: Decimal
    change_reason: str | None = None
    warnings: list[str] = []


class BoardApprovalResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    approval_id: UUID
    fiscal_year: int
    approval_type: str
    title: str
    description: str | None = None
    status: str
    effective_date: date
    total_equity_before: Decimal
    total_equity_after: Decimal
    warnings: list[str] = []
    submitted_by: str
    submitted_at: datetime | None = None
    approved_by: str | None = None
    approved_at: datetime | None = None
    applied_by: str | None = None
    applied_at: datetime | None = None
    rejected_by: str | None = None
    rejection_reason: str | None = None
    supersedes_id: UUID | None = None
    updates: list[EquityUpdateResponse] = []


# ============================================================================
# Error schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Schema for error response."""

    detail: str
    code: str | None = None
    context: dict[str, Any] | None = None
