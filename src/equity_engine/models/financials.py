"""Fiscal-year financial period and member allocation models."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from equity_engine.models.base import (
    MONEY,
    PERCENTAGE,
    RATE,
    Base,
    TimestampMixin,
    UpdatedAtMixin,
)

ALLOCABLE_COMPONENTS = ("net_income", "accruals", "adjustments")


class FinancialPeriod(Base, TimestampMixin, UpdatedAtMixin):
    """Company financials for one fiscal year.

    ``final_allocable_amount`` is derived: every assignment to one of its
    components recomputes it, so the stored value never drifts from
    ``net_income + accruals + adjustments``.
    """

    __tablename__ = "financial_period"

    financial_period_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    fiscal_year: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)

    net_income: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    accruals: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    adjustments: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    final_allocable_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)

    sofr_rate: Mapped[Decimal] = mapped_column(RATE, nullable=False)
    sofr_source: Mapped[str | None] = mapped_column(String, nullable=True)
    sofr_period: Mapped[str | None] = mapped_column(String, nullable=True)

    total_equity_balance_sheet: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    total_member_capital_accounts: Mapped[Decimal | None] = mapped_column(
        MONEY, nullable=True
    )
    reconciliation_difference: Mapped[Decimal | None] = mapped_column(
        MONEY, nullable=True
    )
    is_reconciled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    reconciliation_override_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    is_allocated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    allocation_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    allocated_by: Mapped[str | None] = mapped_column(String, nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[str | None] = mapped_column(String, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __table_args__ = (
        CheckConstraint("sofr_rate >= 0", name="financial_period_sofr_check"),
    )

    allocations: Mapped[list[MemberAllocation]] = relationship(
        back_populates="financial_period",
        cascade="all, delete-orphan",
    )

    @validates(*ALLOCABLE_COMPONENTS)
    def _recompute_allocable(self, key: str, value: Any) -> Decimal:
        value = Decimal(value)
        components = {
            name: getattr(self, name) or Decimal("0") for name in ALLOCABLE_COMPONENTS
        }
        components[key] = value
        self.final_allocable_amount = sum(components.values(), Decimal("0"))
        return value

    def recompute_allocable_amount(self) -> Decimal:
        """Refresh the derived total from the stored components."""
        self.final_allocable_amount = sum(
            (getattr(self, name) or Decimal("0") for name in ALLOCABLE_COMPONENTS),
            Decimal("0"),
        )
        return self.final_allocable_amount


class MemberAllocation(Base, TimestampMixin):
    """One member's year-end allocation, owned by its financial period."""

    __tablename__ = "member_allocation"

    allocation_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    financial_period_id: Mapped[UUID] = mapped_column(
        ForeignKey("financial_period.financial_period_id", ondelete="CASCADE"),
        nullable=False,
    )
    member_id: Mapped[UUID] = mapped_column(
        ForeignKey("member.member_id", ondelete="CASCADE"),
        nullable=False,
    )
    fiscal_year: Mapped[int] = mapped_column(Integer, nullable=False)

    equity_percentage: Mapped[Decimal] = mapped_column(PERCENTAGE, nullable=False)
    beginning_capital_balance: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    balance_incentive_return: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    equity_based_allocation: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    allocation_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    distributions: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    ending_capital_balance: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    effective_return_rate: Mapped[Decimal] = mapped_column(RATE, nullable=False)
    allocation_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("member_id", "fiscal_year", name="allocation_member_year_unique"),
    )

    financial_period: Mapped[FinancialPeriod] = relationship(back_populates="allocations")
