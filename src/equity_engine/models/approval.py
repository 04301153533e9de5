"""Board approval and equity update models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from equity_engine.models.base import PERCENTAGE, Base, TimestampMixin


class ApprovalType(str, Enum):
    """What a board approval changes on the snapshots it touches."""

    ANNUAL_EQUITY_UPDATE = "ANNUAL_EQUITY_UPDATE"
    MID_YEAR_ADJUSTMENT = "MID_YEAR_ADJUSTMENT"
    NEW_MEMBER_ADMISSION = "NEW_MEMBER_ADMISSION"
    MEMBER_EXIT = "MEMBER_EXIT"


class BoardApproval(Base, TimestampMixin):
    """Governed batch of equity percentage changes."""

    __tablename__ = "board_approval"

    approval_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    fiscal_year: Mapped[int] = mapped_column(Integer, nullable=False)
    approval_type: Mapped[str] = mapped_column(String, nullable=False)
    title: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="DRAFT")
    effective_date: Mapped[date] = mapped_column(Date, nullable=False)

    total_equity_before: Mapped[Decimal] = mapped_column(PERCENTAGE, nullable=False)
    total_equity_after: Mapped[Decimal] = mapped_column(PERCENTAGE, nullable=False)
    warnings: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    submitted_by: Mapped[str] = mapped_column(String, nullable=False)
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    approved_by: Mapped[str | None] = mapped_column(String, nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    applied_by: Mapped[str | None] = mapped_column(String, nullable=True)
    applied_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rejected_by: Mapped[str | None] = mapped_column(String, nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    supersedes_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("board_approval.approval_id"),
        nullable=True,
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('DRAFT', 'PENDING_APPROVAL', 'APPROVED', 'APPLIED', 'REJECTED')",
            name="board_approval_status_check",
        ),
    )

    updates: Mapped[list[EquityUpdate]] = relationship(
        back_populates="approval",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="EquityUpdate.position",
    )


class EquityUpdate(Base):
    """One member's proposed percentage change inside a board approval."""

    __tablename__ = "equity_update"

    equity_update_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    approval_id: Mapped[UUID] = mapped_column(
        ForeignKey("board_approval.approval_id", ondelete="CASCADE"),
        nullable=False,
    )
    member_id: Mapped[UUID] = mapped_column(
        ForeignKey("member.member_id", ondelete="CASCADE"),
        nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    previous_percentage: Mapped[Decimal] = mapped_column(PERCENTAGE, nullable=False)
    new_percentage: Mapped[Decimal] = mapped_column(PERCENTAGE, nullable=False)
    change_percentage: Mapped[Decimal] = mapped_column(PERCENTAGE, nullable=False)
    change_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    warnings: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    __table_args__ = (
        UniqueConstraint("approval_id", "member_id", name="equity_update_member_unique"),
    )

    approval: Mapped[BoardApproval] = relationship(back_populates="updates")

    def to_canonical_dict(self) -> dict[str, Any]:
        return {
            "member_id": str(self.member_id),
            "previous_percentage": str(self.previous_percentage),
            "new_percentage": str(self.new_percentage),
            "change_reason": self.change_reason,
        }
