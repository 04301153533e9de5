"""Member, equity snapshot, and distribution models."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from equity_engine.models.base import MONEY, PERCENTAGE, Base, TimestampMixin, UpdatedAtMixin


class MemberStatus(str, Enum):
    """Member lifecycle status."""

    ACTIVE = "active"
    PROBATIONARY = "probationary"
    SUSPENDED = "suspended"
    RETIRED = "retired"
    RESIGNED = "resigned"
    TERMINATED = "terminated"
    DECEASED = "deceased"


def resolve_percentage(
    estimated: Decimal | None,
    final: Decimal | None,
    is_finalized: bool,
) -> Decimal | None:
    """Pick the percentage that drives allocation.

    A finalized snapshot uses its final percentage; otherwise the estimate.
    Either side falls back to the other when it is missing.
    """
    if is_finalized and final is not None:
        return final
    if estimated is not None:
        return estimated
    return final


# Statuses that take part in allocation and count toward the 100% total
ACTIVE_STATUSES = frozenset({MemberStatus.ACTIVE.value, MemberStatus.PROBATIONARY.value})


class DistributionType(str, Enum):
    """Kinds of cash paid out of a member's capital account."""

    QUARTERLY = "quarterly"
    ANNUAL = "annual"
    SPECIAL = "special"
    TAX = "tax"
    EMERGENCY = "emergency"
    BONUS = "bonus"
    RETURN_OF_CAPITAL = "return_of_capital"


class Member(Base, TimestampMixin):
    """Company member holding equity."""

    __tablename__ = "member"

    member_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    first_name: Mapped[str] = mapped_column(String, nullable=False)
    last_name: Mapped[str] = mapped_column(String, nullable=False)
    email: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    status: Mapped[str] = mapped_column(
        String, nullable=False, default=MemberStatus.ACTIVE.value
    )
    hire_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('active', 'probationary', 'suspended', 'retired', "
            "'resigned', 'terminated', 'deceased')",
            name="member_status_check",
        ),
    )

    snapshots: Mapped[list[MemberEquitySnapshot]] = relationship(back_populates="member")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES


class MemberEquitySnapshot(Base, UpdatedAtMixin):
    """A member's equity position for one fiscal year."""

    __tablename__ = "member_equity_snapshot"

    snapshot_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    member_id: Mapped[UUID] = mapped_column(
        ForeignKey("member.member_id", ondelete="CASCADE"),
        nullable=False,
    )
    fiscal_year: Mapped[int] = mapped_column(Integer, nullable=False)
    estimated_percentage: Mapped[Decimal | None] = mapped_column(PERCENTAGE, nullable=True)
    final_percentage: Mapped[Decimal | None] = mapped_column(PERCENTAGE, nullable=True)
    capital_balance: Mapped[Decimal] = mapped_column(
        MONEY, nullable=False, default=Decimal("0")
    )
    is_finalized: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        UniqueConstraint("member_id", "fiscal_year", name="snapshot_member_year_unique"),
    )

    member: Mapped[Member] = relationship(back_populates="snapshots", lazy="joined")

    @property
    def effective_percentage(self) -> Decimal | None:
        """Final percentage once finalized, otherwise the estimate."""
        return resolve_percentage(
            self.estimated_percentage, self.final_percentage, self.is_finalized
        )


class Distribution(Base, TimestampMixin):
    """Cash distribution paid to a member during a fiscal year."""

    __tablename__ = "distribution"

    distribution_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    member_id: Mapped[UUID] = mapped_column(
        ForeignKey("member.member_id", ondelete="CASCADE"),
        nullable=False,
    )
    fiscal_year: Mapped[int] = mapped_column(Integer, nullable=False)
    distribution_type: Mapped[str] = mapped_column(String, nullable=False)
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    paid_date: Mapped[date] = mapped_column(Date, nullable=False)

    __table_args__ = (
        CheckConstraint("amount >= 0", name="distribution_amount_check"),
    )
