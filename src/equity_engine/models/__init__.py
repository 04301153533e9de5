"""SQLAlchemy ORM models for the equity engine."""

from equity_engine.models.base import Base, TimestampMixin, utcnow
from equity_engine.models.member import (
    ACTIVE_STATUSES,
    Distribution,
    DistributionType,
    Member,
    MemberEquitySnapshot,
    MemberStatus,
    resolve_percentage,
)
from equity_engine.models.financials import FinancialPeriod, MemberAllocation
from equity_engine.models.approval import ApprovalType, BoardApproval, EquityUpdate
from equity_engine.models.audit import AuditEvent

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "utcnow",
    # Members
    "ACTIVE_STATUSES",
    "Distribution",
    "DistributionType",
    "Member",
    "MemberEquitySnapshot",
    "MemberStatus",
    "resolve_percentage",
    # Financials
    "FinancialPeriod",
    "MemberAllocation",
    # Approvals
    "ApprovalType",
    "BoardApproval",
    "EquityUpdate",
    # Audit
    "AuditEvent",
]
