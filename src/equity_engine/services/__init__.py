"""Equity engine services."""

from equity_engine.services.allocation_service import AllocationOutcome, AllocationService
from equity_engine.services.board_approval_service import BoardApprovalService
from equity_engine.services.period_service import PeriodService
from equity_engine.services.reconciliation import (
    ItemStatus,
    ReconciliationItem,
    ReconciliationReport,
    reconcile,
)
from equity_engine.services.snapshot_service import SnapshotService
from equity_engine.services.state_machine import BoardApprovalStateMachine, BoardApprovalStatus

__all__ = [
    "AllocationOutcome",
    "AllocationService",
    "BoardApprovalService",
    "BoardApprovalStateMachine",
    "BoardApprovalStatus",
    "ItemStatus",
    "PeriodService",
    "ReconciliationItem",
    "ReconciliationReport",
    "SnapshotService",
    "reconcile",
]
