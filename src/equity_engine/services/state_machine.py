"""Board approval state machine with transition validation."""

from __future__ import annotations

from enum import Enum

from equity_engine.errors import InvalidTransitionError


class BoardApprovalStatus(str, Enum):
    """Board approval status values."""

    DRAFT = "DRAFT"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    APPLIED = "APPLIED"
    REJECTED = "REJECTED"


class BoardApprovalStateMachine:
    """State machine for board approval status transitions.

    Allowed transitions:
    - DRAFT → PENDING_APPROVAL (submit)
    - PENDING_APPROVAL → APPROVED (approve)
    - PENDING_APPROVAL → REJECTED (reject)
    - APPROVED → APPLIED (apply)

    APPLIED and REJECTED are terminal. A rejected approval is revised by
    creating a new draft that supersedes it.
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        BoardApprovalStatus.DRAFT: [BoardApprovalStatus.PENDING_APPROVAL],
        BoardApprovalStatus.PENDING_APPROVAL: [
            BoardApprovalStatus.APPROVED,
            BoardApprovalStatus.REJECTED,
        ],
        BoardApprovalStatus.APPROVED: [BoardApprovalStatus.APPLIED],
        BoardApprovalStatus.APPLIED: [],
        BoardApprovalStatus.REJECTED: [],
    }

    # Statuses whose updates may still be edited
    UPDATES_MUTABLE = {BoardApprovalStatus.DRAFT}

    TERMINAL = {BoardApprovalStatus.APPLIED, BoardApprovalStatus.REJECTED}

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(
        cls, from_status: str, to_status: str, reason: str | None = None
    ) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(from_status, to_status, reason)

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return cls.VALID_TRANSITIONS.get(current_status, [])

    @classmethod
    def is_terminal(cls, status: str) -> bool:
        return status in cls.TERMINAL

    @classmethod
    def can_modify_updates(cls, status: str) -> bool:
        return status in cls.UPDATES_MUTABLE

    @classmethod
    def can_revise(cls, status: str) -> bool:
        """Only rejected approvals may be superseded by a revision."""
        return status == BoardApprovalStatus.REJECTED
