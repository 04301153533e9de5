"""Tests for the board approval state machine."""

import pytest

from equity_engine.errors import InvalidTransitionError
from equity_engine.services.state_machine import (
    BoardApprovalStateMachine,
    BoardApprovalStatus,
)

S = BoardApprovalStatus
ALL_STATUSES = list(BoardApprovalStatus)

ALLOWED = {
    (S.DRAFT, S.PENDING_APPROVAL),
    (S.PENDING_APPROVAL, S.APPROVED),
    (S.PENDING_APPROVAL, S.REJECTED),
    (S.APPROVED, S.APPLIED),
}


class TestBoardApprovalStateMachine:
    """Tests for BoardApprovalStateMachine."""

    @pytest.mark.parametrize("from_status", ALL_STATUSES)
    @pytest.mark.parametrize("to_status", ALL_STATUSES)
    def test_transition_table(self, from_status, to_status):
        expected = (from_status, to_status) in ALLOWED
        assert BoardApprovalStateMachine.can_transition(from_status, to_status) is expected

    def test_accepts_plain_strings(self):
        assert BoardApprovalStateMachine.can_transition("DRAFT", "PENDING_APPROVAL")
        assert not BoardApprovalStateMachine.can_transition("DRAFT", "APPLIED")

    def test_validate_transition_raises(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            BoardApprovalStateMachine.validate_transition(S.DRAFT, S.APPROVED)
        assert exc_info.value.from_status == "DRAFT"
        assert exc_info.value.to_status == "APPROVED"

    def test_validate_transition_carries_reason(self):
        with pytest.raises(InvalidTransitionError, match="already applied"):
            BoardApprovalStateMachine.validate_transition(
                S.APPLIED, S.APPLIED, "already applied"
            )

    def test_validate_transition_passes(self):
        BoardApprovalStateMachine.validate_transition(S.APPROVED, S.APPLIED)

    def test_terminal_statuses(self):
        assert BoardApprovalStateMachine.is_terminal(S.APPLIED)
        assert BoardApprovalStateMachine.is_terminal(S.REJECTED)
        assert not BoardApprovalStateMachine.is_terminal(S.APPROVED)
        assert BoardApprovalStateMachine.get_next_statuses(S.APPLIED) == []
        assert BoardApprovalStateMachine.get_next_statuses(S.REJECTED) == []

    def test_next_statuses(self):
        assert BoardApprovalStateMachine.get_next_statuses(S.PENDING_APPROVAL) == [
            S.APPROVED,
            S.REJECTED,
        ]

    def test_unknown_status_has_no_transitions(self):
        assert BoardApprovalStateMachine.get_next_statuses("ARCHIVED") == []
        assert not BoardApprovalStateMachine.can_transition("ARCHIVED", S.DRAFT)

    def test_only_drafts_are_editable(self):
        assert BoardApprovalStateMachine.can_modify_updates(S.DRAFT)
        for status in (S.PENDING_APPROVAL, S.APPROVED, S.APPLIED, S.REJECTED):
            assert not BoardApprovalStateMachine.can_modify_updates(status)

    def test_only_rejected_can_be_revised(self):
        assert BoardApprovalStateMachine.can_revise(S.REJECTED)
        assert not BoardApprovalStateMachine.can_revise(S.APPLIED)
