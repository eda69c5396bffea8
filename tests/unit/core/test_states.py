"""Tests for approval statuses and transitions."""

import pytest

from spendly.core.approval.states import (
    ALLOWED_TRANSITIONS,
    AWAITING_APPROVAL_STATES,
    TERMINAL_STATES,
    ApprovalAction,
    EntityStatus,
    EntityType,
    can_transition,
    is_terminal,
)


class TestStatuses:
    """Test status definitions."""

    def test_terminal_states(self):
        assert EntityStatus.APPROVED in TERMINAL_STATES
        assert EntityStatus.REJECTED in TERMINAL_STATES
        assert EntityStatus.PENDING not in TERMINAL_STATES
        assert EntityStatus.PENDING_SECOND_APPROVAL not in TERMINAL_STATES

    def test_awaiting_states(self):
        assert AWAITING_APPROVAL_STATES.isdisjoint(TERMINAL_STATES)

    def test_is_terminal_accepts_strings(self):
        assert is_terminal("approved")
        assert not is_terminal("pending")

    def test_actions(self):
        assert {a.value for a in ApprovalAction} == {"submit", "approve", "reject"}


class TestTransitions:
    """Test the transition table."""

    @pytest.mark.parametrize("entity_type", list(EntityType))
    @pytest.mark.parametrize("terminal", [EntityStatus.APPROVED, EntityStatus.REJECTED])
    def test_nothing_leaves_terminal_states(self, entity_type, terminal):
        for target in EntityStatus:
            assert not can_transition(entity_type, terminal, target)

    def test_terminal_states_have_no_outgoing_entries(self):
        for table in ALLOWED_TRANSITIONS.values():
            assert not set(table) & TERMINAL_STATES

    def test_payout_dual_approval_path(self):
        assert can_transition(EntityType.PAYOUT, EntityStatus.PENDING, EntityStatus.PENDING_SECOND_APPROVAL)
        assert can_transition(EntityType.PAYOUT, EntityStatus.PENDING_SECOND_APPROVAL, EntityStatus.APPROVED)
        assert can_transition(EntityType.PAYOUT, EntityStatus.PENDING_SECOND_APPROVAL, EntityStatus.REJECTED)

    def test_payout_cannot_go_back_to_pending(self):
        assert not can_transition(EntityType.PAYOUT, EntityStatus.PENDING_SECOND_APPROVAL, EntityStatus.PENDING)

    def test_expense_never_needs_second_approval(self):
        assert not can_transition(EntityType.EXPENSE, EntityStatus.PENDING, EntityStatus.PENDING_SECOND_APPROVAL)
        assert not can_transition(EntityType.EXPENSE, EntityStatus.PENDING_SECOND_APPROVAL, EntityStatus.APPROVED)

    def test_expense_resubmission_stays_pending(self):
        assert can_transition("expense", "pending", "pending")

    def test_unknown_status_raises(self):
        with pytest.raises(ValueError):
            can_transition(EntityType.PAYOUT, "paid", EntityStatus.APPROVED)
