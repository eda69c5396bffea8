"""Approval decisions for expenses and payouts.

The orchestrator lives in ``spendly.core.approval.orchestrator``; it is not
re-exported here because the database models import this package.
"""

from .states import (
    ApprovalAction,
    EntityStatus,
    EntityType,
    ExpenseType,
    TERMINAL_STATES,
    can_transition,
    is_terminal,
)
from .models import (
    ApprovalDecision,
    ApprovalOutcome,
    ExpenseSnapshot,
    PayoutSnapshot,
    EntityUpdate,
)
from .engine import (
    evaluate_expense,
    evaluate_expense_review,
    evaluate_payout_approval,
    evaluate_rejection,
    decide,
)

__all__ = [
    "ApprovalAction",
    "EntityStatus",
    "EntityType",
    "ExpenseType",
    "TERMINAL_STATES",
    "can_transition",
    "is_terminal",
    "ApprovalDecision",
    "ApprovalOutcome",
    "ExpenseSnapshot",
    "PayoutSnapshot",
    "EntityUpdate",
    "evaluate_expense",
    "evaluate_expense_review",
    "evaluate_payout_approval",
    "evaluate_rejection",
    "decide",
]
