"""Approval statuses, actions and the legal transitions between them.

Expense:

    PENDING ──► PENDING    (submit, still above threshold)
       ├──────► APPROVED
       └──────► REJECTED

Payout:

    PENDING ──► PENDING_SECOND_APPROVAL ──► APPROVED
       │                   └──────────────► REJECTED
       ├──────► APPROVED
       └──────► REJECTED

APPROVED and REJECTED are terminal: nothing leaves them.
"""

from enum import Enum
from typing import Dict, Set


class EntityType(str, Enum):
    """Kinds of approvable entities."""

    EXPENSE = "expense"
    PAYOUT = "payout"


class EntityStatus(str, Enum):
    """Statuses shared by expenses and payouts."""

    PENDING = "pending"
    PENDING_SECOND_APPROVAL = "pending_second_approval"  # Payouts only
    APPROVED = "approved"
    REJECTED = "rejected"


class ExpenseType(str, Enum):
    """How an expense came about."""

    SPENT = "spent"        # Already incurred, reimbursement only
    REQUEST = "request"    # Asking for permission to spend


class ApprovalAction(str, Enum):
    """Actions a principal can submit against an entity."""

    SUBMIT = "submit"      # Initial auto-approval evaluation (expenses)
    APPROVE = "approve"
    REJECT = "reject"


TERMINAL_STATES: Set[EntityStatus] = {
    EntityStatus.APPROVED,
    EntityStatus.REJECTED,
}

# States still waiting on a human
AWAITING_APPROVAL_STATES: Set[EntityStatus] = {
    EntityStatus.PENDING,
    EntityStatus.PENDING_SECOND_APPROVAL,
}

ALLOWED_TRANSITIONS: Dict[EntityType, Dict[EntityStatus, Set[EntityStatus]]] = {
    EntityType.EXPENSE: {
        EntityStatus.PENDING: {
            EntityStatus.PENDING,
            EntityStatus.APPROVED,
            EntityStatus.REJECTED,
        },
    },
    EntityType.PAYOUT: {
        EntityStatus.PENDING: {
            EntityStatus.PENDING_SECOND_APPROVAL,
            EntityStatus.APPROVED,
            EntityStatus.REJECTED,
        },
        EntityStatus.PENDING_SECOND_APPROVAL: {
            EntityStatus.APPROVED,
            EntityStatus.REJECTED,
        },
    },
}

# Statuses each entity type may hold at all
ENTITY_STATUSES: Dict[EntityType, Set[EntityStatus]] = {
    EntityType.EXPENSE: {
        EntityStatus.PENDING,
        EntityStatus.APPROVED,
        EntityStatus.REJECTED,
    },
    EntityType.PAYOUT: set(EntityStatus),
}


def is_terminal(status: EntityStatus) -> bool:
    """Check if no further transition is permitted from a status."""
    return EntityStatus(status) in TERMINAL_STATES


def can_transition(
    entity_type: EntityType,
    from_status: EntityStatus,
    to_status: EntityStatus,
) -> bool:
    """Check if an entity type may move between two statuses."""
    allowed = ALLOWED_TRANSITIONS[EntityType(entity_type)].get(EntityStatus(from_status), set())
    return EntityStatus(to_status) in allowed
