"""Factory functions for creating test database records.

Each factory creates a model instance, adds it to the session and commits,
so the orchestrator (which opens its own sessions) can see it. All fields
have sensible defaults but can be overridden via keyword arguments.

Usage::

    from tests.factories import create_payout

    def test_something(db_session):
        payout = create_payout(db_session, amount=Decimal("7500"))
        assert payout.status == "pending"
"""

import uuid
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session, sessionmaker

from spendly.db.models import ApprovalPolicy, Expense, Payout


DEFAULT_ORG_ID = "org-test"


def create_expense(
    session: Session,
    *,
    org_id: str = DEFAULT_ORG_ID,
    amount: Decimal = Decimal("250.00"),
    currency: str = "USD",
    expense_type: str = "request",
    status: str = "pending",
    auto_approve_threshold: Optional[Decimal] = None,
    submitted_by: Optional[str] = "employee-1",
) -> Expense:
    expense = Expense(
        id=str(uuid.uuid4()),
        org_id=org_id,
        amount=amount,
        currency=currency,
        expense_type=expense_type,
        status=status,
        auto_approve_threshold=auto_approve_threshold,
        submitted_by=submitted_by,
        version=1,
    )
    session.add(expense)
    session.commit()
    return expense


def create_payout(
    session: Session,
    *,
    org_id: str = DEFAULT_ORG_ID,
    amount: Decimal = Decimal("1000.00"),
    currency: str = "USD",
    initiated_by: str = "u1",
    status: str = "pending",
    first_approver: Optional[str] = None,
    dual_approval_threshold: Optional[Decimal] = None,
) -> Payout:
    payout = Payout(
        id=str(uuid.uuid4()),
        org_id=org_id,
        amount=amount,
        currency=currency,
        initiated_by=initiated_by,
        status=status,
        first_approver=first_approver,
        dual_approval_threshold=dual_approval_threshold,
        recipient_name="Acme Supplies",
        version=1,
    )
    session.add(payout)
    session.commit()
    return payout


def create_policy(
    session: Session,
    *,
    org_id: str = DEFAULT_ORG_ID,
    currency: Optional[str] = None,
    auto_approve_threshold: Optional[Decimal] = None,
    dual_approval_threshold: Optional[Decimal] = None,
    enabled: bool = True,
) -> ApprovalPolicy:
    policy = ApprovalPolicy(
        org_id=org_id,
        currency=currency,
        auto_approve_threshold=auto_approve_threshold,
        dual_approval_threshold=dual_approval_threshold,
        enabled=enabled,
    )
    session.add(policy)
    session.commit()
    return policy


def reload(session_factory: sessionmaker, model, entity_id: str):
    """Read a row back through a fresh session."""
    with session_factory() as session:
        return session.get(model, entity_id)
