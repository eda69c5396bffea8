"""Expense model."""

import uuid
from sqlalchemy import Column, String, DateTime, Numeric, Integer, Text

from spendly.core.approval.models import ExpenseSnapshot
from spendly.core.clock import utcnow
from spendly.db.base import Base


class Expense(Base):
    """
    An expense claim or spend request.

    Created in ``pending`` by expense submission; only the approval
    orchestrator changes ``status`` afterwards.
    """
    __tablename__ = "expenses"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    org_id = Column(String(36), nullable=False, index=True)

    amount = Column(Numeric(16, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    expense_type = Column(String(20), nullable=False, default="request")
    description = Column(Text, nullable=True)
    submitted_by = Column(String(64), nullable=True)

    # Workflow state
    status = Column(String(30), nullable=False, default="pending", index=True)
    auto_approve_threshold = Column(Numeric(16, 2), nullable=True)  # Overrides org policy
    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow)

    def __repr__(self) -> str:
        return f"<Expense {self.id} {self.amount} {self.currency} [{self.status}]>"

    def to_snapshot(self) -> ExpenseSnapshot:
        return ExpenseSnapshot(
            id=self.id,
            org_id=self.org_id,
            amount=self.amount,
            currency=self.currency,
            expense_type=self.expense_type,
            status=self.status,
            version=self.version,
            auto_approve_threshold=self.auto_approve_threshold,
        )
