"""Payout model."""

import uuid
from sqlalchemy import Column, String, DateTime, Numeric, Integer

from spendly.core.approval.models import PayoutSnapshot
from spendly.core.clock import utcnow
from spendly.db.base import Base


class Payout(Base):
    """
    An outgoing payment awaiting maker-checker approval.

    High-value payouts pass through ``pending_second_approval`` with
    ``first_approver`` recorded before a different principal approves.
    """
    __tablename__ = "payouts"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    org_id = Column(String(36), nullable=False, index=True)

    amount = Column(Numeric(16, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    recipient_name = Column(String(255), nullable=True)

    # Maker-checker tracking
    initiated_by = Column(String(64), nullable=False)
    first_approver = Column(String(64), nullable=True)
    approved_by = Column(String(64), nullable=True)
    approved_at = Column(DateTime, nullable=True)
    rejected_by = Column(String(64), nullable=True)
    rejected_at = Column(DateTime, nullable=True)

    # Workflow state
    status = Column(String(30), nullable=False, default="pending", index=True)
    dual_approval_threshold = Column(Numeric(16, 2), nullable=True)  # Overrides org policy
    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow)

    def __repr__(self) -> str:
        return f"<Payout {self.id} {self.amount} {self.currency} [{self.status}]>"

    def to_snapshot(self) -> PayoutSnapshot:
        return PayoutSnapshot(
            id=self.id,
            org_id=self.org_id,
            amount=self.amount,
            currency=self.currency,
            initiated_by=self.initiated_by,
            status=self.status,
            version=self.version,
            first_approver=self.first_approver,
            approved_by=self.approved_by,
            dual_approval_threshold=self.dual_approval_threshold,
        )
