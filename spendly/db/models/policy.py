"""Approval threshold policy model."""

import uuid
from sqlalchemy import Column, String, DateTime, Numeric, Boolean, UniqueConstraint

from spendly.core.clock import utcnow
from spendly.db.base import Base


class ApprovalPolicy(Base):
    """
    Approval thresholds for an organization.

    A row with ``currency`` NULL applies to every currency the organization
    has no specific row for. NULL thresholds fall back to the defaults.
    """
    __tablename__ = "approval_policies"
    __table_args__ = (
        UniqueConstraint("org_id", "currency", name="uq_approval_policies_org_currency"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    org_id = Column(String(36), nullable=False, index=True)
    currency = Column(String(3), nullable=True)

    auto_approve_threshold = Column(Numeric(16, 2), nullable=True)
    dual_approval_threshold = Column(Numeric(16, 2), nullable=True)
    enabled = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<ApprovalPolicy org={self.org_id} currency={self.currency or '*'}>"
