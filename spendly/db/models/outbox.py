"""Execution outbox model.

One row per approval that the execution collaborator must hear about. The
row is written in the same transaction as the approval itself, so a
committed approval always has a signal waiting to be delivered.
"""

import uuid
from sqlalchemy import Column, String, DateTime, Integer, Text, JSON

from spendly.core.clock import utcnow
from spendly.db.base import Base


class ExecutionOutbox(Base):
    """
    Pending or delivered execution signal.

    ``idempotency_key`` is ``{entity_id}:{status}``; the receiver
    de-duplicates on it, so redelivering a row is always safe.
    """
    __tablename__ = "execution_outbox"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    idempotency_key = Column(String(100), nullable=False, unique=True)

    org_id = Column(String(36), nullable=True, index=True)
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(String(36), nullable=False, index=True)
    status = Column(String(30), nullable=False)

    # ExecutionSignal as JSON
    payload = Column(JSON, nullable=False)

    # Delivery tracking
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    delivered_at = Column(DateTime, nullable=True, index=True)

    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    def __repr__(self) -> str:
        state = "delivered" if self.delivered_at else "pending"
        return f"<ExecutionOutbox {self.idempotency_key} [{state}]>"

    @property
    def is_delivered(self) -> bool:
        return self.delivered_at is not None
