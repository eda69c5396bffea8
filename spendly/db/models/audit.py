"""Audit log model for Spendly.

This table is append-only. ORM hooks refuse UPDATE and DELETE of mapped
rows and bulk ``update(AuditLog)`` / ``delete(AuditLog)`` statements run
through a session; production databases should also revoke those privileges on the
table. Every approval attempt, including business rejections, leaves one
row here.
"""

import uuid
from enum import Enum
from typing import Any, Dict, Optional
from sqlalchemy import Column, String, DateTime, JSON, event
from sqlalchemy.orm import Session

from spendly.core.errors import AuditImmutableError
from spendly.db.base import Base


class AuditSeverity(str, Enum):
    """Severity levels for audit log entries."""
    INFO = "info"         # Approvals and pending outcomes
    WARNING = "warning"   # Rejections (maker-checker violations, manual rejects)


class AuditLog(Base):
    """
    Immutable audit log entry.

    Captures who attempted which action on which entity, with the entity
    state before and after. ``created_at`` is assigned once by the audit
    recorder.
    """
    __tablename__ = "audit_logs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # Organization scope
    org_id = Column(String(36), nullable=True, index=True)

    # Action details
    entity_type = Column(String(50), nullable=False, index=True)
    entity_id = Column(String(36), nullable=False, index=True)
    action = Column(String(100), nullable=False, index=True)
    performed_by = Column(String(64), nullable=False, index=True)
    ip_address = Column(String(45), nullable=True)

    # Change tracking
    previous_state = Column(JSON, nullable=True)
    new_state = Column(JSON, nullable=True)
    extra_data = Column(JSON, nullable=False, default=dict)

    severity = Column(String(20), nullable=False, default="info", index=True)
    created_at = Column(DateTime, nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<AuditLog {self.action} on {self.entity_type} {self.entity_id} by {self.performed_by}>"

    @classmethod
    def create_entry(
        cls,
        entity_type: str,
        entity_id: str,
        action: str,
        performed_by: str,
        *,
        created_at,
        previous_state: Optional[Dict[str, Any]] = None,
        new_state: Optional[Dict[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        org_id: Optional[str] = None,
        severity: AuditSeverity = AuditSeverity.INFO,
    ) -> "AuditLog":
        """
        Factory method to create a new audit log entry.

        Args:
            entity_type: Type of entity ('expense' or 'payout')
            entity_id: ID of the affected entity
            action: Action attempted ('submit', 'approve', 'reject')
            performed_by: Principal who attempted the action
            created_at: Write instant from the audit clock
            previous_state: Entity state before the attempt
            new_state: Entity state after the attempt
            metadata: Free-form context (decision, thresholds, caller data)
            ip_address: Client IP address
            org_id: Organization ID
            severity: Log severity level
        """
        return cls(
            id=str(uuid.uuid4()),
            org_id=org_id,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            performed_by=performed_by,
            previous_state=previous_state,
            new_state=new_state,
            extra_data=metadata or {},
            ip_address=ip_address,
            severity=severity.value if isinstance(severity, AuditSeverity) else severity,
            created_at=created_at,
        )


@event.listens_for(AuditLog, "before_update")
def _prevent_audit_update(mapper, connection, target):
    raise AuditImmutableError(f"Audit entry {target.id} cannot be modified")


@event.listens_for(AuditLog, "before_delete")
def _prevent_audit_delete(mapper, connection, target):
    raise AuditImmutableError(f"Audit entry {target.id} cannot be deleted")


@event.listens_for(Session, "do_orm_execute")
def _prevent_audit_bulk_writes(orm_execute_state):
    if not (orm_execute_state.is_update or orm_execute_state.is_delete):
        return
    mapper = orm_execute_state.bind_mapper
    if mapper is not None and mapper.class_ is AuditLog:
        raise AuditImmutableError("Audit entries cannot be modified or deleted")
