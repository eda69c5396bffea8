"""Audit recorder.

Builds one immutable ``AuditLog`` row per attempted transition and appends
it through an ``AuditStore``. The recorder runs inside the orchestrator's
transaction: if the append fails, the state change is rolled back with it.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Protocol

from spendly.core.clock import Clock, SystemClock
from spendly.db.models.audit import AuditLog, AuditSeverity

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("entity_type", "entity_id", "action", "performed_by")


class AuditStore(Protocol):
    def append(self, entry: AuditLog) -> AuditLog:
        ...

    def last_timestamp(self, entity_type: str, entity_id: str) -> Optional[datetime]:
        ...

    def list_for_entity(self, entity_id: str) -> List[AuditLog]:
        ...


class AuditRecorder:
    """Writes audit entries with per-entity increasing timestamps."""

    def __init__(self, store: AuditStore, clock: Optional[Clock] = None):
        self.store = store
        self.clock = clock or SystemClock()

    def record(
        self,
        entity_type: str,
        entity_id: str,
        action: str,
        performed_by: str,
        previous_state: Optional[Dict[str, Any]],
        new_state: Optional[Dict[str, Any]],
        metadata: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        *,
        org_id: Optional[str] = None,
        severity: AuditSeverity = AuditSeverity.INFO,
    ) -> AuditLog:
        """
        Append an audit entry for one transition attempt.

        Args:
            entity_type: Type of entity ('expense' or 'payout')
            entity_id: ID of the entity
            action: Action attempted
            performed_by: Acting principal
            previous_state: State snapshot before the attempt
            new_state: State snapshot after the attempt
            metadata: Free-form context
            ip_address: Client IP address, when the caller knows it
            org_id: Organization ID
            severity: INFO for approvals, WARNING for rejections

        Returns:
            The stored AuditLog entry

        Raises:
            ValueError: If a required field is empty
        """
        values = {
            "entity_type": entity_type,
            "entity_id": entity_id,
            "action": action,
            "performed_by": performed_by,
        }
        missing = [name for name in REQUIRED_FIELDS if not values[name]]
        if missing:
            raise ValueError(f"Audit entry missing required fields: {', '.join(missing)}")

        entry = AuditLog.create_entry(
            entity_type,
            entity_id,
            action,
            performed_by,
            created_at=self._next_timestamp(entity_type, entity_id),
            previous_state=previous_state,
            new_state=new_state,
            metadata=metadata,
            ip_address=ip_address,
            org_id=org_id,
            severity=severity,
        )
        self.store.append(entry)
        logger.debug(f"Audit entry {entry.id}: {action} on {entity_type} {entity_id} by {performed_by}")
        return entry

    def _next_timestamp(self, entity_type: str, entity_id: str) -> datetime:
        # Strictly after the entity's previous entry so write order == time order
        now = self.clock.now()
        last = self.store.last_timestamp(entity_type, entity_id)
        if last is not None and now <= last:
            return last + timedelta(microseconds=1)
        return now
