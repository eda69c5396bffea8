"""Audit trail verification.

Walks the stored entries of one entity and checks that they describe a
legal path through the status table, in time order, and that each
approval decision can be reproduced by the decision engine from what the
entry recorded.
"""

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, List, Optional, Sequence

from spendly.core.approval.engine import decide
from spendly.core.approval.models import ExpenseSnapshot, PayoutSnapshot
from spendly.core.approval.states import (
    ApprovalAction,
    EntityStatus,
    EntityType,
    can_transition,
    is_terminal,
)
from spendly.core.policy.thresholds import ThresholdPolicy


@dataclass
class TrailReport:
    """Result of verifying one entity's audit trail."""
    entity_id: str
    entry_count: int = 0
    final_status: Optional[str] = None
    problems: List[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.problems

    @property
    def closed(self) -> bool:
        """True when the trail ends at a terminal status."""
        return self.final_status is not None and is_terminal(self.final_status)


def verify_audit_trail(entity_id: str, entries: Sequence[Any]) -> TrailReport:
    """
    Verify an entity's audit entries.

    Args:
        entity_id: ID of the entity
        entries: AuditLog rows in write order

    Returns:
        TrailReport listing every problem found
    """
    report = TrailReport(entity_id=entity_id, entry_count=len(entries))
    previous = None

    for index, entry in enumerate(entries):
        label = f"entry {index} ({entry.id})"
        before = (entry.previous_state or {}).get("status")
        after = (entry.new_state or {}).get("status")

        if entry.entity_id != entity_id:
            report.problems.append(f"{label}: belongs to {entry.entity_id}")
            continue

        if previous is not None:
            if entry.created_at < previous.created_at:
                report.problems.append(f"{label}: timestamp earlier than previous entry")
            prior_status = (previous.new_state or {}).get("status")
            if before != prior_status:
                report.problems.append(
                    f"{label}: starts from {before} but previous entry ended at {prior_status}"
                )

        if not before or not after:
            report.problems.append(f"{label}: missing status snapshot")
        elif not _known(entry.entity_type, before, after):
            report.problems.append(f"{label}: unknown status or entity type")
        elif not can_transition(entry.entity_type, before, after):
            report.problems.append(f"{label}: illegal transition {before} -> {after}")
        else:
            replayed = replay_decision(entry)
            if replayed is not None and replayed != after:
                report.problems.append(
                    f"{label}: recorded {after} but replay gives {replayed}"
                )

        previous = entry
        report.final_status = after

    return report


def replay_decision(entry: Any) -> Optional[str]:
    """
    Re-run the decision engine for an audit entry.

    Returns:
        Replayed resulting status, or None when the entry lacks the data
        needed to replay it
    """
    state = entry.previous_state or {}
    thresholds = (entry.extra_data or {}).get("thresholds")
    if not thresholds:
        return None

    try:
        policy = ThresholdPolicy(
            auto_approve_threshold=_decimal(thresholds.get("auto_approve_threshold")),
            dual_approval_threshold=_decimal(thresholds.get("dual_approval_threshold")),
        )
        if EntityType(entry.entity_type) == EntityType.EXPENSE:
            snapshot = ExpenseSnapshot(
                id=entry.entity_id,
                org_id=entry.org_id or "",
                amount=state["amount"],
                currency=state["currency"],
                expense_type=state["expense_type"],
                status=state["status"],
                version=state.get("version", 0),
            )
        else:
            snapshot = PayoutSnapshot(
                id=entry.entity_id,
                org_id=entry.org_id or "",
                amount=state["amount"],
                currency=state["currency"],
                initiated_by=state["initiated_by"],
                status=state["status"],
                version=state.get("version", 0),
                first_approver=state.get("first_approver"),
            )
        decision = decide(
            snapshot,
            ApprovalAction(entry.action),
            entry.performed_by,
            policy,
            reason=(entry.extra_data or {}).get("reason"),
        )
    except (KeyError, TypeError, ValueError, InvalidOperation):
        return None

    return decision.resulting_status.value


def _decimal(value: Any) -> Optional[Decimal]:
    return Decimal(str(value)) if value is not None else None


def _known(entity_type: str, before: str, after: str) -> bool:
    try:
        EntityType(entity_type)
        EntityStatus(before)
        EntityStatus(after)
    except ValueError:
        return False
    return True
