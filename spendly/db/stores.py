"""SQLAlchemy implementations of the entity, audit and policy stores."""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from spendly.core.approval.models import ApprovableEntity, EntityUpdate
from spendly.core.approval.states import EntityStatus, EntityType
from spendly.core.clock import utcnow
from spendly.core.errors import ConflictError, InvalidStateError, PolicyUnavailableError
from spendly.core.policy.thresholds import ThresholdPolicy
from spendly.db.models import ApprovalPolicy, AuditLog, ExecutionOutbox, Expense, Payout

logger = logging.getLogger(__name__)

MODEL_BY_TYPE = {
    EntityType.EXPENSE: Expense,
    EntityType.PAYOUT: Payout,
}


class SqlEntityStore:
    """
    Loads and conditionally updates expenses and payouts.

    Writes go through ``compare_and_set`` only: an UPDATE guarded by the
    version the caller read, so two writers racing on one entity cannot
    both succeed.
    """

    def __init__(self, session: Session):
        self.session = session

    def load(self, entity_id: str) -> Optional[ApprovableEntity]:
        """Get the current snapshot of an expense or payout by ID."""
        for model in (Expense, Payout):
            row = self.session.get(model, entity_id, populate_existing=True)
            if row is not None:
                return _snapshot(row)
        return None

    def compare_and_set(
        self,
        entity_id: str,
        expected_version: int,
        new_state: EntityUpdate,
        *,
        now: Optional[datetime] = None,
    ) -> ApprovableEntity:
        """
        Write a new status if the stored version still matches.

        Args:
            entity_id: ID of the entity
            expected_version: Version read before deciding
            new_state: Status and principals to write
            now: Timestamp for updated_at / approved_at / rejected_at

        Returns:
            Snapshot after the write (version incremented)

        Raises:
            ConflictError: If another writer got there first
        """
        model = MODEL_BY_TYPE[EntityType(new_state.entity_type)]
        now = now or utcnow()

        values = {
            "status": EntityStatus(new_state.status).value,
            "version": model.version + 1,
            "updated_at": now,
        }
        if model is Payout:
            if new_state.first_approver:
                values["first_approver"] = new_state.first_approver
            if new_state.approved_by:
                values["approved_by"] = new_state.approved_by
                values["approved_at"] = now
            if new_state.rejected_by:
                values["rejected_by"] = new_state.rejected_by
                values["rejected_at"] = now

        stmt = (
            update(model)
            .where(and_(model.id == entity_id, model.version == expected_version))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(stmt)

        if result.rowcount != 1:
            logger.info(f"Version check failed for {entity_id} (expected {expected_version})")
            raise ConflictError(entity_id, expected_version)

        row = self.session.get(model, entity_id, populate_existing=True)
        return _snapshot(row)


class SqlAuditStore:
    """Append-only access to the audit log table."""

    def __init__(self, session: Session):
        self.session = session

    def append(self, entry: AuditLog) -> AuditLog:
        self.session.add(entry)
        self.session.flush()
        return entry

    def last_timestamp(self, entity_type: str, entity_id: str) -> Optional[datetime]:
        return self.session.execute(
            select(func.max(AuditLog.created_at)).where(
                and_(
                    AuditLog.entity_type == entity_type,
                    AuditLog.entity_id == entity_id,
                )
            )
        ).scalar()

    def list_for_entity(self, entity_id: str) -> List[AuditLog]:
        """Get all entries for an entity in write order."""
        return list(
            self.session.execute(
                select(AuditLog)
                .where(AuditLog.entity_id == entity_id)
                .order_by(AuditLog.created_at.asc())
            ).scalars()
        )


class SqlPolicyStore:
    """Reads threshold policies from the approval_policies table."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def resolve(self, org_id: str, currency: str) -> Optional[ThresholdPolicy]:
        """
        Get the policy row for an organization, preferring an exact
        currency match over the organization's any-currency row.

        Raises:
            PolicyUnavailableError: If the policy table cannot be read
        """
        try:
            with self.session_factory() as session:
                rows = session.execute(
                    select(ApprovalPolicy).where(
                        and_(
                            ApprovalPolicy.org_id == org_id,
                            ApprovalPolicy.enabled == True,  # noqa: E712
                            or_(
                                ApprovalPolicy.currency == currency.upper(),
                                ApprovalPolicy.currency.is_(None),
                            ),
                        )
                    )
                ).scalars().all()
        except SQLAlchemyError as e:
            raise PolicyUnavailableError(f"Could not load policy for org {org_id}: {e}") from e

        if not rows:
            return None

        # Currency-specific row first
        row = sorted(rows, key=lambda r: r.currency is None)[0]
        return ThresholdPolicy(
            auto_approve_threshold=row.auto_approve_threshold,
            dual_approval_threshold=row.dual_approval_threshold,
        )


class SqlOutboxStore:
    """Pending execution signals, written alongside the approval they announce."""

    def __init__(self, session: Session):
        self.session = session

    def add(
        self,
        idempotency_key: str,
        entity_type: str,
        entity_id: str,
        status: str,
        payload: Dict[str, Any],
        *,
        org_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ExecutionOutbox:
        now = now or utcnow()
        row = ExecutionOutbox(
            idempotency_key=idempotency_key,
            org_id=org_id,
            entity_type=entity_type,
            entity_id=entity_id,
            status=status,
            payload=payload,
            attempts=0,
            created_at=now,
            updated_at=now,
        )
        self.session.add(row)
        self.session.flush()
        return row

    def get(self, outbox_id: str) -> Optional[ExecutionOutbox]:
        return self.session.get(ExecutionOutbox, outbox_id, populate_existing=True)

    def pending(self, *, created_before: datetime, limit: int = 100) -> List[ExecutionOutbox]:
        """Get undelivered rows older than ``created_before``, oldest first."""
        return list(
            self.session.execute(
                select(ExecutionOutbox)
                .where(
                    and_(
                        ExecutionOutbox.delivered_at.is_(None),
                        ExecutionOutbox.created_at <= created_before,
                    )
                )
                .order_by(ExecutionOutbox.created_at.asc())
                .limit(limit)
            ).scalars()
        )

    def mark_delivered(self, outbox_id: str, now: datetime) -> bool:
        """Mark a row delivered. Returns False if it already was."""
        result = self.session.execute(
            update(ExecutionOutbox)
            .where(
                and_(
                    ExecutionOutbox.id == outbox_id,
                    ExecutionOutbox.delivered_at.is_(None),
                )
            )
            .values(
                delivered_at=now,
                updated_at=now,
                attempts=ExecutionOutbox.attempts + 1,
                last_error=None,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def record_failure(self, outbox_id: str, error: str, now: datetime) -> None:
        self.session.execute(
            update(ExecutionOutbox)
            .where(ExecutionOutbox.id == outbox_id)
            .values(
                attempts=ExecutionOutbox.attempts + 1,
                last_error=error[:2000],
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )


def _snapshot(row) -> ApprovableEntity:
    # Rows written outside the engine can break snapshot invariants
    try:
        return row.to_snapshot()
    except ValueError as e:
        raise InvalidStateError(
            f"Stored {row.__tablename__[:-1]} {row.id} is invalid: {e}",
            row.id,
            row.status,
        ) from e
