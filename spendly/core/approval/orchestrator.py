"""Approval orchestrator.

Single entry point for approval actions. Each attempt runs in its own
transaction: load the entity, decide, compare-and-set the new status and
append the audit entry. An approval also writes its execution signal to the
outbox in the same transaction. Either every write commits or none does. A
lost version race is retried against fresh state; the outbox entry is
dispatched only after commit.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from spendly.core.audit.recorder import AuditRecorder
from spendly.core.audit.reconcile import TrailReport, verify_audit_trail
from spendly.core.clock import Clock, SystemClock
from spendly.core.config import Settings, get_settings
from spendly.core.errors import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    PersistenceError,
    UnsupportedActionError,
)
from spendly.core.policy.thresholds import ThresholdPolicy, ThresholdResolver, load_policy_file
from spendly.db.models.audit import AuditLog, AuditSeverity
from spendly.db.session import build_engine, build_session_factory
from spendly.db.stores import SqlAuditStore, SqlEntityStore, SqlOutboxStore, SqlPolicyStore
from spendly.services.execution import (
    ExecutionDispatcher,
    ExecutionSignal,
    InlineExecutionDispatcher,
    NullExecutionSignaler,
    build_execution_dispatcher,
)

from .engine import decide
from .models import ApprovableEntity, ApprovalDecision, ApprovalOutcome, EntityUpdate, ExpenseSnapshot
from .states import ApprovalAction, EntityStatus, EntityType, can_transition, is_terminal

logger = logging.getLogger(__name__)


class ApprovalOrchestrator:
    """
    Coordinates the decision engine, the audit recorder and persistence.

    Handles:
    - Loading current entity state
    - Threshold resolution (entity override, then organization policy)
    - Atomic status + audit writes with optimistic version checks
    - Retrying lost concurrency races
    - Outbox write for approvals and post-commit dispatch
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        *,
        resolver: Optional[ThresholdResolver] = None,
        clock: Optional[Clock] = None,
        dispatcher: Optional[ExecutionDispatcher] = None,
        settings: Optional[Settings] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            session_factory: Creates one session per attempt
            resolver: Threshold resolver (defaults to the approval_policies table)
            clock: Audit timestamp source
            dispatcher: Hands committed outbox entries to delivery
            settings: Application settings
        """
        self.session_factory = session_factory
        self.settings = settings or get_settings()
        self.resolver = resolver or ThresholdResolver(SqlPolicyStore(session_factory), self.settings)
        self.clock = clock or SystemClock()
        self.dispatcher = dispatcher or InlineExecutionDispatcher(session_factory, NullExecutionSignaler())

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "ApprovalOrchestrator":
        """Build an orchestrator wired from configuration."""
        settings = settings or get_settings()
        session_factory = build_session_factory(build_engine(settings.database_url))

        if settings.policy_file:
            store = load_policy_file(settings.policy_file)
        else:
            store = SqlPolicyStore(session_factory)

        return cls(
            session_factory,
            resolver=ThresholdResolver(store, settings),
            dispatcher=build_execution_dispatcher(session_factory, settings),
            settings=settings,
        )

    def submit_decision(
        self,
        entity_id: str,
        action: ApprovalAction,
        acting_principal: str,
        metadata: Optional[Dict[str, Any]] = None,
        *,
        ip_address: Optional[str] = None,
    ) -> ApprovalOutcome:
        """
        Apply an approval action to an expense or payout.

        Business rejections (self-approval, same second approver, manual
        reject) are returned as decisions, not raised.

        Args:
            entity_id: ID of the expense or payout
            action: submit, approve or reject
            acting_principal: Authenticated principal performing the action
            metadata: Extra context stored on the audit entry ('reason' is
                used as the rejection reason)
            ip_address: Client IP address for the audit entry

        Returns:
            ApprovalOutcome with the updated entity and the decision

        Raises:
            NotFoundError: If the entity doesn't exist
            InvalidStateError: If the entity is already approved or rejected
            UnsupportedActionError: If the action doesn't apply to the entity
            ConflictError: If concurrent writers kept winning after all retries
            PersistenceError: If the transaction could not be committed
        """
        try:
            action = ApprovalAction(action)
        except ValueError:
            raise UnsupportedActionError(str(action), "approvable entity")
        if not acting_principal:
            raise ValueError("acting_principal is required")

        max_attempts = 1 + max(0, self.settings.max_conflict_retries)
        attempt = 0
        while True:
            attempt += 1
            try:
                outcome = self._attempt(
                    entity_id, action, acting_principal, metadata or {}, ip_address, attempt
                )
                break
            except ConflictError:
                if attempt >= max_attempts:
                    logger.warning(
                        f"Giving up on {action.value} for {entity_id} after {attempt} conflicting attempts"
                    )
                    raise
                logger.info(f"Concurrent update on {entity_id}, retrying {action.value} (attempt {attempt + 1})")

        if outcome.outbox_id is not None:
            self._dispatch(outcome)

        return outcome

    def history(self, entity_id: str) -> List[AuditLog]:
        """Get the audit entries for an entity in write order."""
        with self.session_factory() as session:
            return SqlAuditStore(session).list_for_entity(entity_id)

    def verify(self, entity_id: str) -> TrailReport:
        """Check an entity's audit trail for a legal, replayable path."""
        return verify_audit_trail(entity_id, self.history(entity_id))

    def _attempt(
        self,
        entity_id: str,
        action: ApprovalAction,
        principal: str,
        metadata: Dict[str, Any],
        ip_address: Optional[str],
        attempt: int,
    ) -> ApprovalOutcome:
        try:
            with self.session_factory() as session, session.begin():
                entities = SqlEntityStore(session)
                recorder = AuditRecorder(SqlAuditStore(session), self.clock)

                entity = entities.load(entity_id)
                if entity is None:
                    raise NotFoundError(entity_id)

                if is_terminal(entity.status):
                    raise InvalidStateError(
                        f"{entity.entity_type.value} {entity_id} is already {entity.status.value}",
                        entity_id,
                        entity.status.value,
                    )

                thresholds = self._effective_thresholds(entity)
                decision = decide(entity, action, principal, thresholds, reason=metadata.get("reason"))

                if not can_transition(entity.entity_type, entity.status, decision.resulting_status):
                    raise InvalidStateError(
                        f"Cannot move {entity.entity_type.value} {entity_id} from "
                        f"{entity.status.value} to {decision.resulting_status.value}",
                        entity_id,
                        entity.status.value,
                    )

                updated = entities.compare_and_set(
                    entity.id,
                    entity.version,
                    self._build_update(entity, decision, principal),
                    now=self.clock.now(),
                )

                audit_metadata = dict(metadata)
                audit_metadata.update({
                    "decision": decision.to_dict(),
                    "thresholds": thresholds.to_dict(),
                    "attempt": attempt,
                })
                entry = recorder.record(
                    entity.entity_type.value,
                    entity.id,
                    action.value,
                    principal,
                    previous_state=entity.to_state(),
                    new_state=updated.to_state(),
                    metadata=audit_metadata,
                    ip_address=ip_address,
                    org_id=entity.org_id,
                    severity=(
                        AuditSeverity.WARNING
                        if decision.resulting_status == EntityStatus.REJECTED
                        else AuditSeverity.INFO
                    ),
                )
                entry_id = entry.id

                outbox_id = None
                if decision.resulting_status == EntityStatus.APPROVED:
                    outbox_id = self._write_outbox(session, updated, principal, entry_id)
        except SQLAlchemyError as e:
            logger.exception(f"Could not commit {action.value} on {entity_id}")
            raise PersistenceError(f"Could not commit {action.value} on {entity_id}: {e}") from e

        logger.info(
            f"{updated.entity_type.value} {entity_id}: {action.value} by {principal} "
            f"-> {decision.resulting_status.value}"
            + (f" ({decision.reason})" if decision.reason else "")
        )
        return ApprovalOutcome(
            entity=updated,
            decision=decision,
            audit_entry_id=entry_id,
            attempts=attempt,
            outbox_id=outbox_id,
        )

    def _effective_thresholds(self, entity: ApprovableEntity) -> ThresholdPolicy:
        policy = self.resolver.resolve(entity.org_id, entity.currency)
        if isinstance(entity, ExpenseSnapshot):
            if entity.auto_approve_threshold is not None:
                return ThresholdPolicy(
                    auto_approve_threshold=entity.auto_approve_threshold,
                    dual_approval_threshold=policy.dual_approval_threshold,
                    source="entity",
                )
        elif entity.dual_approval_threshold is not None:
            return ThresholdPolicy(
                auto_approve_threshold=policy.auto_approve_threshold,
                dual_approval_threshold=entity.dual_approval_threshold,
                source="entity",
            )
        return policy

    def _build_update(
        self,
        entity: ApprovableEntity,
        decision: ApprovalDecision,
        principal: str,
    ) -> EntityUpdate:
        status = decision.resulting_status
        if entity.entity_type == EntityType.EXPENSE:
            return EntityUpdate(entity_type=EntityType.EXPENSE, status=status)

        return EntityUpdate(
            entity_type=EntityType.PAYOUT,
            status=status,
            first_approver=principal if status == EntityStatus.PENDING_SECOND_APPROVAL else None,
            approved_by=principal if status == EntityStatus.APPROVED else None,
            rejected_by=principal if status == EntityStatus.REJECTED else None,
        )

    def _write_outbox(
        self,
        session,
        entity: ApprovableEntity,
        principal: str,
        audit_entry_id: str,
    ) -> str:
        signal = ExecutionSignal(
            entity_type=entity.entity_type.value,
            entity_id=entity.id,
            org_id=entity.org_id,
            status=entity.status.value,
            amount=entity.amount,
            currency=entity.currency,
            approved_by=principal,
            audit_entry_id=audit_entry_id,
            emitted_at=self.clock.now(),
        )
        row = SqlOutboxStore(session).add(
            signal.idempotency_key,
            signal.entity_type,
            signal.entity_id,
            signal.status,
            signal.model_dump(mode="json"),
            org_id=signal.org_id,
            now=signal.emitted_at,
        )
        return row.id

    def _dispatch(self, outcome: ApprovalOutcome) -> None:
        try:
            self.dispatcher.dispatch(outcome.outbox_id)
        except Exception:
            # Approval and outbox entry are already committed
            logger.exception(
                f"Dispatch of outbox entry {outcome.outbox_id} failed; left pending for redelivery"
            )
