"""Execution signal delivered after an approval is committed.

The payout-execution collaborator is told about every entity that reaches
``approved``. The orchestrator writes the signal to the ``execution_outbox``
table in the approval transaction and hands the outbox id to a dispatcher
after commit. Delivery is at-least-once: retries happen in the Celery
worker, never on the request path, and the receiver de-duplicates on the
``Idempotency-Key`` header (``{entity_id}:{status}``).
"""

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Protocol

import httpx
from pydantic import BaseModel, Field
from sqlalchemy.orm import sessionmaker

from spendly.core.clock import utcnow
from spendly.core.config import Settings, get_settings
from spendly.core.errors import ExecutionDeliveryError
from spendly.db.stores import SqlOutboxStore

logger = logging.getLogger(__name__)


class ExecutionSignal(BaseModel):
    """Payload sent to the execution collaborator."""
    entity_type: str
    entity_id: str
    org_id: Optional[str] = None
    status: str
    amount: Decimal
    currency: str
    approved_by: str
    audit_entry_id: Optional[str] = None
    emitted_at: datetime = Field(default_factory=utcnow)

    @property
    def idempotency_key(self) -> str:
        return f"{self.entity_id}:{self.status}"


class ExecutionSignaler(Protocol):
    def signal(self, signal: ExecutionSignal) -> None:
        ...


class NullExecutionSignaler:
    """Signaler used when no execution collaborator is configured."""

    def signal(self, signal: ExecutionSignal) -> None:
        logger.info(
            f"No execution endpoint configured; {signal.entity_type} {signal.entity_id} approved"
        )


class RecordingExecutionSignaler:
    """Keeps signals in memory. Useful for tests and dry runs."""

    def __init__(self):
        self.signals: List[ExecutionSignal] = []

    def signal(self, signal: ExecutionSignal) -> None:
        self.signals.append(signal)


class WebhookExecutionSignaler:
    """
    Posts execution signals to an HTTP endpoint.

    Makes exactly one request per call. Transport errors and non-2xx
    responses become ExecutionDeliveryError; the caller decides whether
    and when to try again.
    """

    def __init__(
        self,
        url: str,
        *,
        settings: Optional[Settings] = None,
        client: Optional[httpx.Client] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.url = url
        self.settings = settings or get_settings()
        self._client = client
        self.headers = dict(headers or {})

    def signal(self, signal: ExecutionSignal) -> None:
        try:
            self._deliver(signal)
        except httpx.HTTPStatusError as e:
            raise ExecutionDeliveryError(
                f"Execution endpoint answered {e.response.status_code} for {signal.entity_id}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise ExecutionDeliveryError(
                f"Could not reach execution endpoint for {signal.entity_id}: {e}"
            ) from e

        logger.info(f"Execution signal for {signal.entity_id} delivered")

    def _deliver(self, signal: ExecutionSignal) -> None:
        headers = dict(self.headers)
        headers["Content-Type"] = "application/json"
        headers["Idempotency-Key"] = signal.idempotency_key
        payload = self._build_payload(signal)

        if self._client is not None:
            response = self._client.post(self.url, json=payload, headers=headers)
            response.raise_for_status()
            return

        with httpx.Client(timeout=self.settings.webhook_timeout) as client:
            response = client.post(self.url, json=payload, headers=headers)
            response.raise_for_status()

    def _build_payload(self, signal: ExecutionSignal) -> Dict[str, Any]:
        return {
            "event": f"{signal.entity_type}.{signal.status}",
            "data": signal.model_dump(mode="json"),
        }


def build_execution_signaler(settings: Optional[Settings] = None) -> ExecutionSignaler:
    """Pick the signaler for the configured environment."""
    settings = settings or get_settings()
    if settings.execution_webhook_url:
        return WebhookExecutionSignaler(settings.execution_webhook_url, settings=settings)
    return NullExecutionSignaler()


def deliver_outbox_entry(
    session_factory: sessionmaker,
    outbox_id: str,
    signaler: ExecutionSignaler,
) -> bool:
    """
    Deliver one outbox row.

    Args:
        session_factory: Session factory for the approvals database
        outbox_id: ID of the ExecutionOutbox row
        signaler: Signaler that performs the delivery

    Returns:
        True if the signal was sent now, False if the row was missing or
        already delivered

    Raises:
        ExecutionDeliveryError: The attempt failed; the failure is recorded
            on the row, which stays pending
    """
    with session_factory() as session, session.begin():
        row = SqlOutboxStore(session).get(outbox_id)
        if row is None:
            logger.warning(f"Outbox entry {outbox_id} not found")
            return False
        if row.is_delivered:
            logger.debug(f"Outbox entry {outbox_id} already delivered")
            return False
        signal = ExecutionSignal.model_validate(row.payload)

    try:
        signaler.signal(signal)
    except ExecutionDeliveryError as e:
        with session_factory() as session, session.begin():
            SqlOutboxStore(session).record_failure(outbox_id, str(e), utcnow())
        logger.warning(f"Execution signal {signal.idempotency_key} failed: {e}")
        raise

    with session_factory() as session, session.begin():
        SqlOutboxStore(session).mark_delivered(outbox_id, utcnow())
    return True


class ExecutionDispatcher(Protocol):
    def dispatch(self, outbox_id: str) -> None:
        ...


class InlineExecutionDispatcher:
    """
    Delivers in the calling thread with a single attempt.

    A failed attempt leaves the row pending for the redelivery sweep.
    """

    def __init__(self, session_factory: sessionmaker, signaler: ExecutionSignaler):
        self.session_factory = session_factory
        self.signaler = signaler

    def dispatch(self, outbox_id: str) -> None:
        deliver_outbox_entry(self.session_factory, outbox_id, self.signaler)


class CeleryExecutionDispatcher:
    """Enqueues delivery on the Celery worker."""

    def __init__(self, enqueue: Optional[Callable[[str], Any]] = None):
        self._enqueue = enqueue

    def dispatch(self, outbox_id: str) -> None:
        enqueue = self._enqueue
        if enqueue is None:
            from spendly.workers.execution_tasks import deliver_execution_signal
            enqueue = deliver_execution_signal.delay
        enqueue(outbox_id)
        logger.debug(f"Outbox entry {outbox_id} enqueued")


def enqueue_pending_signals(
    session_factory: sessionmaker,
    enqueue: Callable[[str], Any],
    *,
    grace: timedelta = timedelta(seconds=300),
    limit: int = 100,
    now: Optional[datetime] = None,
) -> List[str]:
    """
    Re-enqueue outbox rows still undelivered after ``grace``.

    Returns:
        IDs of the rows handed to ``enqueue``
    """
    cutoff = (now or utcnow()) - grace
    with session_factory() as session, session.begin():
        ids = [row.id for row in SqlOutboxStore(session).pending(created_before=cutoff, limit=limit)]

    for outbox_id in ids:
        enqueue(outbox_id)

    if ids:
        logger.info(f"Re-enqueued {len(ids)} pending execution signals")
    return ids


def build_execution_dispatcher(
    session_factory: sessionmaker,
    settings: Optional[Settings] = None,
) -> ExecutionDispatcher:
    """Celery delivery when an endpoint is configured, inline logging otherwise."""
    settings = settings or get_settings()
    if settings.execution_webhook_url:
        return CeleryExecutionDispatcher()
    return InlineExecutionDispatcher(session_factory, NullExecutionSignaler())
