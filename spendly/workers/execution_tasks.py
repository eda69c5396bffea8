"""Celery tasks for execution signal delivery.

Provides async task processing for:
- Delivery of one outbox entry, retried with a growing delay
- Periodic sweep that re-enqueues entries nobody delivered
"""

from datetime import timedelta
from functools import lru_cache
from typing import Any, Dict, List
import logging

from celery import Celery, shared_task
from sqlalchemy.orm import sessionmaker

from spendly.core.config import get_settings
from spendly.core.errors import ExecutionDeliveryError
from spendly.db.session import build_engine, build_session_factory
from spendly.services.execution import (
    build_execution_signaler,
    deliver_outbox_entry,
    enqueue_pending_signals,
)

logger = logging.getLogger(__name__)
settings = get_settings()

# Initialize Celery
celery_app = Celery(
    'spendly',
    broker=settings.celery_broker,
    backend=settings.celery_backend,
)

celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,
    task_routes={
        'spendly.workers.execution_tasks.deliver_execution_signal': {'queue': 'execution'},
    },
    task_default_queue='default',
    beat_schedule={
        'redeliver-pending-signals': {
            'task': 'spendly.workers.execution_tasks.redeliver_pending_signals',
            'schedule': float(settings.outbox_sweep_interval),
        },
    },
)


@lru_cache
def get_session_factory() -> sessionmaker:
    return build_session_factory(build_engine(settings.database_url))


@shared_task(
    bind=True,
    max_retries=settings.execution_max_retries,
    default_retry_delay=settings.execution_retry_delay,
)
def deliver_execution_signal(self, outbox_id: str) -> Dict[str, Any]:
    """
    Async task to deliver one execution signal.

    Args:
        outbox_id: ID of the ExecutionOutbox row

    Returns:
        Delivery result dictionary
    """
    try:
        delivered = deliver_outbox_entry(
            get_session_factory(),
            outbox_id,
            build_execution_signaler(get_settings()),
        )
    except ExecutionDeliveryError as e:
        countdown = settings.execution_retry_delay * (self.request.retries + 1)
        logger.warning(
            f"Delivery of {outbox_id} failed (retry {self.request.retries + 1}); next try in {countdown}s"
        )
        raise self.retry(exc=e, countdown=countdown)

    return {"outbox_id": outbox_id, "delivered": delivered}


@celery_app.task
def redeliver_pending_signals(limit: int = 100) -> List[str]:
    """
    Periodic task to re-enqueue stale outbox entries.

    Covers approvals whose post-commit enqueue never happened and
    deliveries that ran out of retries.
    """
    return enqueue_pending_signals(
        get_session_factory(),
        deliver_execution_signal.delay,
        grace=timedelta(seconds=settings.outbox_redelivery_after),
        limit=limit,
    )
