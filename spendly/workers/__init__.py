"""Celery workers for Spendly."""

from spendly.workers.execution_tasks import (
    celery_app,
    deliver_execution_signal,
    redeliver_pending_signals,
)

__all__ = [
    "celery_app",
    "deliver_execution_signal",
    "redeliver_pending_signals",
]
