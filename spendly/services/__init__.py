"""Spendly services."""

from .execution import (
    CeleryExecutionDispatcher,
    ExecutionDispatcher,
    ExecutionSignal,
    ExecutionSignaler,
    InlineExecutionDispatcher,
    NullExecutionSignaler,
    RecordingExecutionSignaler,
    WebhookExecutionSignaler,
    build_execution_dispatcher,
    build_execution_signaler,
    deliver_outbox_entry,
    enqueue_pending_signals,
)

__all__ = [
    "CeleryExecutionDispatcher",
    "ExecutionDispatcher",
    "ExecutionSignal",
    "ExecutionSignaler",
    "InlineExecutionDispatcher",
    "NullExecutionSignaler",
    "RecordingExecutionSignaler",
    "WebhookExecutionSignaler",
    "build_execution_dispatcher",
    "build_execution_signaler",
    "deliver_outbox_entry",
    "enqueue_pending_signals",
]
