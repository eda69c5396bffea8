"""Database models for Spendly."""

from spendly.db.models.expense import Expense
from spendly.db.models.payout import Payout
from spendly.db.models.policy import ApprovalPolicy
from spendly.db.models.audit import AuditLog, AuditSeverity
from spendly.db.models.outbox import ExecutionOutbox

__all__ = [
    "Expense",
    "Payout",
    "ApprovalPolicy",
    "AuditLog",
    "AuditSeverity",
    "ExecutionOutbox",
]
