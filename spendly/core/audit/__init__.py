"""Audit recording and verification for Spendly."""

from .recorder import AuditRecorder, AuditStore
from .reconcile import TrailReport, verify_audit_trail, replay_decision

__all__ = [
    "AuditRecorder",
    "AuditStore",
    "TrailReport",
    "verify_audit_trail",
    "replay_decision",
]
