"""Spendly approval engine.

Decides whether expenses and payouts are auto-approved, need one approver or
need two, and keeps an immutable audit trail of every decision.
"""

__version__ = "0.1.0"
