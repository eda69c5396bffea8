"""Domain value types for the approval engine.

Snapshots are read-only views of a persisted expense or payout. The
orchestrator never edits them; it computes an ``EntityUpdate`` and hands it
to the entity store.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional, Union

from .states import EntityStatus, EntityType, ExpenseType, ENTITY_STATUSES


KNOWN_CURRENCIES = frozenset({
    "USD", "EUR", "GBP", "NGN", "KES", "GHS", "ZAR", "EGP",
    "RWF", "XOF", "CAD", "AUD", "CHF", "SEK", "NOK", "DKK",
    "JPY", "INR", "CNY",
})


def validate_amount(amount: Any) -> Decimal:
    """Coerce an amount to Decimal and require it to be positive."""
    try:
        value = Decimal(str(amount))
    except InvalidOperation:
        raise ValueError(f"Amount is not a number: {amount!r}")
    if not value.is_finite() or value <= 0:
        raise ValueError(f"Amount must be a positive number, got {amount}")
    return value


def validate_currency(currency: str) -> str:
    """Require a known ISO 4217 style currency code."""
    code = (currency or "").strip().upper()
    if code not in KNOWN_CURRENCIES:
        raise ValueError(f"Unknown currency code: {currency!r}")
    return code


@dataclass(frozen=True)
class ApprovalDecision:
    """Outcome of evaluating an approval action."""
    resulting_status: EntityStatus
    auto_approved: bool = False
    requires_dual_approval: bool = False
    reason: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.resulting_status in (EntityStatus.APPROVED, EntityStatus.REJECTED)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "resulting_status": self.resulting_status.value,
            "auto_approved": self.auto_approved,
            "requires_dual_approval": self.requires_dual_approval,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class ExpenseSnapshot:
    id: str
    org_id: str
    amount: Decimal
    currency: str
    expense_type: ExpenseType
    status: EntityStatus
    version: int
    auto_approve_threshold: Optional[Decimal] = None

    entity_type = EntityType.EXPENSE

    def __post_init__(self):
        object.__setattr__(self, "amount", validate_amount(self.amount))
        object.__setattr__(self, "currency", validate_currency(self.currency))
        object.__setattr__(self, "expense_type", ExpenseType(self.expense_type))
        object.__setattr__(self, "status", _checked_status(EntityType.EXPENSE, self.status))

    def to_state(self) -> Dict[str, Any]:
        """JSON-safe state used for audit snapshots."""
        return {
            "status": self.status.value,
            "amount": str(self.amount),
            "currency": self.currency,
            "expense_type": self.expense_type.value,
            "version": self.version,
        }


@dataclass(frozen=True)
class PayoutSnapshot:
    id: str
    org_id: str
    amount: Decimal
    currency: str
    initiated_by: str
    status: EntityStatus
    version: int
    first_approver: Optional[str] = None
    approved_by: Optional[str] = None
    dual_approval_threshold: Optional[Decimal] = None

    entity_type = EntityType.PAYOUT

    def __post_init__(self):
        object.__setattr__(self, "amount", validate_amount(self.amount))
        object.__setattr__(self, "currency", validate_currency(self.currency))
        object.__setattr__(self, "status", _checked_status(EntityType.PAYOUT, self.status))
        if not self.initiated_by:
            raise ValueError("Payout must record the initiating principal")

    def to_state(self) -> Dict[str, Any]:
        """JSON-safe state used for audit snapshots."""
        return {
            "status": self.status.value,
            "amount": str(self.amount),
            "currency": self.currency,
            "initiated_by": self.initiated_by,
            "first_approver": self.first_approver,
            "approved_by": self.approved_by,
            "version": self.version,
        }


ApprovableEntity = Union[ExpenseSnapshot, PayoutSnapshot]


@dataclass(frozen=True)
class EntityUpdate:
    """Fields written by a compare-and-set. Unset principals are left as stored."""
    entity_type: EntityType
    status: EntityStatus
    first_approver: Optional[str] = None
    approved_by: Optional[str] = None
    rejected_by: Optional[str] = None


@dataclass(frozen=True)
class ApprovalOutcome:
    """What ``submit_decision`` hands back to the caller."""
    entity: ApprovableEntity
    decision: ApprovalDecision
    audit_entry_id: Optional[str] = None
    attempts: int = 1
    outbox_id: Optional[str] = None


def _checked_status(entity_type: EntityType, status: Any) -> EntityStatus:
    value = EntityStatus(status)
    if value not in ENTITY_STATUSES[entity_type]:
        raise ValueError(f"Status {value.value} is not valid for {entity_type.value}")
    return value
