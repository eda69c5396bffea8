"""Approval decision engine.

Pure functions mapping an entity's current fields, its thresholds and the
acting principal to an ``ApprovalDecision``. Nothing here touches the
database or the clock, so the same inputs always give the same decision
(audit replays depend on that).

Boundary handling is deliberately asymmetric:
- an expense equal to the auto-approve threshold is auto-approved (``<=``);
- a payout equal to the dual-approval threshold needs two approvers (``>=``).
"""

from decimal import Decimal
from typing import Optional

from spendly.core.errors import UnsupportedActionError
from spendly.core.policy.thresholds import ThresholdPolicy

from .models import ApprovableEntity, ApprovalDecision, ExpenseSnapshot, PayoutSnapshot
from .states import ApprovalAction, EntityStatus, ExpenseType


REASON_ALREADY_SPENT = "Already spent"
REASON_BELOW_THRESHOLD = "Below threshold"
REASON_REVIEWER_APPROVED = "Approved by reviewer"
REASON_SELF_APPROVAL = "Initiator cannot approve own payout"
REASON_SECOND_APPROVAL_REQUIRED = "High-value payout requires second approval"
REASON_SAME_SECOND_APPROVER = "Second approver must be different from first"
REASON_REJECTED = "Rejected by approver"


def evaluate_expense(
    amount: Decimal,
    expense_type: ExpenseType,
    auto_approve_threshold: Decimal,
) -> ApprovalDecision:
    """
    Decide whether an expense can be approved without a human.

    Args:
        amount: Expense amount
        expense_type: ``spent`` (already incurred) or ``request``
        auto_approve_threshold: Largest amount that passes automatically

    Returns:
        APPROVED (auto) or PENDING. Expenses are never auto-rejected.
    """
    if ExpenseType(expense_type) == ExpenseType.SPENT:
        return ApprovalDecision(
            resulting_status=EntityStatus.APPROVED,
            auto_approved=True,
            reason=REASON_ALREADY_SPENT,
        )

    if Decimal(amount) <= Decimal(auto_approve_threshold):
        return ApprovalDecision(
            resulting_status=EntityStatus.APPROVED,
            auto_approved=True,
            reason=REASON_BELOW_THRESHOLD,
        )

    return ApprovalDecision(resulting_status=EntityStatus.PENDING)


def evaluate_expense_review(
    amount: Decimal,
    expense_type: ExpenseType,
    auto_approve_threshold: Decimal,
) -> ApprovalDecision:
    """Outcome of a reviewer explicitly approving an expense."""
    decision = evaluate_expense(amount, expense_type, auto_approve_threshold)
    if decision.resulting_status == EntityStatus.APPROVED:
        return decision
    return ApprovalDecision(
        resulting_status=EntityStatus.APPROVED,
        auto_approved=False,
        reason=REASON_REVIEWER_APPROVED,
    )


def evaluate_payout_approval(
    amount: Decimal,
    dual_approval_threshold: Decimal,
    initiated_by: str,
    approved_by: str,
    first_approver: Optional[str] = None,
) -> ApprovalDecision:
    """
    Apply maker-checker and dual control to a payout approval.

    Self-approval is checked before anything else, so an initiator is
    rejected whatever the amount or the dual-approval progress.

    Args:
        amount: Payout amount
        dual_approval_threshold: Smallest amount that needs two approvers
        initiated_by: Principal who created the payout
        approved_by: Principal approving now
        first_approver: Principal who gave the first of two approvals, if any

    Returns:
        ApprovalDecision for this approval attempt
    """
    if initiated_by == approved_by:
        return ApprovalDecision(
            resulting_status=EntityStatus.REJECTED,
            reason=REASON_SELF_APPROVAL,
        )

    if Decimal(amount) >= Decimal(dual_approval_threshold):
        if not first_approver:
            return ApprovalDecision(
                resulting_status=EntityStatus.PENDING_SECOND_APPROVAL,
                requires_dual_approval=True,
                reason=REASON_SECOND_APPROVAL_REQUIRED,
            )

        if first_approver == approved_by:
            return ApprovalDecision(
                resulting_status=EntityStatus.REJECTED,
                requires_dual_approval=True,
                reason=REASON_SAME_SECOND_APPROVER,
            )

        return ApprovalDecision(
            resulting_status=EntityStatus.APPROVED,
            requires_dual_approval=True,
        )

    return ApprovalDecision(resulting_status=EntityStatus.APPROVED)


def evaluate_rejection(reason: Optional[str] = None) -> ApprovalDecision:
    """Outcome of a principal explicitly rejecting an entity."""
    return ApprovalDecision(
        resulting_status=EntityStatus.REJECTED,
        reason=reason or REASON_REJECTED,
    )


def decide(
    entity: ApprovableEntity,
    action: ApprovalAction,
    principal: str,
    thresholds: ThresholdPolicy,
    *,
    reason: Optional[str] = None,
) -> ApprovalDecision:
    """
    Dispatch an action on an entity to the matching evaluation.

    Per-entity threshold overrides win over the resolved policy.

    Raises:
        UnsupportedActionError: ``submit`` on a payout
    """
    action = ApprovalAction(action)

    if action == ApprovalAction.REJECT:
        return evaluate_rejection(reason)

    if isinstance(entity, ExpenseSnapshot):
        threshold = entity.auto_approve_threshold
        if threshold is None:
            threshold = thresholds.auto_approve_threshold
        if action == ApprovalAction.SUBMIT:
            return evaluate_expense(entity.amount, entity.expense_type, threshold)
        return evaluate_expense_review(entity.amount, entity.expense_type, threshold)

    if isinstance(entity, PayoutSnapshot):
        if action == ApprovalAction.SUBMIT:
            raise UnsupportedActionError(action.value, entity.entity_type.value)
        threshold = entity.dual_approval_threshold
        if threshold is None:
            threshold = thresholds.dual_approval_threshold
        return evaluate_payout_approval(
            amount=entity.amount,
            dual_approval_threshold=threshold,
            initiated_by=entity.initiated_by,
            approved_by=principal,
            first_approver=entity.first_approver,
        )

    raise TypeError(f"Not an approvable entity: {type(entity).__name__}")
