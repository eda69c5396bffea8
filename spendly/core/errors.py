"""Error taxonomy for the approval engine.

Business outcomes (self-approval, duplicate second approver) are never
raised; they come back as rejected ``ApprovalDecision`` values. Everything
here is a system-level failure.
"""

from typing import Optional


class ApprovalError(Exception):
    """Base class for approval engine errors."""

    retryable = False


class NotFoundError(ApprovalError):
    """Raised when no expense or payout exists for an id."""

    def __init__(self, entity_id: str):
        super().__init__(f"Approvable entity {entity_id} not found")
        self.entity_id = entity_id


class InvalidStateError(ApprovalError):
    """Raised when an entity cannot move from its current status."""

    def __init__(self, message: str, entity_id: str, status: str):
        super().__init__(message)
        self.entity_id = entity_id
        self.status = status


class UnsupportedActionError(ApprovalError):
    """Raised when an action is not defined for the entity type."""

    def __init__(self, action: str, entity_type: str):
        super().__init__(f"Action {action} is not supported for {entity_type}")
        self.action = action
        self.entity_type = entity_type


class ConflictError(ApprovalError):
    """Raised when a concurrent writer changed the entity first."""

    retryable = True

    def __init__(self, entity_id: str, expected_version: Optional[int] = None):
        message = f"Concurrent update on {entity_id}"
        if expected_version is not None:
            message += f" (expected version {expected_version})"
        super().__init__(message)
        self.entity_id = entity_id
        self.expected_version = expected_version


class PolicyUnavailableError(ApprovalError):
    """Raised by policy stores that cannot be read.

    The threshold resolver absorbs it and falls back to defaults.
    """


class PersistenceError(ApprovalError):
    """Raised when a transition could not be committed."""

    retryable = True


class AuditImmutableError(ApprovalError):
    """Raised on any attempt to update or delete an audit entry."""


class ExecutionDeliveryError(ApprovalError):
    """Raised when the execution collaborator rejected or missed a signal."""

    retryable = True

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
