"""
Domain errors raised by the lifecycle engine.

Routes translate these into HTTP responses (see app/main.py).
Best-effort collaborators (classifier, notifications) never let
their errors escape to the caller.
"""

from typing import List, Optional


class LifecycleError(Exception):
    """Base class for all lifecycle engine errors."""


class ValidationError(LifecycleError):
    """Malformed submission, rejected before any side effect."""

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")


class NotFoundError(LifecycleError):
    """Referenced entity does not exist."""

    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class DuplicateConflict(LifecycleError):
    """A near-identical open issue already exists."""

    def __init__(self, existing_issue_id: str, distance_meters: Optional[float] = None):
        self.existing_issue_id = existing_issue_id
        self.distance_meters = distance_meters
        super().__init__(f"Duplicate nearby: existing issue {existing_issue_id}")


class InvalidTransition(LifecycleError):
    """Requested status change is not reachable from the current status."""

    def __init__(self, current_status: str, requested_status: str, allowed: List[str]):
        self.current_status = current_status
        self.requested_status = requested_status
        self.allowed = allowed
        super().__init__(
            f"Invalid status transition: {current_status} → {requested_status}. "
            f"Allowed transitions from {current_status}: {allowed}"
        )


class ClassifierUnavailable(LifecycleError):
    """External image classifier timed out or failed. Always handled locally."""


class RewardAlreadyGranted(LifecycleError):
    """Idempotency guard for (user, issue, reason) reward grants."""

    def __init__(self, user_id: str, reason: str, issue_id: Optional[str] = None):
        self.user_id = user_id
        self.reason = reason
        self.issue_id = issue_id
        super().__init__(f"Reward {reason} already granted to {user_id} for issue {issue_id}")


class StorageConflict(LifecycleError):
    """A concurrent write violated a uniqueness or compare-and-swap guard."""

    def __init__(self, message: str, existing_id: Optional[str] = None):
        self.existing_id = existing_id
        super().__init__(message)


class TransientStorageError(LifecycleError):
    """Storage conflict that persisted after one retry with fresh state."""
