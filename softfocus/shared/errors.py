"""Exception hierarchy for the crisis pipeline.

Four families, handled differently by callers:
- ValidationError: bad input, raised to the caller immediately
- StateConflictError: a transition the current state does not allow
- PolicyRejectionError: the user explicitly opted out; surfaced, never retried
- RepositoryError: persistence faults, propagated from the stores
"""


class SoftFocusError(Exception):
    """Base exception for the crisis pipeline."""
    pass


class ValidationError(SoftFocusError):
    pass


class StateConflictError(SoftFocusError):
    pass


class PolicyRejectionError(SoftFocusError):
    pass


class RepositoryError(SoftFocusError):
    """Base exception for repository errors."""
    pass


class NotFoundError(RepositoryError):
    """Entity not found in database."""
    pass


class DuplicateError(RepositoryError):
    """Duplicate entity already exists."""
    pass


class StoreUnavailableError(RepositoryError):
    """The backing store could not be reached or failed mid-operation.

    Distinct from "no data": stores return None or an empty list for that.
    """
    pass


class ConcurrentUpdateError(RepositoryError):
    """A conditional update lost against another writer."""
    pass


class AlertValidationError(ValidationError):
    """A crisis alert was created with invalid fields."""
    pass


class AlertTransitionError(StateConflictError):
    """A crisis alert status or severity change its current state forbids."""

    def __init__(self, alert_id: str, current: str, requested: str):
        self.alert_id = alert_id
        self.current = current
        self.requested = requested
        super().__init__(
            f"Alert {alert_id} cannot move from {current} to {requested}"
        )


class AlertNotFoundError(NotFoundError):
    pass


class NotificationsDisabledError(PolicyRejectionError):
    """The user disabled this notification type."""

    def __init__(self, user_id: str, notification_type: str):
        self.user_id = user_id
        self.notification_type = notification_type
        super().__init__(f"User has disabled {notification_type} notifications")
