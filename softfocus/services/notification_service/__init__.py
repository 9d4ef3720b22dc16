"""Notification Service - Turns domain events into scheduled notifications.

Responsibilities:
- Map each cross-context domain event to one notification
- Honour per-user, per-type preferences (opt-out, method, quiet hours)
- Persist PENDING notifications for the delivery worker
"""
from .config import NotificationConfig
from .models import (
    Notification,
    NotificationPreference,
    QuietHourRange,
    ScheduleSettings,
)
from .stores import (
    NotificationStore,
    PreferenceStore,
    InMemoryNotificationStore,
    InMemoryPreferenceStore,
    PostgresNotificationStore,
    PostgresPreferenceStore,
)
from .scheduler import DeliveryScheduler, DEFAULT_METHODS, default_method_for
from .dispatcher import NotificationDispatcher
from .event_handlers import (
    AllAssignmentsCompletedHandler,
    AssignmentCompletedHandler,
    CheckInCompletedHandler,
    ContentAssignedHandler,
    CrisisAlertCreatedHandler,
    EventRouter,
    MessageSentHandler,
    NotificationEventHandler,
)
from .history import NotificationHistoryService, PreferenceService

__all__ = [
    "NotificationConfig",
    "Notification",
    "NotificationPreference",
    "QuietHourRange",
    "ScheduleSettings",
    "NotificationStore",
    "PreferenceStore",
    "InMemoryNotificationStore",
    "InMemoryPreferenceStore",
    "PostgresNotificationStore",
    "PostgresPreferenceStore",
    "DeliveryScheduler",
    "DEFAULT_METHODS",
    "default_method_for",
    "NotificationDispatcher",
    "AllAssignmentsCompletedHandler",
    "AssignmentCompletedHandler",
    "CheckInCompletedHandler",
    "ContentAssignedHandler",
    "CrisisAlertCreatedHandler",
    "EventRouter",
    "MessageSentHandler",
    "NotificationEventHandler",
    "NotificationHistoryService",
    "PreferenceService",
]
