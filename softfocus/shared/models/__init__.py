"""Shared domain models for the SoftFocus crisis pipeline."""
from .severity import (
    AlertSeverity,
    AlertStatus,
    TriggerSource,
    NotificationPriority,
    DeliveryMethod,
    DeliveryStatus,
    NotificationType,
    SEVERITY_TO_PRIORITY,
    MAX_DELIVERY_TARGET,
    priority_for_severity,
    max_delivery_target,
    coerce_severity,
    coerce_priority,
    coerce_delivery_method,
)
from .events import (
    DomainEvent,
    CrisisAlertCreated,
    ContentAssigned,
    AssignmentCompleted,
    AllAssignmentsCompleted,
    MessageSent,
    CheckInCompleted,
    is_critical_check_in,
)

__all__ = [
    "AlertSeverity",
    "AlertStatus",
    "TriggerSource",
    "NotificationPriority",
    "DeliveryMethod",
    "DeliveryStatus",
    "NotificationType",
    "SEVERITY_TO_PRIORITY",
    "MAX_DELIVERY_TARGET",
    "priority_for_severity",
    "max_delivery_target",
    "coerce_severity",
    "coerce_priority",
    "coerce_delivery_method",
    "DomainEvent",
    "CrisisAlertCreated",
    "ContentAssigned",
    "AssignmentCompleted",
    "AllAssignmentsCompleted",
    "MessageSent",
    "CheckInCompleted",
    "is_critical_check_in",
]
