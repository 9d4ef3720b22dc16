"""Severity, priority and delivery enums shared by the crisis pipeline.

Alert severity is owned by the crisis engine; notification priority, delivery
method and delivery status are owned by the notification service. The tables
at the bottom of this module are the only place the two vocabularies meet.
"""
import logging
from datetime import timedelta
from enum import Enum
from typing import Dict, Optional

logger = logging.getLogger(__name__)


class AlertSeverity(Enum):
    """Severity of a crisis alert, lowest to highest."""
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    CRITICAL = "critical"


class AlertStatus(Enum):
    """Lifecycle states of a crisis alert.

    PENDING is the only initial state. RESOLVED and DISMISSED are terminal.
    """
    PENDING = "pending"
    REVIEWED = "reviewed"
    RESOLVED = "resolved"
    DISMISSED = "dismissed"

    @property
    def is_terminal(self) -> bool:
        return self in (AlertStatus.RESOLVED, AlertStatus.DISMISSED)


class TriggerSource(Enum):
    """Upstream context that produced the crisis signal."""
    CHAT = "chat"
    FACIAL_PATTERN = "facial_pattern"
    CHECKIN_PATTERN = "checkin_pattern"


class NotificationPriority(Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    CRITICAL = "critical"


class DeliveryMethod(Enum):
    PUSH = "push"
    EMAIL = "email"
    IN_APP = "in_app"
    SMS = "sms"


class DeliveryStatus(Enum):
    """Delivery state of a notification.

    Notifications are created PENDING; every other state is written by the
    delivery worker that lives outside this package.
    """
    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    FAILED = "failed"
    CANCELLED = "cancelled"


class NotificationType(Enum):
    """Notification types, one preference row per (user, type)."""
    CRISIS_ALERT = "crisis-alert"
    MESSAGE_RECEIVED = "message-received"
    CHECKIN_REMINDER = "checkin-reminder"
    CRITICAL_CHECKIN = "critical-checkin"
    ASSIGNMENT_DUE = "assignment-due"
    ASSIGNMENT_RECEIVED = "assignment-received"
    ASSIGNMENT_COMPLETED = "assignment-completed"
    ALL_ASSIGNMENTS_COMPLETED = "all-assignments-completed"
    THERAPY_REMINDER = "therapy-reminder"
    EMOTIONAL_INSIGHT = "emotional-insight"
    REMINDER = "reminder"


# Alert severity -> notification priority
SEVERITY_TO_PRIORITY: Dict[AlertSeverity, NotificationPriority] = {
    AlertSeverity.LOW: NotificationPriority.LOW,
    AlertSeverity.MODERATE: NotificationPriority.NORMAL,
    AlertSeverity.HIGH: NotificationPriority.HIGH,
    AlertSeverity.CRITICAL: NotificationPriority.CRITICAL,
}

# Delivery intent per priority. Recorded as notification metadata only;
# nothing in this package enforces it.
MAX_DELIVERY_TARGET: Dict[NotificationPriority, timedelta] = {
    NotificationPriority.LOW: timedelta(hours=24),
    NotificationPriority.NORMAL: timedelta(hours=4),
    NotificationPriority.HIGH: timedelta(hours=1),
    NotificationPriority.CRITICAL: timedelta(minutes=5),
}

DEFAULT_SEVERITY = AlertSeverity.MODERATE
DEFAULT_PRIORITY = NotificationPriority.NORMAL


def priority_for_severity(severity: AlertSeverity) -> NotificationPriority:
    return SEVERITY_TO_PRIORITY[severity]


def max_delivery_target(priority: NotificationPriority) -> timedelta:
    return MAX_DELIVERY_TARGET[priority]


def _normalize(value) -> str:
    return str(value).strip().lower().replace("-", "_").replace(" ", "_")


def coerce_severity(value) -> AlertSeverity:
    """Coerce an externally supplied severity into an AlertSeverity.

    Matching is case-insensitive on either the enum name or its value.
    Unknown or empty input falls back to DEFAULT_SEVERITY and is logged
    as SEVERITY_COERCION_DEFAULTED so callers sending bad values show up
    in the logs.

    Args:
        value: AlertSeverity, string, or None

    Returns:
        Matching AlertSeverity, or MODERATE when nothing matches
    """
    if isinstance(value, AlertSeverity):
        return value

    if value is not None:
        normalized = _normalize(value)
        for severity in AlertSeverity:
            if normalized in (severity.value, severity.name.lower()):
                return severity

    logger.warning(
        "SEVERITY_COERCION_DEFAULTED",
        extra={
            "raw_value": None if value is None else str(value)[:50],
            "default": DEFAULT_SEVERITY.value,
        }
    )
    return DEFAULT_SEVERITY


def coerce_priority(value) -> NotificationPriority:
    """Case-insensitive priority coercion; unknown values become NORMAL."""
    if isinstance(value, NotificationPriority):
        return value

    if value is not None:
        normalized = _normalize(value)
        for priority in NotificationPriority:
            if normalized in (priority.value, priority.name.lower()):
                return priority

    logger.warning(
        "PRIORITY_COERCION_DEFAULTED",
        extra={
            "raw_value": None if value is None else str(value)[:50],
            "default": DEFAULT_PRIORITY.value,
        }
    )
    return DEFAULT_PRIORITY


def coerce_delivery_method(value) -> Optional[DeliveryMethod]:
    """Case-insensitive delivery method coercion.

    Returns None for empty or unknown input so the scheduler chooses.
    "InApp" and "in-app" both map to IN_APP.
    """
    if value is None or isinstance(value, DeliveryMethod):
        return value

    normalized = _normalize(value)
    if normalized == "inapp":
        normalized = "in_app"
    for method in DeliveryMethod:
        if normalized == method.value:
            return method
    return None
