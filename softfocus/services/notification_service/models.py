"""Notification and notification preference aggregates."""
from dataclasses import dataclass, field
from datetime import datetime, time, timezone
from typing import Any, Dict, List, Optional, Set
import uuid

from softfocus.shared.models import (
    DeliveryMethod,
    DeliveryStatus,
    NotificationPriority,
    NotificationType,
)

WEEKDAYS = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _format_time(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass(frozen=True)
class QuietHourRange:
    """Local-time window [start, end) during which delivery is deferred.

    A window whose start is after its end wraps midnight, e.g. 22:00-07:00.
    """
    start: time
    end: time

    @property
    def wraps_midnight(self) -> bool:
        return self.start > self.end

    def contains(self, local_time: time) -> bool:
        if self.wraps_midnight:
            return local_time >= self.start or local_time < self.end
        return self.start <= local_time < self.end

    def to_dict(self) -> Dict[str, str]:
        return {
            "start_time": self.start.strftime("%H:%M"),
            "end_time": self.end.strftime("%H:%M"),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, str]) -> "QuietHourRange":
        return cls(
            start=time.fromisoformat(data["start_time"]),
            end=time.fromisoformat(data["end_time"]),
        )


@dataclass
class ScheduleSettings:
    """Per-preference delivery schedule in the user's time zone.

    An empty active_days set means every day is active.
    """
    quiet_hours: List[QuietHourRange] = field(default_factory=list)
    active_days: Set[str] = field(default_factory=set)
    timezone: str = "UTC"

    def __post_init__(self):
        self.active_days = {day.strip().lower() for day in self.active_days}
        unknown = self.active_days - set(WEEKDAYS)
        if unknown:
            raise ValueError(f"Unknown weekday names: {sorted(unknown)}")

    def is_active_day(self, weekday: int) -> bool:
        """Check a datetime.weekday() value (Monday is 0)."""
        return not self.active_days or WEEKDAYS[weekday] in self.active_days

    def to_dict(self) -> Dict[str, Any]:
        return {
            "quiet_hours": [window.to_dict() for window in self.quiet_hours],
            "active_days": sorted(self.active_days, key=WEEKDAYS.index),
            "timezone": self.timezone,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScheduleSettings":
        return cls(
            quiet_hours=[QuietHourRange.from_dict(w) for w in data.get("quiet_hours", [])],
            active_days=set(data.get("active_days", [])),
            timezone=data.get("timezone") or "UTC",
        )


@dataclass
class Notification:
    """A notification owned by one recipient.

    Created PENDING by the dispatcher. The mark_as_* methods are used by
    the delivery worker, which lives outside this package.
    """
    user_id: str
    notification_type: NotificationType
    title: str
    content: str
    priority: NotificationPriority
    delivery_method: DeliveryMethod
    status: DeliveryStatus = DeliveryStatus.PENDING
    scheduled_at: Optional[datetime] = None
    notification_id: str = field(default_factory=lambda: f"ntf_{uuid.uuid4().hex[:12]}")
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)
    read_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    retry_count: int = 0
    last_error: Optional[str] = None
    version: int = 0

    def __post_init__(self):
        if not self.user_id:
            raise ValueError("user_id is required")
        # Never scheduled before it exists
        if self.scheduled_at is None or self.scheduled_at < self.created_at:
            self.scheduled_at = self.created_at

    @property
    def is_read(self) -> bool:
        return self.read_at is not None

    def is_due(self, at: datetime) -> bool:
        return self.status == DeliveryStatus.PENDING and self.scheduled_at <= at

    def mark_as_sent(self, at: Optional[datetime] = None) -> None:
        at = at or _utcnow()
        self.status = DeliveryStatus.SENT
        self.sent_at = at
        self.updated_at = at

    def mark_as_delivered(self, at: Optional[datetime] = None) -> None:
        at = at or _utcnow()
        self.status = DeliveryStatus.DELIVERED
        self.delivered_at = at
        self.updated_at = at

    def mark_as_failed(self, error: str, at: Optional[datetime] = None) -> None:
        self.status = DeliveryStatus.FAILED
        self.last_error = error
        self.retry_count += 1
        self.updated_at = at or _utcnow()

    def mark_as_read(self, at: Optional[datetime] = None) -> None:
        """Stamp read_at. Delivery status is left as is."""
        at = at or _utcnow()
        if self.read_at is None:
            self.read_at = at
        self.updated_at = at

    def should_retry(self, max_retries: int = 3) -> bool:
        return self.status == DeliveryStatus.FAILED and self.retry_count < max_retries

    def to_document(self) -> Dict[str, Any]:
        return {
            "notification_id": self.notification_id,
            "user_id": self.user_id,
            "type": self.notification_type.value,
            "title": self.title,
            "content": self.content,
            "priority": self.priority.value,
            "delivery_method": self.delivery_method.value,
            "status": self.status.value,
            "scheduled_at": _format_time(self.scheduled_at),
            "metadata": dict(self.metadata),
            "created_at": _format_time(self.created_at),
            "updated_at": _format_time(self.updated_at),
            "read_at": _format_time(self.read_at),
            "sent_at": _format_time(self.sent_at),
            "delivered_at": _format_time(self.delivered_at),
            "retry_count": self.retry_count,
            "last_error": self.last_error,
        }

    @classmethod
    def from_document(cls, doc: Dict[str, Any], version: int = 0) -> "Notification":
        return cls(
            notification_id=doc["notification_id"],
            user_id=doc["user_id"],
            notification_type=NotificationType(doc["type"]),
            title=doc["title"],
            content=doc["content"],
            priority=NotificationPriority(doc["priority"]),
            delivery_method=DeliveryMethod(doc["delivery_method"]),
            status=DeliveryStatus(doc["status"]),
            scheduled_at=_parse_time(doc.get("scheduled_at")),
            metadata=dict(doc.get("metadata") or {}),
            created_at=_parse_time(doc["created_at"]),
            updated_at=_parse_time(doc["updated_at"]),
            read_at=_parse_time(doc.get("read_at")),
            sent_at=_parse_time(doc.get("sent_at")),
            delivered_at=_parse_time(doc.get("delivered_at")),
            retry_count=doc.get("retry_count", 0),
            last_error=doc.get("last_error"),
            version=version,
        )


@dataclass
class NotificationPreference:
    """A user's settings for one notification type.

    At most one per (user_id, notification_type). A missing preference
    means enabled, scheduler-chosen method, no schedule.
    """
    user_id: str
    notification_type: NotificationType
    is_enabled: bool = True
    delivery_method: Optional[DeliveryMethod] = None
    schedule: Optional[ScheduleSettings] = None
    disabled_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)
    version: int = 0

    @property
    def key(self) -> str:
        return f"{self.user_id}:{self.notification_type.value}"

    def enable(self, at: datetime) -> None:
        self.is_enabled = True
        self.disabled_at = None
        self.updated_at = at

    def disable(self, at: datetime) -> None:
        if self.is_enabled or self.disabled_at is None:
            self.disabled_at = at
        self.is_enabled = False
        self.updated_at = at

    def to_document(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "notification_type": self.notification_type.value,
            "is_enabled": self.is_enabled,
            "delivery_method": self.delivery_method.value if self.delivery_method else None,
            "schedule": self.schedule.to_dict() if self.schedule else None,
            "disabled_at": _format_time(self.disabled_at),
            "created_at": _format_time(self.created_at),
            "updated_at": _format_time(self.updated_at),
        }

    @classmethod
    def from_document(cls, doc: Dict[str, Any], version: int = 0) -> "NotificationPreference":
        method = doc.get("delivery_method")
        schedule = doc.get("schedule")
        return cls(
            user_id=doc["user_id"],
            notification_type=NotificationType(doc["notification_type"]),
            is_enabled=doc.get("is_enabled", True),
            delivery_method=DeliveryMethod(method) if method else None,
            schedule=ScheduleSettings.from_dict(schedule) if schedule else None,
            disabled_at=_parse_time(doc.get("disabled_at")),
            created_at=_parse_time(doc["created_at"]),
            updated_at=_parse_time(doc["updated_at"]),
            version=version,
        )
