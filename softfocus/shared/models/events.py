"""Cross-context domain events consumed by the notification service.

Each event is an immutable dataclass. The notification service maps every
event type to exactly one notification.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple
import uuid

from .severity import AlertSeverity, TriggerSource

# Emotional or energy level at or below this marks a check-in as critical
CRITICAL_CHECKIN_LEVEL = 3


def _new_event_id() -> str:
    return f"evt_{uuid.uuid4().hex[:12]}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class DomainEvent:
    """Base class carrying the identity and time of every event."""
    event_id: str = field(default_factory=_new_event_id, kw_only=True)
    occurred_at: datetime = field(default_factory=_utcnow, kw_only=True)

    @property
    def event_name(self) -> str:
        return type(self).__name__

    def to_payload(self) -> Dict[str, Any]:
        """Envelope used when an event is logged."""
        data = {}
        for key, value in self.__dict__.items():
            if key in ("event_id", "occurred_at"):
                continue
            if hasattr(value, "value"):
                value = value.value
            elif isinstance(value, tuple):
                value = list(value)
            data[key] = value
        return {
            "event_id": self.event_id,
            "event_type": self.event_name,
            "timestamp": self.occurred_at.isoformat(),
            "data": data,
        }


@dataclass(frozen=True)
class CrisisAlertCreated(DomainEvent):
    alert_id: str
    patient_id: str
    psychologist_id: Optional[str]
    severity: AlertSeverity
    trigger_reason: str
    trigger_source: TriggerSource


@dataclass(frozen=True)
class ContentAssigned(DomainEvent):
    assignment_id: str
    content_id: str
    content_type: str
    patient_id: str
    psychologist_id: str
    content_title: str
    notes: Optional[str] = None


@dataclass(frozen=True)
class AssignmentCompleted(DomainEvent):
    assignment_id: str
    patient_id: str
    psychologist_id: str
    content_title: str
    content_type: str


@dataclass(frozen=True)
class AllAssignmentsCompleted(DomainEvent):
    patient_id: str
    psychologist_id: str
    completed_count: int


@dataclass(frozen=True)
class MessageSent(DomainEvent):
    message_id: str
    relationship_id: str
    sender_id: str
    receiver_id: str
    sender_is_psychologist: bool
    content: str


@dataclass(frozen=True)
class CheckInCompleted(DomainEvent):
    """A patient finished a daily check-in.

    is_critical is derived from the levels when not supplied.
    """
    patient_id: str
    check_in_id: str = ""
    emotional_level: Optional[int] = None
    energy_level: Optional[int] = None
    symptoms: Tuple[str, ...] = ()
    is_critical: Optional[bool] = None

    def __post_init__(self):
        if self.is_critical is None:
            object.__setattr__(
                self,
                "is_critical",
                is_critical_check_in(self.emotional_level, self.energy_level),
            )


def is_critical_check_in(
    emotional_level: Optional[int],
    energy_level: Optional[int],
) -> bool:
    """True when either level is at or below CRITICAL_CHECKIN_LEVEL."""
    levels = [lvl for lvl in (emotional_level, energy_level) if lvl is not None]
    return any(lvl <= CRITICAL_CHECKIN_LEVEL for lvl in levels)
