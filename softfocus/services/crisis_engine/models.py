"""Crisis alert aggregate and its state machine.

    PENDING --> REVIEWED --> RESOLVED | DISMISSED
       |                        ^
       +------------------------+

RESOLVED and DISMISSED are terminal: nothing leaves them, and severity is
frozen once an alert reaches either one.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, Optional
import uuid

from softfocus.shared.errors import AlertTransitionError, AlertValidationError
from softfocus.shared.models import AlertSeverity, AlertStatus, TriggerSource

ALLOWED_TRANSITIONS: Dict[AlertStatus, FrozenSet[AlertStatus]] = {
    AlertStatus.PENDING: frozenset({
        AlertStatus.REVIEWED,
        AlertStatus.RESOLVED,
        AlertStatus.DISMISSED,
    }),
    AlertStatus.REVIEWED: frozenset({
        AlertStatus.RESOLVED,
        AlertStatus.DISMISSED,
    }),
    AlertStatus.RESOLVED: frozenset(),
    AlertStatus.DISMISSED: frozenset(),
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _format_time(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass(frozen=True)
class EmotionalContext:
    """Last emotion seen before the alert, when one is known."""
    emotion: str
    detected_at: Optional[datetime] = None
    source: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "emotion": self.emotion,
            "detected_at": _format_time(self.detected_at),
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EmotionalContext":
        return cls(
            emotion=data["emotion"],
            detected_at=_parse_time(data.get("detected_at")),
            source=data.get("source"),
        )


@dataclass(frozen=True)
class Location:
    """Where the patient was when the signal fired.

    Either coordinate may be missing when the client only reported one.

    Raises:
        AlertValidationError: If a coordinate is out of range
    """
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    def __post_init__(self):
        if self.latitude is not None and not -90 <= self.latitude <= 90:
            raise AlertValidationError("latitude must be between -90 and 90")
        if self.longitude is not None and not -180 <= self.longitude <= 180:
            raise AlertValidationError("longitude must be between -180 and 180")

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def display(self) -> str:
        if not self.has_coordinates:
            return "No location available"
        return f"{self.latitude:.6f}, {self.longitude:.6f}"

    def to_dict(self) -> Dict[str, Any]:
        return {"latitude": self.latitude, "longitude": self.longitude}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Location":
        return cls(latitude=data.get("latitude"), longitude=data.get("longitude"))


@dataclass
class CrisisAlert:
    """Mutable crisis alert record.

    Status and severity change only through transition_to() and
    change_severity(), which enforce ALLOWED_TRANSITIONS.
    """
    patient_id: str
    psychologist_id: Optional[str]
    severity: AlertSeverity
    trigger_source: TriggerSource
    trigger_reason: str
    status: AlertStatus = AlertStatus.PENDING
    alert_id: str = field(default_factory=lambda: f"alert_{uuid.uuid4().hex[:12]}")
    detected_at: datetime = field(default_factory=_utcnow)
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)
    emotional_context: Optional[EmotionalContext] = None
    location: Optional[Location] = None
    psychologist_notes: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    version: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def is_pending(self) -> bool:
        return self.status == AlertStatus.PENDING

    @property
    def is_critical(self) -> bool:
        return self.severity == AlertSeverity.CRITICAL

    @property
    def requires_immediate_attention(self) -> bool:
        return self.is_critical and self.is_pending

    def can_transition_to(self, new_status: AlertStatus) -> bool:
        return new_status in ALLOWED_TRANSITIONS[self.status]

    def transition_to(
        self,
        new_status: AlertStatus,
        at: datetime,
        notes: Optional[str] = None,
    ) -> None:
        """Move to a new status.

        Raises:
            AlertTransitionError: If new_status is not reachable
        """
        if not self.can_transition_to(new_status):
            raise AlertTransitionError(self.alert_id, self.status.value, new_status.value)

        self.status = new_status
        if new_status == AlertStatus.REVIEWED:
            self.reviewed_at = at
        elif new_status == AlertStatus.RESOLVED:
            self.resolved_at = at
        if notes:
            self.add_notes(notes, at)
        self.updated_at = at

    def change_severity(self, new_severity: AlertSeverity, at: datetime) -> None:
        """Escalate or de-escalate a non-terminal alert.

        Raises:
            AlertTransitionError: If the alert is resolved or dismissed
        """
        if self.is_terminal:
            raise AlertTransitionError(
                self.alert_id,
                f"{self.status.value}/{self.severity.value}",
                new_severity.value,
            )
        self.severity = new_severity
        self.updated_at = at

    def add_notes(self, notes: str, at: datetime) -> None:
        if self.psychologist_notes:
            self.psychologist_notes = f"{self.psychologist_notes}\n---\n{notes}"
        else:
            self.psychologist_notes = notes
        self.updated_at = at

    def to_document(self) -> Dict[str, Any]:
        return {
            "alert_id": self.alert_id,
            "patient_id": self.patient_id,
            "psychologist_id": self.psychologist_id,
            "severity": self.severity.value,
            "status": self.status.value,
            "trigger_source": self.trigger_source.value,
            "trigger_reason": self.trigger_reason,
            "detected_at": _format_time(self.detected_at),
            "created_at": _format_time(self.created_at),
            "updated_at": _format_time(self.updated_at),
            "emotional_context": (
                self.emotional_context.to_dict() if self.emotional_context else None
            ),
            "location": self.location.to_dict() if self.location else None,
            "psychologist_notes": self.psychologist_notes,
            "reviewed_at": _format_time(self.reviewed_at),
            "resolved_at": _format_time(self.resolved_at),
        }

    @classmethod
    def from_document(cls, doc: Dict[str, Any], version: int = 0) -> "CrisisAlert":
        context = doc.get("emotional_context")
        location = doc.get("location")
        return cls(
            alert_id=doc["alert_id"],
            patient_id=doc["patient_id"],
            psychologist_id=doc.get("psychologist_id"),
            severity=AlertSeverity(doc["severity"]),
            status=AlertStatus(doc["status"]),
            trigger_source=TriggerSource(doc["trigger_source"]),
            trigger_reason=doc["trigger_reason"],
            detected_at=_parse_time(doc["detected_at"]),
            created_at=_parse_time(doc["created_at"]),
            updated_at=_parse_time(doc["updated_at"]),
            emotional_context=EmotionalContext.from_dict(context) if context else None,
            location=Location.from_dict(location) if location else None,
            psychologist_notes=doc.get("psychologist_notes"),
            reviewed_at=_parse_time(doc.get("reviewed_at")),
            resolved_at=_parse_time(doc.get("resolved_at")),
            version=version,
        )
