"""Tests for the shared severity/priority vocabulary and domain events."""
import logging
from datetime import timedelta

import pytest

from softfocus.shared.models import (
    AlertSeverity,
    AlertStatus,
    CheckInCompleted,
    CrisisAlertCreated,
    DeliveryMethod,
    MAX_DELIVERY_TARGET,
    NotificationPriority,
    NotificationType,
    SEVERITY_TO_PRIORITY,
    TriggerSource,
    coerce_delivery_method,
    coerce_priority,
    coerce_severity,
    is_critical_check_in,
    max_delivery_target,
    priority_for_severity,
)


class TestSeverityTables:
    """Tests for the severity -> priority -> delivery target tables."""

    def test_every_severity_has_a_priority(self):
        """Mapping should be total over AlertSeverity."""
        assert set(SEVERITY_TO_PRIORITY) == set(AlertSeverity)

    def test_severity_to_priority_mapping(self):
        assert priority_for_severity(AlertSeverity.LOW) == NotificationPriority.LOW
        assert priority_for_severity(AlertSeverity.MODERATE) == NotificationPriority.NORMAL
        assert priority_for_severity(AlertSeverity.HIGH) == NotificationPriority.HIGH
        assert priority_for_severity(AlertSeverity.CRITICAL) == NotificationPriority.CRITICAL

    def test_delivery_targets(self):
        """Higher priority should have a tighter delivery target."""
        assert set(MAX_DELIVERY_TARGET) == set(NotificationPriority)
        assert max_delivery_target(NotificationPriority.LOW) == timedelta(hours=24)
        assert max_delivery_target(NotificationPriority.NORMAL) == timedelta(hours=4)
        assert max_delivery_target(NotificationPriority.HIGH) == timedelta(hours=1)
        assert max_delivery_target(NotificationPriority.CRITICAL) == timedelta(minutes=5)

    def test_terminal_statuses(self):
        assert AlertStatus.RESOLVED.is_terminal
        assert AlertStatus.DISMISSED.is_terminal
        assert not AlertStatus.PENDING.is_terminal
        assert not AlertStatus.REVIEWED.is_terminal

    def test_notification_type_wire_values(self):
        assert NotificationType("crisis-alert") == NotificationType.CRISIS_ALERT
        assert NotificationType("critical-checkin") == NotificationType.CRITICAL_CHECKIN
        assert NotificationType.ALL_ASSIGNMENTS_COMPLETED.value == "all-assignments-completed"


class TestCoercion:
    """Tests for coercion of external string values."""

    @pytest.mark.parametrize("value,expected", [
        ("critical", AlertSeverity.CRITICAL),
        ("HIGH", AlertSeverity.HIGH),
        ("  Low ", AlertSeverity.LOW),
        (AlertSeverity.MODERATE, AlertSeverity.MODERATE),
    ])
    def test_known_severities(self, value, expected):
        assert coerce_severity(value) == expected

    @pytest.mark.parametrize("value", ["catastrophic", "", None])
    def test_unknown_severity_defaults_to_moderate(self, value, caplog):
        """Unknown severity should default to MODERATE and say so in the log."""
        with caplog.at_level(logging.WARNING):
            assert coerce_severity(value) == AlertSeverity.MODERATE

        assert "SEVERITY_COERCION_DEFAULTED" in caplog.text

    def test_unknown_priority_defaults_to_normal(self):
        assert coerce_priority("urgent") == NotificationPriority.NORMAL
        assert coerce_priority("critical") == NotificationPriority.CRITICAL

    def test_delivery_method_coercion(self):
        """Unknown methods return None so the scheduler decides."""
        assert coerce_delivery_method("push") == DeliveryMethod.PUSH
        assert coerce_delivery_method("inapp") == DeliveryMethod.IN_APP
        assert coerce_delivery_method("carrier-pigeon") is None
        assert coerce_delivery_method(None) is None


class TestDomainEvents:
    """Tests for the domain event dataclasses."""

    def test_events_get_identity_and_time(self):
        event = CrisisAlertCreated(
            alert_id="alert_1",
            patient_id="patient_1",
            psychologist_id="psych_1",
            severity=AlertSeverity.HIGH,
            trigger_reason="reason",
            trigger_source=TriggerSource.CHAT,
        )

        assert event.event_id.startswith("evt_")
        assert event.occurred_at.tzinfo is not None
        assert event.event_name == "CrisisAlertCreated"

    def test_event_payload(self):
        event = CrisisAlertCreated(
            alert_id="alert_1",
            patient_id="patient_1",
            psychologist_id="psych_1",
            severity=AlertSeverity.HIGH,
            trigger_reason="reason",
            trigger_source=TriggerSource.FACIAL_PATTERN,
        )

        payload = event.to_payload()

        assert payload["event_type"] == "CrisisAlertCreated"
        assert payload["data"]["severity"] == "high"
        assert payload["data"]["trigger_source"] == "facial_pattern"
        assert "event_id" not in payload["data"]

    def test_event_is_immutable(self):
        event = CheckInCompleted(patient_id="patient_1", emotional_level=8, energy_level=7)

        with pytest.raises(Exception):  # FrozenInstanceError
            event.is_critical = True

    @pytest.mark.parametrize("emotional,energy,expected", [
        (3, 8, True),
        (8, 2, True),
        (4, 4, False),
        (None, None, False),
        (None, 1, True),
    ])
    def test_check_in_criticality(self, emotional, energy, expected):
        """A level at or below 3 marks the check-in critical."""
        assert is_critical_check_in(emotional, energy) is expected
        event = CheckInCompleted(
            patient_id="patient_1",
            emotional_level=emotional,
            energy_level=energy,
        )
        assert event.is_critical is expected

    def test_explicit_criticality_wins(self):
        event = CheckInCompleted(patient_id="patient_1", emotional_level=9, is_critical=True)
        assert event.is_critical is True
