"""End-to-end tests: signal in, alert and notification out."""
import pytest
from datetime import datetime, time, timedelta, timezone
from unittest.mock import MagicMock, patch

from softfocus.pipeline import build_in_memory_pipeline, build_postgres_pipeline
from softfocus.shared.models import (
    AlertSeverity,
    AlertStatus,
    DeliveryStatus,
    NotificationPriority,
    NotificationType,
)
from softfocus.shared.relationships import InMemoryRelationshipDirectory
from softfocus.services.crisis_engine import EmotionObservation, PostgresAlertStore
from softfocus.services.notification_service import (
    PostgresNotificationStore,
    QuietHourRange,
    ScheduleSettings,
)

NOW = datetime(2026, 10, 19, 23, 0, tzinfo=timezone.utc)


@pytest.fixture
def pipeline():
    return build_in_memory_pipeline(
        InMemoryRelationshipDirectory({"patient_1": "psych_1"}),
        clock=lambda: NOW,
    )


class TestCrisisToNotification:
    """Tests for the detection -> alert -> notification path."""

    @pytest.mark.asyncio
    async def test_crisis_message_notifies_psychologist(self, pipeline):
        alert = await pipeline.integration.evaluate_chat_message(
            "patient_1", "quiero morir ahora"
        )

        assert alert.severity == AlertSeverity.CRITICAL
        assert alert.trigger_reason == "Critical keyword detected: 'quiero morir'"

        notifications = await pipeline.history.list_for_user("psych_1")
        assert len(notifications) == 1
        notification = notifications[0]
        assert notification.notification_type == NotificationType.CRISIS_ALERT
        assert notification.priority == NotificationPriority.CRITICAL
        assert notification.status == DeliveryStatus.PENDING
        assert notification.metadata["alert_id"] == alert.alert_id
        assert notification.content == (
            "Critical alert: Critical keyword detected: 'quiero morir'"
        )

    @pytest.mark.asyncio
    async def test_crisis_notification_is_not_held_by_quiet_hours(self, pipeline):
        await pipeline.preferences.update_preference(
            "psych_1",
            NotificationType.CRISIS_ALERT,
            is_enabled=True,
            schedule=ScheduleSettings(quiet_hours=[QuietHourRange(time(22, 0), time(7, 0))]),
        )

        await pipeline.integration.evaluate_chat_message("patient_1", "voy a terminar con todo")

        due = await pipeline.history.pending_due()
        assert [n.notification_type for n in due] == [NotificationType.CRISIS_ALERT]

    @pytest.mark.asyncio
    async def test_disabled_crisis_notifications_still_record_alert(self, pipeline):
        await pipeline.preferences.update_preference(
            "psych_1", NotificationType.CRISIS_ALERT, is_enabled=False
        )

        alert = await pipeline.integration.evaluate_chat_message("patient_1", "suicidio")

        assert await pipeline.alerts.get_alert(alert.alert_id) is not None
        assert await pipeline.history.count_unread("psych_1") == 0

    @pytest.mark.asyncio
    async def test_facial_pattern_alert(self, pipeline):
        history = [
            EmotionObservation("patient_1", "sadness", 0.9, NOW - timedelta(days=days))
            for days in (5, 4, 3, 2, 1)
        ]
        alert = await pipeline.lifecycle.create(
            "patient_1",
            "psych_1",
            "facial_pattern",
            pipeline.detector.detect_from_observation_window(
                "patient_1",
                EmotionObservation("patient_1", "neutral", 0.5, NOW),
                history,
            ).severity,
            "5 consecutive days of negative emotions with high confidence",
        )

        assert alert.severity == AlertSeverity.HIGH
        pending = await pipeline.alerts.list_for_psychologist("psych_1")
        assert [a.alert_id for a in pending] == [alert.alert_id]
        notification = (await pipeline.history.list_for_user("psych_1"))[0]
        assert notification.content.startswith("High alert:")

    @pytest.mark.asyncio
    async def test_reviewing_alert_clears_attention_list(self, pipeline):
        alert = await pipeline.integration.evaluate_chat_message("patient_1", "suicidio")
        assert len(await pipeline.alerts.list_requiring_attention("psych_1")) == 1

        await pipeline.lifecycle.update_status_by_id(alert.alert_id, AlertStatus.REVIEWED)

        assert await pipeline.alerts.list_requiring_attention("psych_1") == []


class TestCheckInToNotification:
    """Tests for the check-in path."""

    @pytest.mark.asyncio
    async def test_critical_check_in_alerts_and_notifies(self, pipeline):
        alert = await pipeline.integration.evaluate_check_in(
            "patient_1", "chk_1", emotional_level=1, energy_level=2
        )

        types = sorted(
            n.notification_type.value
            for n in await pipeline.history.list_for_user("psych_1")
        )
        assert alert.severity == AlertSeverity.MODERATE
        assert types == ["crisis-alert", "critical-checkin"]

    @pytest.mark.asyncio
    async def test_normal_check_in_is_quiet(self, pipeline):
        assert await pipeline.integration.evaluate_check_in("patient_1", "chk_2", 8, 7) is None
        assert await pipeline.history.count_unread("psych_1") == 0


class TestPipelineBuilders:
    """Tests for pipeline construction."""

    def test_postgres_pipeline_initializes_manager(self):
        manager = MagicMock()
        manager.initialized = False

        pipeline = build_postgres_pipeline(InMemoryRelationshipDirectory(), manager)

        manager.initialize.assert_called_once_with()
        assert isinstance(pipeline.alert_store, PostgresAlertStore)
        assert isinstance(pipeline.notification_store, PostgresNotificationStore)

    def test_postgres_pipeline_defaults_to_global_manager(self):
        manager = MagicMock()
        manager.initialized = True

        with patch("softfocus.pipeline.get_connection_manager", return_value=manager):
            pipeline = build_postgres_pipeline(InMemoryRelationshipDirectory())

        manager.initialize.assert_not_called()
        assert pipeline.alert_store.connection_manager is manager

    def test_short_log_salt_is_rejected(self):
        with pytest.raises(ValueError):
            build_in_memory_pipeline(log_salt="short")
