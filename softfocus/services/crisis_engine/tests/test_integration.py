"""Tests for CrisisIntegrationService - upstream signals never fail their caller."""
import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

from softfocus.shared.events import DomainEventBus
from softfocus.shared.models import (
    AlertSeverity,
    AlertStatus,
    CheckInCompleted,
    TriggerSource,
)
from softfocus.shared.relationships import InMemoryRelationshipDirectory, RelationshipDirectory
from softfocus.services.crisis_engine.alert_store import AlertStore, InMemoryAlertStore
from softfocus.services.crisis_engine.alerts import AlertLifecycle
from softfocus.services.crisis_engine.detector import (
    CrisisPatternDetector,
    EmotionObservation,
    HistoryProvider,
)
from softfocus.services.crisis_engine.integration import CrisisIntegrationService
from softfocus.shared.utils import pii

NOW = datetime(2026, 10, 19, 20, 0, tzinfo=timezone.utc)


def observation(emotion, confidence, days_ago):
    return EmotionObservation(
        user_id="patient_1",
        emotion=emotion,
        confidence=confidence,
        observed_at=NOW - timedelta(days=days_ago),
    )


@pytest.fixture
def store():
    return InMemoryAlertStore()


@pytest.fixture
def bus():
    return DomainEventBus()


@pytest.fixture
def relationships():
    return InMemoryRelationshipDirectory({"patient_1": "psych_1"})


@pytest.fixture
def service(store, bus, relationships):
    clock = lambda: NOW  # noqa: E731
    return CrisisIntegrationService(
        detector=CrisisPatternDetector(clock=clock),
        lifecycle=AlertLifecycle(store, bus, clock=clock),
        relationships=relationships,
        event_bus=bus,
    )


class TestChatMessages:
    """Tests for evaluate_chat_message."""

    @pytest.mark.asyncio
    async def test_crisis_message_creates_critical_alert(self, service, store):
        alert = await service.evaluate_chat_message("patient_1", "quiero morir ahora")

        assert alert.severity == AlertSeverity.CRITICAL
        assert alert.trigger_source == TriggerSource.CHAT
        assert alert.psychologist_id == "psych_1"
        assert alert.trigger_reason == "Critical keyword detected: 'quiero morir'"
        assert await store.get(alert.alert_id) is not None

    @pytest.mark.asyncio
    async def test_safe_message_creates_nothing(self, service, store):
        assert await service.evaluate_chat_message("patient_1", "hola, ¿cómo estás?") is None
        assert await store.count_pending("psych_1") == 0

    @pytest.mark.asyncio
    async def test_unassigned_patient_still_gets_alert(self, service):
        """An alert without a recipient is still recorded."""
        alert = await service.evaluate_chat_message("patient_9", "mejor muerto")

        assert alert is not None
        assert alert.psychologist_id is None

    @pytest.mark.asyncio
    async def test_store_failure_is_swallowed(self, bus, relationships):
        store = AsyncMock(spec=AlertStore)
        store.create.side_effect = ConnectionError("db down")
        service = CrisisIntegrationService(
            detector=CrisisPatternDetector(),
            lifecycle=AlertLifecycle(store, bus),
            relationships=relationships,
        )

        assert await service.evaluate_chat_message("patient_1", "suicidio") is None

    @pytest.mark.asyncio
    async def test_directory_failure_is_swallowed(self, store, bus):
        directory = AsyncMock(spec=RelationshipDirectory)
        directory.get_psychologist_for.side_effect = TimeoutError("therapy service")
        service = CrisisIntegrationService(
            detector=CrisisPatternDetector(),
            lifecycle=AlertLifecycle(store, bus),
            relationships=directory,
        )

        alert = await service.evaluate_chat_message("patient_1", "suicidio")

        assert alert.psychologist_id is None

    @pytest.mark.asyncio
    async def test_missing_log_salt_is_swallowed(self, monkeypatch, bus):
        """Without a salt the alert cannot be logged safely; the caller still gets None."""
        monkeypatch.setattr(pii, "_LOG_SALT", None)
        store = AsyncMock(spec=AlertStore)
        directory = AsyncMock(spec=RelationshipDirectory)
        directory.get_psychologist_for.side_effect = TimeoutError("therapy service")
        service = CrisisIntegrationService(
            detector=CrisisPatternDetector(),
            lifecycle=AlertLifecycle(store, bus),
            relationships=directory,
        )

        assert await service.evaluate_chat_message("patient_1", "suicidio") is None
        assert await service.create_alert_from_external("patient_1", "high", "r") is None
        store.create.assert_not_awaited()



class TestEmotionObservations:
    """Tests for evaluate_emotion_observation."""

    @pytest.mark.asyncio
    async def test_history_run_creates_alert_with_context(self, store, bus, relationships):
        provider = AsyncMock(spec=HistoryProvider)
        provider.get_observations.return_value = [
            observation("sadness", 0.9, days) for days in (4, 3, 2, 1)
        ]
        service = CrisisIntegrationService(
            detector=CrisisPatternDetector(clock=lambda: NOW),
            lifecycle=AlertLifecycle(store, bus, clock=lambda: NOW),
            relationships=relationships,
            history_provider=provider,
        )
        new = observation("fear", 0.97, 0)

        alert = await service.evaluate_emotion_observation("patient_1", new)

        assert alert.severity == AlertSeverity.HIGH
        assert alert.trigger_source == TriggerSource.FACIAL_PATTERN
        assert alert.emotional_context.emotion == "fear"
        assert alert.emotional_context.detected_at == new.observed_at

    @pytest.mark.asyncio
    async def test_without_history_provider_single_observation_is_not_enough(self, service):
        assert await service.evaluate_emotion_observation(
            "patient_1", observation("sadness", 0.99, 0)
        ) is None


class TestCheckIns:
    """Tests for evaluate_check_in."""

    @pytest.mark.asyncio
    async def test_critical_check_in_publishes_and_alerts(self, service, bus):
        published = []

        async def capture(event):
            published.append(event)

        bus.subscribe(CheckInCompleted, capture)

        alert = await service.evaluate_check_in(
            "patient_1", "chk_1", emotional_level=2, energy_level=6, symptoms=["insomnia"]
        )

        assert len(published) == 1
        assert published[0].is_critical is True
        assert published[0].symptoms == ("insomnia",)
        assert alert.severity == AlertSeverity.MODERATE
        assert alert.trigger_source == TriggerSource.CHECKIN_PATTERN
        assert alert.status == AlertStatus.PENDING

    @pytest.mark.asyncio
    async def test_normal_check_in_publishes_only(self, service, bus, store):
        handler = AsyncMock()
        bus.subscribe(CheckInCompleted, handler)

        alert = await service.evaluate_check_in("patient_1", "chk_2", 7, 8)

        assert alert is None
        handler.assert_awaited_once()
        assert await store.count_pending("psych_1") == 0


class TestExternalAlerts:
    """Tests for create_alert_from_external."""

    @pytest.mark.asyncio
    async def test_severity_string_is_coerced(self, service):
        alert = await service.create_alert_from_external(
            "patient_1", "HIGH", "Flagged by session review", TriggerSource.CHECKIN_PATTERN
        )

        assert alert.severity == AlertSeverity.HIGH
        assert alert.trigger_source == TriggerSource.CHECKIN_PATTERN

    @pytest.mark.asyncio
    async def test_unknown_severity_defaults_to_moderate(self, service):
        alert = await service.create_alert_from_external("patient_1", "urgent!!", "reason")

        assert alert.severity == AlertSeverity.MODERATE

    @pytest.mark.asyncio
    async def test_blank_reason_returns_none(self, service):
        assert await service.create_alert_from_external("patient_1", "high", " ") is None
