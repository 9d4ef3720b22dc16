"""Upstream entry points into the crisis engine.

Chat, facial analysis and check-in contexts call these methods after their
own work has succeeded. Every method is advisory: failures are logged and
reported as "no alert", never raised back into the calling context.
"""
import logging
from typing import Iterable, Optional, Union

from softfocus.shared.events import DomainEventBus
from softfocus.shared.models import (
    AlertSeverity,
    CheckInCompleted,
    TriggerSource,
)
from softfocus.shared.relationships import RelationshipDirectory
from softfocus.shared.utils import hash_for_error_log, hash_identifier
from .alerts import AlertLifecycle
from .detector import CrisisPatternDetector, EmotionObservation, HistoryProvider
from .models import CrisisAlert, EmotionalContext

logger = logging.getLogger(__name__)


class CrisisIntegrationService:
    """Turns upstream signals into crisis alerts."""

    def __init__(
        self,
        detector: CrisisPatternDetector,
        lifecycle: AlertLifecycle,
        relationships: RelationshipDirectory,
        history_provider: Optional[HistoryProvider] = None,
        event_bus: Optional[DomainEventBus] = None,
    ):
        """Initialize integration service.

        Args:
            detector: Crisis pattern detector
            lifecycle: Alert creation service
            relationships: Patient -> psychologist lookup
            history_provider: Emotion history source; without one only the
                new observation is evaluated
            event_bus: Bus receiving CheckInCompleted
        """
        self.detector = detector
        self.lifecycle = lifecycle
        self.relationships = relationships
        self.history_provider = history_provider
        self.event_bus = event_bus

    async def _resolve_psychologist(self, patient_id: str) -> Optional[str]:
        try:
            psychologist_id = await self.relationships.get_psychologist_for(patient_id)
        except Exception as e:
            logger.error(
                "PSYCHOLOGIST_LOOKUP_FAILED",
                extra={
                    "patient_id_hash": hash_for_error_log(patient_id),
                    "error": str(e),
                    "error_type": type(e).__name__,
                }
            )
            return None

        if psychologist_id is None:
            logger.warning(
                "PATIENT_HAS_NO_PSYCHOLOGIST",
                extra={"patient_id_hash": hash_identifier(patient_id)}
            )
        return psychologist_id

    async def _create_alert(
        self,
        operation: str,
        patient_id: str,
        source: TriggerSource,
        severity: Union[AlertSeverity, str],
        reason: str,
        emotional_context: Optional[EmotionalContext] = None,
    ) -> Optional[CrisisAlert]:
        try:
            psychologist_id = await self._resolve_psychologist(patient_id)
            return await self.lifecycle.create(
                patient_id=patient_id,
                psychologist_id=psychologist_id,
                source=source,
                severity=severity,
                reason=reason,
                emotional_context=emotional_context,
            )
        except Exception as e:
            logger.error(
                "CRISIS_ALERT_CREATION_FAILED",
                extra={
                    "operation": operation,
                    "patient_id_hash": hash_for_error_log(patient_id),
                    "trigger_source": source.value,
                    "error": str(e),
                    "error_type": type(e).__name__,
                }
            )
            return None

    async def evaluate_chat_message(self, patient_id: str, text: str) -> Optional[CrisisAlert]:
        """Scan a chat message and raise a CRITICAL alert on a keyword hit."""
        pattern = self.detector.detect_from_text(text)
        if pattern is None:
            return None

        return await self._create_alert(
            "evaluate_chat_message",
            patient_id,
            TriggerSource.CHAT,
            pattern.severity,
            pattern.trigger_reason,
        )

    async def evaluate_emotion_observation(
        self,
        patient_id: str,
        observation: EmotionObservation,
    ) -> Optional[CrisisAlert]:
        """Evaluate a new facial-analysis observation against recent history."""
        if self.history_provider is not None:
            pattern = await self.detector.detect_from_history(
                patient_id, observation, self.history_provider
            )
        else:
            pattern = self.detector.detect_from_observation_window(
                patient_id, observation, []
            )
        if pattern is None:
            return None

        context = EmotionalContext(
            emotion=observation.emotion,
            detected_at=observation.observed_at,
            source="facial_analysis",
        )
        return await self._create_alert(
            "evaluate_emotion_observation",
            patient_id,
            TriggerSource.FACIAL_PATTERN,
            pattern.severity,
            pattern.trigger_reason,
            emotional_context=context,
        )

    async def evaluate_check_in(
        self,
        patient_id: str,
        check_in_id: str,
        emotional_level: Optional[int],
        energy_level: Optional[int],
        symptoms: Iterable[str] = (),
    ) -> Optional[CrisisAlert]:
        """Announce a finished check-in; a critical one also raises an alert.

        Returns:
            The MODERATE check-in alert, or None for a non-critical check-in
        """
        try:
            event = CheckInCompleted(
                patient_id=patient_id,
                check_in_id=check_in_id,
                emotional_level=emotional_level,
                energy_level=energy_level,
                symptoms=tuple(symptoms),
            )
        except Exception as e:
            logger.error(
                "CHECKIN_EVENT_BUILD_FAILED",
                extra={"error": str(e), "error_type": type(e).__name__}
            )
            return None

        if self.event_bus is not None:
            try:
                await self.event_bus.publish(event)
            except Exception as e:
                logger.error(
                    "CHECKIN_EVENT_PUBLISH_FAILED",
                    extra={
                        "event_id": event.event_id,
                        "error": str(e),
                        "error_type": type(e).__name__,
                    }
                )

        if not event.is_critical:
            return None

        reason = (
            f"Critical check-in: emotional level {emotional_level}, "
            f"energy level {energy_level}"
        )
        return await self._create_alert(
            "evaluate_check_in",
            patient_id,
            TriggerSource.CHECKIN_PATTERN,
            AlertSeverity.MODERATE,
            reason,
        )

    async def create_alert_from_external(
        self,
        patient_id: str,
        severity: Union[AlertSeverity, str],
        reason: str,
        source: TriggerSource = TriggerSource.CHAT,
    ) -> Optional[CrisisAlert]:
        """Create an alert from another service; unknown severities become MODERATE."""
        return await self._create_alert(
            "create_alert_from_external",
            patient_id,
            source,
            severity,
            reason,
        )
