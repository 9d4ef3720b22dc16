"""Crisis alert lifecycle and read paths.

AlertLifecycle owns creation and every status/severity change. Creation
persists first and publishes CrisisAlertCreated second, so a subscriber
never sees an alert that is not in the store.
"""
import copy
import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional, Union

from softfocus.shared.errors import (
    AlertNotFoundError,
    AlertTransitionError,
    AlertValidationError,
)
from softfocus.shared.events import DomainEventBus
from softfocus.shared.models import (
    AlertSeverity,
    AlertStatus,
    CrisisAlertCreated,
    TriggerSource,
    coerce_severity,
)
from softfocus.shared.utils import hash_identifier
from .alert_store import AlertStore
from .models import CrisisAlert, EmotionalContext, Location

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AlertLifecycle:
    """Creates crisis alerts and applies their state transitions."""

    def __init__(
        self,
        alert_store: AlertStore,
        event_bus: Optional[DomainEventBus] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """Initialize lifecycle service.

        Args:
            alert_store: Persistence for alerts
            event_bus: Bus receiving CrisisAlertCreated; None disables publishing
            clock: Returns the current UTC time
        """
        self.alert_store = alert_store
        self.event_bus = event_bus
        self._clock = clock

        logger.info(
            "ALERT_LIFECYCLE_INITIALIZED",
            extra={"publishing_enabled": event_bus is not None}
        )

    async def create(
        self,
        patient_id: str,
        psychologist_id: Optional[str],
        source: TriggerSource,
        severity: Union[AlertSeverity, str],
        reason: str,
        emotional_context: Optional[EmotionalContext] = None,
        location: Optional[Location] = None,
    ) -> CrisisAlert:
        """Create a PENDING crisis alert and announce it.

        Args:
            patient_id: Patient the alert is about
            psychologist_id: Recipient, None until the patient is routed
            source: Context that produced the signal
            severity: AlertSeverity, or an external string (coerced)
            reason: Human-readable trigger reason, required
            emotional_context: Last known emotion, if any
            location: Where the patient was, if the client reported it

        Returns:
            The persisted CrisisAlert

        Raises:
            AlertValidationError: If patient_id or reason is blank
        """
        if not patient_id or not patient_id.strip():
            raise AlertValidationError("patient_id is required")
        if not reason or not reason.strip():
            raise AlertValidationError("trigger reason is required")

        now = self._clock()
        alert = CrisisAlert(
            patient_id=patient_id,
            psychologist_id=psychologist_id,
            severity=coerce_severity(severity),
            trigger_source=TriggerSource(source),
            trigger_reason=reason.strip(),
            status=AlertStatus.PENDING,
            detected_at=now,
            created_at=now,
            updated_at=now,
            emotional_context=emotional_context,
            location=location,
        )

        # Hashed before the write so a missing log salt fails before persisting
        patient_hash = hash_identifier(patient_id)
        psychologist_hash = hash_identifier(psychologist_id)

        await self.alert_store.create(alert)

        logger.critical(
            "CRISIS_ALERT_CREATED",
            extra={
                "alert_id": alert.alert_id,
                "patient_id_hash": patient_hash,
                "psychologist_id_hash": psychologist_hash,
                "severity": alert.severity.value,
                "trigger_source": alert.trigger_source.value,
                "has_location": location is not None,
            }
        )

        await self._publish_created(alert)
        return alert

    async def _publish_created(self, alert: CrisisAlert) -> None:
        if self.event_bus is None:
            return

        event = CrisisAlertCreated(
            alert_id=alert.alert_id,
            patient_id=alert.patient_id,
            psychologist_id=alert.psychologist_id,
            severity=alert.severity,
            trigger_reason=alert.trigger_reason,
            trigger_source=alert.trigger_source,
        )
        try:
            await self.event_bus.publish(event)
        except Exception as e:
            # Alert is already durable; a psychologist still sees it on
            # their alert list even if the notification never goes out
            logger.error(
                "CRISIS_ALERT_EVENT_PUBLISH_FAILED",
                extra={
                    "alert_id": alert.alert_id,
                    "event_id": event.event_id,
                    "error": str(e),
                    "error_type": type(e).__name__,
                }
            )

    async def update_status(
        self,
        alert: CrisisAlert,
        new_status: AlertStatus,
        notes: Optional[str] = None,
    ) -> CrisisAlert:
        """Move an alert to a new status and overwrite it in the store.

        Raises:
            AlertTransitionError: If the transition is not allowed; the
                store is not touched
            StoreUnavailableError: If the write fails; the alert keeps its
                previous state so the request can be retried
        """
        previous = alert.status
        updated = copy.deepcopy(alert)
        try:
            updated.transition_to(new_status, at=self._clock(), notes=notes)
        except AlertTransitionError:
            logger.warning(
                "CRISIS_ALERT_TRANSITION_REJECTED",
                extra={
                    "alert_id": alert.alert_id,
                    "current_status": previous.value,
                    "requested_status": new_status.value,
                }
            )
            raise

        await self._write(updated, alert)

        logger.info(
            "CRISIS_ALERT_STATUS_UPDATED",
            extra={
                "alert_id": alert.alert_id,
                "previous_status": previous.value,
                "status": new_status.value,
                "seconds_since_detection": (
                    alert.updated_at - alert.detected_at
                ).total_seconds(),
            }
        )
        return alert

    async def update_severity(
        self,
        alert: CrisisAlert,
        new_severity: Union[AlertSeverity, str],
    ) -> CrisisAlert:
        """Escalate or de-escalate an open alert.

        Raises:
            AlertTransitionError: If the alert is resolved or dismissed
        """
        severity = coerce_severity(new_severity)
        previous = alert.severity
        updated = copy.deepcopy(alert)
        try:
            updated.change_severity(severity, at=self._clock())
        except AlertTransitionError:
            logger.warning(
                "CRISIS_ALERT_SEVERITY_REJECTED",
                extra={
                    "alert_id": alert.alert_id,
                    "status": alert.status.value,
                    "requested_severity": severity.value,
                }
            )
            raise

        await self._write(updated, alert)

        logger.info(
            "CRISIS_ALERT_SEVERITY_UPDATED",
            extra={
                "alert_id": alert.alert_id,
                "previous_severity": previous.value,
                "severity": severity.value,
            }
        )
        return alert

    async def _write(self, updated: CrisisAlert, alert: CrisisAlert) -> None:
        # The caller's alert only takes the new state once the store has it
        await self.alert_store.update(updated)
        vars(alert).update(vars(updated))

    async def _load(self, alert_id: str) -> CrisisAlert:
        alert = await self.alert_store.get(alert_id)
        if alert is None:
            logger.warning("CRISIS_ALERT_NOT_FOUND", extra={"alert_id": alert_id})
            raise AlertNotFoundError(f"Crisis alert with id {alert_id} not found")
        return alert

    async def update_status_by_id(
        self,
        alert_id: str,
        new_status: AlertStatus,
        notes: Optional[str] = None,
    ) -> CrisisAlert:
        alert = await self._load(alert_id)
        return await self.update_status(alert, new_status, notes)

    async def update_severity_by_id(
        self,
        alert_id: str,
        new_severity: Union[AlertSeverity, str],
    ) -> CrisisAlert:
        alert = await self._load(alert_id)
        return await self.update_severity(alert, new_severity)


class AlertQueryService:
    """Read-side queries over crisis alerts for a psychologist's dashboard."""

    def __init__(self, alert_store: AlertStore):
        self.alert_store = alert_store

    async def get_alert(self, alert_id: str) -> Optional[CrisisAlert]:
        return await self.alert_store.get(alert_id)

    async def list_for_psychologist(
        self,
        psychologist_id: str,
        severity: Optional[AlertSeverity] = None,
        status: Optional[AlertStatus] = None,
        limit: Optional[int] = 50,
    ) -> List[CrisisAlert]:
        return await self.alert_store.list_by_recipient(
            psychologist_id,
            severity=severity,
            status=status,
            limit=limit,
        )

    async def count_pending(self, psychologist_id: str) -> int:
        return await self.alert_store.count_pending(psychologist_id)

    async def list_requiring_attention(self, psychologist_id: str) -> List[CrisisAlert]:
        """Critical alerts nobody has looked at yet."""
        return await self.alert_store.list_by_recipient(
            psychologist_id,
            severity=AlertSeverity.CRITICAL,
            status=AlertStatus.PENDING,
        )
