"""Domain event -> notification handlers.

Each handler maps one event type to exactly one notification for one
recipient. Handlers never raise: a failure to notify is logged and the
publishing context carries on.
"""
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Type

from softfocus.shared.errors import NotificationsDisabledError
from softfocus.shared.events import DomainEventBus
from softfocus.shared.models import (
    AllAssignmentsCompleted,
    AssignmentCompleted,
    CheckInCompleted,
    ContentAssigned,
    CrisisAlertCreated,
    DomainEvent,
    MessageSent,
    NotificationPriority,
    NotificationType,
)
from softfocus.shared.relationships import RelationshipDirectory
from softfocus.shared.utils import hash_for_error_log
from .config import NotificationConfig
from .dispatcher import NotificationDispatcher
from .models import Notification

logger = logging.getLogger(__name__)


def truncate_preview(text: str, limit: int) -> str:
    """Cut text to `limit` characters, marking the cut with '...'."""
    if len(text) <= limit:
        return text
    return f"{text[:limit]}..."


class NotificationEventHandler(ABC):
    """Base handler: calls handle() and contains every failure."""

    event_type: Type[DomainEvent] = DomainEvent

    def __init__(self, dispatcher: NotificationDispatcher):
        self.dispatcher = dispatcher

    @abstractmethod
    async def handle(self, event: DomainEvent) -> Optional[Notification]:
        """Dispatch the notification for one event; None when skipped."""
        pass

    async def __call__(self, event: DomainEvent) -> None:
        try:
            notification = await self.handle(event)
        except NotificationsDisabledError as e:
            logger.info(
                "NOTIFICATION_SKIPPED_DISABLED",
                extra={
                    "event_id": event.event_id,
                    "event_type": event.event_name,
                    "notification_type": e.notification_type,
                    "user_id_hash": hash_for_error_log(e.user_id),
                }
            )
            return
        except Exception as e:
            logger.error(
                "NOTIFICATION_HANDLER_FAILED",
                extra={
                    "event_id": event.event_id,
                    "event_type": event.event_name,
                    "handler": type(self).__name__,
                    "error": str(e),
                    "error_type": type(e).__name__,
                }
            )
            return

        if notification is not None:
            logger.info(
                "EVENT_NOTIFICATION_CREATED",
                extra={
                    "event_id": event.event_id,
                    "event_type": event.event_name,
                    "notification_id": notification.notification_id,
                }
            )

    def _skip_missing_recipient(self, event: DomainEvent, role: str) -> None:
        logger.warning(
            "NOTIFICATION_SKIPPED_NO_RECIPIENT",
            extra={
                "event_id": event.event_id,
                "event_type": event.event_name,
                "recipient_role": role,
            }
        )


class CrisisAlertCreatedHandler(NotificationEventHandler):
    """Alerts the psychologist about a new crisis alert."""

    event_type = CrisisAlertCreated

    async def handle(self, event: CrisisAlertCreated) -> Optional[Notification]:
        if not event.psychologist_id:
            self._skip_missing_recipient(event, "psychologist")
            return None

        metadata: Dict[str, Any] = {
            "alert_id": event.alert_id,
            "patient_id": event.patient_id,
            "severity": event.severity.value,
            "trigger_source": event.trigger_source.value,
        }
        return await self.dispatcher.dispatch(
            user_id=event.psychologist_id,
            notification_type=NotificationType.CRISIS_ALERT,
            title="CRISIS ALERT",
            content=f"{event.severity.value.capitalize()} alert: {event.trigger_reason}",
            priority=NotificationPriority.CRITICAL,
            metadata=metadata,
        )


class ContentAssignedHandler(NotificationEventHandler):
    event_type = ContentAssigned

    async def handle(self, event: ContentAssigned) -> Optional[Notification]:
        content = f"Your psychologist assigned you: {event.content_title}"
        if event.notes:
            content = f"{content}\n\n{event.notes}"

        return await self.dispatcher.dispatch(
            user_id=event.patient_id,
            notification_type=NotificationType.ASSIGNMENT_RECEIVED,
            title="New assignment",
            content=content,
            priority=NotificationPriority.NORMAL,
            metadata={
                "assignment_id": event.assignment_id,
                "content_id": event.content_id,
                "content_type": event.content_type,
                "psychologist_id": event.psychologist_id,
            },
        )


class AssignmentCompletedHandler(NotificationEventHandler):
    event_type = AssignmentCompleted

    async def handle(self, event: AssignmentCompleted) -> Optional[Notification]:
        return await self.dispatcher.dispatch(
            user_id=event.psychologist_id,
            notification_type=NotificationType.ASSIGNMENT_COMPLETED,
            title="Assignment completed",
            content=f"Your patient completed: {event.content_title}",
            priority=NotificationPriority.NORMAL,
            metadata={
                "assignment_id": event.assignment_id,
                "patient_id": event.patient_id,
                "content_type": event.content_type,
            },
        )


class AllAssignmentsCompletedHandler(NotificationEventHandler):
    event_type = AllAssignmentsCompleted

    async def handle(self, event: AllAssignmentsCompleted) -> Optional[Notification]:
        return await self.dispatcher.dispatch(
            user_id=event.psychologist_id,
            notification_type=NotificationType.ALL_ASSIGNMENTS_COMPLETED,
            title="All assignments completed",
            content=f"Your patient completed all {event.completed_count} assigned tasks.",
            priority=NotificationPriority.HIGH,
            metadata={
                "patient_id": event.patient_id,
                "completed_count": event.completed_count,
            },
        )


class MessageSentHandler(NotificationEventHandler):
    """Notifies the receiver of a chat message with a short preview."""

    event_type = MessageSent

    def __init__(self, dispatcher: NotificationDispatcher, preview_length: int = 100):
        super().__init__(dispatcher)
        self.preview_length = preview_length

    async def handle(self, event: MessageSent) -> Optional[Notification]:
        sender_role = "psychologist" if event.sender_is_psychologist else "patient"
        return await self.dispatcher.dispatch(
            user_id=event.receiver_id,
            notification_type=NotificationType.MESSAGE_RECEIVED,
            title=f"New message from your {sender_role}",
            content=truncate_preview(event.content, self.preview_length),
            priority=NotificationPriority.NORMAL,
            metadata={
                "relationship_id": event.relationship_id,
                "message_id": event.message_id,
                "sender_id": event.sender_id,
            },
        )


class CheckInCompletedHandler(NotificationEventHandler):
    """Tells the psychologist about a critical check-in. Others are ignored."""

    event_type = CheckInCompleted

    def __init__(
        self,
        dispatcher: NotificationDispatcher,
        relationships: RelationshipDirectory,
    ):
        super().__init__(dispatcher)
        self.relationships = relationships

    async def handle(self, event: CheckInCompleted) -> Optional[Notification]:
        if not event.is_critical:
            return None

        psychologist_id = await self.relationships.get_psychologist_for(event.patient_id)
        if not psychologist_id:
            self._skip_missing_recipient(event, "psychologist")
            return None

        return await self.dispatcher.dispatch(
            user_id=psychologist_id,
            notification_type=NotificationType.CRITICAL_CHECKIN,
            title="Critical check-in",
            content=(
                f"Your patient reported low levels in a check-in "
                f"(emotional: {event.emotional_level}, energy: {event.energy_level})."
            ),
            priority=NotificationPriority.HIGH,
            metadata={
                "patient_id": event.patient_id,
                "check_in_id": event.check_in_id,
                "emotional_level": event.emotional_level,
                "energy_level": event.energy_level,
                "symptoms": list(event.symptoms),
            },
        )


class EventRouter:
    """Owns the six handlers and subscribes them to a DomainEventBus."""

    def __init__(
        self,
        dispatcher: NotificationDispatcher,
        relationships: RelationshipDirectory,
        config: Optional[NotificationConfig] = None,
    ):
        config = config or NotificationConfig()
        self.handlers: List[NotificationEventHandler] = [
            CrisisAlertCreatedHandler(dispatcher),
            ContentAssignedHandler(dispatcher),
            AssignmentCompletedHandler(dispatcher),
            AllAssignmentsCompletedHandler(dispatcher),
            MessageSentHandler(dispatcher, preview_length=config.content_preview_length),
            CheckInCompletedHandler(dispatcher, relationships),
        ]

    def register(self, bus: DomainEventBus) -> None:
        for handler in self.handlers:
            bus.subscribe(handler.event_type, handler)

        logger.info(
            "EVENT_ROUTER_REGISTERED",
            extra={"event_types": [h.event_type.__name__ for h in self.handlers]}
        )
