"""Notification dispatch: preferences, scheduling, persistence.

Dispatch only persists a PENDING notification. Actual delivery (push, email,
SMS) is done by a separate worker reading get_pending_due_by().
"""
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from softfocus.shared.errors import NotificationsDisabledError
from softfocus.shared.models import (
    DeliveryMethod,
    DeliveryStatus,
    NotificationPriority,
    NotificationType,
    max_delivery_target,
)
from softfocus.shared.utils import hash_identifier
from .models import Notification
from .scheduler import DeliveryScheduler
from .stores import NotificationStore, PreferenceStore

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NotificationDispatcher:
    """Creates notifications that honour the recipient's preferences."""

    def __init__(
        self,
        notification_store: NotificationStore,
        preference_store: PreferenceStore,
        scheduler: DeliveryScheduler,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """Initialize dispatcher.

        Args:
            notification_store: Persistence for notifications
            preference_store: Per-user, per-type preferences
            scheduler: Picks delivery method and time
            clock: Returns the current UTC time
        """
        self.notification_store = notification_store
        self.preference_store = preference_store
        self.scheduler = scheduler
        self._clock = clock

    async def dispatch(
        self,
        user_id: str,
        notification_type: NotificationType,
        title: str,
        content: str,
        priority: NotificationPriority = NotificationPriority.NORMAL,
        delivery_method: Optional[DeliveryMethod] = None,
        scheduled_at: Optional[datetime] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Notification:
        """Create a PENDING notification for a user.

        Args:
            user_id: Recipient
            notification_type: Type, used for the preference lookup
            title: Notification title
            content: Notification body
            priority: Delivery priority
            delivery_method: Explicit method; otherwise preference, then default
            scheduled_at: Explicit delivery time; otherwise quiet-hours aware,
                except for CRITICAL priority which is always immediate
            metadata: Extra fields stored with the notification

        Returns:
            The persisted Notification

        Raises:
            NotificationsDisabledError: If the user disabled this type. Nothing
                is persisted in that case.
        """
        user_hash = hash_identifier(user_id)
        preference = await self.preference_store.get_by_user_and_type(
            user_id, notification_type
        )

        if preference is not None and not preference.is_enabled:
            logger.info(
                "NOTIFICATION_BLOCKED_BY_PREFERENCE",
                extra={
                    "user_id_hash": user_hash,
                    "notification_type": notification_type.value,
                    "disabled_at": (
                        preference.disabled_at.isoformat() if preference.disabled_at else None
                    ),
                }
            )
            raise NotificationsDisabledError(user_id, notification_type.value)

        now = self._clock()
        method = delivery_method or self.scheduler.method_for(notification_type, preference)
        if scheduled_at is not None:
            when = scheduled_at
        elif priority == NotificationPriority.CRITICAL:
            # Quiet hours never hold back a critical notification
            when = now
        else:
            when = self.scheduler.delivery_time_for(preference, now)

        notification_metadata = dict(metadata or {})
        notification_metadata["max_delivery_seconds"] = int(
            max_delivery_target(priority).total_seconds()
        )

        notification = Notification(
            user_id=user_id,
            notification_type=notification_type,
            title=title,
            content=content,
            priority=priority,
            delivery_method=method,
            status=DeliveryStatus.PENDING,
            scheduled_at=when,
            metadata=notification_metadata,
            created_at=now,
            updated_at=now,
        )

        await self.notification_store.create(notification)

        logger.info(
            "NOTIFICATION_DISPATCHED",
            extra={
                "notification_id": notification.notification_id,
                "user_id_hash": user_hash,
                "notification_type": notification_type.value,
                "priority": priority.value,
                "delivery_method": method.value,
                "deferred": notification.scheduled_at > now,
            }
        )
        return notification
