"""Notification history and preference management."""
import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional

from softfocus.shared.errors import NotFoundError
from softfocus.shared.models import DeliveryMethod, NotificationType
from softfocus.shared.utils import hash_identifier
from .models import Notification, NotificationPreference, ScheduleSettings
from .stores import NotificationStore, PreferenceStore

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NotificationHistoryService:
    """Read paths over a user's notifications."""

    def __init__(
        self,
        notification_store: NotificationStore,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.notification_store = notification_store
        self._clock = clock

    async def list_for_user(
        self,
        user_id: str,
        page: int = 1,
        page_size: int = 20,
        notification_type: Optional[NotificationType] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[Notification]:
        """One page of history, newest first.

        The type and date filters narrow the fetched page; they do not
        change which page is fetched.
        """
        notifications = await self.notification_store.list_by_user(user_id, page, page_size)
        return [
            n for n in notifications
            if (notification_type is None or n.notification_type == notification_type)
            and (start is None or n.created_at >= start)
            and (end is None or n.created_at <= end)
        ]

    async def get_notification(self, notification_id: str) -> Optional[Notification]:
        return await self.notification_store.get_by_id(notification_id)

    async def count_unread(self, user_id: str) -> int:
        return await self.notification_store.count_unread(user_id)

    async def mark_as_read(self, notification_id: str, user_id: str) -> Notification:
        """Mark a user's own notification as read.

        Raises:
            NotFoundError: If it does not exist or belongs to someone else
        """
        notification = await self.notification_store.get_by_id(notification_id)
        if notification is None or notification.user_id != user_id:
            raise NotFoundError(f"Notification {notification_id} not found")

        if notification.is_read:
            return notification

        notification.mark_as_read(self._clock())
        await self.notification_store.update(notification_id, notification)

        logger.info(
            "NOTIFICATION_MARKED_READ",
            extra={
                "notification_id": notification_id,
                "user_id_hash": hash_identifier(user_id),
            }
        )
        return notification

    async def pending_due(self, at: Optional[datetime] = None) -> List[Notification]:
        """PENDING notifications whose scheduled time has come."""
        return await self.notification_store.get_pending_due_by(at or self._clock())


class PreferenceService:
    """Reads and updates per-type notification preferences."""

    def __init__(
        self,
        preference_store: PreferenceStore,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.preference_store = preference_store
        self._clock = clock

    async def get_preferences(self, user_id: str) -> List[NotificationPreference]:
        return await self.preference_store.list_by_user(user_id)

    async def get_preference(
        self,
        user_id: str,
        notification_type: NotificationType,
    ) -> Optional[NotificationPreference]:
        return await self.preference_store.get_by_user_and_type(user_id, notification_type)

    async def update_preference(
        self,
        user_id: str,
        notification_type: NotificationType,
        is_enabled: bool,
        delivery_method: Optional[DeliveryMethod] = None,
        schedule: Optional[ScheduleSettings] = None,
    ) -> NotificationPreference:
        """Create or update the preference for one notification type.

        A None delivery_method or schedule leaves the stored value as is.
        """
        now = self._clock()
        preference = await self.preference_store.get_by_user_and_type(
            user_id, notification_type
        )
        created = preference is None
        if preference is None:
            preference = NotificationPreference(
                user_id=user_id,
                notification_type=notification_type,
                created_at=now,
                updated_at=now,
            )

        if is_enabled:
            preference.enable(now)
        else:
            preference.disable(now)
        if delivery_method is not None:
            preference.delivery_method = delivery_method
        if schedule is not None:
            preference.schedule = schedule

        await self.preference_store.upsert(preference)

        logger.info(
            "NOTIFICATION_PREFERENCE_UPDATED",
            extra={
                "user_id_hash": hash_identifier(user_id),
                "notification_type": notification_type.value,
                "is_enabled": preference.is_enabled,
                "created": created,
            }
        )
        return preference
