"""Delivery method and delivery time selection.

Quiet hours are evaluated in the preference's IANA time zone (pytz). A
notification created inside a quiet-hours window is scheduled for the end
of that window plus a short deferral; otherwise it is due immediately.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional

import pytz

from softfocus.shared.models import DeliveryMethod, NotificationType
from softfocus.shared.utils import hash_identifier
from .config import NotificationConfig
from .models import NotificationPreference, QuietHourRange, ScheduleSettings
from .stores import NotificationStore, PreferenceStore

logger = logging.getLogger(__name__)

# Method used when the user has no override for the type
DEFAULT_METHODS: Dict[NotificationType, DeliveryMethod] = {
    NotificationType.CRISIS_ALERT: DeliveryMethod.PUSH,
    NotificationType.MESSAGE_RECEIVED: DeliveryMethod.PUSH,
    NotificationType.CHECKIN_REMINDER: DeliveryMethod.PUSH,
    NotificationType.CRITICAL_CHECKIN: DeliveryMethod.PUSH,
    NotificationType.ASSIGNMENT_DUE: DeliveryMethod.EMAIL,
}
FALLBACK_METHOD = DeliveryMethod.IN_APP


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def default_method_for(notification_type: NotificationType) -> DeliveryMethod:
    return DEFAULT_METHODS.get(notification_type, FALLBACK_METHOD)


class DeliveryScheduler:
    """Chooses how and when a notification is delivered."""

    def __init__(
        self,
        notification_store: NotificationStore,
        preference_store: PreferenceStore,
        config: Optional[NotificationConfig] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.notification_store = notification_store
        self.preference_store = preference_store
        self.config = config or NotificationConfig()
        self._clock = clock

    def _timezone(self, schedule: ScheduleSettings):
        name = schedule.timezone or self.config.default_timezone
        try:
            return pytz.timezone(name)
        except pytz.UnknownTimeZoneError:
            logger.warning(
                "UNKNOWN_TIMEZONE_FALLBACK",
                extra={"timezone": name, "fallback": "UTC"}
            )
            return pytz.utc

    def _active_window(
        self,
        schedule: ScheduleSettings,
        local_now: datetime,
    ) -> Optional[QuietHourRange]:
        local_time = local_now.time()
        for window in schedule.quiet_hours:
            if window.contains(local_time):
                return window
        return None

    def method_for(
        self,
        notification_type: NotificationType,
        preference: Optional[NotificationPreference],
    ) -> DeliveryMethod:
        if preference is not None and preference.delivery_method is not None:
            return preference.delivery_method
        return default_method_for(notification_type)

    def delivery_time_for(
        self,
        preference: Optional[NotificationPreference],
        now: Optional[datetime] = None,
    ) -> datetime:
        """Delivery time for a preference at a given instant.

        Args:
            preference: User preference, or None
            now: Current UTC time; defaults to the scheduler clock

        Returns:
            UTC datetime: now, or the end of the matching quiet-hours
            window plus the configured deferral
        """
        now = now or self._clock()
        if preference is None or preference.schedule is None:
            return now
        schedule = preference.schedule
        if not schedule.quiet_hours:
            return now

        tz = self._timezone(schedule)
        local_now = now.astimezone(tz)
        window = self._active_window(schedule, local_now)
        if window is None:
            return now

        end_date = local_now.date()
        if window.end <= local_now.time():
            # Inside the pre-midnight half of a wrapping window
            end_date += timedelta(days=1)

        resume_local = datetime.combine(end_date, window.end) + timedelta(
            minutes=self.config.quiet_hours_deferral_minutes
        )
        resume = tz.normalize(tz.localize(resume_local)).astimezone(pytz.utc)

        logger.info(
            "NOTIFICATION_DEFERRED_FOR_QUIET_HOURS",
            extra={
                "timezone": tz.zone,
                "quiet_start": window.start.isoformat(),
                "quiet_end": window.end.isoformat(),
                "deferred_seconds": (resume - now).total_seconds(),
            }
        )
        return resume

    async def optimal_method(
        self,
        user_id: str,
        notification_type: NotificationType,
    ) -> DeliveryMethod:
        """Preference override, else the per-type default."""
        preference = await self.preference_store.get_by_user_and_type(
            user_id, notification_type
        )
        return self.method_for(notification_type, preference)

    async def optimal_delivery_time(
        self,
        user_id: str,
        notification_type: NotificationType,
    ) -> datetime:
        preference = await self.preference_store.get_by_user_and_type(
            user_id, notification_type
        )
        return self.delivery_time_for(preference)

    async def should_send_now(
        self,
        user_id: str,
        notification_type: NotificationType,
    ) -> bool:
        """False on an inactive weekday or inside quiet hours, in user-local time."""
        preference = await self.preference_store.get_by_user_and_type(
            user_id, notification_type
        )
        if preference is None or preference.schedule is None:
            return True

        schedule = preference.schedule
        local_now = self._clock().astimezone(self._timezone(schedule))
        if not schedule.is_active_day(local_now.weekday()):
            return False
        return self._active_window(schedule, local_now) is None

    async def is_user_active(self, user_id: str) -> bool:
        """True if a recent notification was read within the activity window."""
        recent = await self.notification_store.list_by_user(
            user_id, page=1, page_size=self.config.activity_sample_size
        )
        cutoff = self._clock() - timedelta(days=self.config.activity_window_days)
        return any(n.read_at is not None and n.read_at > cutoff for n in recent)

    async def record_delivery_metrics(
        self,
        notification_id: str,
        success: bool,
        delivery_time: timedelta,
    ) -> bool:
        """Stamp delivery outcome into the notification metadata.

        Returns:
            False if the notification does not exist
        """
        notification = await self.notification_store.get_by_id(notification_id)
        if notification is None:
            logger.warning(
                "DELIVERY_METRICS_NOTIFICATION_MISSING",
                extra={"notification_id": notification_id}
            )
            return False

        notification.metadata["delivery_success"] = success
        notification.metadata["delivery_time_ms"] = delivery_time.total_seconds() * 1000
        await self.notification_store.update(notification_id, notification)

        logger.info(
            "DELIVERY_METRICS_RECORDED",
            extra={
                "notification_id": notification_id,
                "user_id_hash": hash_identifier(notification.user_id),
                "success": success,
                "delivery_time_ms": notification.metadata["delivery_time_ms"],
            }
        )
        return True
