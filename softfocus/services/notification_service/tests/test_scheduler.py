"""Tests for DeliveryScheduler - quiet hours and method selection."""
import logging
import pytest
from datetime import datetime, time, timedelta, timezone

from softfocus.shared.models import DeliveryMethod, NotificationPriority, NotificationType
from softfocus.services.notification_service.config import NotificationConfig
from softfocus.services.notification_service.models import (
    Notification,
    NotificationPreference,
    QuietHourRange,
    ScheduleSettings,
)
from softfocus.services.notification_service.scheduler import (
    DeliveryScheduler,
    default_method_for,
)
from softfocus.services.notification_service.stores import (
    InMemoryNotificationStore,
    InMemoryPreferenceStore,
)

# A Monday
NOW = datetime(2026, 10, 19, 22, 30, tzinfo=timezone.utc)


def at(hour, minute=0, day=19):
    return datetime(2026, 10, day, hour, minute, tzinfo=timezone.utc)


def preference(quiet_hours=(), timezone_name="UTC", active_days=(), method=None):
    return NotificationPreference(
        user_id="user_1",
        notification_type=NotificationType.REMINDER,
        delivery_method=method,
        schedule=ScheduleSettings(
            quiet_hours=list(quiet_hours),
            active_days=set(active_days),
            timezone=timezone_name,
        ),
    )


@pytest.fixture
def notification_store():
    return InMemoryNotificationStore()


@pytest.fixture
def preference_store():
    return InMemoryPreferenceStore()


@pytest.fixture
def scheduler(notification_store, preference_store):
    return DeliveryScheduler(notification_store, preference_store, clock=lambda: NOW)


class TestDeliveryMethod:
    """Tests for method selection."""

    @pytest.mark.parametrize("notification_type,expected", [
        (NotificationType.CRISIS_ALERT, DeliveryMethod.PUSH),
        (NotificationType.MESSAGE_RECEIVED, DeliveryMethod.PUSH),
        (NotificationType.CHECKIN_REMINDER, DeliveryMethod.PUSH),
        (NotificationType.CRITICAL_CHECKIN, DeliveryMethod.PUSH),
        (NotificationType.ASSIGNMENT_DUE, DeliveryMethod.EMAIL),
        (NotificationType.REMINDER, DeliveryMethod.IN_APP),
        (NotificationType.EMOTIONAL_INSIGHT, DeliveryMethod.IN_APP),
    ])
    def test_defaults_per_type(self, notification_type, expected):
        assert default_method_for(notification_type) == expected

    def test_preference_override_wins(self, scheduler):
        pref = preference(method=DeliveryMethod.SMS)

        assert scheduler.method_for(NotificationType.REMINDER, pref) == DeliveryMethod.SMS

    @pytest.mark.asyncio
    async def test_optimal_method_reads_preference(self, scheduler, preference_store):
        await preference_store.upsert(preference(method=DeliveryMethod.EMAIL))

        method = await scheduler.optimal_method("user_1", NotificationType.REMINDER)

        assert method == DeliveryMethod.EMAIL

    @pytest.mark.asyncio
    async def test_optimal_method_without_preference(self, scheduler):
        method = await scheduler.optimal_method("user_1", NotificationType.CRISIS_ALERT)

        assert method == DeliveryMethod.PUSH


class TestDeliveryTime:
    """Tests for quiet-hours aware delivery time."""

    def test_no_preference_is_immediate(self, scheduler):
        assert scheduler.delivery_time_for(None) == NOW

    def test_inside_quiet_hours_defers_to_end_plus_deferral(self, scheduler):
        pref = preference([QuietHourRange(time(22, 0), time(23, 0))])

        assert scheduler.delivery_time_for(pref, at(22, 30)) == at(23, 15)

    def test_outside_quiet_hours_is_immediate(self, scheduler):
        pref = preference([QuietHourRange(time(22, 0), time(23, 0))])

        assert scheduler.delivery_time_for(pref, at(21, 0)) == at(21, 0)

    def test_window_end_is_exclusive(self, scheduler):
        pref = preference([QuietHourRange(time(22, 0), time(23, 0))])

        assert scheduler.delivery_time_for(pref, at(23, 0)) == at(23, 0)

    def test_wrapping_window_before_midnight_resumes_next_day(self, scheduler):
        pref = preference([QuietHourRange(time(22, 0), time(7, 0))])

        assert scheduler.delivery_time_for(pref, at(23, 30)) == at(7, 15, day=20)

    def test_wrapping_window_after_midnight_resumes_same_day(self, scheduler):
        pref = preference([QuietHourRange(time(22, 0), time(7, 0))])

        assert scheduler.delivery_time_for(pref, at(3, 0, day=20)) == at(7, 15, day=20)

    def test_quiet_hours_in_user_time_zone(self, scheduler):
        """Lima is UTC-5: 04:00 UTC is 23:00 local, inside 22:00-07:00."""
        pref = preference([QuietHourRange(time(22, 0), time(7, 0))], "America/Lima")

        resume = scheduler.delivery_time_for(pref, at(4, 0, day=20))

        assert resume == at(12, 15, day=20)
        assert resume.utcoffset() == timedelta(0)

    def test_unknown_time_zone_falls_back_to_utc(self, scheduler, caplog):
        pref = preference([QuietHourRange(time(22, 0), time(23, 0))], "Mars/Olympus_Mons")

        with caplog.at_level(logging.WARNING):
            resume = scheduler.delivery_time_for(pref, at(22, 30))

        assert resume == at(23, 15)
        assert "UNKNOWN_TIMEZONE_FALLBACK" in caplog.text

    def test_configured_deferral(self, notification_store, preference_store):
        scheduler = DeliveryScheduler(
            notification_store,
            preference_store,
            config=NotificationConfig(quiet_hours_deferral_minutes=0),
        )
        pref = preference([QuietHourRange(time(22, 0), time(23, 0))])

        assert scheduler.delivery_time_for(pref, at(22, 30)) == at(23, 0)

    @pytest.mark.asyncio
    async def test_optimal_delivery_time_uses_clock(self, scheduler, preference_store):
        await preference_store.upsert(preference([QuietHourRange(time(22, 0), time(23, 0))]))

        when = await scheduler.optimal_delivery_time("user_1", NotificationType.REMINDER)

        assert when == at(23, 15)


class TestShouldSendNow:
    """Tests for should_send_now."""

    @pytest.mark.asyncio
    async def test_without_preference(self, scheduler):
        assert await scheduler.should_send_now("user_1", NotificationType.REMINDER)

    @pytest.mark.asyncio
    async def test_inside_quiet_hours(self, scheduler, preference_store):
        await preference_store.upsert(preference([QuietHourRange(time(22, 0), time(23, 0))]))

        assert not await scheduler.should_send_now("user_1", NotificationType.REMINDER)

    @pytest.mark.asyncio
    async def test_inactive_weekday(self, scheduler, preference_store):
        await preference_store.upsert(preference(active_days=["saturday", "sunday"]))

        assert not await scheduler.should_send_now("user_1", NotificationType.REMINDER)

    @pytest.mark.asyncio
    async def test_active_weekday_outside_quiet_hours(self, scheduler, preference_store):
        await preference_store.upsert(preference(
            [QuietHourRange(time(8, 0), time(9, 0))], active_days=["monday"]
        ))

        assert await scheduler.should_send_now("user_1", NotificationType.REMINDER)


class TestActivityAndMetrics:
    """Tests for is_user_active and record_delivery_metrics."""

    async def _add(self, store, created_at, read_at=None):
        notification = Notification(
            user_id="user_1",
            notification_type=NotificationType.REMINDER,
            title="t",
            content="c",
            priority=NotificationPriority.LOW,
            delivery_method=DeliveryMethod.IN_APP,
            created_at=created_at,
            updated_at=created_at,
            read_at=read_at,
        )
        return await store.create(notification)

    @pytest.mark.asyncio
    async def test_recent_read_means_active(self, scheduler, notification_store):
        await self._add(notification_store, NOW - timedelta(days=2), NOW - timedelta(days=1))

        assert await scheduler.is_user_active("user_1")

    @pytest.mark.asyncio
    async def test_old_or_unread_means_inactive(self, scheduler, notification_store):
        await self._add(notification_store, NOW - timedelta(days=20), NOW - timedelta(days=10))
        await self._add(notification_store, NOW - timedelta(hours=1))

        assert not await scheduler.is_user_active("user_1")

    @pytest.mark.asyncio
    async def test_record_delivery_metrics(self, scheduler, notification_store):
        notification = await self._add(notification_store, NOW)

        recorded = await scheduler.record_delivery_metrics(
            notification.notification_id, True, timedelta(seconds=2)
        )

        stored = await notification_store.get_by_id(notification.notification_id)
        assert recorded is True
        assert stored.metadata["delivery_success"] is True
        assert stored.metadata["delivery_time_ms"] == 2000.0

    @pytest.mark.asyncio
    async def test_record_metrics_for_missing_notification(self, scheduler, caplog):
        with caplog.at_level(logging.WARNING):
            recorded = await scheduler.record_delivery_metrics(
                "ntf_missing", False, timedelta(seconds=1)
            )

        assert recorded is False
        assert "DELIVERY_METRICS_NOTIFICATION_MISSING" in caplog.text
