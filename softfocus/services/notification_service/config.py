"""Notification service configuration."""
import os
from dataclasses import dataclass


@dataclass(frozen=True)
class NotificationConfig:
    """Scheduling and templating settings for notifications."""

    # Delay after a quiet-hours window ends before delivery
    quiet_hours_deferral_minutes: int = 15

    # A user is active when they read a notification within this many days
    activity_window_days: int = 7

    # Number of most recent notifications inspected for activity
    activity_sample_size: int = 10

    # Used when a preference has no time zone
    default_timezone: str = "UTC"

    # Delivery worker gives up after this many failures
    max_retries: int = 3

    # Chat message preview length in message-received notifications
    content_preview_length: int = 100

    def __post_init__(self):
        if self.quiet_hours_deferral_minutes < 0:
            raise ValueError("quiet_hours_deferral_minutes cannot be negative")
        if self.activity_sample_size < 1:
            raise ValueError("activity_sample_size must be at least 1")
        if self.content_preview_length < 1:
            raise ValueError("content_preview_length must be at least 1")

    @classmethod
    def from_env(cls) -> "NotificationConfig":
        """Create config from environment variables.

        Environment variables:
            NOTIFICATION_QUIET_HOURS_DEFERRAL_MINUTES: Default 15
            NOTIFICATION_ACTIVITY_WINDOW_DAYS: Default 7
            NOTIFICATION_DEFAULT_TIMEZONE: Default "UTC"
            NOTIFICATION_MAX_RETRIES: Default 3
        """
        return cls(
            quiet_hours_deferral_minutes=int(
                os.environ.get("NOTIFICATION_QUIET_HOURS_DEFERRAL_MINUTES", "15")
            ),
            activity_window_days=int(
                os.environ.get("NOTIFICATION_ACTIVITY_WINDOW_DAYS", "7")
            ),
            default_timezone=os.environ.get("NOTIFICATION_DEFAULT_TIMEZONE", "UTC"),
            max_retries=int(os.environ.get("NOTIFICATION_MAX_RETRIES", "3")),
        )
