"""Notification and preference persistence contracts and implementations.

PostgreSQL tables (DDL is owned by the deployment, shown for reference):

    CREATE TABLE notifications (
        id            TEXT PRIMARY KEY,
        version       INTEGER NOT NULL,
        doc           JSONB NOT NULL,
        user_id       TEXT NOT NULL,
        status        TEXT NOT NULL,
        scheduled_at  TIMESTAMPTZ NOT NULL,
        created_at    TIMESTAMPTZ NOT NULL,
        read_at       TIMESTAMPTZ
    );

    CREATE TABLE notification_preferences (
        id                 TEXT PRIMARY KEY,
        version            INTEGER NOT NULL,
        doc                JSONB NOT NULL,
        user_id            TEXT NOT NULL,
        notification_type  TEXT NOT NULL,
        UNIQUE (user_id, notification_type)
    );
"""
import copy
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from softfocus.shared.database import ConnectionManager, DocumentRepository
from softfocus.shared.errors import (
    ConcurrentUpdateError,
    DuplicateError,
    NotFoundError,
    ValidationError,
)
from softfocus.shared.models import DeliveryStatus, NotificationType
from .models import Notification, NotificationPreference


def _check_page(page: int, page_size: int) -> None:
    if page < 1:
        raise ValidationError(f"page must be >= 1, got {page}")
    if page_size < 1:
        raise ValidationError(f"page_size must be >= 1, got {page_size}")


class NotificationStore(ABC):
    """Persistence contract for notifications.

    Lookups return None or an empty list when there is no data and raise
    StoreUnavailableError when the store itself fails.
    """

    @abstractmethod
    async def create(self, notification: Notification) -> Notification:
        pass

    @abstractmethod
    async def get_by_id(self, notification_id: str) -> Optional[Notification]:
        pass

    @abstractmethod
    async def update(self, notification_id: str, notification: Notification) -> Notification:
        """Overwrite the whole record.

        Raises:
            NotFoundError: If the notification does not exist
        """
        pass

    @abstractmethod
    async def list_by_user(
        self,
        user_id: str,
        page: int = 1,
        page_size: int = 20,
    ) -> List[Notification]:
        """One page of a user's notifications, newest first. Pages start at 1."""
        pass

    @abstractmethod
    async def count_unread(self, user_id: str) -> int:
        pass

    @abstractmethod
    async def get_pending_due_by(self, at: datetime) -> List[Notification]:
        """PENDING notifications scheduled at or before `at`, oldest schedule first."""
        pass


class PreferenceStore(ABC):
    """Persistence contract for notification preferences."""

    @abstractmethod
    async def get_by_user_and_type(
        self,
        user_id: str,
        notification_type: NotificationType,
    ) -> Optional[NotificationPreference]:
        pass

    @abstractmethod
    async def upsert(self, preference: NotificationPreference) -> NotificationPreference:
        """Create or overwrite the single row for (user_id, notification_type)."""
        pass

    @abstractmethod
    async def list_by_user(self, user_id: str) -> List[NotificationPreference]:
        pass


class InMemoryNotificationStore(NotificationStore):
    """Dict-backed store for tests and single-process local runs."""

    def __init__(self):
        self._notifications: Dict[str, Notification] = {}

    async def create(self, notification: Notification) -> Notification:
        if notification.notification_id in self._notifications:
            raise DuplicateError(
                f"Notification {notification.notification_id} already exists"
            )
        self._notifications[notification.notification_id] = copy.deepcopy(notification)
        return notification

    async def get_by_id(self, notification_id: str) -> Optional[Notification]:
        notification = self._notifications.get(notification_id)
        return copy.deepcopy(notification) if notification else None

    async def update(self, notification_id: str, notification: Notification) -> Notification:
        if notification.notification_id != notification_id:
            raise ValidationError(
                f"Notification id mismatch: {notification_id} != {notification.notification_id}"
            )
        stored = self._notifications.get(notification_id)
        if stored is None:
            raise NotFoundError(f"Notification {notification_id} not found")
        if stored.version != notification.version:
            raise ConcurrentUpdateError(
                f"Notification {notification_id} changed since version {notification.version}"
            )
        notification.version += 1
        self._notifications[notification_id] = copy.deepcopy(notification)
        return notification

    async def list_by_user(
        self,
        user_id: str,
        page: int = 1,
        page_size: int = 20,
    ) -> List[Notification]:
        _check_page(page, page_size)
        notifications = sorted(
            (n for n in self._notifications.values() if n.user_id == user_id),
            key=lambda n: n.created_at,
            reverse=True,
        )
        start = (page - 1) * page_size
        return [copy.deepcopy(n) for n in notifications[start:start + page_size]]

    async def count_unread(self, user_id: str) -> int:
        return sum(
            1 for n in self._notifications.values()
            if n.user_id == user_id and n.read_at is None
        )

    async def get_pending_due_by(self, at: datetime) -> List[Notification]:
        due = sorted(
            (n for n in self._notifications.values() if n.is_due(at)),
            key=lambda n: n.scheduled_at,
        )
        return [copy.deepcopy(n) for n in due]


class InMemoryPreferenceStore(PreferenceStore):
    """Dict-backed preference store keyed by (user_id, notification_type)."""

    def __init__(self):
        self._preferences: Dict[Tuple[str, NotificationType], NotificationPreference] = {}

    async def get_by_user_and_type(
        self,
        user_id: str,
        notification_type: NotificationType,
    ) -> Optional[NotificationPreference]:
        preference = self._preferences.get((user_id, notification_type))
        return copy.deepcopy(preference) if preference else None

    async def upsert(self, preference: NotificationPreference) -> NotificationPreference:
        preference.version += 1
        key = (preference.user_id, preference.notification_type)
        self._preferences[key] = copy.deepcopy(preference)
        return preference

    async def list_by_user(self, user_id: str) -> List[NotificationPreference]:
        return [
            copy.deepcopy(p) for (owner, _), p in self._preferences.items()
            if owner == user_id
        ]


class PostgresNotificationStore(DocumentRepository[Notification], NotificationStore):
    """Notifications as versioned JSONB documents."""

    def __init__(
        self,
        connection_manager: ConnectionManager,
        table_name: str = "notifications",
    ):
        super().__init__(connection_manager, table_name)

    def _entity_id(self, entity: Notification) -> str:
        return entity.notification_id

    def _to_document(self, entity: Notification) -> Dict[str, Any]:
        return entity.to_document()

    def _from_document(self, document: Dict[str, Any], version: int) -> Notification:
        return Notification.from_document(document, version)

    def _index_columns(self, entity: Notification) -> Dict[str, Any]:
        return {
            "user_id": entity.user_id,
            "status": entity.status.value,
            "scheduled_at": entity.scheduled_at,
            "created_at": entity.created_at,
            "read_at": entity.read_at,
        }

    async def create(self, notification: Notification) -> Notification:
        return await self.insert(notification)

    async def get_by_id(self, notification_id: str) -> Optional[Notification]:
        return await self.find_by_id(notification_id)

    async def update(self, notification_id: str, notification: Notification) -> Notification:
        if notification.notification_id != notification_id:
            raise ValidationError(
                f"Notification id mismatch: {notification_id} != {notification.notification_id}"
            )
        return await self.replace(notification)

    async def list_by_user(
        self,
        user_id: str,
        page: int = 1,
        page_size: int = 20,
    ) -> List[Notification]:
        _check_page(page, page_size)
        return await self.find_where(
            "user_id = %s",
            (user_id,),
            order_by="created_at DESC",
            limit=page_size,
            offset=(page - 1) * page_size,
        )

    async def count_unread(self, user_id: str) -> int:
        return await self.count_where("user_id = %s AND read_at IS NULL", (user_id,))

    async def get_pending_due_by(self, at: datetime) -> List[Notification]:
        return await self.find_where(
            "status = %s AND scheduled_at <= %s",
            (DeliveryStatus.PENDING.value, at),
            order_by="scheduled_at ASC",
        )


class PostgresPreferenceStore(DocumentRepository[NotificationPreference], PreferenceStore):
    """Preferences as JSONB documents, unique per (user_id, notification_type)."""

    CONFLICT_COLUMNS = ("user_id", "notification_type")

    def __init__(
        self,
        connection_manager: ConnectionManager,
        table_name: str = "notification_preferences",
    ):
        super().__init__(connection_manager, table_name)

    def _entity_id(self, entity: NotificationPreference) -> str:
        return entity.key

    def _to_document(self, entity: NotificationPreference) -> Dict[str, Any]:
        return entity.to_document()

    def _from_document(self, document: Dict[str, Any], version: int) -> NotificationPreference:
        return NotificationPreference.from_document(document, version)

    def _index_columns(self, entity: NotificationPreference) -> Dict[str, Any]:
        return {
            "user_id": entity.user_id,
            "notification_type": entity.notification_type.value,
        }

    async def get_by_user_and_type(
        self,
        user_id: str,
        notification_type: NotificationType,
    ) -> Optional[NotificationPreference]:
        rows = await self.find_where(
            "user_id = %s AND notification_type = %s",
            (user_id, notification_type.value),
            limit=1,
        )
        return rows[0] if rows else None

    async def upsert(self, preference: NotificationPreference) -> NotificationPreference:
        return await self.insert_or_replace(preference, self.CONFLICT_COLUMNS)

    async def list_by_user(self, user_id: str) -> List[NotificationPreference]:
        return await self.find_where(
            "user_id = %s",
            (user_id,),
            order_by="notification_type",
        )
