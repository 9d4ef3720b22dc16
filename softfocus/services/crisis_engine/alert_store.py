"""Crisis alert persistence contract and implementations.

PostgreSQL table (DDL is owned by the deployment, shown for reference):

    CREATE TABLE crisis_alerts (
        id               TEXT PRIMARY KEY,
        version          INTEGER NOT NULL,
        doc              JSONB NOT NULL,
        psychologist_id  TEXT,
        severity         TEXT NOT NULL,
        status           TEXT NOT NULL,
        created_at       TIMESTAMPTZ NOT NULL
    );
"""
import copy
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from softfocus.shared.database import ConnectionManager, DocumentRepository
from softfocus.shared.errors import (
    AlertNotFoundError,
    ConcurrentUpdateError,
    DuplicateError,
    NotFoundError,
)
from softfocus.shared.models import AlertSeverity, AlertStatus
from .models import CrisisAlert


class AlertStore(ABC):
    """Persistence contract for crisis alerts.

    Lookups return None or an empty list when there is no data and raise
    StoreUnavailableError when the store itself fails.
    """

    @abstractmethod
    async def create(self, alert: CrisisAlert) -> CrisisAlert:
        pass

    @abstractmethod
    async def get(self, alert_id: str) -> Optional[CrisisAlert]:
        pass

    @abstractmethod
    async def list_by_recipient(
        self,
        psychologist_id: str,
        severity: Optional[AlertSeverity] = None,
        status: Optional[AlertStatus] = None,
        limit: Optional[int] = None,
    ) -> List[CrisisAlert]:
        """Alerts routed to a psychologist, newest first."""
        pass

    @abstractmethod
    async def count_pending(self, psychologist_id: str) -> int:
        pass

    @abstractmethod
    async def update(self, alert: CrisisAlert) -> CrisisAlert:
        """Overwrite the whole record.

        Raises:
            AlertNotFoundError: If the alert does not exist
        """
        pass


class InMemoryAlertStore(AlertStore):
    """Dict-backed store for tests and single-process local runs.

    Stores copies so callers cannot mutate persisted state by accident.
    """

    def __init__(self):
        self._alerts: Dict[str, CrisisAlert] = {}

    async def create(self, alert: CrisisAlert) -> CrisisAlert:
        if alert.alert_id in self._alerts:
            raise DuplicateError(f"Alert {alert.alert_id} already exists")
        self._alerts[alert.alert_id] = copy.deepcopy(alert)
        return alert

    async def get(self, alert_id: str) -> Optional[CrisisAlert]:
        alert = self._alerts.get(alert_id)
        return copy.deepcopy(alert) if alert else None

    async def list_by_recipient(
        self,
        psychologist_id: str,
        severity: Optional[AlertSeverity] = None,
        status: Optional[AlertStatus] = None,
        limit: Optional[int] = None,
    ) -> List[CrisisAlert]:
        alerts = [
            a for a in self._alerts.values()
            if a.psychologist_id == psychologist_id
            and (severity is None or a.severity == severity)
            and (status is None or a.status == status)
        ]
        alerts.sort(key=lambda a: a.created_at, reverse=True)
        if limit is not None:
            alerts = alerts[:limit]
        return [copy.deepcopy(a) for a in alerts]

    async def count_pending(self, psychologist_id: str) -> int:
        return sum(
            1 for a in self._alerts.values()
            if a.psychologist_id == psychologist_id and a.status == AlertStatus.PENDING
        )

    async def update(self, alert: CrisisAlert) -> CrisisAlert:
        stored = self._alerts.get(alert.alert_id)
        if stored is None:
            raise AlertNotFoundError(f"Crisis alert {alert.alert_id} not found")
        if stored.version != alert.version:
            raise ConcurrentUpdateError(
                f"Crisis alert {alert.alert_id} changed since version {alert.version}"
            )
        alert.version += 1
        self._alerts[alert.alert_id] = copy.deepcopy(alert)
        return alert


class PostgresAlertStore(DocumentRepository[CrisisAlert], AlertStore):
    """Crisis alerts as versioned JSONB documents."""

    def __init__(
        self,
        connection_manager: ConnectionManager,
        table_name: str = "crisis_alerts",
    ):
        super().__init__(connection_manager, table_name)

    def _entity_id(self, entity: CrisisAlert) -> str:
        return entity.alert_id

    def _to_document(self, entity: CrisisAlert) -> Dict[str, Any]:
        return entity.to_document()

    def _from_document(self, document: Dict[str, Any], version: int) -> CrisisAlert:
        return CrisisAlert.from_document(document, version)

    def _index_columns(self, entity: CrisisAlert) -> Dict[str, Any]:
        return {
            "psychologist_id": entity.psychologist_id,
            "severity": entity.severity.value,
            "status": entity.status.value,
            "created_at": entity.created_at,
        }

    async def create(self, alert: CrisisAlert) -> CrisisAlert:
        return await self.insert(alert)

    async def get(self, alert_id: str) -> Optional[CrisisAlert]:
        return await self.find_by_id(alert_id)

    async def list_by_recipient(
        self,
        psychologist_id: str,
        severity: Optional[AlertSeverity] = None,
        status: Optional[AlertStatus] = None,
        limit: Optional[int] = None,
    ) -> List[CrisisAlert]:
        clauses = ["psychologist_id = %s"]
        params: List[Any] = [psychologist_id]
        if severity is not None:
            clauses.append("severity = %s")
            params.append(severity.value)
        if status is not None:
            clauses.append("status = %s")
            params.append(status.value)

        return await self.find_where(
            " AND ".join(clauses),
            params,
            order_by="created_at DESC",
            limit=limit,
        )

    async def count_pending(self, psychologist_id: str) -> int:
        return await self.count_where(
            "psychologist_id = %s AND status = %s",
            (psychologist_id, AlertStatus.PENDING.value),
        )

    async def update(self, alert: CrisisAlert) -> CrisisAlert:
        try:
            return await self.replace(alert)
        except NotFoundError as e:
            raise AlertNotFoundError(str(e)) from e
