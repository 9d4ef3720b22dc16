"""Document repository base on PostgreSQL JSONB.

Every aggregate lives in its own table shaped as:

    id        TEXT PRIMARY KEY
    version   INTEGER NOT NULL
    doc       JSONB NOT NULL
    <index columns used by the store's queries>

Writes are whole-document overwrites. replace() is conditional on the
version that was read, so two writers racing on the same row cannot both
win silently. Blocking psycopg2 calls run in a worker thread so the store
contracts stay async.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Callable, Dict, Generic, List, Optional, Sequence, TypeVar

import psycopg2
from psycopg2 import errors as pg_errors
from psycopg2.extras import Json

from softfocus.shared.errors import (
    ConcurrentUpdateError,
    DuplicateError,
    NotFoundError,
    StoreUnavailableError,
)
from .connection import ConnectionManager

logger = logging.getLogger(__name__)

T = TypeVar('T')


class DocumentRepository(ABC, Generic[T]):
    """Abstract base repository for versioned JSONB documents.

    Subclasses implement entity <-> document conversion and inherit:
    - Thread offloading of psycopg2 calls
    - Mapping of driver errors to StoreUnavailableError
    - Optimistic concurrency on replace()
    """

    def __init__(
        self,
        connection_manager: ConnectionManager,
        table_name: str,
    ):
        """Initialize repository.

        Args:
            connection_manager: Database connection manager
            table_name: Name of the database table
        """
        self.connection_manager = connection_manager
        self.table_name = table_name

        logger.info(
            "REPOSITORY_INITIALIZED",
            extra={"table_name": table_name}
        )

    @abstractmethod
    def _entity_id(self, entity: T) -> str:
        pass

    @abstractmethod
    def _to_document(self, entity: T) -> Dict[str, Any]:
        """Convert entity to a JSON-serializable document."""
        pass

    @abstractmethod
    def _from_document(self, document: Dict[str, Any], version: int) -> T:
        """Rebuild an entity from its stored document and version."""
        pass

    def _index_columns(self, entity: T) -> Dict[str, Any]:
        """Extra columns written alongside the document for querying."""
        return {}

    @contextmanager
    def _transaction(self):
        """Borrow a connection; commit on success, roll back on any error.

        A failed statement never goes back to the pool with its
        transaction still aborted.
        """
        with self.connection_manager.get_connection() as conn:
            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise

    async def _run(self, operation: str, fn: Callable[[], Any]) -> Any:
        try:
            return await asyncio.to_thread(fn)
        except psycopg2.Error as e:
            logger.error(
                "REPOSITORY_OPERATION_FAILED",
                extra={
                    "table_name": self.table_name,
                    "operation": operation,
                    "error": str(e),
                    "error_type": type(e).__name__,
                }
            )
            raise StoreUnavailableError(
                f"{self.table_name}.{operation} failed: {e}"
            ) from e

    async def insert(self, entity: T) -> T:
        """Insert a new document.

        Raises:
            DuplicateError: If the id already exists
            StoreUnavailableError: On any database failure
        """
        columns = {
            "id": self._entity_id(entity),
            "version": getattr(entity, "version", 0),
            "doc": Json(self._to_document(entity)),
        }
        columns.update(self._index_columns(entity))
        names = list(columns.keys())
        placeholders = ", ".join(["%s"] * len(names))
        query = (
            f"INSERT INTO {self.table_name} ({', '.join(names)}) "
            f"VALUES ({placeholders})"
        )

        def _insert():
            try:
                with self._transaction() as conn:
                    with conn.cursor() as cur:
                        cur.execute(query, list(columns.values()))
            except pg_errors.UniqueViolation:
                return False
            return True

        if not await self._run("insert", _insert):
            raise DuplicateError(
                f"{self.table_name} already has id {self._entity_id(entity)}"
            )
        return entity

    async def find_by_id(self, entity_id: str) -> Optional[T]:
        """Find entity by id; None when no such row exists."""
        rows = await self.find_where("id = %s", (entity_id,), limit=1)
        return rows[0] if rows else None

    async def find_where(
        self,
        where: str,
        params: Sequence[Any],
        order_by: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[T]:
        """Find entities matching a SQL predicate over the index columns."""
        query = f"SELECT doc, version FROM {self.table_name} WHERE {where}"
        query_params = list(params)
        if order_by:
            query += f" ORDER BY {order_by}"
        if limit is not None:
            query += " LIMIT %s OFFSET %s"
            query_params.extend([limit, offset])

        def _select():
            with self._transaction() as conn:
                with conn.cursor() as cur:
                    cur.execute(query, query_params)
                    return cur.fetchall()

        rows = await self._run("select", _select)
        return [self._from_document(doc, version) for doc, version in rows]

    async def count_where(self, where: str, params: Sequence[Any]) -> int:
        query = f"SELECT COUNT(*) FROM {self.table_name} WHERE {where}"

        def _count():
            with self._transaction() as conn:
                with conn.cursor() as cur:
                    cur.execute(query, list(params))
                    row = cur.fetchone()
                    return row[0] if row else 0

        return await self._run("count", _count)

    async def replace(self, entity: T) -> T:
        """Overwrite a document, conditional on the version that was read.

        The entity's version is incremented on success.

        Raises:
            NotFoundError: If the id does not exist
            ConcurrentUpdateError: If another writer updated the row first
        """
        entity_id = self._entity_id(entity)
        expected_version = getattr(entity, "version", 0)
        columns = {
            "version": expected_version + 1,
            "doc": Json(self._to_document(entity)),
        }
        columns.update(self._index_columns(entity))
        assignments = ", ".join(f"{name} = %s" for name in columns)
        query = (
            f"UPDATE {self.table_name} SET {assignments} "
            f"WHERE id = %s AND version = %s"
        )
        params = list(columns.values()) + [entity_id, expected_version]

        def _update():
            with self._transaction() as conn:
                with conn.cursor() as cur:
                    cur.execute(query, params)
                    updated = cur.rowcount
                    exists = True
                    if updated == 0:
                        cur.execute(
                            f"SELECT 1 FROM {self.table_name} WHERE id = %s",
                            (entity_id,)
                        )
                        exists = cur.fetchone() is not None
            return updated, exists

        updated, exists = await self._run("replace", _update)
        if updated == 0:
            if not exists:
                raise NotFoundError(f"{self.table_name} has no id {entity_id}")
            logger.warning(
                "REPOSITORY_CONCURRENT_UPDATE",
                extra={
                    "table_name": self.table_name,
                    "entity_id": entity_id,
                    "expected_version": expected_version,
                }
            )
            raise ConcurrentUpdateError(
                f"{self.table_name} id {entity_id} changed since version {expected_version}"
            )

        entity.version = expected_version + 1
        return entity

    async def insert_or_replace(self, entity: T, conflict_columns: Sequence[str]) -> T:
        """Insert or overwrite keyed on a unique constraint.

        Used where the natural key is enforced by the table rather than by
        a read-then-write check in application code.
        """
        columns = {
            "id": self._entity_id(entity),
            "version": getattr(entity, "version", 0) + 1,
            "doc": Json(self._to_document(entity)),
        }
        columns.update(self._index_columns(entity))
        names = list(columns.keys())
        placeholders = ", ".join(["%s"] * len(names))
        update_clause = ", ".join(
            f"{name} = EXCLUDED.{name}" for name in names
            if name not in ("id", "version") and name not in conflict_columns
        )
        update_clause += f", version = {self.table_name}.version + 1"
        query = (
            f"INSERT INTO {self.table_name} ({', '.join(names)}) "
            f"VALUES ({placeholders}) "
            f"ON CONFLICT ({', '.join(conflict_columns)}) DO UPDATE SET {update_clause} "
            f"RETURNING version"
        )

        def _upsert():
            with self._transaction() as conn:
                with conn.cursor() as cur:
                    cur.execute(query, list(columns.values()))
                    row = cur.fetchone()
            return row[0] if row else columns["version"]

        entity.version = await self._run("insert_or_replace", _upsert)
        return entity
