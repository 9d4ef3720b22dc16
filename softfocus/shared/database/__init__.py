"""Database connection management for the SoftFocus stores.

Provides connection pooling, health checks, and the JSONB document
repository base used by the PostgreSQL store implementations.
"""

from softfocus.shared.errors import (
    ConcurrentUpdateError,
    DuplicateError,
    NotFoundError,
    RepositoryError,
    StoreUnavailableError,
)
from .connection import (
    DatabaseConfig,
    ConnectionManager,
    get_connection_manager,
)
from .repository import DocumentRepository

__all__ = [
    "DatabaseConfig",
    "ConnectionManager",
    "get_connection_manager",
    "DocumentRepository",
    "RepositoryError",
    "NotFoundError",
    "DuplicateError",
    "StoreUnavailableError",
    "ConcurrentUpdateError",
]
