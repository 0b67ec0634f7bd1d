"""Session registry, metadata cache and completion ranking for PostgreSQL browsing."""

from __future__ import annotations

from .config import AppConfig, ConnectionProfileConfig, load_config, save_config
from .context import AppContext
from .errors import (
    AuthenticationError,
    ConnectionBackendError,
    ConnectionLostError,
    ConnectRefusedError,
    ConnectTimeoutError,
    CredentialNotFoundError,
    OperationCancelledError,
    PgBrowseError,
    QueryExecutionError,
    RegistryClosedError,
    SharedTransactionError,
    TLSNegotiationError,
)
from .logconfig import configure_logging
from .models import ColumnInfo, ConnectionProfile, MetadataSnapshot, SessionKey, SessionStatus, TableInfo
from .query import QueryResult, QueryService
from .session import Session, SessionRegistry

__version__ = "0.1.0"

__all__ = [
    "AppConfig",
    "AppContext",
    "AuthenticationError",
    "ColumnInfo",
    "ConnectRefusedError",
    "ConnectTimeoutError",
    "ConnectionBackendError",
    "ConnectionLostError",
    "ConnectionProfile",
    "ConnectionProfileConfig",
    "CredentialNotFoundError",
    "MetadataSnapshot",
    "OperationCancelledError",
    "PgBrowseError",
    "QueryExecutionError",
    "QueryResult",
    "QueryService",
    "RegistryClosedError",
    "Session",
    "SessionKey",
    "SessionRegistry",
    "SessionStatus",
    "SharedTransactionError",
    "TLSNegotiationError",
    "TableInfo",
    "__version__",
    "configure_logging",
    "load_config",
    "save_config",
]
