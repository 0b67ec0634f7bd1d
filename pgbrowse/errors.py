"""Error taxonomy shared by the registry, metadata cache and query facade."""

from __future__ import annotations


class PgBrowseError(RuntimeError):
    """Base class for every error raised by pgbrowse."""


class ConnectionBackendError(PgBrowseError):
    """Raised when the backend cannot open or keep a connection."""


class ConnectRefusedError(ConnectionBackendError):
    """The server refused the connection or could not be reached."""


class AuthenticationError(ConnectionBackendError):
    """The server rejected the supplied credentials."""


class ConnectTimeoutError(ConnectionBackendError):
    """Opening the connection took longer than the configured timeout."""


class TLSNegotiationError(ConnectionBackendError):
    """The TLS handshake with the server failed."""


class ConnectionLostError(ConnectionBackendError):
    """An established connection failed mid-session."""


class CredentialNotFoundError(PgBrowseError):
    """No password is stored for the requested profile."""

    def __init__(self, profile_id: str) -> None:
        super().__init__(f"No credential stored for profile '{profile_id}'.")
        self.profile_id = profile_id


class QueryExecutionError(PgBrowseError):
    """Raised when a query fails to execute (SQL syntax or semantic error)."""

    def __init__(self, message: str, position: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.position = position


class SharedTransactionError(QueryExecutionError):
    """Transaction control was attempted on a shared session."""


class OperationCancelledError(PgBrowseError):
    """The caller cancelled while waiting for a session or query."""


class RegistryClosedError(PgBrowseError):
    """The session registry has been shut down."""


__all__ = [
    "AuthenticationError",
    "ConnectRefusedError",
    "ConnectTimeoutError",
    "ConnectionBackendError",
    "ConnectionLostError",
    "CredentialNotFoundError",
    "OperationCancelledError",
    "PgBrowseError",
    "QueryExecutionError",
    "RegistryClosedError",
    "SharedTransactionError",
    "TLSNegotiationError",
]
