"""Connection backends that open the physical sessions held by the registry."""

from __future__ import annotations

import logging
import socket
import ssl
from typing import Any, Callable, Mapping, Protocol, Sequence, runtime_checkable

import asyncpg

from .errors import (
    AuthenticationError,
    ConnectionBackendError,
    ConnectionLostError,
    ConnectRefusedError,
    ConnectTimeoutError,
    QueryExecutionError,
    TLSNegotiationError,
)
from .models import ConnectionProfile

LOG = logging.getLogger(__name__)

Row = Mapping[str, Any]


@runtime_checkable
class BackendConnection(Protocol):
    """One physical connection as seen by the registry."""

    async def fetch(self, sql: str, *params: object) -> Sequence[Row]:
        """Run a row-returning statement."""

    async def execute(self, sql: str, *params: object) -> str:
        """Run a statement and return the server's status tag."""

    async def close(self) -> None:
        """Close the connection."""

    def is_closed(self) -> bool:
        """Whether the connection has been closed."""

    def add_lost_listener(self, callback: Callable[[], None]) -> None:
        """Call ``callback`` once if the server side drops the connection."""


@runtime_checkable
class ConnectionBackend(Protocol):
    """Protocol implemented by connection backends."""

    async def open(
        self,
        profile: ConnectionProfile,
        database: str,
        password: str | None,
        *,
        timeout: float,
    ) -> BackendConnection:
        """Open a physical connection or raise a ConnectionBackendError subclass."""


_AUTH_ERRORS: tuple[type[BaseException], ...] = (
    asyncpg.exceptions.InvalidPasswordError,
    asyncpg.exceptions.InvalidAuthorizationSpecificationError,
)

_LOST_ERRORS: tuple[type[BaseException], ...] = (
    asyncpg.exceptions.PostgresConnectionError,
    asyncpg.exceptions.AdminShutdownError,
    asyncpg.exceptions.CrashShutdownError,
    asyncpg.exceptions.ConnectionDoesNotExistError,
    ConnectionError,
)


class AsyncpgConnection:
    """BackendConnection wrapper translating asyncpg errors into pgbrowse errors."""

    def __init__(self, connection: asyncpg.Connection, *, close_timeout: float = 5.0) -> None:
        self._conn = connection
        self._close_timeout = close_timeout
        self._closing = False
        self._lost_listeners: list[Callable[[], None]] = []
        connection.add_termination_listener(self._on_terminated)

    async def fetch(self, sql: str, *params: object) -> Sequence[Row]:
        try:
            return await self._conn.fetch(sql, *params)
        except Exception as exc:
            raise self._translate(exc) from exc

    async def execute(self, sql: str, *params: object) -> str:
        try:
            return await self._conn.execute(sql, *params)
        except Exception as exc:
            raise self._translate(exc) from exc

    def add_lost_listener(self, callback: Callable[[], None]) -> None:
        self._lost_listeners.append(callback)

    async def close(self) -> None:
        self._closing = True
        try:
            await self._conn.close(timeout=self._close_timeout)
        except Exception:
            LOG.debug("Graceful close failed; terminating connection", exc_info=True)
            self._conn.terminate()

    def is_closed(self) -> bool:
        return self._conn.is_closed()

    def _translate(self, exc: Exception) -> Exception:
        # asyncpg reports a dropped socket as InterfaceError("connection is closed").
        if self._conn.is_closed():
            return ConnectionLostError(f"Connection lost: {exc}")
        return _translate_query_error(exc)

    def _on_terminated(self, _connection: asyncpg.Connection) -> None:
        if self._closing:
            return
        LOG.info("Server closed the connection")
        listeners, self._lost_listeners = self._lost_listeners, []
        for callback in listeners:
            callback()


class AsyncpgConnectionBackend:
    """Connection backend that opens PostgreSQL sessions via asyncpg."""

    def __init__(self, *, ssl_mode: str | ssl.SSLContext | None = None, close_timeout: float = 5.0) -> None:
        self._ssl = ssl_mode
        self._close_timeout = close_timeout

    async def open(
        self,
        profile: ConnectionProfile,
        database: str,
        password: str | None,
        *,
        timeout: float,
    ) -> AsyncpgConnection:
        kwargs = self._connect_kwargs(profile, database, password, timeout)
        try:
            conn = await asyncpg.connect(**kwargs)
        except Exception as exc:
            raise _translate_connect_error(profile, database, exc) from exc
        return AsyncpgConnection(conn, close_timeout=self._close_timeout)

    def _connect_kwargs(
        self,
        profile: ConnectionProfile,
        database: str,
        password: str | None,
        timeout: float,
    ) -> dict[str, object]:
        kwargs: dict[str, object] = {
            "host": profile.host or "localhost",
            "port": profile.port,
            "database": database,
            "timeout": timeout,
        }
        if profile.username:
            kwargs["user"] = profile.username
        if password is not None:
            kwargs["password"] = password
        if self._ssl is not None:
            kwargs["ssl"] = self._ssl
        return kwargs


def _translate_connect_error(profile: ConnectionProfile, database: str, exc: Exception) -> ConnectionBackendError:
    target = f"profile '{profile.name}' ({profile.host}:{profile.port}/{database})"
    # SSLError and TimeoutError are OSError subclasses; check them first.
    if isinstance(exc, ssl.SSLError):
        return TLSNegotiationError(f"TLS negotiation failed for {target}: {exc}")
    if isinstance(exc, TimeoutError):
        return ConnectTimeoutError(f"Timed out connecting to {target}.")
    if isinstance(exc, _AUTH_ERRORS):
        return AuthenticationError(f"Authentication failed for {target}: {exc}")
    if isinstance(exc, (ConnectionRefusedError, socket.gaierror, OSError)):
        return ConnectRefusedError(f"Could not connect to {target}: {exc}")
    return ConnectionBackendError(f"Failed to connect to {target}: {exc}")


def _translate_query_error(exc: Exception) -> Exception:
    if isinstance(exc, _LOST_ERRORS):
        return ConnectionLostError(f"Connection lost: {exc}")
    if isinstance(exc, asyncpg.PostgresError):
        return QueryExecutionError(str(exc), _error_position(exc))
    if isinstance(exc, OSError):
        return ConnectionLostError(f"Connection lost: {exc}")
    if isinstance(exc, asyncpg.InterfaceError):
        return QueryExecutionError(str(exc))
    return exc


def _error_position(exc: Exception) -> int | None:
    position = getattr(exc, "position", None)
    if position is None:
        return None
    try:
        return int(position)
    except (TypeError, ValueError):
        return None


DEMO_CATALOGS: Mapping[str, Mapping[str, Sequence[tuple[str, str]]]] = {
    "postgres": {
        "public.accounts": (("id", "integer"), ("email", "text"), ("last_login", "timestamp with time zone")),
        "public.orders": (("id", "integer"), ("account_id", "integer"), ("total", "numeric")),
        "public.payments": (("id", "integer"), ("order_id", "integer"), ("amount", "numeric")),
    },
    "analytics": {
        "analytics.sessions": (("id", "bigint"), ("user_id", "integer"), ("started_at", "timestamp"), ("device", "text")),
        "analytics.events": (("id", "bigint"), ("session_id", "bigint"), ("name", "text"), ("payload", "jsonb")),
    },
}


class DemoConnection:
    """In-memory connection answering the catalog queries from a preset."""

    def __init__(self, catalog: Mapping[str, Sequence[tuple[str, str]]]) -> None:
        self._catalog = catalog
        self._closed = False
        self._lost_listeners: list[Callable[[], None]] = []
        self.statements: list[str] = []

    async def fetch(self, sql: str, *params: object) -> Sequence[Row]:
        self._ensure_open()
        self.statements.append(sql)
        lowered = sql.lower()
        if "pg_tables" in lowered:
            return [
                {"schema": name.split(".", 1)[0], "table_name": name.split(".", 1)[1]}
                for name in sorted(self._catalog)
            ]
        if "information_schema.columns" in lowered:
            rows: list[Row] = []
            for name in sorted(self._catalog):
                schema, table = name.split(".", 1)
                for column, data_type in self._catalog[name]:
                    rows.append(
                        {"schema": schema, "table_name": table, "column_name": column, "data_type": data_type}
                    )
            return rows
        if lowered.strip().rstrip(";") == "select 1":
            return [{"?column?": 1}]
        return []

    async def execute(self, sql: str, *params: object) -> str:
        self._ensure_open()
        self.statements.append(sql)
        head = sql.strip().split(None, 1)
        return head[0].upper() if head else ""

    async def close(self) -> None:
        self._closed = True

    def is_closed(self) -> bool:
        return self._closed

    def add_lost_listener(self, callback: Callable[[], None]) -> None:
        self._lost_listeners.append(callback)

    def terminate(self) -> None:
        """Simulate the server dropping the connection."""

        self._closed = True
        listeners, self._lost_listeners = self._lost_listeners, []
        for callback in listeners:
            callback()

    def _ensure_open(self) -> None:
        if self._closed:
            raise ConnectionLostError("Demo connection is closed.")


class DemoConnectionBackend:
    """Stub backend serving preset catalogs keyed by database name."""

    def __init__(self, catalogs: Mapping[str, Mapping[str, Sequence[tuple[str, str]]]] | None = None) -> None:
        self._catalogs = catalogs or DEMO_CATALOGS
        self.opened: list[tuple[str, str]] = []

    async def open(
        self,
        profile: ConnectionProfile,
        database: str,
        password: str | None,
        *,
        timeout: float,
    ) -> DemoConnection:
        self.opened.append((profile.id, database))
        return DemoConnection(self._catalogs.get(database, {}))


__all__ = [
    "AsyncpgConnection",
    "AsyncpgConnectionBackend",
    "BackendConnection",
    "ConnectionBackend",
    "DEMO_CATALOGS",
    "DemoConnection",
    "DemoConnectionBackend",
    "Row",
]
