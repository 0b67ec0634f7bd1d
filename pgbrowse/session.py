"""Session registry: one shared live connection per (profile, database)."""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Mapping, Sequence, TypeVar

from .connections import BackendConnection, ConnectionBackend
from .credentials import CredentialResolver
from .errors import (
    ConnectionLostError,
    ConnectTimeoutError,
    OperationCancelledError,
    RegistryClosedError,
)
from .models import DEFAULT_DATABASE, ConnectionProfile, SessionKey, SessionStatus

LOG = logging.getLogger(__name__)

DEFAULT_CONNECT_TIMEOUT = 10.0

T = TypeVar("T")
SessionListener = Callable[["Session", SessionStatus], None]


class Session:
    """One physical connection shared by reference between callers.

    Consumers never close a session; only the registry's ``disconnect`` and
    ``shutdown`` do. Driver calls are serialized on a per-session lock since
    a PostgreSQL connection runs one operation at a time.
    """

    _ids = itertools.count(1)

    def __init__(self, key: SessionKey, *, clock: Callable[[], float] = time.monotonic) -> None:
        self.id = next(Session._ids)
        self.key = key
        self._clock = clock
        self._status = SessionStatus.CONNECTING
        self._connection: BackendConnection | None = None
        self._lock = asyncio.Lock()
        self._in_flight = 0
        self.created_at = clock()
        self.last_used = self.created_at

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def in_flight(self) -> int:
        """Queries queued or running against this session."""

        return self._in_flight

    @property
    def is_ready(self) -> bool:
        return self._status is SessionStatus.READY

    def touch(self) -> None:
        self.last_used = self._clock()

    def __repr__(self) -> str:
        return f"<Session #{self.id} {self.key} {self._status.value} in_flight={self._in_flight}>"


class SessionRegistry:
    """Owns every live session, keyed by ``SessionKey``.

    Concurrent ``acquire`` calls for a key without a ready session share one
    creation task (single-flight). The registry never retries: failures go
    to the callers, and a cache miss on the next ``acquire`` starts over.
    """

    def __init__(
        self,
        backend: ConnectionBackend,
        credentials: CredentialResolver,
        *,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        default_database: str = DEFAULT_DATABASE,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._backend = backend
        self._credentials = credentials
        self._connect_timeout = connect_timeout
        self._default_database = default_database
        self._clock = clock
        self._sessions: dict[SessionKey, Session] = {}
        self._pending: dict[SessionKey, asyncio.Task[Session]] = {}
        self._listeners: set[SessionListener] = set()
        self._background: set[asyncio.Task[Any]] = set()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def key_for(self, profile: ConnectionProfile, database: str | None = None) -> SessionKey:
        return profile.key_for(database, default=self._default_database)

    def get(self, key: SessionKey) -> Session | None:
        """Return the cached session for the key without creating one."""

        return self._sessions.get(key)

    def sessions(self) -> tuple[Session, ...]:
        return tuple(self._sessions.values())

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Subscribe to session status transitions; returns an unsubscribe handle."""

        self._listeners.add(listener)

        def _unsubscribe() -> None:
            self._listeners.discard(listener)

        return _unsubscribe

    async def acquire(
        self,
        profile: ConnectionProfile,
        database: str | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> Session:
        """Return the shared session for the profile/database, creating it if needed."""

        self._ensure_open()
        key = self.key_for(profile, database)
        session = self._sessions.get(key)
        if session is not None:
            if session.is_ready:
                session.touch()
                return session
            self._evict(session)
        task = self._pending.get(key)
        if task is None:
            task = asyncio.get_running_loop().create_task(
                self._create(profile, key), name=f"pgbrowse-connect-{key}"
            )
            task.add_done_callback(_retrieve_exception)
            self._pending[key] = task
        try:
            session = await _wait(task, cancel)
        except asyncio.CancelledError:
            if task.cancelled() and self._closed and not _caller_cancelling():
                raise RegistryClosedError("Session registry is shut down.") from None
            raise
        session.touch()
        return session

    async def query(
        self,
        session: Session,
        sql: str,
        *params: object,
        cancel: asyncio.Event | None = None,
    ) -> list[Mapping[str, Any]]:
        """Run a row-returning statement on the shared session."""

        rows = await self._run(session, "fetch", sql, params, cancel)
        return list(rows)

    async def execute(
        self,
        session: Session,
        sql: str,
        *params: object,
        cancel: asyncio.Event | None = None,
    ) -> str:
        """Run a statement on the shared session and return its status tag."""

        return await self._run(session, "execute", sql, params, cancel)

    async def disconnect(self, profile_id: str, database: str | None = None) -> None:
        """Close and drop the profile's sessions, regardless of in-flight queries."""

        def _matches(key: SessionKey) -> bool:
            return key.profile_id == profile_id and (database is None or key.database == database)

        # A pending creation is detached; it closes its connection when it lands.
        for key in [key for key in self._pending if _matches(key)]:
            del self._pending[key]
        sessions = [self._sessions.pop(key) for key in list(self._sessions) if _matches(key)]
        for session in sessions:
            LOG.info("Disconnecting session", extra={"session_key": str(session.key), "in_flight": session.in_flight})
            await self._close_session(session)

    async def shutdown(self) -> None:
        """Close every session; later acquires fail with RegistryClosedError."""

        if self._closed:
            return
        self._closed = True
        pending = list(self._pending.values())
        self._pending.clear()
        for task in pending:
            task.cancel()
        sessions = list(self._sessions.values())
        self._sessions.clear()
        await asyncio.gather(*(self._close_session(session) for session in sessions))
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        if self._background:
            await asyncio.gather(*tuple(self._background), return_exceptions=True)
        LOG.info("Session registry shut down", extra={"closed_sessions": len(sessions)})

    @asynccontextmanager
    async def dedicated(
        self,
        profile: ConnectionProfile,
        database: str | None = None,
    ) -> AsyncIterator[Session]:
        """Yield a private session that is never shared nor cached.

        Use it for work that keeps session state open across awaits, such as
        explicit transactions.
        """

        self._ensure_open()
        key = self.key_for(profile, database)
        session = Session(key, clock=self._clock)
        password = await self._credentials.resolve(profile.id)
        session._connection = await self._open(profile, key.database, password)
        self._set_status(session, SessionStatus.READY)
        try:
            yield session
        finally:
            await self._close_session(session)

    async def check_connection(self, profile: ConnectionProfile, database: str | None = None) -> int:
        """Open a throwaway connection, run ``SELECT 1`` and return the latency in ms."""

        started = time.perf_counter()
        async with self.dedicated(profile, database) as session:
            await self.query(session, "SELECT 1")
        return int((time.perf_counter() - started) * 1000)

    async def _create(self, profile: ConnectionProfile, key: SessionKey) -> Session:
        current = asyncio.current_task()
        session = Session(key, clock=self._clock)
        self._set_status(session, SessionStatus.CONNECTING)
        try:
            try:
                password = await self._credentials.resolve(profile.id)
                connection = await self._open(profile, key.database, password)
            except Exception as exc:
                LOG.warning(
                    "Failed to open session",
                    extra={"session_key": str(key), "error": type(exc).__name__},
                )
                self._set_status(session, SessionStatus.CLOSED)
                raise
            except asyncio.CancelledError:
                self._set_status(session, SessionStatus.CLOSED)
                raise
            if self._pending.get(key) is not current:
                await _close_quietly(connection)
                self._set_status(session, SessionStatus.CLOSED)
                if self._closed:
                    raise RegistryClosedError("Session registry is shut down.")
                raise ConnectionLostError(f"Session {key} was disconnected while connecting.")
            session._connection = connection
            connection.add_lost_listener(lambda: self._mark_broken(session))
            self._sessions[key] = session
            self._set_status(session, SessionStatus.READY)
            LOG.debug("Session ready", extra={"session_key": str(key), "session_id": session.id})
            return session
        finally:
            if self._pending.get(key) is current:
                del self._pending[key]

    async def _open(self, profile: ConnectionProfile, database: str, password: str | None) -> BackendConnection:
        try:
            return await asyncio.wait_for(
                self._backend.open(profile, database, password, timeout=self._connect_timeout),
                self._connect_timeout,
            )
        except TimeoutError as exc:
            raise ConnectTimeoutError(
                f"Timed out after {self._connect_timeout:g}s connecting to '{profile.name}' ({database})."
            ) from exc

    async def _run(
        self,
        session: Session,
        method: str,
        sql: str,
        params: Sequence[object],
        cancel: asyncio.Event | None,
    ) -> Any:
        if not session.is_ready:
            raise ConnectionLostError(f"Session {session.key} is {session.status.value}.")
        # The driver call outlives a cancelled caller so the session never
        # sees a half-abandoned operation.
        task = asyncio.get_running_loop().create_task(self._call(session, method, sql, params))
        task.add_done_callback(_retrieve_exception)
        return await _wait(task, cancel)

    async def _call(self, session: Session, method: str, sql: str, params: Sequence[object]) -> Any:
        session._in_flight += 1
        try:
            async with session._lock:
                connection = session._connection
                if not session.is_ready or connection is None:
                    raise ConnectionLostError(f"Session {session.key} is {session.status.value}.")
                try:
                    return await getattr(connection, method)(sql, *params)
                except ConnectionLostError:
                    self._mark_broken(session)
                    raise
        finally:
            session._in_flight -= 1
            session.touch()

    def _mark_broken(self, session: Session) -> None:
        if not session.is_ready:
            return
        LOG.warning("Session broken; evicting", extra={"session_key": str(session.key), "session_id": session.id})
        self._set_status(session, SessionStatus.BROKEN)
        self._evict(session)
        connection = session._connection
        if connection is not None:
            task = asyncio.get_running_loop().create_task(_close_quietly(connection))
            self._background.add(task)
            task.add_done_callback(self._background.discard)

    def _evict(self, session: Session) -> None:
        if self._sessions.get(session.key) is session:
            del self._sessions[session.key]

    async def _close_session(self, session: Session) -> None:
        if session.status is SessionStatus.CLOSED:
            return
        self._set_status(session, SessionStatus.CLOSED)
        if session._connection is not None:
            await _close_quietly(session._connection)

    def _set_status(self, session: Session, status: SessionStatus) -> None:
        session._status = status
        for listener in tuple(self._listeners):
            listener(session, status)

    def _ensure_open(self) -> None:
        if self._closed:
            raise RegistryClosedError("Session registry is shut down.")


async def _wait(task: Awaitable[T], cancel: asyncio.Event | None) -> T:
    """Wait for a shared task without letting this caller's cancellation reach it."""

    if cancel is None:
        return await asyncio.shield(task)
    if cancel.is_set():
        raise OperationCancelledError("Operation cancelled by caller.")
    future = asyncio.ensure_future(task)
    waiter = asyncio.ensure_future(cancel.wait())
    try:
        done, _ = await asyncio.wait({future, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        waiter.cancel()
    if future in done:
        return future.result()
    raise OperationCancelledError("Operation cancelled by caller.")


def _caller_cancelling() -> bool:
    task = asyncio.current_task()
    return task is not None and task.cancelling() > 0


def _retrieve_exception(task: asyncio.Task[Any]) -> None:
    # Every waiter may have walked away; mark the outcome as seen.
    if not task.cancelled():
        task.exception()


async def _close_quietly(connection: BackendConnection) -> None:
    try:
        await connection.close()
    except Exception:  # pragma: no cover - best effort cleanup
        LOG.debug("Error while closing connection", exc_info=True)


__all__ = [
    "DEFAULT_CONNECT_TIMEOUT",
    "Session",
    "SessionListener",
    "SessionRegistry",
]
