"""Fakes shared by the registry, metadata and query tests."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Mapping, Sequence

import pytest

from pgbrowse.credentials import InMemoryCredentialStore
from pgbrowse.models import ConnectionProfile
from pgbrowse.session import SessionRegistry


class FakeConnection:
    """BackendConnection double with scripted responses and failures."""

    def __init__(self, responses: Mapping[str, Sequence[Mapping[str, Any]]] | None = None) -> None:
        self.responses = dict(responses or {})
        self.calls: list[str] = []
        self.closed = False
        self.fail_with: Exception | None = None
        self.fail_on: dict[str, Exception] = {}
        self.gate: asyncio.Event | None = None
        self.lost_listeners: list[Callable[[], None]] = []

    async def fetch(self, sql: str, *params: object) -> Sequence[Mapping[str, Any]]:
        await self._before(sql)
        for needle, rows in self.responses.items():
            if needle in sql:
                return rows
        return []

    async def execute(self, sql: str, *params: object) -> str:
        await self._before(sql)
        return sql.split(None, 1)[0].upper()

    async def close(self) -> None:
        self.closed = True

    def is_closed(self) -> bool:
        return self.closed

    def add_lost_listener(self, callback: Callable[[], None]) -> None:
        self.lost_listeners.append(callback)

    def drop(self) -> None:
        self.closed = True
        for callback in self.lost_listeners:
            callback()

    async def _before(self, sql: str) -> None:
        self.calls.append(sql)
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_with is not None:
            raise self.fail_with
        for needle, error in self.fail_on.items():
            if sql.startswith(needle):
                raise error


class FakeBackend:
    """ConnectionBackend double counting physical connection attempts."""

    def __init__(self, responses: Mapping[str, Sequence[Mapping[str, Any]]] | None = None) -> None:
        self.responses = dict(responses or {})
        self.open_calls: list[tuple[str, str, str | None]] = []
        self.connections: list[FakeConnection] = []
        self.error: Exception | None = None
        self.gate: asyncio.Event | None = None
        self.fail_on: dict[str, Exception] = {}

    async def open(
        self,
        profile: ConnectionProfile,
        database: str,
        password: str | None,
        *,
        timeout: float,
    ) -> FakeConnection:
        self.open_calls.append((profile.id, database, password))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        connection = FakeConnection(self.responses)
        connection.fail_on = dict(self.fail_on)
        self.connections.append(connection)
        return connection


class CountingCredentialStore(InMemoryCredentialStore):
    def __init__(self, secrets: Mapping[str, str] | None = None) -> None:
        super().__init__(secrets)
        self.resolved: list[str] = []

    async def resolve(self, profile_id: str) -> str:
        self.resolved.append(profile_id)
        return await super().resolve(profile_id)


@pytest.fixture
def profile() -> ConnectionProfile:
    return ConnectionProfile(id="p1", name="Local", host="localhost", port=5432, username="postgres", database="app")


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def credentials() -> CountingCredentialStore:
    return CountingCredentialStore({"p1": "secret", "p2": "other"})


@pytest.fixture
def registry(backend: FakeBackend, credentials: CountingCredentialStore) -> SessionRegistry:
    return SessionRegistry(backend, credentials, connect_timeout=1.0)
