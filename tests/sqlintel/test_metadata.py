"""Tests for the TTL-bounded metadata cache."""

from __future__ import annotations

import asyncio

import pytest

from pgbrowse.errors import ConnectRefusedError, ConnectionLostError
from pgbrowse.models import SessionKey
from pgbrowse.session import SessionRegistry
from pgbrowse.sqlintel import MetadataCache

TABLE_ROWS = [
    {"schema": "public", "table_name": "orders"},
    {"schema": "public", "table_name": "users"},
]
COLUMN_ROWS = [
    {"schema": "public", "table_name": "orders", "column_name": "id", "data_type": "integer"},
    {"schema": "public", "table_name": "orders", "column_name": "total", "data_type": "numeric"},
    {"schema": "public", "table_name": "users", "column_name": "id", "data_type": "integer"},
]


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


class _Clock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> _Clock:
    return _Clock()


@pytest.fixture
def catalog_backend(backend):
    backend.responses = {"pg_tables": TABLE_ROWS, "information_schema.columns": COLUMN_ROWS}
    return backend


@pytest.fixture
def cache(catalog_backend, credentials, clock) -> MetadataCache:
    registry = SessionRegistry(catalog_backend, credentials, clock=clock)
    return MetadataCache(registry, ttl=60.0, clock=clock)


def _catalog_queries(backend) -> int:
    return sum(len(connection.calls) for connection in backend.connections)


@pytest.mark.anyio
async def test_get_builds_snapshot_from_catalog_queries(cache, catalog_backend, profile) -> None:
    snapshot = await cache.get(profile, "app")

    assert snapshot.key == SessionKey("p1", "app")
    assert [table.table for table in snapshot.tables] == ["orders", "users"]
    assert [column.column for column in snapshot.columns_for("orders")] == ["id", "total"]
    assert snapshot.fetched_at == 0.0
    assert snapshot.as_dict()["columns"][1] == {
        "schema": "public",
        "table": "orders",
        "column": "total",
        "type": "numeric",
    }
    calls = catalog_backend.connections[0].calls
    assert len(calls) == 2
    assert "pg_tables" in calls[0]
    assert "information_schema.columns" in calls[1]


@pytest.mark.anyio
async def test_snapshot_is_reused_within_ttl_and_refreshed_after(cache, catalog_backend, clock, profile) -> None:
    first = await cache.get(profile, "app")

    clock.now = 30.0
    assert await cache.get(profile, "app") is first
    assert _catalog_queries(catalog_backend) == 2

    clock.now = 65.0
    refreshed = await cache.get(profile, "app")
    assert refreshed is not first
    assert refreshed.fetched_at == 65.0
    assert _catalog_queries(catalog_backend) == 4


@pytest.mark.anyio
async def test_concurrent_gets_share_one_refresh(cache, catalog_backend, profile) -> None:
    catalog_backend.gate = asyncio.Event()
    readers = [asyncio.create_task(cache.get(profile, "app")) for _ in range(4)]
    await asyncio.sleep(0)
    catalog_backend.gate.set()

    snapshots = await asyncio.gather(*readers)

    assert all(snapshot is snapshots[0] for snapshot in snapshots)
    assert len(catalog_backend.open_calls) == 1
    assert _catalog_queries(catalog_backend) == 2


@pytest.mark.anyio
async def test_failed_refresh_serves_previous_snapshot(cache, catalog_backend, clock, profile) -> None:
    first = await cache.get(profile, "app")
    catalog_backend.connections[0].fail_with = ConnectionLostError("server closed the connection")
    catalog_backend.error = ConnectRefusedError("connection refused")

    clock.now = 120.0
    assert await cache.get(profile, "app") is first
    assert await cache.get(profile, "app") is first


@pytest.mark.anyio
async def test_failed_first_refresh_propagates(cache, catalog_backend, profile) -> None:
    catalog_backend.error = ConnectRefusedError("connection refused")

    with pytest.raises(ConnectRefusedError):
        await cache.get(profile, "app")

    assert cache.peek(SessionKey("p1", "app")) is None


@pytest.mark.anyio
async def test_invalidate_forces_refresh_within_ttl(cache, catalog_backend, clock, profile) -> None:
    first = await cache.get(profile, "app")
    key = cache.key_for(profile, "app")

    clock.now = 5.0
    cache.invalidate(key)
    second = await cache.get(profile, "app")

    assert second is not first
    assert _catalog_queries(catalog_backend) == 4
    clock.now = 10.0
    assert await cache.get(profile, "app") is second


@pytest.mark.anyio
async def test_invalidation_during_refresh_keeps_key_stale(cache, catalog_backend, profile) -> None:
    catalog_backend.gate = asyncio.Event()
    reader = asyncio.create_task(cache.get(profile, "app"))
    await asyncio.sleep(0)
    await asyncio.sleep(0)

    cache.invalidate(cache.key_for(profile, "app"))
    catalog_backend.gate.set()
    first = await reader

    second = await cache.get(profile, "app")
    assert second is not first


@pytest.mark.anyio
async def test_invalidate_profile_and_discard_profile(cache, profile) -> None:
    await cache.get(profile, "app")
    await cache.get(profile, "reports")
    app_key = cache.key_for(profile, "app")

    cache.invalidate_profile(profile.id)
    assert await cache.get(profile, "app") is not None

    cache.discard_profile(profile.id)
    assert cache.peek(app_key) is None
    assert cache.peek(cache.key_for(profile, "reports")) is None
