"""TTL-bounded catalog snapshots feeding identifier suggestions."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Mapping, Sequence

from ..errors import PgBrowseError
from ..models import ColumnInfo, ConnectionProfile, MetadataSnapshot, SessionKey, TableInfo
from ..session import SessionRegistry

LOG = logging.getLogger(__name__)

DEFAULT_TTL = 60.0

TABLES_QUERY = """
    SELECT schemaname AS schema, tablename AS table_name
    FROM pg_tables
    WHERE schemaname NOT IN ('pg_catalog', 'information_schema')
    ORDER BY schemaname, tablename
"""

COLUMNS_QUERY = """
    SELECT table_schema AS schema, table_name, column_name, data_type
    FROM information_schema.columns
    WHERE table_schema NOT IN ('pg_catalog', 'information_schema')
    ORDER BY table_schema, table_name, ordinal_position
"""


class MetadataCache:
    """One snapshot per session key, refreshed through the session registry.

    Snapshots are swapped in with a single assignment, so readers only ever
    see a complete old or a complete new one. Metadata is advisory: when a
    refresh fails and an older snapshot exists, the older one is served.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        *,
        ttl: float = DEFAULT_TTL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._registry = registry
        self._ttl = ttl
        self._clock = clock
        self._snapshots: dict[SessionKey, MetadataSnapshot] = {}
        self._stale: set[SessionKey] = set()
        self._generations: dict[SessionKey, int] = {}
        self._refreshing: dict[SessionKey, asyncio.Task[MetadataSnapshot]] = {}

    @property
    def ttl(self) -> float:
        return self._ttl

    def key_for(self, profile: ConnectionProfile, database: str | None = None) -> SessionKey:
        return self._registry.key_for(profile, database)

    def peek(self, key: SessionKey) -> MetadataSnapshot | None:
        """Cached snapshot for the key, without refreshing."""

        return self._snapshots.get(key)

    async def get(self, profile: ConnectionProfile, database: str | None = None) -> MetadataSnapshot:
        """Return a fresh snapshot, refreshing when missing, expired or invalidated."""

        key = self.key_for(profile, database)
        current = self._snapshots.get(key)
        if current is not None and not self._needs_refresh(key, current):
            return current
        task = self._refreshing.get(key)
        if task is None:
            task = asyncio.get_running_loop().create_task(
                self._refresh(profile, key), name=f"pgbrowse-metadata-{key}"
            )
            task.add_done_callback(_retrieve_exception)
            self._refreshing[key] = task
        try:
            return await asyncio.shield(task)
        except PgBrowseError:
            fallback = self._snapshots.get(key)
            if fallback is None:
                raise
            LOG.debug("Serving stale metadata", extra={"session_key": str(key)})
            return fallback

    def invalidate(self, key: SessionKey) -> None:
        """Force the next ``get`` for the key to refresh, whatever the TTL."""

        self._stale.add(key)
        self._generations[key] = self._generations.get(key, 0) + 1

    def invalidate_profile(self, profile_id: str) -> None:
        for key in [key for key in self._snapshots if key.profile_id == profile_id]:
            self.invalidate(key)

    def discard_profile(self, profile_id: str) -> None:
        """Forget every snapshot of a profile (used when the profile is removed)."""

        for key in [key for key in self._snapshots if key.profile_id == profile_id]:
            del self._snapshots[key]
            self._stale.discard(key)

    def clear(self) -> None:
        self._snapshots.clear()
        self._stale.clear()

    def _needs_refresh(self, key: SessionKey, snapshot: MetadataSnapshot) -> bool:
        return key in self._stale or snapshot.age(self._clock()) > self._ttl

    async def _refresh(self, profile: ConnectionProfile, key: SessionKey) -> MetadataSnapshot:
        current = asyncio.current_task()
        generation = self._generations.get(key, 0)
        try:
            session = await self._registry.acquire(profile, key.database)
            table_rows = await self._registry.query(session, TABLES_QUERY)
            column_rows = await self._registry.query(session, COLUMNS_QUERY)
            snapshot = MetadataSnapshot(
                key=key,
                tables=_tables_from_rows(table_rows),
                columns=_columns_from_rows(column_rows),
                fetched_at=self._clock(),
            )
        except PgBrowseError as exc:
            LOG.warning(
                "Metadata refresh failed",
                extra={"session_key": str(key), "error": str(exc), "has_fallback": key in self._snapshots},
            )
            raise
        finally:
            if self._refreshing.get(key) is current:
                del self._refreshing[key]
        self._snapshots[key] = snapshot
        # An invalidation that landed mid-refresh keeps the key stale.
        if self._generations.get(key, 0) == generation:
            self._stale.discard(key)
        LOG.debug(
            "Metadata refreshed",
            extra={"session_key": str(key), "tables": len(snapshot.tables), "columns": len(snapshot.columns)},
        )
        return snapshot


def _tables_from_rows(rows: Sequence[Mapping[str, Any]]) -> tuple[TableInfo, ...]:
    return tuple(TableInfo(schema=str(row["schema"]), table=str(row["table_name"])) for row in rows)


def _columns_from_rows(rows: Sequence[Mapping[str, Any]]) -> tuple[ColumnInfo, ...]:
    return tuple(
        ColumnInfo(
            schema=str(row["schema"]),
            table=str(row["table_name"]),
            column=str(row["column_name"]),
            type=str(row["data_type"]),
        )
        for row in rows
    )


def _retrieve_exception(task: asyncio.Task[Any]) -> None:
    if not task.cancelled():
        task.exception()


__all__ = ["COLUMNS_QUERY", "DEFAULT_TTL", "MetadataCache", "TABLES_QUERY"]
