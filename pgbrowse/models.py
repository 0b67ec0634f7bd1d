"""Shared dataclasses used across connection/session modules."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

DEFAULT_DATABASE = "postgres"


@dataclass(frozen=True, slots=True)
class ConnectionProfile:
    """Runtime representation of a connection profile."""

    id: str
    name: str
    host: str = "localhost"
    port: int = 5432
    username: str | None = None
    database: str | None = None

    def key_for(self, database: str | None = None, *, default: str = DEFAULT_DATABASE) -> SessionKey:
        """Session key for this profile and the requested (or default) database."""

        return SessionKey(self.id, database or self.database or default)


@dataclass(frozen=True, slots=True, order=True)
class SessionKey:
    """Identifies one physical backend connection."""

    profile_id: str
    database: str

    def __str__(self) -> str:
        return f"{self.profile_id}:{self.database}"


class SessionStatus(str, Enum):
    """Lifecycle states of a shared session."""

    CONNECTING = "connecting"
    READY = "ready"
    BROKEN = "broken"
    CLOSED = "closed"


@dataclass(frozen=True, slots=True)
class TableInfo:
    schema: str
    table: str

    @property
    def qualified_name(self) -> str:
        return f"{self.schema}.{self.table}"


@dataclass(frozen=True, slots=True)
class ColumnInfo:
    schema: str
    table: str
    column: str
    type: str


@dataclass(frozen=True, slots=True)
class MetadataSnapshot:
    """Catalog shape for one session key, replaced as a whole on refresh."""

    key: SessionKey
    tables: tuple[TableInfo, ...] = ()
    columns: tuple[ColumnInfo, ...] = ()
    fetched_at: float = 0.0
    _by_table: dict[str, tuple[ColumnInfo, ...]] = field(
        default_factory=dict, init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        grouped: dict[str, list[ColumnInfo]] = {}
        for column in self.columns:
            grouped.setdefault(column.table.lower(), []).append(column)
        self._by_table.update({table: tuple(columns) for table, columns in grouped.items()})

    def columns_for(self, table: str) -> tuple[ColumnInfo, ...]:
        """Columns of the given table name (case-insensitive, schema ignored)."""

        return self._by_table.get(table.split(".")[-1].lower(), ())

    def age(self, now: float) -> float:
        return now - self.fetched_at

    def as_dict(self) -> dict[str, list[dict[str, Any]]]:
        """Plain representation handed to consumers outside the core."""

        return {
            "tables": [{"schema": t.schema, "table": t.table} for t in self.tables],
            "columns": [
                {"schema": c.schema, "table": c.table, "column": c.column, "type": c.type}
                for c in self.columns
            ],
        }


__all__ = [
    "ColumnInfo",
    "ConnectionProfile",
    "DEFAULT_DATABASE",
    "MetadataSnapshot",
    "SessionKey",
    "SessionStatus",
    "TableInfo",
]
