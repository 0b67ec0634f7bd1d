"""Core dataclasses shared by the SQL intelligence services."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum


class SuggestionType(str, Enum):
    """Types of suggestions surfaced to the editor."""

    KEYWORD = "keyword"
    TABLE = "table"
    COLUMN = "column"


class SuggestionPriority(IntEnum):
    """Ranking classes, lowest value first."""

    REFERENCED_COLUMN = 0
    TABLE = 1
    COLUMN = 2
    KEYWORD = 3


class StatementKind(str, Enum):
    """Coarse statement categories used by the query facade."""

    QUERY = "query"
    DML = "dml"
    DDL = "ddl"
    TRANSACTION = "transaction"
    SESSION = "session"
    OTHER = "other"


@dataclass(frozen=True, slots=True)
class Suggestion:
    """Single autocomplete entry."""

    label: str
    type: SuggestionType
    priority: SuggestionPriority
    detail: str | None = None
    insert_text: str | None = None


@dataclass(frozen=True, slots=True)
class StatementInfo:
    """Classification of one SQL statement."""

    kind: StatementKind
    returns_rows: bool = False


__all__ = [
    "StatementInfo",
    "StatementKind",
    "Suggestion",
    "SuggestionPriority",
    "SuggestionType",
]
