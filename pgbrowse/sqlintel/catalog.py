"""Keyword catalog powering the lowest-priority autocomplete suggestions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence, Tuple

from .models import Suggestion, SuggestionPriority, SuggestionType


@dataclass(slots=True)
class KeywordEntry:
    """Reserved keyword surfaced to the editor."""

    keyword: str
    detail: str = "keyword"


class KeywordCatalog:
    """In-memory catalog of reserved keywords."""

    def __init__(self, entries: Sequence[KeywordEntry]) -> None:
        self._entries = tuple(entries)

    @classmethod
    def default(cls) -> "KeywordCatalog":
        return cls(_DEFAULT_ENTRIES)

    @property
    def keywords(self) -> tuple[str, ...]:
        return tuple(entry.keyword for entry in self._entries)

    def suggestions(self) -> list[Suggestion]:
        return [
            Suggestion(
                label=entry.keyword,
                type=SuggestionType.KEYWORD,
                priority=SuggestionPriority.KEYWORD,
                detail=entry.detail,
            )
            for entry in self._entries
        ]


_DEFAULT_ENTRIES: Tuple[KeywordEntry, ...] = (
    KeywordEntry("SELECT", "Start a query"),
    KeywordEntry("FROM", "Choose a table or view"),
    KeywordEntry("WHERE", "Filter rows"),
    KeywordEntry("JOIN", "Join another table"),
    KeywordEntry("LEFT JOIN"),
    KeywordEntry("RIGHT JOIN"),
    KeywordEntry("INNER JOIN"),
    KeywordEntry("OUTER JOIN"),
    KeywordEntry("ON"),
    KeywordEntry("AND"),
    KeywordEntry("OR"),
    KeywordEntry("NOT"),
    KeywordEntry("IN"),
    KeywordEntry("LIKE"),
    KeywordEntry("BETWEEN"),
    KeywordEntry("IS NULL"),
    KeywordEntry("IS NOT NULL"),
    KeywordEntry("GROUP BY", "Aggregate rows"),
    KeywordEntry("HAVING", "Filter aggregates"),
    KeywordEntry("ORDER BY", "Sort result set"),
    KeywordEntry("LIMIT", "Restrict row count"),
    KeywordEntry("OFFSET"),
    KeywordEntry("INSERT INTO", "Insert rows"),
    KeywordEntry("VALUES"),
    KeywordEntry("UPDATE", "Modify rows"),
    KeywordEntry("SET"),
    KeywordEntry("DELETE FROM", "Remove rows"),
    KeywordEntry("CREATE TABLE"),
    KeywordEntry("ALTER TABLE"),
    KeywordEntry("DROP TABLE"),
    KeywordEntry("AS"),
    KeywordEntry("DISTINCT", "Deduplicate rows"),
    KeywordEntry("COUNT"),
    KeywordEntry("SUM"),
    KeywordEntry("AVG"),
    KeywordEntry("MIN"),
    KeywordEntry("MAX"),
    KeywordEntry("CASE"),
    KeywordEntry("WHEN"),
    KeywordEntry("THEN"),
    KeywordEntry("ELSE"),
    KeywordEntry("END"),
)


__all__ = ["KeywordCatalog", "KeywordEntry"]
