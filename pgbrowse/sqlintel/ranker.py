"""Completion ranking over a metadata snapshot.

Everything here is a pure function of the text before the cursor and the
snapshot: no I/O and no shared state, so the ranking can be checked against
fixed inputs.
"""

from __future__ import annotations

import re

from ..models import MetadataSnapshot
from .catalog import KeywordCatalog
from .models import Suggestion, SuggestionPriority, SuggestionType

_IDENT = r'(?:"[^"]+"|[A-Za-z_][A-Za-z0-9_$]*)'
_TABLE_REF = re.compile(
    rf"\b(?:from|join)\s+(?:{_IDENT}\s*\.\s*)?(?P<table>{_IDENT})",
    re.IGNORECASE,
)
_TRAILING_WORD = re.compile(r'[A-Za-z0-9_$."]*$')

_DEFAULT_KEYWORDS = KeywordCatalog.default()


def referenced_tables(text: str) -> frozenset[str]:
    """Lower-cased table names following FROM/JOIN, schema prefix dropped.

    A plain pattern scan; half-typed statements are fine.
    """

    return frozenset(match.group("table").strip('"').lower() for match in _TABLE_REF.finditer(text))


def current_prefix(text: str) -> str:
    """The identifier fragment immediately before the cursor."""

    match = _TRAILING_WORD.search(text)
    return match.group(0).replace('"', "") if match else ""


def rank(
    text: str,
    snapshot: MetadataSnapshot,
    *,
    keywords: KeywordCatalog | None = None,
) -> list[Suggestion]:
    """Return suggestions for ``text`` (the buffer up to the cursor).

    Classes, highest first: columns of referenced tables, tables (referenced
    ones first), remaining columns, keywords. Ties sort alphabetically
    by identifier, the bare column name for columns.
    """

    referenced = referenced_tables(text)
    prefix = current_prefix(text).lower()
    ranked: list[tuple[tuple[int, int, str, str, str], Suggestion]] = []

    for column in snapshot.columns:
        is_referenced = column.table.lower() in referenced
        suggestion = Suggestion(
            label=f"{column.table}.{column.column}",
            type=SuggestionType.COLUMN,
            priority=SuggestionPriority.REFERENCED_COLUMN if is_referenced else SuggestionPriority.COLUMN,
            detail=f"{column.type} ({column.schema}.{column.table})",
            insert_text=column.column,
        )
        ranked.append((_sort_key(suggestion), suggestion))

    for table in snapshot.tables:
        suggestion = Suggestion(
            label=table.table,
            type=SuggestionType.TABLE,
            priority=SuggestionPriority.TABLE,
            detail=f"Table ({table.schema})",
            insert_text=table.table,
        )
        ranked.append((_sort_key(suggestion, demoted=table.table.lower() not in referenced), suggestion))

    for suggestion in (keywords or _DEFAULT_KEYWORDS).suggestions():
        ranked.append((_sort_key(suggestion), suggestion))

    ranked.sort(key=lambda item: item[0])
    return [suggestion for _, suggestion in ranked if _matches(suggestion, prefix)]


def _sort_key(suggestion: Suggestion, *, demoted: bool = False) -> tuple[int, int, str, str, str]:
    # Columns tie on the bare column name; the label keeps the order stable.
    name = suggestion.insert_text or suggestion.label
    return (int(suggestion.priority), int(demoted), name.lower(), suggestion.label.lower(), suggestion.label)


def _matches(suggestion: Suggestion, prefix: str) -> bool:
    if not prefix:
        return True
    if suggestion.label.lower().startswith(prefix):
        return True
    return bool(suggestion.insert_text) and suggestion.insert_text.lower().startswith(prefix)


__all__ = ["current_prefix", "rank", "referenced_tables"]
