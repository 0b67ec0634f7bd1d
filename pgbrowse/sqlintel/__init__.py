"""SQL intelligence services and helpers."""

from __future__ import annotations

from .catalog import KeywordCatalog, KeywordEntry
from .metadata import DEFAULT_TTL, MetadataCache
from .models import (
    StatementInfo,
    StatementKind,
    Suggestion,
    SuggestionPriority,
    SuggestionType,
)
from .ranker import current_prefix, rank, referenced_tables
from .service import MAX_SUGGESTIONS, CompletionService
from .statements import classify, has_transaction_control, is_schema_changing

__all__ = [
    "CompletionService",
    "DEFAULT_TTL",
    "KeywordCatalog",
    "KeywordEntry",
    "MAX_SUGGESTIONS",
    "MetadataCache",
    "StatementInfo",
    "StatementKind",
    "Suggestion",
    "SuggestionPriority",
    "SuggestionType",
    "classify",
    "current_prefix",
    "has_transaction_control",
    "is_schema_changing",
    "rank",
    "referenced_tables",
]
