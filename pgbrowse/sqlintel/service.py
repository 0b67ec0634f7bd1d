"""Completion service joining the metadata cache with the ranker."""

from __future__ import annotations

import logging

from ..errors import PgBrowseError
from ..models import ConnectionProfile, MetadataSnapshot
from .catalog import KeywordCatalog
from .metadata import MetadataCache
from .models import Suggestion
from .ranker import rank

LOG = logging.getLogger(__name__)

MAX_SUGGESTIONS = 50


class CompletionService:
    """Facade the autocomplete provider talks to."""

    def __init__(
        self,
        metadata: MetadataCache,
        keyword_catalog: KeywordCatalog | None = None,
        *,
        max_suggestions: int = MAX_SUGGESTIONS,
    ) -> None:
        self._metadata = metadata
        self._keywords = keyword_catalog or KeywordCatalog.default()
        self._max_suggestions = max_suggestions

    async def complete(
        self,
        profile: ConnectionProfile,
        buffer: str,
        cursor: int | None = None,
        *,
        database: str | None = None,
    ) -> list[Suggestion]:
        """Return ordered suggestions for the cursor position in ``buffer``."""

        text = buffer if cursor is None else buffer[:cursor]
        snapshot = await self._snapshot(profile, database)
        return rank(text, snapshot, keywords=self._keywords)[: self._max_suggestions]

    async def _snapshot(self, profile: ConnectionProfile, database: str | None) -> MetadataSnapshot:
        try:
            return await self._metadata.get(profile, database)
        except PgBrowseError as exc:
            # Keywords still help when the catalog is out of reach.
            LOG.info("Completing without metadata", extra={"profile": profile.id, "error": str(exc)})
            return MetadataSnapshot(key=self._metadata.key_for(profile, database))


__all__ = ["CompletionService", "MAX_SUGGESTIONS"]
