"""Explicit wiring of the registry, metadata cache and services.

Built once at startup and handed to every consumer, instead of a hidden
process-wide singleton.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from types import TracebackType
from typing import Any, Callable

from .config import AppConfig
from .connections import AsyncpgConnectionBackend, ConnectionBackend
from .credentials import CredentialResolver, EnvCredentialResolver
from .models import ConnectionProfile
from .query import QueryService
from .session import SessionRegistry
from .sqlintel import CompletionService, MetadataCache

LOG = logging.getLogger(__name__)


@dataclass(slots=True)
class AppContext:
    """Runtime dependencies shared by command handlers and providers."""

    config: AppConfig
    credentials: CredentialResolver
    registry: SessionRegistry
    metadata: MetadataCache
    completions: CompletionService
    queries: QueryService

    @classmethod
    def create(
        cls,
        config: AppConfig,
        *,
        backend: ConnectionBackend | None = None,
        credentials: CredentialResolver | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> AppContext:
        resolver = credentials or EnvCredentialResolver()
        registry = SessionRegistry(
            backend or AsyncpgConnectionBackend(),
            resolver,
            connect_timeout=config.connect_timeout,
            default_database=config.default_database,
            clock=clock,
        )
        metadata = MetadataCache(registry, ttl=config.metadata_ttl, clock=clock)
        return cls(
            config=config,
            credentials=resolver,
            registry=registry,
            metadata=metadata,
            completions=CompletionService(metadata),
            queries=QueryService(registry, metadata),
        )

    def profile(self, profile_id: str) -> ConnectionProfile:
        return self.config.profile(profile_id)

    async def get_metadata(self, profile_id: str, database: str | None = None) -> dict[str, list[dict[str, Any]]]:
        """Catalog shape for the profile/database as plain lists of dicts."""

        snapshot = await self.metadata.get(self.profile(profile_id), database)
        return snapshot.as_dict()

    def invalidate_metadata(self, profile_id: str, database: str | None = None) -> None:
        self.metadata.invalidate(self.metadata.key_for(self.profile(profile_id), database))

    async def remove_profile(self, profile_id: str) -> AppConfig:
        """Disconnect, forget metadata and stored credential; returns the updated config."""

        await self.registry.disconnect(profile_id)
        self.metadata.discard_profile(profile_id)
        delete = getattr(self.credentials, "delete", None)
        if delete is not None:
            await delete(profile_id)
        self.config = self.config.without_profile(profile_id)
        LOG.info("Profile removed", extra={"profile": profile_id})
        return self.config

    async def aclose(self) -> None:
        await self.registry.shutdown()

    async def __aenter__(self) -> AppContext:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()


__all__ = ["AppContext"]
