"""Credential resolvers consulted whenever a session is opened."""

from __future__ import annotations

import os
import re
from typing import Mapping, Protocol, Sequence, runtime_checkable

from .errors import CredentialNotFoundError

ENV_PREFIX = "PGBROWSE_PASSWORD_"


@runtime_checkable
class CredentialResolver(Protocol):
    """Protocol implemented by password sources."""

    async def resolve(self, profile_id: str) -> str:
        """Return the password for the profile or raise CredentialNotFoundError."""


class InMemoryCredentialStore:
    """Process-local secret store (get/set/delete per profile id)."""

    def __init__(self, secrets: Mapping[str, str] | None = None) -> None:
        self._secrets: dict[str, str] = dict(secrets or {})

    async def resolve(self, profile_id: str) -> str:
        try:
            return self._secrets[profile_id]
        except KeyError:
            raise CredentialNotFoundError(profile_id) from None

    async def store(self, profile_id: str, password: str) -> None:
        self._secrets[profile_id] = password

    async def delete(self, profile_id: str) -> None:
        self._secrets.pop(profile_id, None)


class EnvCredentialResolver:
    """Reads passwords from ``PGBROWSE_PASSWORD_<ID>`` environment variables."""

    def __init__(self, prefix: str = ENV_PREFIX, environ: Mapping[str, str] | None = None) -> None:
        self._prefix = prefix
        self._environ = environ if environ is not None else os.environ

    def variable_for(self, profile_id: str) -> str:
        return self._prefix + re.sub(r"[^A-Za-z0-9]", "_", profile_id).upper()

    async def resolve(self, profile_id: str) -> str:
        value = self._environ.get(self.variable_for(profile_id))
        if value is None:
            raise CredentialNotFoundError(profile_id)
        return value


class ChainedCredentialResolver:
    """Tries each resolver in order; the first hit wins."""

    def __init__(self, resolvers: Sequence[CredentialResolver]) -> None:
        self._resolvers = tuple(resolvers)

    async def resolve(self, profile_id: str) -> str:
        for resolver in self._resolvers:
            try:
                return await resolver.resolve(profile_id)
            except CredentialNotFoundError:
                continue
        raise CredentialNotFoundError(profile_id)


__all__ = [
    "ChainedCredentialResolver",
    "CredentialResolver",
    "ENV_PREFIX",
    "EnvCredentialResolver",
    "InMemoryCredentialStore",
]
