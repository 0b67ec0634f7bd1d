"""App configuration loading helpers."""

from __future__ import annotations

import logging
from pathlib import Path

import tomllib

from pydantic import BaseModel, Field, ValidationError

from .models import DEFAULT_DATABASE, ConnectionProfile

LOG = logging.getLogger(__name__)

CONFIG_FILE = Path.home() / ".config" / "pgbrowse" / "config.toml"


class ConnectionProfileConfig(BaseModel):
    """Connection profile configuration stored in config.toml.

    Passwords never live here; they are looked up through a credential
    resolver when a session is opened.
    """

    id: str
    name: str
    host: str = "localhost"
    port: int = 5432
    username: str | None = None
    database: str | None = None

    def to_profile(self) -> ConnectionProfile:
        return ConnectionProfile(
            id=self.id,
            name=self.name,
            host=self.host,
            port=self.port,
            username=self.username,
            database=self.database,
        )


class AppConfig(BaseModel):
    """Shape of the application configuration file."""

    profiles: list[ConnectionProfileConfig] = Field(default_factory=list)
    active_profile: str | None = None
    default_database: str = DEFAULT_DATABASE
    connect_timeout: float = Field(default=10.0, gt=0)
    metadata_ttl: float = Field(default=60.0, ge=0)
    log_level: str = "WARNING"

    def profile(self, profile_id: str) -> ConnectionProfile:
        """Return the runtime profile for the given id."""

        for entry in self.profiles:
            if entry.id == profile_id:
                return entry.to_profile()
        raise ValueError(f"Profile '{profile_id}' not found.")

    def runtime_profiles(self) -> tuple[ConnectionProfile, ...]:
        return tuple(entry.to_profile() for entry in self.profiles)

    def with_profile(self, profile: ConnectionProfileConfig) -> AppConfig:
        """Return a copy with the profile added (or replaced when the id exists)."""

        profiles = [entry for entry in self.profiles if entry.id != profile.id]
        profiles.append(profile)
        return self.model_copy(update={"profiles": profiles})

    def without_profile(self, profile_id: str) -> AppConfig:
        """Return a copy with the profile removed."""

        profiles = [entry for entry in self.profiles if entry.id != profile_id]
        active = None if self.active_profile == profile_id else self.active_profile
        return self.model_copy(update={"profiles": profiles, "active_profile": active})

    def with_active_profile(self, profile_id: str) -> AppConfig:
        """Return a copy with the active profile updated."""

        return self.model_copy(update={"active_profile": profile_id})


def load_config() -> AppConfig:
    """Load configuration from disk; fall back to defaults if missing or invalid."""

    try:
        data = _read_config_file()
    except FileNotFoundError:
        return AppConfig()
    except (tomllib.TOMLDecodeError, OSError):
        return AppConfig()

    try:
        profiles = [ConnectionProfileConfig(**profile) for profile in data.pop("profiles", [])]
        return AppConfig(profiles=profiles, **data)
    except ValidationError:
        LOG.warning("Invalid configuration; using defaults", extra={"path": str(CONFIG_FILE)}, exc_info=True)
        return AppConfig()


def save_config(config: AppConfig) -> None:
    """Persist configuration to disk."""

    CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
    lines: list[str] = []
    if config.active_profile:
        lines.append(f'active_profile = "{config.active_profile}"')
    lines.append(f'default_database = "{config.default_database}"')
    lines.append(f"connect_timeout = {config.connect_timeout}")
    lines.append(f"metadata_ttl = {config.metadata_ttl}")
    lines.append(f'log_level = "{config.log_level}"')
    if config.profiles:
        lines.append("")
        for profile in config.profiles:
            lines.append("[[profiles]]")
            lines.append(f'id = "{profile.id}"')
            lines.append(f'name = "{profile.name}"')
            lines.append(f'host = "{profile.host}"')
            lines.append(f"port = {profile.port}")
            if profile.username:
                lines.append(f'username = "{profile.username}"')
            if profile.database:
                lines.append(f'database = "{profile.database}"')
            lines.append("")
    CONFIG_FILE.write_text("\n".join(lines) + "\n")


def _read_config_file() -> dict[str, object]:
    with CONFIG_FILE.open("rb") as handle:
        raw = tomllib.load(handle)
    data: dict[str, object] = {}
    if not isinstance(raw, dict):
        return data
    for key in ("active_profile", "default_database", "log_level"):
        value = raw.get(key)
        if isinstance(value, str):
            data[key] = value
    for key in ("connect_timeout", "metadata_ttl"):
        value = raw.get(key)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            data[key] = float(value)
    profiles = raw.get("profiles")
    if isinstance(profiles, list):
        parsed_profiles: list[dict[str, object]] = []
        for profile in profiles:
            if not isinstance(profile, dict):
                continue
            parsed: dict[str, object] = {}
            for key in ("id", "name", "host", "username", "database"):
                value = profile.get(key)
                if isinstance(value, str):
                    parsed[key] = value
            port = profile.get("port")
            if isinstance(port, int):
                parsed["port"] = port
            # Profiles without an id cannot be keyed; the name doubles as one.
            if parsed.get("name"):
                parsed.setdefault("id", parsed["name"])
                parsed_profiles.append(parsed)
        data["profiles"] = parsed_profiles
    return data


__all__ = [
    "AppConfig",
    "CONFIG_FILE",
    "ConnectionProfileConfig",
    "load_config",
    "save_config",
]
