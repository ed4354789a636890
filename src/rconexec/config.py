"""Configuration loading for gated RCON execution."""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path

from rconexec.protocol import MAX_RESPONSE_LENGTH

CONFIG_DIR = Path.home() / ".config" / "rconexec"
CONFIG_FILE = CONFIG_DIR / "config.toml"
HISTORY_FILE = CONFIG_DIR / "history"
CONFIG_ENV = "RCONEXEC_CONFIG"

DEFAULT_PORT = 25575
DEFAULT_TIMEOUT = 5.0
DEFAULT_ROLE = "admin"
DEFAULT_KEY_ENV = "RCONEXEC_SECRET_KEY"


@dataclass(frozen=True)
class CredentialConfig:
    """1Password credential reference for a server."""

    vault: str
    item: str
    field: str


@dataclass(frozen=True)
class RconServerConfig:
    """Target identity of one RCON server.

    The password is deliberately not part of this entity; it is resolved
    per call by a secret provider.
    """

    name: str
    host: str
    port: int = DEFAULT_PORT
    is_active: bool = True


@dataclass(frozen=True)
class ServerEntry:
    """A configured server with its stored secret references."""

    server: RconServerConfig
    encrypted_password: str | None = None
    credentials: CredentialConfig | None = None


@dataclass(frozen=True)
class SecretsConfig:
    """Which secret provider to use and where its key lives."""

    provider: str = "secretbox"
    key_env: str = DEFAULT_KEY_ENV


@dataclass(frozen=True)
class AppConfig:
    """Top-level application configuration."""

    timeout: float = DEFAULT_TIMEOUT
    max_response_length: int = MAX_RESPONSE_LENGTH
    audit_log: Path | None = None
    required_role: str = DEFAULT_ROLE
    secrets: SecretsConfig = field(default_factory=SecretsConfig)
    servers: dict[str, ServerEntry] = field(default_factory=dict)
    actors: dict[str, str] = field(default_factory=dict)
    tokens: dict[str, str] = field(default_factory=dict)


def default_config_path() -> Path:
    """Return the config path, honoring the RCONEXEC_CONFIG override."""
    override = os.environ.get(CONFIG_ENV)
    return Path(override).expanduser() if override else CONFIG_FILE


def load_config(path: Path | None = None) -> AppConfig:
    """Load and parse the configuration file.

    Returns defaults with no servers if no config file exists.
    """
    if path is None:
        path = default_config_path()
    if not path.exists():
        return AppConfig()

    with path.open("rb") as f:
        raw = tomllib.load(f)

    defaults = raw.get("defaults", {})
    audit_log = defaults.get("audit_log")
    secrets = raw.get("secrets", {})

    servers: dict[str, ServerEntry] = {}
    for key, val in raw.get("servers", {}).items():
        servers[key] = ServerEntry(
            server=RconServerConfig(
                name=key,
                host=val["host"],
                port=val.get("port", DEFAULT_PORT),
                is_active=val.get("is_active", True),
            ),
            encrypted_password=val.get("password"),
            credentials=_parse_credentials(val.get("credentials")),
        )

    return AppConfig(
        timeout=float(defaults.get("timeout", DEFAULT_TIMEOUT)),
        max_response_length=defaults.get("max_response_length", MAX_RESPONSE_LENGTH),
        audit_log=Path(audit_log).expanduser() if audit_log else None,
        required_role=defaults.get("required_role", DEFAULT_ROLE),
        secrets=SecretsConfig(
            provider=secrets.get("provider", "secretbox"),
            key_env=secrets.get("key_env", DEFAULT_KEY_ENV),
        ),
        servers=servers,
        actors=dict(raw.get("actors", {})),
        tokens=dict(raw.get("tokens", {})),
    )


def _parse_credentials(raw: dict | None) -> CredentialConfig | None:
    """Parse a credentials section from the config file."""
    if raw is None:
        return None
    return CredentialConfig(
        vault=raw["vault"],
        item=raw["item"],
        field=raw["field"],
    )


def ensure_config_dir() -> None:
    """Create the config directory if it does not exist."""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
