"""Server registry lookup."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from rconexec.config import AppConfig, RconServerConfig


class ServerRegistry(Protocol):
    """Resolves a server name to its target identity."""

    def lookup(self, name: str) -> RconServerConfig | None:
        """Return the server config, or None if no server has that name."""
        ...


class ConfigServerRegistry:
    """Registry backed by the [servers] tables of the loaded config."""

    def __init__(self, config: AppConfig) -> None:
        self._config = config

    def lookup(self, name: str) -> RconServerConfig | None:
        entry = self._config.servers.get(name)
        return entry.server if entry is not None else None
