"""Append-only audit trail of credential access and command execution."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from pathlib import Path

log = logging.getLogger(__name__)


class AccessKind(StrEnum):
    """Gated stage an audit entry describes."""

    SERVER_LOOKUP = "server_lookup"
    PASSWORD_ACCESS = "password_access"
    COMMAND_EXECUTION = "command_execution"


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class AuditEntry:
    """One access attempt at one stage. Never mutated once created."""

    actor: str | None
    kind: AccessKind
    success: bool
    server_name: str | None = None
    source_address: str | None = None
    user_agent: str | None = None
    error: str | None = None
    error_code: str | None = None
    command: str | None = None
    timestamp: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-compatible dict."""
        data = asdict(self)
        data["kind"] = self.kind.value
        data["timestamp"] = self.timestamp.isoformat()
        return data


class AuditSink(Protocol):
    """Destination for audit entries. Write-only."""

    def write(self, entry: AuditEntry) -> None: ...


class JsonLinesAuditSink:
    """Appends one JSON object per line to a file."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def write(self, entry: AuditEntry) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(entry.to_dict()) + "\n")


class MemoryAuditSink:
    """Keeps entries in memory."""

    def __init__(self) -> None:
        self.entries: list[AuditEntry] = []

    def write(self, entry: AuditEntry) -> None:
        self.entries.append(entry)


class AuditRecorder:
    """Writes audit entries without ever failing the audited operation."""

    def __init__(self, sink: AuditSink) -> None:
        self._sink = sink

    def record(self, entry: AuditEntry) -> None:
        """Write the entry. Sink failures are logged, not raised."""
        try:
            self._sink.write(entry)
        except Exception:
            log.exception(
                "Failed to write audit entry (%s, actor=%s, success=%s)",
                entry.kind.value,
                entry.actor,
                entry.success,
            )
