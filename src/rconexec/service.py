"""Gated command execution: authorize, look up, resolve secret, execute, audit.

Each stage writes exactly one audit entry whether it succeeds or fails, and
a failing stage ends the request. The caller always gets a structured
CommandResponse, never an exception.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from rconexec.access import AccessGate, StaticRoleLookup
from rconexec.audit import (
    AccessKind,
    AuditEntry,
    AuditRecorder,
    JsonLinesAuditSink,
    MemoryAuditSink,
)
from rconexec.credentials import build_secret_provider
from rconexec.errors import InvalidCommand, RconError, ServerInactive, ServerNotFound
from rconexec.executor import execute_remote_command
from rconexec.registry import ConfigServerRegistry

if TYPE_CHECKING:
    from collections.abc import Callable

    from rconexec.audit import AuditSink
    from rconexec.config import AppConfig, RconServerConfig
    from rconexec.credentials import SecretProvider
    from rconexec.registry import ServerRegistry

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExecutionRequest:
    """A single command for a named server. Consumed once."""

    server_name: str
    command: str


@dataclass(frozen=True)
class CommandResponse:
    """Outcome returned to the caller."""

    success: bool
    result: str | None = None
    error: str | None = None
    error_code: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def failure(cls, error: RconError) -> CommandResponse:
        return cls(success=False, error=str(error), error_code=error.code)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "success": self.success,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.success:
            data["result"] = self.result
        else:
            data["error"] = self.error
            data["errorCode"] = self.error_code
        return data


@dataclass(frozen=True)
class _Caller:
    actor: str | None
    source_address: str | None
    user_agent: str | None


class CommandService:
    """Wires the gate, registry, secret provider and executor together."""

    def __init__(  # noqa: PLR0913
        self,
        gate: AccessGate,
        registry: ServerRegistry,
        secrets: SecretProvider,
        recorder: AuditRecorder,
        *,
        timeout: float,
        max_response_length: int,
        executor: Callable[..., str] = execute_remote_command,
    ) -> None:
        self._gate = gate
        self._registry = registry
        self._secrets = secrets
        self._recorder = recorder
        self._timeout = timeout
        self._max_response_length = max_response_length
        self._executor = executor

    def execute_command(
        self,
        request: ExecutionRequest,
        actor: str | None,
        *,
        source_address: str | None = None,
        user_agent: str | None = None,
    ) -> CommandResponse:
        """Run a command for an actor and return the structured outcome."""
        caller = _Caller(actor, source_address, user_agent)

        try:
            self._gate.authorize(actor)
        except RconError as e:
            self._audit(caller, AccessKind.SERVER_LOOKUP, None, error=e)
            return CommandResponse.failure(e)

        try:
            server = self._lookup(request.server_name)
        except RconError as e:
            name = request.server_name if isinstance(e, ServerInactive) else None
            self._audit(caller, AccessKind.SERVER_LOOKUP, name, error=e)
            return CommandResponse.failure(e)
        self._audit(caller, AccessKind.SERVER_LOOKUP, server.name)

        if not request.command or not request.command.strip():
            err = InvalidCommand("Command is required")
            self._audit(
                caller,
                AccessKind.COMMAND_EXECUTION,
                server.name,
                command=request.command,
                error=err,
            )
            return CommandResponse.failure(err)

        try:
            password = self._secrets.resolve(server.name)
        except RconError as e:
            self._audit(caller, AccessKind.PASSWORD_ACCESS, server.name, error=e)
            return CommandResponse.failure(e)
        self._audit(caller, AccessKind.PASSWORD_ACCESS, server.name)

        try:
            result = self._executor(
                server,
                password,
                request.command,
                self._timeout,
                max_response_length=self._max_response_length,
            )
        except RconError as e:
            log.warning(
                "Command on %s by %s failed: %s (%s)", server.name, actor, e, e.code
            )
            self._audit(
                caller,
                AccessKind.COMMAND_EXECUTION,
                server.name,
                command=request.command,
                error=e,
            )
            return CommandResponse.failure(e)
        finally:
            del password

        self._audit(
            caller, AccessKind.COMMAND_EXECUTION, server.name, command=request.command
        )
        log.info(
            "%s executed RCON command on %s: %s", actor, server.name, request.command
        )
        return CommandResponse(success=True, result=result)

    def _lookup(self, name: str) -> RconServerConfig:
        server = self._registry.lookup(name)
        if server is None:
            msg = f"RCON server '{name}' not found"
            raise ServerNotFound(msg)
        if not server.is_active:
            msg = f"RCON server '{name}' is inactive"
            raise ServerInactive(msg)
        return server

    def _audit(  # noqa: PLR0913
        self,
        caller: _Caller,
        kind: AccessKind,
        server_name: str | None,
        *,
        command: str | None = None,
        error: RconError | None = None,
    ) -> None:
        self._recorder.record(
            AuditEntry(
                actor=caller.actor,
                kind=kind,
                success=error is None,
                server_name=server_name,
                source_address=caller.source_address,
                user_agent=caller.user_agent,
                error=str(error) if error is not None else None,
                error_code=error.code if error is not None else None,
                command=command,
            )
        )


def build_service(config: AppConfig, sink: AuditSink | None = None) -> CommandService:
    """Build a CommandService from the loaded config.

    Audit entries go to the configured JSON Lines file, or stay in memory
    when no audit_log path is set.
    """
    if sink is None:
        sink = (
            JsonLinesAuditSink(config.audit_log)
            if config.audit_log is not None
            else MemoryAuditSink()
        )
    return CommandService(
        AccessGate(StaticRoleLookup(config.actors), config.required_role),
        ConfigServerRegistry(config),
        build_secret_provider(config),
        AuditRecorder(sink),
        timeout=config.timeout,
        max_response_length=config.max_response_length,
    )
