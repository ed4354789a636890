"""Run one command on one RCON server over a fresh session."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

from rconexec.errors import InvalidCommand, ServerInactive
from rconexec.protocol import MAX_RESPONSE_LENGTH
from rconexec.session import RconSession

if TYPE_CHECKING:
    from rconexec.config import RconServerConfig

log = logging.getLogger(__name__)


class SessionFactory(Protocol):
    def __call__(
        self,
        host: str,
        port: int,
        timeout: float,
        *,
        max_response_length: int,
    ) -> RconSession: ...


def execute_remote_command(  # noqa: PLR0913
    config: RconServerConfig,
    credential: str,
    command: str,
    timeout: float,
    *,
    max_response_length: int = MAX_RESPONSE_LENGTH,
    session_factory: SessionFactory = RconSession,
) -> str:
    """Connect, authenticate, execute and close, returning the command output.

    Empty commands and inactive servers are rejected before any socket is
    opened. No audit logging happens here; that is the caller's concern.

    Args:
        config: Target server.
        credential: Plaintext RCON password, used for this handshake only.
        command: Command text sent verbatim.
        timeout: Deadline in seconds for the connect and for each read.
        max_response_length: Largest response packet accepted.
        session_factory: Builds the session; replaced in tests.

    Returns:
        The reassembled response text.

    Raises:
        RconError: One of the typed errors in rconexec.errors.
    """
    if not command or not command.strip():
        msg = "Command is required"
        raise InvalidCommand(msg)
    if not config.is_active:
        msg = f"RCON server '{config.name}' is inactive"
        raise ServerInactive(msg)

    with session_factory(
        config.host,
        config.port,
        timeout,
        max_response_length=max_response_length,
    ) as session:
        session.connect()
        session.authenticate(credential)
        result = session.execute(command)

    log.debug("Executed command on %s (%d chars)", config.name, len(result))
    return result
