"""Error taxonomy for gated RCON execution.

Every error carries a stable ``code`` that is used in structured responses
and audit records, so callers never need to inspect exception types or
messages.
"""

from __future__ import annotations


class RconError(Exception):
    """Base exception for RCON errors."""

    code = "rcon_error"


class Unauthorized(RconError):
    """Raised when the caller lacks the required role."""

    code = "unauthorized"


class ServerNotFound(RconError):
    """Raised when the server registry has no entry for the requested name."""

    code = "server_not_found"


class ServerInactive(RconError):
    """Raised when the target server is disabled."""

    code = "server_inactive"


class CredentialUnavailable(RconError):
    """Raised when the RCON password cannot be resolved."""

    code = "credential_unavailable"


class ConnectionError(RconError):  # noqa: A001
    """Raised when the connection to the server is lost or cannot be established."""

    code = "connection_error"


class AuthenticationFailed(RconError):
    """Raised when the server rejects the RCON password."""

    code = "authentication_failed"


class MalformedPacket(RconError):
    """Raised when a packet on the wire violates the framing rules."""

    code = "malformed_packet"


class InvalidCommand(RconError):
    """Raised when command text is empty or cannot be sent."""

    code = "invalid_command"


class Timeout(RconError):
    """Raised when a network operation exceeds its deadline."""

    code = "timeout"
