"""One RCON connection driven through the authenticate-then-execute sequence."""

from __future__ import annotations

import contextlib
import itertools
import logging
import socket
import time
from enum import Enum
from typing import TYPE_CHECKING, Self

from rconexec.errors import AuthenticationFailed, Timeout
from rconexec.errors import ConnectionError  # noqa: A004
from rconexec.protocol import (
    MAX_RESPONSE_LENGTH,
    SERVERDATA_AUTH_RESPONSE,
    Packet,
    PacketType,
    read_packet,
)

if TYPE_CHECKING:
    from collections.abc import Iterator
    from types import TracebackType

log = logging.getLogger(__name__)

_AUTH_FAILED_ID = -1


@contextlib.contextmanager
def _timeout_as_connection_error() -> Iterator[None]:
    try:
        yield
    except Timeout as e:
        raise ConnectionError(str(e)) from e


class SessionState(Enum):
    """Lifecycle of a transport session."""

    CONNECTING = "connecting"
    AUTHENTICATING = "authenticating"
    READY = "ready"
    EXECUTING = "executing"
    CLOSED = "closed"
    FAILED = "failed"


class RconSession:
    """Owns a single TCP connection to one RCON endpoint.

    Any failure moves the session to FAILED and releases the socket. Use it
    as a context manager so the socket is closed on every exit path.
    """

    def __init__(  # noqa: PLR0913
        self,
        host: str,
        port: int,
        timeout: float = 10.0,
        *,
        max_response_length: int = MAX_RESPONSE_LENGTH,
        first_request_id: int = 1,
    ) -> None:
        self.host = host
        self.port = port
        self.timeout = timeout
        self.max_response_length = max_response_length
        self.state = SessionState.CONNECTING
        self._sock: socket.socket | None = None
        self._request_ids = itertools.count(first_request_id)
        self._deadline: float | None = None

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    @property
    def connected(self) -> bool:
        """Whether the session holds an open socket."""
        return self._sock is not None

    def connect(self) -> None:
        """Open the TCP connection to the RCON server."""
        self._require(SessionState.CONNECTING)
        with self._guard():
            try:
                self._sock = socket.create_connection(
                    (self.host, self.port), timeout=self.timeout
                )
            except TimeoutError as e:
                msg = f"Timed out connecting to {self.host}:{self.port}"
                raise ConnectionError(msg) from e
            except OSError as e:
                msg = f"Failed to connect to {self.host}:{self.port}: {e}"
                raise ConnectionError(msg) from e
        log.debug("Connected to %s:%d", self.host, self.port)
        self.state = SessionState.AUTHENTICATING

    def authenticate(self, password: str) -> None:
        """Authenticate with the RCON server.

        Some servers send an empty RESPONSE_VALUE packet before the real
        auth response, so packets are read until one either matches the
        request id with the AUTH_RESPONSE type or carries id -1.

        The whole exchange is bounded by the session timeout. Running out
        of time here is a ConnectionError, like a dropped stream.

        Raises AuthenticationFailed if the server rejects the password.
        """
        self._require(SessionState.AUTHENTICATING)
        self._start_deadline()
        with self._guard(), _timeout_as_connection_error():
            request_id = next(self._request_ids)
            self._send(
                Packet(
                    request_id=request_id,
                    packet_type=PacketType.SERVERDATA_AUTH,
                    payload=password,
                )
            )
            while True:
                response = self._recv()
                if response.request_id == _AUTH_FAILED_ID:
                    msg = "Authentication failed: incorrect RCON password"
                    raise AuthenticationFailed(msg)
                if (
                    response.request_id == request_id
                    and response.packet_type == SERVERDATA_AUTH_RESPONSE
                ):
                    break
                log.debug(
                    "Skipping packet id=%d type=%d while authenticating",
                    response.request_id,
                    response.packet_type,
                )
        log.debug("Authenticated to %s:%d", self.host, self.port)
        self.state = SessionState.READY

    def execute(self, command: str) -> str:
        """Send a command and return the full response text.

        Uses the probe technique for multi-packet responses: after sending
        the real command, an empty command with its own id is sent. The
        server answers in order, so once the probe's response arrives every
        fragment of the real response has been read.

        The whole exchange is bounded by the session timeout; Timeout is
        raised once it runs out, however many packets have arrived.
        """
        self._require(SessionState.READY)
        self.state = SessionState.EXECUTING
        self._start_deadline()
        with self._guard():
            request_id = next(self._request_ids)
            probe_id = next(self._request_ids)
            self._send(
                Packet(
                    request_id=request_id,
                    packet_type=PacketType.SERVERDATA_EXECCOMMAND,
                    payload=command,
                )
            )
            self._send(
                Packet(
                    request_id=probe_id,
                    packet_type=PacketType.SERVERDATA_EXECCOMMAND,
                    payload="",
                )
            )

            fragments: list[str] = []
            while True:
                response = self._recv()
                if response.request_id == probe_id:
                    break
                if response.request_id == request_id:
                    fragments.append(response.payload)
                    continue
                if response.request_id == _AUTH_FAILED_ID:
                    msg = "Server rejected the command: session not authenticated"
                    raise AuthenticationFailed(msg)
                log.debug("Ignoring packet with unexpected id %d", response.request_id)

        log.debug(
            "Command id=%d completed in %d packet(s)", request_id, len(fragments)
        )
        self.state = SessionState.READY
        return "".join(fragments)

    def close(self) -> None:
        """Close the TCP connection. Safe to call from any state."""
        if self._sock is not None:
            with contextlib.suppress(OSError):
                self._sock.close()
            self._sock = None
        if self.state is not SessionState.FAILED:
            self.state = SessionState.CLOSED

    @contextlib.contextmanager
    def _guard(self) -> Iterator[None]:
        """Move to FAILED and release the socket if the body raises."""
        try:
            yield
        except BaseException:
            self._fail()
            raise

    def _start_deadline(self) -> None:
        self._deadline = time.monotonic() + self.timeout

    def _fail(self) -> None:
        self.close()
        self.state = SessionState.FAILED

    def _require(self, state: SessionState) -> None:
        if self.state is not state:
            msg = f"Session is {self.state.value}, expected {state.value}"
            raise ConnectionError(msg)

    def _send(self, packet: Packet) -> None:
        """Send an encoded packet over the socket."""
        data = packet.encode()
        if self._sock is None:
            msg = "Not connected"
            raise ConnectionError(msg)
        try:
            self._sock.sendall(data)
        except TimeoutError as e:
            msg = "Timed out sending data"
            raise Timeout(msg) from e
        except OSError as e:
            msg = f"Failed to send data: {e}"
            raise ConnectionError(msg) from e

    def _recv(self) -> Packet:
        """Receive a single packet from the socket."""
        return read_packet(self._recv_chunk, self.max_response_length)

    def _recv_chunk(self, num_bytes: int) -> bytes:
        if self._sock is None:
            msg = "Not connected"
            raise ConnectionError(msg)
        if self._deadline is not None:
            remaining = self._deadline - time.monotonic()
            if remaining <= 0:
                msg = f"Timed out waiting for {self.host}:{self.port}"
                raise Timeout(msg)
            self._sock.settimeout(remaining)
        try:
            return self._sock.recv(num_bytes)
        except TimeoutError as e:
            msg = f"Timed out waiting for {self.host}:{self.port}"
            raise Timeout(msg) from e
        except OSError as e:
            msg = f"Connection lost: {e}"
            raise ConnectionError(msg) from e
