"""Source RCON wire protocol encoding and decoding."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import TYPE_CHECKING

from rconexec.errors import ConnectionError  # noqa: A004
from rconexec.errors import InvalidCommand, MalformedPacket

if TYPE_CHECKING:
    from collections.abc import Callable


class PacketType(IntEnum):
    """RCON packet types.

    EXECCOMMAND and AUTH_RESPONSE share the value 2, so the enum only
    carries three members. Which meaning applies depends on the
    handshake phase and the request id.
    """

    SERVERDATA_RESPONSE_VALUE = 0
    SERVERDATA_EXECCOMMAND = 2
    SERVERDATA_AUTH = 3


SERVERDATA_AUTH_RESPONSE = PacketType.SERVERDATA_EXECCOMMAND

# request_id + type
HEADER_SIZE = 8
TERMINATOR = b"\x00\x00"
MIN_PACKET_LENGTH = HEADER_SIZE + len(TERMINATOR)
MAX_BODY_SIZE = 4096
MAX_REQUEST_LENGTH = MIN_PACKET_LENGTH + MAX_BODY_SIZE
MAX_RESPONSE_LENGTH = 65536

_LENGTH_PREFIX = struct.Struct("<i")
_HEADER = struct.Struct("<ii")


@dataclass(frozen=True)
class Packet:
    """A single RCON packet.

    Wire format: [length:i32][request_id:i32][type:i32][payload\\0\\0]
    Length covers everything after itself (req_id + type + payload + 2 nulls).
    """

    request_id: int
    packet_type: int
    payload: str

    def encode(self) -> bytes:
        """Encode the packet into bytes for transmission.

        Raises InvalidCommand if the payload contains a NUL byte, is not
        encodable as UTF-8, or does not fit in a single request packet.
        """
        if "\x00" in self.payload:
            msg = "Command text must not contain NUL bytes"
            raise InvalidCommand(msg)
        try:
            payload_bytes = self.payload.encode("utf-8") + TERMINATOR
        except UnicodeEncodeError as e:
            msg = "Command text is not valid UTF-8"
            raise InvalidCommand(msg) from e
        length = HEADER_SIZE + len(payload_bytes)
        if length > MAX_REQUEST_LENGTH:
            msg = (
                f"Command is too long ({len(payload_bytes) - 2} bytes,"
                f" max {MAX_BODY_SIZE})"
            )
            raise InvalidCommand(msg)
        return (
            _LENGTH_PREFIX.pack(length)
            + _HEADER.pack(self.request_id, self.packet_type)
            + payload_bytes
        )

    @classmethod
    def decode(cls, data: bytes) -> Packet:
        """Decode a packet from raw bytes (excluding the 4-byte length prefix).

        The caller is responsible for reading the 4-byte length prefix and then
        reading exactly that many bytes before passing them here.
        """
        if len(data) < MIN_PACKET_LENGTH:
            msg = f"Packet too short: {len(data)} bytes"
            raise MalformedPacket(msg)
        if not data.endswith(TERMINATOR):
            msg = "Packet is missing its NUL terminator"
            raise MalformedPacket(msg)
        request_id, packet_type = _HEADER.unpack_from(data, 0)
        payload = data[HEADER_SIZE:-2].decode("utf-8", errors="replace")
        return cls(
            request_id=request_id,
            packet_type=packet_type,
            payload=payload,
        )


def read_packet(
    recv: Callable[[int], bytes],
    max_length: int = MAX_RESPONSE_LENGTH,
) -> Packet:
    """Read one length-prefixed packet from a stream.

    Args:
        recv: Socket-style read function. It may return fewer bytes than
            requested; an empty result means the peer closed the stream.
        max_length: Largest declared length accepted.

    Raises:
        ConnectionError: If the stream is closed before the packet starts.
        MalformedPacket: If the stream ends mid-packet or the declared
            length is out of bounds.
    """
    first = recv(4)
    if not first:
        msg = "Connection closed by server"
        raise ConnectionError(msg)
    (length,) = _LENGTH_PREFIX.unpack(first + read_exact(recv, 4 - len(first)))
    if length < MIN_PACKET_LENGTH or length > max_length:
        msg = (
            f"Declared packet length {length} outside"
            f" [{MIN_PACKET_LENGTH}, {max_length}]"
        )
        raise MalformedPacket(msg)
    return Packet.decode(read_exact(recv, length))


def read_exact(recv: Callable[[int], bytes], num_bytes: int) -> bytes:
    """Read exactly num_bytes, looping over short reads."""
    data = bytearray()
    while len(data) < num_bytes:
        chunk = recv(num_bytes - len(data))
        if not chunk:
            msg = f"Stream closed after {len(data)} of {num_bytes} bytes"
            raise MalformedPacket(msg)
        data.extend(chunk)
    return bytes(data)
