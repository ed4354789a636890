"""Shared fixtures: a scripted RCON server on a local port."""

from __future__ import annotations

import socket
import threading

import pytest

from rconexec.errors import RconError
from rconexec.protocol import (
    SERVERDATA_AUTH_RESPONSE,
    Packet,
    PacketType,
    read_packet,
)


class MockRconServer:
    """Answers auth and exec packets the way a Source server does.

    Command output longer than chunk_size is split across several packets
    sharing the request id. An empty command (the client's probe) gets one
    empty response. With stray_packets, every real command is followed by an
    endless trickle of packets with an unrelated id instead of further reads.
    """

    def __init__(
        self,
        password: str = "secret",
        responses: dict[str, str] | None = None,
        chunk_size: int = 4096,
        *,
        empty_packet_before_auth: bool = False,
        stray_packets: bool = False,
    ) -> None:
        self.password = password
        self.responses = responses or {}
        self.chunk_size = chunk_size
        self.empty_packet_before_auth = empty_packet_before_auth
        self.stray_packets = stray_packets
        self.received: list[Packet] = []
        self.connections = 0
        self._sock = socket.create_server(("127.0.0.1", 0))
        self._sock.settimeout(0.1)
        self.port = self._sock.getsockname()[1]
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._serve, daemon=True)

    def start(self) -> None:
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        self._thread.join(timeout=2)
        self._sock.close()

    def _serve(self) -> None:
        while not self._stop.is_set():
            try:
                conn, _ = self._sock.accept()
            except TimeoutError:
                continue
            except OSError:
                return
            self.connections += 1
            conn.settimeout(5.0)
            with conn:
                self._handle(conn)

    def _handle(self, conn: socket.socket) -> None:
        while True:
            try:
                packet = read_packet(conn.recv)
            except (RconError, OSError):
                return
            self.received.append(packet)
            for reply in self._replies(packet):
                conn.sendall(reply.encode())
            if (
                self.stray_packets
                and packet.packet_type == PacketType.SERVERDATA_EXECCOMMAND
                and packet.payload
            ):
                self._trickle(conn)
                return

    def _trickle(self, conn: socket.socket) -> None:
        stray = Packet(777, PacketType.SERVERDATA_RESPONSE_VALUE, "noise").encode()
        while not self._stop.is_set():
            try:
                conn.sendall(stray)
            except OSError:
                return
            self._stop.wait(0.05)

    def _replies(self, packet: Packet) -> list[Packet]:
        if packet.packet_type == PacketType.SERVERDATA_AUTH:
            replies = []
            if self.empty_packet_before_auth:
                replies.append(
                    Packet(
                        packet.request_id, PacketType.SERVERDATA_RESPONSE_VALUE, ""
                    )
                )
            auth_id = packet.request_id if packet.payload == self.password else -1
            replies.append(Packet(auth_id, SERVERDATA_AUTH_RESPONSE, ""))
            return replies

        output = self.responses.get(packet.payload, "")
        chunks = [
            output[i : i + self.chunk_size]
            for i in range(0, len(output), self.chunk_size)
        ] or [""]
        return [
            Packet(packet.request_id, PacketType.SERVERDATA_RESPONSE_VALUE, chunk)
            for chunk in chunks
        ]


@pytest.fixture
def rcon_server():
    servers: list[MockRconServer] = []

    def _start(**kwargs) -> MockRconServer:
        server = MockRconServer(**kwargs)
        server.start()
        servers.append(server)
        return server

    yield _start

    for server in servers:
        server.stop()
