"""Tests for the command executor, mostly against a local mock RCON server."""

import functools
import socket
import time
from unittest.mock import MagicMock

import pytest

from rconexec.config import RconServerConfig
from rconexec.errors import (
    AuthenticationFailed,
    ConnectionError,
    InvalidCommand,
    ServerInactive,
    Timeout,
)
from rconexec.executor import execute_remote_command
from rconexec.protocol import PacketType
from rconexec.session import RconSession


def _config(port: int, *, is_active: bool = True) -> RconServerConfig:
    return RconServerConfig(
        name="main", host="127.0.0.1", port=port, is_active=is_active
    )


def _unused_port() -> int:
    with socket.socket() as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


class TestEndToEnd:
    def test_list_players(self, rcon_server):
        server = rcon_server(responses={"list": "There are 3 players online"})
        factory = functools.partial(RconSession, first_request_id=42)

        result = execute_remote_command(
            _config(server.port), "secret", "list", 2.0, session_factory=factory
        )

        assert result == "There are 3 players online"
        auth, command, probe = server.received
        assert (auth.request_id, auth.packet_type, auth.payload) == (
            42,
            PacketType.SERVERDATA_AUTH,
            "secret",
        )
        assert (command.request_id, command.payload) == (43, "list")
        assert probe.payload == ""

    def test_multi_packet_response(self, rcon_server):
        output = "".join(chr(ord("a") + i % 26) for i in range(5000))
        server = rcon_server(responses={"help": output}, chunk_size=2500)

        result = execute_remote_command(_config(server.port), "secret", "help", 2.0)

        assert result == output

    def test_empty_packet_before_auth_response(self, rcon_server):
        server = rcon_server(
            responses={"list": "ok"}, empty_packet_before_auth=True
        )

        result = execute_remote_command(_config(server.port), "secret", "list", 2.0)

        assert result == "ok"

    def test_wrong_password(self, rcon_server):
        server = rcon_server(responses={"list": "ok"})

        with pytest.raises(AuthenticationFailed):
            execute_remote_command(_config(server.port), "wrong", "list", 2.0)

        # Only the auth packet was sent; no command reached the server
        assert len(server.received) == 1

    def test_connection_refused(self):
        with pytest.raises(ConnectionError, match="Failed to connect") as excinfo:
            execute_remote_command(_config(_unused_port()), "secret", "list", 1.0)

        assert excinfo.value.code == "connection_error"

    def test_stray_packets_do_not_extend_the_timeout(self, rcon_server):
        server = rcon_server(responses={"list": "ok"}, stray_packets=True)

        started = time.monotonic()
        with pytest.raises(Timeout, match="Timed out waiting"):
            execute_remote_command(_config(server.port), "secret", "list", 0.5)

        assert time.monotonic() - started < 3.0

    def test_one_connection_per_call(self, rcon_server):
        server = rcon_server(responses={"list": "ok"})

        execute_remote_command(_config(server.port), "secret", "list", 2.0)
        execute_remote_command(_config(server.port), "secret", "list", 2.0)

        assert server.connections == 2


class TestPreconditions:
    def test_inactive_server_is_never_dialed(self, rcon_server):
        server = rcon_server()
        factory = MagicMock()

        with pytest.raises(ServerInactive, match="inactive"):
            execute_remote_command(
                _config(server.port, is_active=False),
                "secret",
                "list",
                2.0,
                session_factory=factory,
            )

        factory.assert_not_called()
        assert server.connections == 0

    @pytest.mark.parametrize("command", ["", "   "])
    def test_empty_command(self, command):
        factory = MagicMock()

        with pytest.raises(InvalidCommand, match="Command is required"):
            execute_remote_command(
                _config(25575), "secret", command, 2.0, session_factory=factory
            )

        factory.assert_not_called()


class TestSessionLifecycle:
    def test_session_closed_on_success(self):
        session = MagicMock()
        session.__enter__.return_value = session
        session.execute.return_value = "done"
        factory = MagicMock(return_value=session)

        result = execute_remote_command(
            _config(25575), "secret", "save-all", 3.0, session_factory=factory
        )

        assert result == "done"
        factory.assert_called_once_with(
            "127.0.0.1", 25575, 3.0, max_response_length=65536
        )
        session.connect.assert_called_once()
        session.authenticate.assert_called_once_with("secret")
        session.execute.assert_called_once_with("save-all")
        session.__exit__.assert_called_once()

    def test_session_closed_on_auth_failure(self):
        session = MagicMock()
        session.__enter__.return_value = session
        session.authenticate.side_effect = AuthenticationFailed("rejected")
        factory = MagicMock(return_value=session)

        with pytest.raises(AuthenticationFailed):
            execute_remote_command(
                _config(25575), "secret", "list", 3.0, session_factory=factory
            )

        session.execute.assert_not_called()
        session.__exit__.assert_called_once()
