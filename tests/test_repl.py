"""Tests for the interactive console."""

from unittest.mock import MagicMock, patch

import pytest

from rconexec.errors import Timeout
from rconexec.repl import run_console, run_line
from rconexec.service import CommandResponse


@pytest.fixture
def prompt_session():
    with (
        patch("rconexec.repl.PromptSession") as mock_cls,
        patch("rconexec.repl.FileHistory"),
        patch("rconexec.repl.ensure_config_dir"),
    ):
        yield mock_cls.return_value


class TestRunConsole:
    def test_runs_each_line_until_exit(self, prompt_session, capsys):
        prompt_session.prompt.side_effect = ["list", "  ", "say hi", "exit", "never"]
        service = MagicMock()
        service.execute_command.return_value = CommandResponse(
            success=True, result="ok"
        )

        run_console(service, "main", "alice")

        commands = [c.args[0].command for c in service.execute_command.call_args_list]
        assert commands == ["list", "say hi"]
        assert "Goodbye." in capsys.readouterr().out

    def test_eof_exits(self, prompt_session):
        prompt_session.prompt.side_effect = EOFError
        service = MagicMock()

        run_console(service, "main", "alice")

        service.execute_command.assert_not_called()


class TestRunLine:
    def test_prints_error(self, capsys):
        service = MagicMock()
        service.execute_command.return_value = CommandResponse.failure(Timeout("slow"))

        assert run_line(service, "main", "alice", "list") is False
        assert "Error (timeout): slow" in capsys.readouterr().err

    def test_records_console_source(self):
        service = MagicMock()
        service.execute_command.return_value = CommandResponse(success=True, result="")

        assert run_line(service, "main", "alice", "save-all") is True
        assert service.execute_command.call_args.kwargs["source_address"] == "console"
