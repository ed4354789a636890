"""Interactive admin console using prompt_toolkit.

Every line is a separate gated execution: the console never holds a
connection or a password between commands.
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING

from prompt_toolkit import PromptSession
from prompt_toolkit.formatted_text import HTML
from prompt_toolkit.history import FileHistory
from prompt_toolkit.key_binding import KeyBindings

if TYPE_CHECKING:
    from prompt_toolkit.key_binding.key_processor import KeyPressEvent

    from rconexec.service import CommandService

from rconexec.config import HISTORY_FILE, ensure_config_dir
from rconexec.service import ExecutionRequest

log = logging.getLogger(__name__)

_EXIT_WORDS = ("exit", "quit")


def _create_key_bindings() -> KeyBindings:
    """Ctrl+C abandons a non-empty line and exits on an empty one."""
    kb = KeyBindings()

    @kb.add("c-c")
    def _(event: KeyPressEvent) -> None:
        buffer = event.app.current_buffer
        if buffer.text:
            print()
            buffer.reset()
            event.app.renderer.reset()
        else:
            event.app.exit(exception=KeyboardInterrupt)

    return kb


def run_console(service: CommandService, server_name: str, actor: str) -> None:
    """Read commands until exit, running each one through the service."""
    ensure_config_dir()
    session: PromptSession[str] = PromptSession(
        history=FileHistory(str(HISTORY_FILE)),
        key_bindings=_create_key_bindings(),
    )
    prompt = HTML(f"<ansigreen>{server_name}</ansigreen>> ")

    while True:
        try:
            text = session.prompt(prompt).strip()
        except (EOFError, KeyboardInterrupt):
            print("\nGoodbye.")
            break

        if not text:
            continue
        if text in _EXIT_WORDS:
            print("Goodbye.")
            break

        run_line(service, server_name, actor, text)


def run_line(service: CommandService, server_name: str, actor: str, text: str) -> bool:
    """Execute one console line and print its outcome. Returns success."""
    response = service.execute_command(
        ExecutionRequest(server_name=server_name, command=text),
        actor,
        source_address="console",
    )
    if response.success:
        if response.result:
            print(response.result)
        return True
    print(f"Error ({response.error_code}): {response.error}", file=sys.stderr)
    return False
