"""Run the commands attached to a purchased product."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from rconexec.service import CommandResponse, ExecutionRequest

if TYPE_CHECKING:
    from collections.abc import Iterable

    from rconexec.service import CommandService

log = logging.getLogger(__name__)

USERNAME_PLACEHOLDER = "{username}"


def render_command(template: str, username: str | None) -> str:
    """Substitute the player's name into a command template.

    Templates without a username are returned unchanged.
    """
    if not username:
        return template
    return template.replace(USERNAME_PLACEHOLDER, username)


def run_fulfillment(  # noqa: PLR0913
    service: CommandService,
    actor: str,
    server_name: str,
    templates: Iterable[str],
    username: str | None,
) -> list[CommandResponse]:
    """Run each command in order; a failure is logged and does not stop the rest."""
    responses: list[CommandResponse] = []
    for template in templates:
        command = render_command(template, username)
        response = service.execute_command(
            ExecutionRequest(server_name=server_name, command=command), actor
        )
        if response.success:
            log.info("Fulfillment command executed: %s", command)
        else:
            log.warning(
                "Fulfillment command failed: %s (%s)", command, response.error
            )
        responses.append(response)
    return responses
