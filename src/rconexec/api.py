"""HTTP surface: POST /executeCommand for authenticated admins."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Header, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from rconexec.access import TokenIdentity
from rconexec.config import AppConfig
from rconexec.service import CommandService, ExecutionRequest, build_service

log = logging.getLogger(__name__)

_STATUS_BY_CODE = {
    "unauthorized": 401,
    "server_not_found": 404,
    "server_inactive": 409,
    "invalid_command": 400,
    "credential_unavailable": 502,
    "connection_error": 502,
    "authentication_failed": 502,
    "malformed_packet": 502,
    "timeout": 504,
}


class ExecuteCommandBody(BaseModel):
    server_name: str = Field("main", alias="serverName")
    command_text: str = Field("", alias="commandText")


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer":
        return None
    return token.strip() or None


def create_app(config: AppConfig, service: CommandService | None = None) -> FastAPI:
    """Build the FastAPI app around a CommandService."""
    if service is None:
        service = build_service(config)
    identity = TokenIdentity(config.tokens)
    app = FastAPI(title="rconexec")

    @app.post("/executeCommand")
    def execute_command(
        body: ExecuteCommandBody,
        request: Request,
        authorization: str | None = Header(None),
        user_agent: str | None = Header(None),
    ) -> JSONResponse:
        actor = identity.actor_for(_bearer_token(authorization))
        response = service.execute_command(
            ExecutionRequest(server_name=body.server_name, command=body.command_text),
            actor,
            source_address=request.client.host if request.client else None,
            user_agent=user_agent,
        )
        status = 200
        if not response.success:
            status = _STATUS_BY_CODE.get(response.error_code or "", 500)
            log.info("executeCommand failed with %d: %s", status, response.error)
        return JSONResponse(response.to_dict(), status_code=status)

    return app
