"""Caller identity and role checks that run before any secret or network access."""

from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from rconexec.config import DEFAULT_ROLE
from rconexec.errors import Unauthorized

if TYPE_CHECKING:
    from collections.abc import Mapping

log = logging.getLogger(__name__)


class RoleLookup(Protocol):
    """Returns the role assigned to an actor, or None if it has none."""

    def role_for(self, actor: str) -> str | None: ...


class StaticRoleLookup:
    """Role lookup backed by the [actors] table of the config."""

    def __init__(self, roles: Mapping[str, str]) -> None:
        self._roles = dict(roles)

    def role_for(self, actor: str) -> str | None:
        return self._roles.get(actor)


class TokenIdentity:
    """Maps bearer tokens from the [tokens] table to actor ids."""

    def __init__(self, tokens: Mapping[str, str]) -> None:
        self._tokens = dict(tokens)

    def actor_for(self, token: str | None) -> str | None:
        """Return the actor owning the token, or None for unknown tokens."""
        if not token:
            return None
        for known, actor in self._tokens.items():
            if hmac.compare_digest(known.encode(), token.encode()):
                return actor
        return None


@dataclass(frozen=True)
class Authorization:
    """Proof that an actor passed the gate."""

    actor: str
    role: str


class AccessGate:
    """Requires a fixed role before anything else happens."""

    def __init__(self, roles: RoleLookup, required_role: str = DEFAULT_ROLE) -> None:
        self._roles = roles
        self.required_role = required_role

    def authorize(self, actor: str | None) -> Authorization:
        """Return an Authorization for the actor or raise Unauthorized."""
        if not actor:
            msg = "User not authenticated"
            raise Unauthorized(msg)
        role = self._roles.role_for(actor)
        if role != self.required_role:
            log.info("Denied %s (role=%s)", actor, role)
            msg = f"{self.required_role.capitalize()} access required"
            raise Unauthorized(msg)
        return Authorization(actor=actor, role=role)
