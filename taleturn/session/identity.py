"""
Identity - Resolves who is making a request.

Two kinds of actor exist:
- account: issued by the upstream identity service, passed in as an id
- ephemeral: a random per-session token kept in a cookie, for players
  who join without an account

The engine links both to participants the same way.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
import secrets

from ..engine_core.state import ActorRef

EPHEMERAL_COOKIE_PREFIX = "player_"
EPHEMERAL_COOKIE_MAX_AGE = 60 * 60 * 24 * 7  # 7 days


def ephemeral_cookie_name(session_id: str) -> str:
    """Cookie holding the ephemeral token for one session."""
    return f"{EPHEMERAL_COOKIE_PREFIX}{session_id}"


class IdentityProvider(ABC):
    """Where the gateway gets the current actor from."""

    @abstractmethod
    def get_current_actor(self, session_id: str | None = None) -> ActorRef | None:
        """The actor behind the request, if one can be identified."""

    @abstractmethod
    def establish_ephemeral(self, session_id: str) -> ActorRef:
        """Create an ephemeral actor for a session and remember it."""


@dataclass
class RequestIdentity(IdentityProvider):
    """
    Identity for one HTTP request.

    account_id comes from the upstream auth layer (header); cookies are the
    request cookies. When an ephemeral actor is established, issued holds
    (cookie name, token) so the response can set the cookie.
    """
    account_id: str | None = None
    cookies: dict[str, str] = field(default_factory=dict)
    issued: tuple[str, str] | None = None

    def get_current_actor(self, session_id: str | None = None) -> ActorRef | None:
        if self.account_id:
            return ActorRef.account(self.account_id)
        if session_id is None:
            return None
        if self.issued and self.issued[0] == ephemeral_cookie_name(session_id):
            return ActorRef.ephemeral(self.issued[1])
        token = self.cookies.get(ephemeral_cookie_name(session_id))
        if token:
            return ActorRef.ephemeral(token)
        return None

    def establish_ephemeral(self, session_id: str) -> ActorRef:
        token = secrets.token_urlsafe(16)
        self.issued = (ephemeral_cookie_name(session_id), token)
        return ActorRef.ephemeral(token)


@dataclass
class FixedIdentity(IdentityProvider):
    """Identity that always resolves to the same actor (CLI, tests)."""
    actor: ActorRef | None = None

    def get_current_actor(self, session_id: str | None = None) -> ActorRef | None:
        return self.actor

    def establish_ephemeral(self, session_id: str) -> ActorRef:
        self.actor = ActorRef.ephemeral(secrets.token_urlsafe(16))
        return self.actor
