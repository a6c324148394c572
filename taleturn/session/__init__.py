"""
Session Module - Everything around the engine that touches the outside.

A session lives in a store as:
- one session record with a revision number
- its participants
- its append-only turn ledger

The gateway is the only writer. Each request loads a snapshot, runs the
engine, and commits only if nobody else committed in between.
"""

from .gateway import GameSessionGateway
from .store import SessionStore, InMemorySessionStore
from .notifier import SessionNotifier
from .identity import IdentityProvider, RequestIdentity, FixedIdentity, ephemeral_cookie_name

__all__ = [
    "GameSessionGateway",
    "SessionStore",
    "InMemorySessionStore",
    "SessionNotifier",
    "IdentityProvider",
    "RequestIdentity",
    "FixedIdentity",
    "ephemeral_cookie_name",
]
