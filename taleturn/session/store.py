"""
Session Store - Persistence for session snapshots.

The store offers:
- Snapshot reads (session + participants + turn ledger in one read)
- Lookups by join code and by (session, actor)
- Guarded commits: a delta is written only if the stored revision is
  still the one it was computed from
- Append-only turn ledger

InMemorySessionStore keeps everything in process memory behind a lock.
The lock is held only inside a single call, never across awaits.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
import logging
import threading

from ..engine_core.action import StateDelta
from ..engine_core.state import ActorRef, Participant, Session, SessionSnapshot, TurnRecord
from ..errors import ConcurrencyConflict, DuplicateJoinCode, SessionNotFound

logger = logging.getLogger(__name__)


class SessionStore(ABC):
    """Persistence contract the gateway relies on."""

    @abstractmethod
    def create(self, snapshot: SessionSnapshot):
        """Store a new session. Raises DuplicateJoinCode if the code is in use."""

    @abstractmethod
    def load(self, session_id: str) -> SessionSnapshot:
        """Read a full snapshot. Raises SessionNotFound."""

    @abstractmethod
    def session_id_for_code(self, code: str) -> str:
        """Resolve a join code. Raises SessionNotFound."""

    @abstractmethod
    def code_exists(self, code: str) -> bool:
        """Whether a join code is in use."""

    @abstractmethod
    def commit(self, delta: StateDelta, expected_revision: int) -> SessionSnapshot:
        """
        Write a delta if the session is still at expected_revision.

        Raises ConcurrencyConflict if it moved on, SessionNotFound if it
        is gone. Returns the snapshot after the write.
        """

    @abstractmethod
    def list_session_ids(self) -> list[str]:
        """Ids of every stored session."""

    def find_by_code(self, code: str) -> SessionSnapshot:
        """Read a snapshot by join code. Raises SessionNotFound."""
        return self.load(self.session_id_for_code(code))

    def get_participant(self, session_id: str, participant_id: str) -> Participant | None:
        """Point lookup of a participant."""
        return self.load(session_id).get_participant(participant_id)

    def find_participant(self, session_id: str, actor: ActorRef) -> Participant | None:
        """Point lookup of the participant linked to an actor."""
        return self.load(session_id).participant_for_actor(actor)


class InMemorySessionStore(SessionStore):
    """Thread-safe in-memory store."""

    def __init__(self):
        self._lock = threading.Lock()
        self._sessions: dict[str, Session] = {}
        self._participants: dict[str, dict[str, Participant]] = {}
        self._turns: dict[str, list[TurnRecord]] = {}
        self._codes: dict[str, str] = {}

    def create(self, snapshot: SessionSnapshot):
        session = snapshot.session
        code = session.code.upper()
        with self._lock:
            if code in self._codes:
                raise DuplicateJoinCode(f"Join code {code} is already in use")
            self._codes[code] = session.session_id
            self._sessions[session.session_id] = session
            self._participants[session.session_id] = {
                p.participant_id: p for p in snapshot.participants
            }
            self._turns[session.session_id] = list(snapshot.turns)
        logger.debug("Stored new session %s (%s)", session.session_id, code)

    def load(self, session_id: str) -> SessionSnapshot:
        with self._lock:
            return self._snapshot(session_id)

    def session_id_for_code(self, code: str) -> str:
        with self._lock:
            session_id = self._codes.get(code.upper())
        if session_id is None:
            raise SessionNotFound(code)
        return session_id

    def code_exists(self, code: str) -> bool:
        with self._lock:
            return code.upper() in self._codes

    def commit(self, delta: StateDelta, expected_revision: int) -> SessionSnapshot:
        session_id = delta.session.session_id
        with self._lock:
            stored = self._sessions.get(session_id)
            if stored is None:
                raise SessionNotFound(session_id)
            if stored.revision != expected_revision or delta.base_revision != expected_revision:
                raise ConcurrencyConflict(session_id, expected_revision, stored.revision)

            participants = self._participants[session_id]
            for participant_id in delta.removed_participant_ids:
                participants.pop(participant_id, None)
            for p in delta.updated_participants:
                participants[p.participant_id] = p
            for p in delta.added_participants:
                participants[p.participant_id] = p
            self._turns[session_id].extend(delta.appended_turns)
            self._sessions[session_id] = delta.session

            return self._snapshot(session_id)

    def list_session_ids(self) -> list[str]:
        with self._lock:
            return list(self._sessions)

    def _snapshot(self, session_id: str) -> SessionSnapshot:
        # Caller holds the lock
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        participants = sorted(
            self._participants[session_id].values(), key=lambda p: p.turn_order
        )
        return SessionSnapshot(
            session=session,
            participants=tuple(participants),
            turns=tuple(self._turns[session_id]),
        )
