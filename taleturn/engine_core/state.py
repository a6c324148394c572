"""
Session State - Immutable snapshot of one storytelling session.

Design principles:
- Immutable: every transition returns a new snapshot
- Serializable: plain dataclasses, no live references
- Single source of truth: the Session record says whose turn it is and
  which phase the game is in
- The turn ledger is append-only and is the only authority on which
  prompts have been drawn
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from enum import Enum, IntEnum


class Phase(IntEnum):
    """Top-level stages of a session, in order."""
    WAITING = 0
    CYCLE_LENGTH_SELECTION = 1
    ESTABLISHING = 2
    DRAWING = 3
    ENDED = 4


class ActorKind(Enum):
    """How an actor was identified."""
    ACCOUNT = "account"  # Durable account issued upstream
    EPHEMERAL = "ephemeral"  # Per-session token for players without an account


@dataclass(frozen=True)
class ActorRef:
    """
    Reference to whoever is making a request.

    Both kinds link to participants the same way; the engine only ever
    compares references for equality.
    """
    kind: ActorKind
    value: str

    @classmethod
    def account(cls, account_id: str) -> ActorRef:
        return cls(kind=ActorKind.ACCOUNT, value=account_id)

    @classmethod
    def ephemeral(cls, token: str) -> ActorRef:
        return cls(kind=ActorKind.EPHEMERAL, value=token)

    @property
    def is_durable(self) -> bool:
        return self.kind == ActorKind.ACCOUNT

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.value}"


class PoolKind(Enum):
    """The two prompt pools."""
    FACE = "face"
    NUMBERED = "numbered"


@dataclass(frozen=True)
class Participant:
    """
    A player seated in a session.

    turn_order is unique per session. Removals may leave gaps; rotation
    skips missing ranks rather than renumbering.
    """
    participant_id: str
    session_id: str
    display_name: str
    actor: ActorRef
    turn_order: int
    connected: bool = True
    created_at: float = 0.0

    def with_connected(self, connected: bool) -> Participant:
        return replace(self, connected=connected)


@dataclass(frozen=True)
class TurnRecord:
    """
    One entry in the append-only turn ledger.

    Holds exactly one of: a face prompt id, or a numbered card
    (card_number + draw_order).
    """
    record_id: str
    session_id: str
    participant_id: str
    created_at: float
    face_prompt_id: int | None = None
    card_number: int | None = None
    draw_order: int | None = None

    def __post_init__(self):
        has_face = self.face_prompt_id is not None
        has_numbered = self.card_number is not None or self.draw_order is not None
        if has_face == has_numbered:
            raise ValueError("Turn record must reference exactly one prompt pool")
        if has_numbered and (self.card_number is None or self.draw_order is None):
            raise ValueError("Numbered turn record needs both card_number and draw_order")

    @property
    def pool(self) -> PoolKind:
        if self.face_prompt_id is not None:
            return PoolKind.FACE
        return PoolKind.NUMBERED


@dataclass(frozen=True)
class Session:
    """
    The session record.

    Phase-scoped fields:
    - cycle_length: label rolled during CYCLE_LENGTH_SELECTION
    - cycle: completed cycles, 0..4
    - ten_flag: a terminal card was drawn, cycle end is pending
    - focused_flag: the turn holder opened a focused scene
    - turn_drawn: the turn holder already drew a numbered card this turn
    - selected_topics: topics picked at the cycle boundary (at most one)

    revision increases by one on every committed transition and is the
    optimistic-concurrency guard.
    """
    session_id: str
    code: str
    title: str
    created_by: ActorRef
    phase: Phase = Phase.WAITING

    cycle_length: str | None = None
    cycle: int = 0
    ten_flag: bool = False
    focused_flag: bool = False
    turn_drawn: bool = False
    selected_topics: frozenset[str] = frozenset()

    current_turn_id: str | None = None
    last_turn_id: str | None = None

    location: str = ""
    location_confirmed_by: frozenset[str] = frozenset()
    ready_to_end: frozenset[str] = frozenset()

    revision: int = 0
    created_at: float = 0.0
    updated_at: float = 0.0

    def _copy_with(self, **kwargs) -> Session:
        """Create a copy with some fields replaced."""
        return replace(self, **kwargs)


@dataclass(frozen=True)
class SessionSnapshot:
    """
    Everything the state machine needs to decide one action.

    Loaded in one read so pool exclusion and rotation candidates come
    from the same point in time as the session record.
    """
    session: Session
    participants: tuple[Participant, ...] = ()
    turns: tuple[TurnRecord, ...] = field(default_factory=tuple)

    @property
    def session_id(self) -> str:
        return self.session.session_id

    @property
    def revision(self) -> int:
        return self.session.revision

    @property
    def ordered_participants(self) -> list[Participant]:
        """Participants sorted by turn order."""
        return sorted(self.participants, key=lambda p: p.turn_order)

    def get_participant(self, participant_id: str | None) -> Participant | None:
        """Get participant by ID."""
        for p in self.participants:
            if p.participant_id == participant_id:
                return p
        return None

    def participant_for_actor(self, actor: ActorRef | None) -> Participant | None:
        """Find the participant linked to an actor."""
        if actor is None:
            return None
        for p in self.participants:
            if p.actor == actor:
                return p
        return None

    def participant_by_name(self, display_name: str) -> Participant | None:
        """Case-insensitive lookup by display name."""
        wanted = display_name.casefold()
        for p in self.participants:
            if p.display_name.casefold() == wanted:
                return p
        return None

    @property
    def creator(self) -> Participant | None:
        return self.participant_for_actor(self.session.created_by)

    @property
    def current_turn_holder(self) -> Participant | None:
        return self.get_participant(self.session.current_turn_id)

    def turns_in_pool(self, pool: PoolKind) -> list[TurnRecord]:
        return [t for t in self.turns if t.pool == pool]

    @property
    def ready_count(self) -> int:
        """Participants still present who signaled readiness."""
        present = {p.participant_id for p in self.participants}
        return len(self.session.ready_to_end & present)

    @property
    def ready_threshold(self) -> int:
        """Readiness needed before the establishing phase can be left."""
        connected = sum(1 for p in self.participants if p.connected)
        return max(connected, 1)
