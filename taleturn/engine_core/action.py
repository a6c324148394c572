"""
Action System - Actions, payloads, deltas and results.

Actions represent:
1. Lobby actions (join, kick, location)
2. Setup actions (cycle length, start)
3. Turn actions (draw, focus, continue)
4. Cycle-boundary actions (topic, continue cycle)

All state changes flow through actions.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TYPE_CHECKING

from .state import ActorRef, Participant, Session, SessionSnapshot, TurnRecord

if TYPE_CHECKING:
    from .pools import PromptRef


class ActionType(Enum):
    """Types of actions a session accepts."""
    # Waiting
    JOIN = "join"
    KICK = "kick"
    SET_LOCATION = "set_location"
    CONFIRM_LOCATION = "confirm_location"
    UNCONFIRM_LOCATION = "unconfirm_location"
    START_GAME = "start_game"

    # Cycle length selection
    ROLL_CYCLE_LENGTH = "roll_cycle_length"
    CONFIRM_CYCLE_LENGTH = "confirm_cycle_length"

    # Establishing
    DRAW_FACE_PROMPT = "draw_face_prompt"
    TOGGLE_READY = "toggle_ready"
    ADVANCE_PHASE = "advance_phase"

    # Drawing
    DRAW_NUMBERED_CARD = "draw_numbered_card"
    CONTINUE_TURN = "continue_turn"
    ENTER_FOCUS = "enter_focus"
    EXIT_FOCUS = "exit_focus"
    SELECT_TOPIC = "select_topic"
    CONTINUE_CYCLE = "continue_cycle"

    # Any live phase
    SET_CONNECTED = "set_connected"


class RejectionCode(str, Enum):
    """Why an action was refused."""
    NOT_FOUND = "NOT_FOUND"
    PHASE_VIOLATION = "PHASE_VIOLATION"
    TURN_VIOLATION = "TURN_VIOLATION"
    PERMISSION_VIOLATION = "PERMISSION_VIOLATION"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    POOL_EXHAUSTED = "POOL_EXHAUSTED"
    CONCURRENCY_CONFLICT = "CONCURRENCY_CONFLICT"


@dataclass
class ActionPayload:
    """
    Payload for an action - contains the action parameters.

    Different action types use different fields.
    Validation happens in the state machine.
    """
    display_name: str | None = None
    target_participant_id: str | None = None
    location: str | None = None
    topic: str | None = None
    connected: bool | None = None

    # Generic params
    params: dict[str, Any] = field(default_factory=dict)


@dataclass
class Action:
    """
    A complete action to be applied to a session snapshot.

    Actions are:
    - Validated against the phase transition table
    - Applied atomically by the state machine
    - Stamped by the gateway (timestamp, action_id)
    """
    action_type: ActionType
    actor: ActorRef | None
    payload: ActionPayload = field(default_factory=ActionPayload)
    timestamp: float | None = None
    action_id: str | None = None

    @classmethod
    def join(cls, actor: ActorRef, display_name: str) -> Action:
        """Factory for join action."""
        return cls(ActionType.JOIN, actor, ActionPayload(display_name=display_name))

    @classmethod
    def kick(cls, actor: ActorRef, participant_id: str) -> Action:
        """Factory for kick action."""
        return cls(ActionType.KICK, actor, ActionPayload(target_participant_id=participant_id))

    @classmethod
    def set_location(cls, actor: ActorRef, location: str) -> Action:
        """Factory for set-location action."""
        return cls(ActionType.SET_LOCATION, actor, ActionPayload(location=location))

    @classmethod
    def select_topic(cls, actor: ActorRef, topic: str) -> Action:
        """Factory for cycle-boundary topic selection."""
        return cls(ActionType.SELECT_TOPIC, actor, ActionPayload(topic=topic))

    @classmethod
    def set_connected(cls, actor: ActorRef, connected: bool) -> Action:
        """Factory for connectivity updates."""
        return cls(ActionType.SET_CONNECTED, actor, ActionPayload(connected=connected))

    @classmethod
    def simple(cls, action_type: ActionType, actor: ActorRef) -> Action:
        """Factory for actions that carry no payload."""
        return cls(action_type, actor)


@dataclass
class StateDelta:
    """
    One atomic transition, ready for the gateway to persist.

    session is the new session record (revision already bumped).
    The participant and turn lists describe the row-level changes.
    """
    session: Session
    added_participants: list[Participant] = field(default_factory=list)
    updated_participants: list[Participant] = field(default_factory=list)
    removed_participant_ids: list[str] = field(default_factory=list)
    appended_turns: list[TurnRecord] = field(default_factory=list)

    # For callers
    drawn: PromptRef | None = None
    new_turn_holder: str | None = None

    @property
    def base_revision(self) -> int:
        """Revision of the snapshot this delta was computed from."""
        return self.session.revision - 1

    def apply_to(self, snapshot: SessionSnapshot) -> SessionSnapshot:
        """Return the snapshot as it looks after this delta."""
        removed = set(self.removed_participant_ids)
        updated = {p.participant_id: p for p in self.updated_participants}
        participants = [
            updated.get(p.participant_id, p)
            for p in snapshot.participants
            if p.participant_id not in removed
        ]
        participants.extend(self.added_participants)
        return SessionSnapshot(
            session=self.session,
            participants=tuple(participants),
            turns=snapshot.turns + tuple(self.appended_turns),
        )


@dataclass
class ActionResult:
    """
    Result of applying an action.

    Contains:
    - Whether action succeeded
    - The delta and resulting snapshot (if succeeded)
    - A reason and rejection code (if failed)
    - Human-readable changes for logs and clients
    """
    success: bool
    new_state: SessionSnapshot | None = None
    delta: StateDelta | None = None
    error: str | None = None
    error_code: RejectionCode | None = None

    state_changes: list[str] = field(default_factory=list)

    # The participant the action concerned (e.g. the one who joined)
    participant: Participant | None = None

    @property
    def is_noop(self) -> bool:
        """Succeeded without anything to persist."""
        return self.success and self.delta is None

    @classmethod
    def failure(cls, error: str, error_code: RejectionCode | None = None) -> ActionResult:
        """Create a failure result."""
        return cls(success=False, error=error, error_code=error_code)

    @classmethod
    def success_with_delta(
        cls,
        snapshot: SessionSnapshot,
        delta: StateDelta,
        changes: list[str] | None = None,
        participant: Participant | None = None,
    ) -> ActionResult:
        """Create a success result from a delta over snapshot."""
        return cls(
            success=True,
            new_state=delta.apply_to(snapshot),
            delta=delta,
            state_changes=changes or [],
            participant=participant,
        )

    @classmethod
    def unchanged(
        cls,
        snapshot: SessionSnapshot,
        changes: list[str] | None = None,
        participant: Participant | None = None,
    ) -> ActionResult:
        """Create a success result that changes nothing."""
        return cls(
            success=True,
            new_state=snapshot,
            state_changes=changes or [],
            participant=participant,
        )
