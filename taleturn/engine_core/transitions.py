"""
Phase Transition Table - Which action is legal when, and where it leads.

Every action is checked against one table row:
- the phases it is allowed in
- who may perform it (anyone, a participant, the creator, the turn holder)
- sub-state flags that must be set or clear (phase 3 only)
- an exit guard for actions that leave a phase

New actions are added as new rows; the state machine never re-checks
phase or role on its own.

Checks run in a fixed order, so a request that is wrong in several ways
always gets the same rejection: phase, identity, role, sub-state, guard.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from .state import Phase, PoolKind, Session, SessionSnapshot, ActorRef
from .action import Action, ActionType, RejectionCode
from ..prompts.catalog import MAX_CYCLES

# Face prompts that must be on the ledger before the drawing phase can begin
MIN_FACE_DRAWS_TO_ADVANCE = 3

MIN_PARTICIPANTS_TO_START = 2


class Role(Enum):
    """Who may perform an action."""
    ANYONE = "anyone"  # Need not be seated yet (join)
    PARTICIPANT = "participant"
    CREATOR = "creator"
    TURN_HOLDER = "turn_holder"


class SubState(Enum):
    """Phase-local flags on the session record (value is the field name)."""
    TEN = "ten_flag"
    FOCUSED = "focused_flag"
    TURN_DRAWN = "turn_drawn"

    def is_set(self, session: Session) -> bool:
        return bool(getattr(session, self.value))


_FORBIDDEN_REASONS = {
    SubState.TEN: "The cycle is ending; select a topic and continue the cycle",
    SubState.FOCUSED: "A focused scene is in progress",
    SubState.TURN_DRAWN: "A card has already been drawn this turn",
}

_REQUIRED_REASONS = {
    SubState.TEN: "No cycle end is pending",
    SubState.FOCUSED: "No focused scene is in progress",
    SubState.TURN_DRAWN: "Draw a card before continuing",
}


@dataclass(frozen=True)
class Rejection:
    """A typed reason for refusing an action."""
    code: RejectionCode
    reason: str


Guard = Callable[[SessionSnapshot], "str | None"]


@dataclass(frozen=True)
class Transition:
    """One row of the phase transition table."""
    action_type: ActionType
    phases: frozenset[Phase]
    role: Role
    requires: frozenset[SubState] = frozenset()
    forbids: frozenset[SubState] = frozenset()
    guard: Guard | None = None
    target: Phase | None = None  # Phase entered on success, when fixed


# ============================================================================
# Exit guards
# ============================================================================

def _can_start(snapshot: SessionSnapshot) -> str | None:
    if not snapshot.session.location.strip():
        return "Set a location before starting the game"
    if len(snapshot.participants) < MIN_PARTICIPANTS_TO_START:
        return f"At least {MIN_PARTICIPANTS_TO_START} players are needed to start"
    return None


def _has_cycle_length(snapshot: SessionSnapshot) -> str | None:
    if snapshot.session.cycle_length is None:
        return "Roll a cycle length before confirming"
    return None


def _can_advance_to_drawing(snapshot: SessionSnapshot) -> str | None:
    face_draws = len(snapshot.turns_in_pool(PoolKind.FACE))
    if face_draws < MIN_FACE_DRAWS_TO_ADVANCE:
        return (
            f"At least {MIN_FACE_DRAWS_TO_ADVANCE} face prompts must be drawn "
            f"({face_draws} so far)"
        )
    if snapshot.ready_count < snapshot.ready_threshold:
        return (
            f"Not enough players are ready ({snapshot.ready_count} of "
            f"{snapshot.ready_threshold})"
        )
    return None


def _no_topic_yet(snapshot: SessionSnapshot) -> str | None:
    if snapshot.session.selected_topics:
        return "A topic has already been selected for this cycle"
    return None


def _one_topic_selected(snapshot: SessionSnapshot) -> str | None:
    if len(snapshot.session.selected_topics) != 1:
        return "Select a topic before continuing the cycle"
    return None


# ============================================================================
# The table
# ============================================================================

_LIVE_PHASES = frozenset({
    Phase.WAITING,
    Phase.CYCLE_LENGTH_SELECTION,
    Phase.ESTABLISHING,
    Phase.DRAWING,
})


def _row(action_type: ActionType, phases, role: Role, **kwargs) -> tuple[ActionType, Transition]:
    return action_type, Transition(action_type, frozenset(phases), role, **kwargs)


TRANSITION_TABLE: dict[ActionType, Transition] = dict([
    # Waiting
    _row(ActionType.JOIN, {Phase.WAITING}, Role.ANYONE),
    _row(ActionType.KICK, {Phase.WAITING}, Role.CREATOR),
    _row(ActionType.SET_LOCATION, {Phase.WAITING}, Role.CREATOR),
    _row(ActionType.CONFIRM_LOCATION, {Phase.WAITING}, Role.PARTICIPANT),
    _row(ActionType.UNCONFIRM_LOCATION, {Phase.WAITING}, Role.PARTICIPANT),
    _row(
        ActionType.START_GAME, {Phase.WAITING}, Role.CREATOR,
        guard=_can_start, target=Phase.CYCLE_LENGTH_SELECTION,
    ),

    # Cycle length selection
    _row(ActionType.ROLL_CYCLE_LENGTH, {Phase.CYCLE_LENGTH_SELECTION}, Role.CREATOR),
    _row(
        ActionType.CONFIRM_CYCLE_LENGTH, {Phase.CYCLE_LENGTH_SELECTION}, Role.CREATOR,
        guard=_has_cycle_length, target=Phase.ESTABLISHING,
    ),

    # Establishing
    _row(ActionType.DRAW_FACE_PROMPT, {Phase.ESTABLISHING}, Role.TURN_HOLDER),
    _row(ActionType.TOGGLE_READY, {Phase.ESTABLISHING}, Role.PARTICIPANT),
    _row(
        ActionType.ADVANCE_PHASE, {Phase.ESTABLISHING}, Role.PARTICIPANT,
        guard=_can_advance_to_drawing, target=Phase.DRAWING,
    ),

    # Drawing
    _row(
        ActionType.DRAW_NUMBERED_CARD, {Phase.DRAWING}, Role.TURN_HOLDER,
        forbids=frozenset({SubState.TEN, SubState.FOCUSED, SubState.TURN_DRAWN}),
    ),
    _row(
        ActionType.CONTINUE_TURN, {Phase.DRAWING}, Role.TURN_HOLDER,
        requires=frozenset({SubState.TURN_DRAWN}),
        forbids=frozenset({SubState.TEN, SubState.FOCUSED}),
    ),
    _row(
        ActionType.ENTER_FOCUS, {Phase.DRAWING}, Role.TURN_HOLDER,
        forbids=frozenset({SubState.TEN, SubState.FOCUSED}),
    ),
    _row(
        ActionType.EXIT_FOCUS, {Phase.DRAWING}, Role.TURN_HOLDER,
        requires=frozenset({SubState.FOCUSED}),
    ),
    _row(
        ActionType.SELECT_TOPIC, {Phase.DRAWING}, Role.TURN_HOLDER,
        requires=frozenset({SubState.TEN}), guard=_no_topic_yet,
    ),
    _row(
        ActionType.CONTINUE_CYCLE, {Phase.DRAWING}, Role.TURN_HOLDER,
        requires=frozenset({SubState.TEN}), guard=_one_topic_selected,
    ),

    # Any live phase
    _row(ActionType.SET_CONNECTED, _LIVE_PHASES, Role.PARTICIPANT),
])


# ============================================================================
# Checks
# ============================================================================

def check_action(snapshot: SessionSnapshot, action: Action) -> Rejection | None:
    """
    Validate an action against the table.

    Returns a Rejection if the action is illegal right now, None if the
    state machine may go ahead with it.
    """
    session = snapshot.session
    transition = TRANSITION_TABLE.get(action.action_type)
    if transition is None:
        return Rejection(
            RejectionCode.VALIDATION_ERROR,
            f"Unknown action: {action.action_type}",
        )

    if session.phase not in transition.phases:
        if session.phase == Phase.ENDED:
            reason = "The game has already ended"
        else:
            reason = (
                f"Cannot {action.action_type.value.replace('_', ' ')} "
                f"during phase {session.phase.name.lower()}"
            )
        return Rejection(RejectionCode.PHASE_VIOLATION, reason)

    if action.actor is None:
        return Rejection(RejectionCode.PERMISSION_VIOLATION, "No player identity for this request")

    rejection = _check_role(snapshot, transition.role, action.actor)
    if rejection:
        return rejection

    for flag in transition.requires:
        if not flag.is_set(session):
            return Rejection(RejectionCode.PHASE_VIOLATION, _REQUIRED_REASONS[flag])
    for flag in transition.forbids:
        if flag.is_set(session):
            return Rejection(RejectionCode.PHASE_VIOLATION, _FORBIDDEN_REASONS[flag])

    if transition.guard:
        reason = transition.guard(snapshot)
        if reason:
            return Rejection(RejectionCode.PHASE_VIOLATION, reason)

    return None


def _check_role(snapshot: SessionSnapshot, role: Role, actor: ActorRef) -> Rejection | None:
    if role == Role.ANYONE:
        return None

    participant = snapshot.participant_for_actor(actor)
    if participant is None:
        return Rejection(RejectionCode.NOT_FOUND, "You are not a player in this game")

    if role == Role.CREATOR and actor != snapshot.session.created_by:
        return Rejection(
            RejectionCode.PERMISSION_VIOLATION,
            "Only the game creator can do that",
        )

    if role == Role.TURN_HOLDER and participant.participant_id != snapshot.session.current_turn_id:
        return Rejection(RejectionCode.TURN_VIOLATION, "It is not your turn")

    return None


def resulting_phase(snapshot: SessionSnapshot, action_type: ActionType) -> Phase:
    """
    Phase the session is in after action_type succeeds.

    Continuing the cycle either keeps the drawing phase (cycle wraps) or
    ends the game once MAX_CYCLES cycles are complete.
    """
    session = snapshot.session
    transition = TRANSITION_TABLE[action_type]
    if transition.target is not None:
        return transition.target
    if action_type == ActionType.CONTINUE_CYCLE and session.cycle >= MAX_CYCLES:
        return Phase.ENDED
    return session.phase


def allowed_actions(snapshot: SessionSnapshot, actor: ActorRef | None) -> list[ActionType]:
    """
    Action types the actor could perform right now.

    Payload validation is not considered; an allowed action may still be
    rejected for bad input.
    """
    already_seated = snapshot.participant_for_actor(actor) is not None
    allowed = []
    for action_type in TRANSITION_TABLE:
        if action_type == ActionType.JOIN and already_seated:
            continue
        if check_action(snapshot, Action(action_type, actor)) is None:
            allowed.append(action_type)
    return allowed
