"""
Session State Machine - Applies actions to session snapshots.

The state machine is the single point of state transition.
All changes to a session go through apply().

Design principles:
- Pure: (snapshot, action) -> ActionResult, no I/O
- Validates against the phase transition table before anything else
- One action produces one StateDelta: the draw, the ledger append and
  the rotation are either all in it or the action is rejected
- Re-entrant; concurrent callers each work on their own snapshot
"""

from __future__ import annotations
from dataclasses import dataclass, field
import random
import time
import uuid

from .state import Phase, PoolKind, Participant, SessionSnapshot, TurnRecord
from .action import Action, ActionType, ActionResult, RejectionCode, StateDelta
from .pools import PromptPoolAllocator, PoolConstraints, Exhausted, ROLLABLE_VALUES
from .rotation import next_holder, first_holder
from .transitions import check_action, resulting_phase
from ..prompts.catalog import (
    CYCLE_LENGTH_LABELS,
    QUESTION_TOPICS,
    TERMINAL_CARD,
    get_face_prompt,
    get_numbered_prompt,
)

MAX_DISPLAY_NAME_LENGTH = 50
MAX_LOCATION_LENGTH = 200


@dataclass
class SessionMachine:
    """
    Applies actions to session snapshots.

    Stateless apart from the random sources. Everything about a session
    lives in the snapshot passed in.
    """
    allocator: PromptPoolAllocator = field(default_factory=PromptPoolAllocator)
    rng: random.Random = field(default_factory=random.Random)

    def apply(self, snapshot: SessionSnapshot, action: Action) -> ActionResult:
        """
        Apply an action to a session snapshot.

        Returns ActionResult with the delta and new snapshot, or a typed
        rejection. The input snapshot is never modified.
        """
        rejection = check_action(snapshot, action)
        if rejection:
            return ActionResult.failure(rejection.reason, error_code=rejection.code)

        handler = self._get_handler(action.action_type)
        return handler(snapshot, action)

    def _get_handler(self, action_type: ActionType):
        """Get the handler function for an action type."""
        handlers = {
            ActionType.JOIN: self._handle_join,
            ActionType.KICK: self._handle_kick,
            ActionType.SET_LOCATION: self._handle_set_location,
            ActionType.CONFIRM_LOCATION: self._handle_confirm_location,
            ActionType.UNCONFIRM_LOCATION: self._handle_unconfirm_location,
            ActionType.START_GAME: self._handle_phase_change,
            ActionType.ROLL_CYCLE_LENGTH: self._handle_roll_cycle_length,
            ActionType.CONFIRM_CYCLE_LENGTH: self._handle_confirm_cycle_length,
            ActionType.DRAW_FACE_PROMPT: self._handle_draw_face_prompt,
            ActionType.TOGGLE_READY: self._handle_toggle_ready,
            ActionType.ADVANCE_PHASE: self._handle_advance_phase,
            ActionType.DRAW_NUMBERED_CARD: self._handle_draw_numbered_card,
            ActionType.CONTINUE_TURN: self._handle_continue_turn,
            ActionType.ENTER_FOCUS: self._handle_enter_focus,
            ActionType.EXIT_FOCUS: self._handle_exit_focus,
            ActionType.SELECT_TOPIC: self._handle_select_topic,
            ActionType.CONTINUE_CYCLE: self._handle_continue_cycle,
            ActionType.SET_CONNECTED: self._handle_set_connected,
        }
        return handlers[action_type]

    # =========================================================================
    # Helpers
    # =========================================================================

    def _delta(self, snapshot: SessionSnapshot, action: Action, **changes) -> StateDelta:
        """Start a delta whose session record carries the given changes."""
        now = action.timestamp if action.timestamp is not None else time.time()
        session = snapshot.session._copy_with(
            revision=snapshot.session.revision + 1,
            updated_at=now,
            **changes,
        )
        return StateDelta(session=session)

    def _rotation(self, snapshot: SessionSnapshot) -> dict:
        """Session fields for passing the turn on."""
        current = snapshot.session.current_turn_id
        return {
            "current_turn_id": next_holder(snapshot.participants, current),
            "last_turn_id": current,
        }

    def _actor_participant(self, snapshot: SessionSnapshot, action: Action) -> Participant:
        # The table already guaranteed the actor is seated
        return snapshot.participant_for_actor(action.actor)

    def _name_of(self, snapshot: SessionSnapshot, participant_id: str | None) -> str:
        p = snapshot.get_participant(participant_id)
        return p.display_name if p else "nobody"

    # =========================================================================
    # Waiting
    # =========================================================================

    def _handle_join(self, snapshot: SessionSnapshot, action: Action) -> ActionResult:
        existing = snapshot.participant_for_actor(action.actor)
        if existing:
            return ActionResult.unchanged(
                snapshot,
                changes=[f"{existing.display_name} is already in the game"],
                participant=existing,
            )

        display_name = (action.payload.display_name or "").strip()
        if not display_name:
            return ActionResult.failure(
                "Display name is required", RejectionCode.VALIDATION_ERROR
            )
        if len(display_name) > MAX_DISPLAY_NAME_LENGTH:
            return ActionResult.failure(
                f"Display name must be {MAX_DISPLAY_NAME_LENGTH} characters or less",
                RejectionCode.VALIDATION_ERROR,
            )
        if snapshot.participant_by_name(display_name):
            return ActionResult.failure(
                "This display name is already taken. Please choose a different name.",
                RejectionCode.VALIDATION_ERROR,
            )

        ranks = [p.turn_order for p in snapshot.participants]
        now = action.timestamp if action.timestamp is not None else time.time()
        participant = Participant(
            participant_id=str(uuid.uuid4()),
            session_id=snapshot.session_id,
            display_name=display_name,
            actor=action.actor,
            turn_order=max(ranks) + 1 if ranks else 0,
            connected=True,
            created_at=now,
        )

        delta = self._delta(snapshot, action)
        delta.added_participants.append(participant)
        return ActionResult.success_with_delta(
            snapshot, delta,
            changes=[f"{display_name} joined the game"],
            participant=participant,
        )

    def _handle_kick(self, snapshot: SessionSnapshot, action: Action) -> ActionResult:
        target = snapshot.get_participant(action.payload.target_participant_id)
        if target is None:
            return ActionResult.failure(
                f"Player {action.payload.target_participant_id} not found",
                RejectionCode.NOT_FOUND,
            )
        if target.actor == snapshot.session.created_by:
            return ActionResult.failure(
                "The game creator cannot be removed",
                RejectionCode.PERMISSION_VIOLATION,
            )

        session = snapshot.session
        delta = self._delta(
            snapshot, action,
            location_confirmed_by=session.location_confirmed_by - {target.participant_id},
            ready_to_end=session.ready_to_end - {target.participant_id},
        )
        delta.removed_participant_ids.append(target.participant_id)
        return ActionResult.success_with_delta(
            snapshot, delta,
            changes=[f"{target.display_name} was removed from the game"],
            participant=target,
        )

    def _handle_set_location(self, snapshot: SessionSnapshot, action: Action) -> ActionResult:
        location = (action.payload.location or "").strip()
        if not location:
            return ActionResult.failure("Location is required", RejectionCode.VALIDATION_ERROR)
        if len(location) > MAX_LOCATION_LENGTH:
            return ActionResult.failure(
                f"Location must be {MAX_LOCATION_LENGTH} characters or less",
                RejectionCode.VALIDATION_ERROR,
            )
        if location == snapshot.session.location:
            return ActionResult.unchanged(snapshot)

        # Confirmations were for the old text
        delta = self._delta(
            snapshot, action,
            location=location,
            location_confirmed_by=frozenset(),
        )
        return ActionResult.success_with_delta(
            snapshot, delta, changes=[f"Location set to {location}"]
        )

    def _handle_confirm_location(self, snapshot: SessionSnapshot, action: Action) -> ActionResult:
        participant = self._actor_participant(snapshot, action)
        session = snapshot.session
        if not session.location:
            return ActionResult.failure(
                "There is no location to confirm yet",
                RejectionCode.VALIDATION_ERROR,
            )
        if participant.participant_id in session.location_confirmed_by:
            return ActionResult.unchanged(snapshot, participant=participant)

        delta = self._delta(
            snapshot, action,
            location_confirmed_by=session.location_confirmed_by | {participant.participant_id},
        )
        return ActionResult.success_with_delta(
            snapshot, delta,
            changes=[f"{participant.display_name} confirmed the location"],
            participant=participant,
        )

    def _handle_unconfirm_location(self, snapshot: SessionSnapshot, action: Action) -> ActionResult:
        participant = self._actor_participant(snapshot, action)
        session = snapshot.session
        if participant.participant_id not in session.location_confirmed_by:
            return ActionResult.unchanged(snapshot, participant=participant)

        delta = self._delta(
            snapshot, action,
            location_confirmed_by=session.location_confirmed_by - {participant.participant_id},
        )
        return ActionResult.success_with_delta(
            snapshot, delta,
            changes=[f"{participant.display_name} withdrew their location confirmation"],
            participant=participant,
        )

    def _handle_phase_change(self, snapshot: SessionSnapshot, action: Action) -> ActionResult:
        """Handle a plain move to the table's target phase."""
        phase = resulting_phase(snapshot, action.action_type)
        delta = self._delta(snapshot, action, phase=phase)
        return ActionResult.success_with_delta(
            snapshot, delta, changes=[f"Game moved to {phase.name.lower()}"]
        )

    # =========================================================================
    # Cycle length selection
    # =========================================================================

    def _handle_roll_cycle_length(self, snapshot: SessionSnapshot, action: Action) -> ActionResult:
        label = self.rng.choice(CYCLE_LENGTH_LABELS)
        delta = self._delta(snapshot, action, cycle_length=label)
        return ActionResult.success_with_delta(
            snapshot, delta, changes=[f"Cycle length rolled: {label}"]
        )

    def _handle_confirm_cycle_length(self, snapshot: SessionSnapshot, action: Action) -> ActionResult:
        holder = first_holder(snapshot.participants)
        delta = self._delta(
            snapshot, action,
            phase=resulting_phase(snapshot, action.action_type),
            current_turn_id=holder,
            last_turn_id=None,
        )
        delta.new_turn_holder = holder
        return ActionResult.success_with_delta(
            snapshot, delta,
            changes=[
                f"Cycle length confirmed: {snapshot.session.cycle_length}",
                f"{self._name_of(snapshot, holder)} takes the first turn",
            ],
        )

    # =========================================================================
    # Establishing
    # =========================================================================

    def _handle_draw_face_prompt(self, snapshot: SessionSnapshot, action: Action) -> ActionResult:
        participant = self._actor_participant(snapshot, action)
        outcome = self.allocator.draw(PoolKind.FACE, snapshot.session_id, snapshot.turns)
        if isinstance(outcome, Exhausted):
            return ActionResult.failure(outcome.reason, RejectionCode.POOL_EXHAUSTED)

        now = action.timestamp if action.timestamp is not None else time.time()
        record = TurnRecord(
            record_id=str(uuid.uuid4()),
            session_id=snapshot.session_id,
            participant_id=participant.participant_id,
            created_at=now,
            face_prompt_id=outcome.face_prompt_id,
        )
        rotation = self._rotation(snapshot)
        delta = self._delta(snapshot, action, **rotation)
        delta.appended_turns.append(record)
        delta.drawn = outcome
        delta.new_turn_holder = rotation["current_turn_id"]

        prompt = get_face_prompt(outcome.face_prompt_id)
        return ActionResult.success_with_delta(
            snapshot, delta,
            changes=[
                f"{participant.display_name} drew the {prompt.card}: {prompt.prompt}",
                f"Next turn: {self._name_of(snapshot, delta.new_turn_holder)}",
            ],
            participant=participant,
        )

    def _handle_toggle_ready(self, snapshot: SessionSnapshot, action: Action) -> ActionResult:
        participant = self._actor_participant(snapshot, action)
        ready = snapshot.session.ready_to_end
        if participant.participant_id in ready:
            ready = ready - {participant.participant_id}
            change = f"{participant.display_name} is no longer ready"
        else:
            ready = ready | {participant.participant_id}
            change = f"{participant.display_name} is ready to move on"

        delta = self._delta(snapshot, action, ready_to_end=ready)
        return ActionResult.success_with_delta(
            snapshot, delta, changes=[change], participant=participant
        )

    def _handle_advance_phase(self, snapshot: SessionSnapshot, action: Action) -> ActionResult:
        delta = self._delta(
            snapshot, action,
            phase=resulting_phase(snapshot, action.action_type),
            cycle=0,
            ten_flag=False,
            focused_flag=False,
            turn_drawn=False,
            selected_topics=frozenset(),
            ready_to_end=frozenset(),
        )
        return ActionResult.success_with_delta(
            snapshot, delta, changes=["The drawing phase begins"]
        )

    # =========================================================================
    # Drawing
    # =========================================================================

    def _handle_draw_numbered_card(self, snapshot: SessionSnapshot, action: Action) -> ActionResult:
        participant = self._actor_participant(snapshot, action)
        face_value = action.payload.params.get("face_value")
        if face_value is not None and face_value not in ROLLABLE_VALUES:
            return ActionResult.failure(
                f"Card value must be between 2 and {TERMINAL_CARD}", RejectionCode.VALIDATION_ERROR
            )
        constraints = PoolConstraints(face_value=face_value)
        outcome = self.allocator.draw(
            PoolKind.NUMBERED, snapshot.session_id, snapshot.turns, constraints
        )
        if isinstance(outcome, Exhausted):
            return ActionResult.failure(outcome.reason, RejectionCode.POOL_EXHAUSTED)

        if outcome.is_terminal:
            # No ledger entry and no rotation until the cycle is continued
            cycle = snapshot.session.cycle + 1
            delta = self._delta(snapshot, action, ten_flag=True, cycle=cycle)
            delta.drawn = outcome
            return ActionResult.success_with_delta(
                snapshot, delta,
                changes=[f"{participant.display_name} drew a ten: cycle {cycle} is ending"],
                participant=participant,
            )

        now = action.timestamp if action.timestamp is not None else time.time()
        record = TurnRecord(
            record_id=str(uuid.uuid4()),
            session_id=snapshot.session_id,
            participant_id=participant.participant_id,
            created_at=now,
            card_number=outcome.card_number,
            draw_order=outcome.draw_order,
        )
        delta = self._delta(snapshot, action, turn_drawn=True)
        delta.appended_turns.append(record)
        delta.drawn = outcome

        prompt = get_numbered_prompt(outcome.card_number, outcome.draw_order)
        return ActionResult.success_with_delta(
            snapshot, delta,
            changes=[
                f"{participant.display_name} drew a {outcome.card_number}: {prompt.prompt}"
            ],
            participant=participant,
        )

    def _handle_continue_turn(self, snapshot: SessionSnapshot, action: Action) -> ActionResult:
        rotation = self._rotation(snapshot)
        delta = self._delta(snapshot, action, turn_drawn=False, **rotation)
        delta.new_turn_holder = rotation["current_turn_id"]
        return ActionResult.success_with_delta(
            snapshot, delta,
            changes=[f"Next turn: {self._name_of(snapshot, delta.new_turn_holder)}"],
        )

    def _handle_enter_focus(self, snapshot: SessionSnapshot, action: Action) -> ActionResult:
        participant = self._actor_participant(snapshot, action)
        delta = self._delta(snapshot, action, focused_flag=True)
        return ActionResult.success_with_delta(
            snapshot, delta,
            changes=[f"{participant.display_name} opened a focused scene"],
            participant=participant,
        )

    def _handle_exit_focus(self, snapshot: SessionSnapshot, action: Action) -> ActionResult:
        participant = self._actor_participant(snapshot, action)
        rotation = self._rotation(snapshot)
        delta = self._delta(
            snapshot, action, focused_flag=False, turn_drawn=False, **rotation
        )
        delta.new_turn_holder = rotation["current_turn_id"]
        return ActionResult.success_with_delta(
            snapshot, delta,
            changes=[
                f"{participant.display_name} closed the focused scene",
                f"Next turn: {self._name_of(snapshot, delta.new_turn_holder)}",
            ],
            participant=participant,
        )

    def _handle_select_topic(self, snapshot: SessionSnapshot, action: Action) -> ActionResult:
        topic = action.payload.topic
        if topic not in QUESTION_TOPICS:
            return ActionResult.failure(
                f"Unknown topic: {topic}", RejectionCode.VALIDATION_ERROR
            )
        delta = self._delta(snapshot, action, selected_topics=frozenset({topic}))
        return ActionResult.success_with_delta(
            snapshot, delta, changes=[f"Topic selected: {QUESTION_TOPICS[topic]}"]
        )

    def _handle_continue_cycle(self, snapshot: SessionSnapshot, action: Action) -> ActionResult:
        phase = resulting_phase(snapshot, action.action_type)
        fields = dict(
            phase=phase,
            ten_flag=False,
            turn_drawn=False,
            selected_topics=frozenset(),
        )
        if phase == Phase.ENDED:
            delta = self._delta(snapshot, action, **fields)
            return ActionResult.success_with_delta(
                snapshot, delta, changes=["The final cycle is complete. The story ends."]
            )

        rotation = self._rotation(snapshot)
        delta = self._delta(snapshot, action, **fields, **rotation)
        delta.new_turn_holder = rotation["current_turn_id"]
        return ActionResult.success_with_delta(
            snapshot, delta,
            changes=[
                f"Cycle {snapshot.session.cycle + 1} begins",
                f"Next turn: {self._name_of(snapshot, delta.new_turn_holder)}",
            ],
        )

    # =========================================================================
    # Any live phase
    # =========================================================================

    def _handle_set_connected(self, snapshot: SessionSnapshot, action: Action) -> ActionResult:
        participant = self._actor_participant(snapshot, action)
        connected = action.payload.connected
        if not isinstance(connected, bool):
            return ActionResult.failure(
                "connected must be true or false", RejectionCode.VALIDATION_ERROR
            )
        if participant.connected == connected:
            return ActionResult.unchanged(snapshot, participant=participant)

        updated = participant.with_connected(connected)
        delta = self._delta(snapshot, action)
        delta.updated_participants.append(updated)
        state = "connected" if connected else "disconnected"
        return ActionResult.success_with_delta(
            snapshot, delta,
            changes=[f"{participant.display_name} {state}"],
            participant=updated,
        )


def apply_action(snapshot: SessionSnapshot, action: Action, seed: int | None = None) -> ActionResult:
    """
    Convenience function to apply an action.

    Creates a SessionMachine (seeded, when a seed is given) and applies the action.
    """
    machine = SessionMachine(
        allocator=PromptPoolAllocator(rng=random.Random(seed)),
        rng=random.Random(seed),
    )
    return machine.apply(snapshot, action)
