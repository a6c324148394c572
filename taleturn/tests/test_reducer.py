"""
Tests for the session state machine (state transitions).

Tests:
- Action application
- State change correctness
- Validation
- Rejections leave the snapshot untouched
"""

import pytest

from ..engine_core.action import Action, ActionPayload, ActionType, RejectionCode
from ..engine_core.reducer import apply_action
from ..engine_core.state import ActorRef, Phase, PoolKind
from ..prompts.catalog import CYCLE_LENGTH_LABELS, FACE_PROMPT_IDS, TERMINAL_CARD


def _draw(actor, face_value=None) -> Action:
    params = {"face_value": face_value} if face_value is not None else {}
    return Action(ActionType.DRAW_NUMBERED_CARD, actor, ActionPayload(params=params))


class TestLobby:
    """Tests for the waiting phase."""

    def test_join_appends_at_next_rank(self, machine, make_snapshot):
        snapshot = make_snapshot(Phase.WAITING)

        result = machine.apply(snapshot, Action.join(ActorRef.ephemeral("new"), "Dara"))

        assert result.success
        joined = result.participant
        assert joined.turn_order == 3
        assert joined.display_name == "Dara"
        assert result.new_state.revision == snapshot.revision + 1
        assert len(result.new_state.participants) == 4

    def test_join_name_taken_case_insensitive(self, machine, make_snapshot):
        snapshot = make_snapshot(Phase.WAITING)

        result = machine.apply(snapshot, Action.join(ActorRef.ephemeral("new"), "player 2"))

        assert not result.success
        assert result.error_code == RejectionCode.VALIDATION_ERROR

    @pytest.mark.parametrize("name", ["", "   ", "x" * 51])
    def test_join_name_length(self, machine, make_snapshot, name):
        result = machine.apply(make_snapshot(), Action.join(ActorRef.ephemeral("new"), name))

        assert result.error_code == RejectionCode.VALIDATION_ERROR

    def test_rejoin_is_noop(self, machine, make_snapshot, actors):
        snapshot = make_snapshot(Phase.WAITING)

        result = machine.apply(snapshot, Action.join(actors[1], "Anything"))

        assert result.success
        assert result.is_noop
        assert result.participant.participant_id == "p2"

    def test_kick(self, machine, make_snapshot, actors):
        snapshot = make_snapshot(
            Phase.WAITING, location="Somewhere", location_confirmed_by=frozenset({"p1", "p3"})
        )

        result = machine.apply(snapshot, Action.kick(actors[0], "p3"))

        assert result.success
        assert result.new_state.get_participant("p3") is None
        assert result.new_state.session.location_confirmed_by == frozenset({"p1"})

    def test_kick_creator_refused(self, machine, make_snapshot, actors):
        result = machine.apply(make_snapshot(), Action.kick(actors[0], "p1"))

        assert result.error_code == RejectionCode.PERMISSION_VIOLATION

    def test_kick_unknown_player(self, machine, make_snapshot, actors):
        result = machine.apply(make_snapshot(), Action.kick(actors[0], "p9"))

        assert result.error_code == RejectionCode.NOT_FOUND

    def test_kick_by_non_creator(self, machine, make_snapshot, actors):
        result = machine.apply(make_snapshot(), Action.kick(actors[1], "p3"))

        assert result.error_code == RejectionCode.PERMISSION_VIOLATION

    def test_set_location_clears_confirmations(self, machine, make_snapshot, actors):
        snapshot = make_snapshot(
            Phase.WAITING, location="Old pier", location_confirmed_by=frozenset({"p2"})
        )

        result = machine.apply(snapshot, Action.set_location(actors[0], "  New pier  "))

        assert result.new_state.session.location == "New pier"
        assert result.new_state.session.location_confirmed_by == frozenset()

    def test_set_location_too_long(self, machine, make_snapshot, actors):
        result = machine.apply(make_snapshot(), Action.set_location(actors[0], "x" * 201))

        assert result.error_code == RejectionCode.VALIDATION_ERROR

    def test_confirm_and_unconfirm_location(self, machine, make_snapshot, actors):
        snapshot = make_snapshot(Phase.WAITING, location="Old pier")

        confirmed = machine.apply(snapshot, Action.simple(ActionType.CONFIRM_LOCATION, actors[1]))
        assert confirmed.new_state.session.location_confirmed_by == frozenset({"p2"})

        withdrawn = machine.apply(
            confirmed.new_state, Action.simple(ActionType.UNCONFIRM_LOCATION, actors[1])
        )
        assert withdrawn.new_state.session.location_confirmed_by == frozenset()

    def test_confirm_without_location(self, machine, make_snapshot, actors):
        result = machine.apply(make_snapshot(), Action.simple(ActionType.CONFIRM_LOCATION, actors[1]))

        assert result.error_code == RejectionCode.VALIDATION_ERROR


class TestSetup:
    """Tests for starting and cycle length selection."""

    def test_start_game(self, machine, make_snapshot, actors):
        snapshot = make_snapshot(Phase.WAITING, location="Somewhere")

        result = machine.apply(snapshot, Action.simple(ActionType.START_GAME, actors[0]))

        assert result.new_state.session.phase == Phase.CYCLE_LENGTH_SELECTION

    def test_roll_and_confirm_cycle_length(self, machine, make_snapshot, actors):
        snapshot = make_snapshot(Phase.CYCLE_LENGTH_SELECTION)

        rolled = machine.apply(snapshot, Action.simple(ActionType.ROLL_CYCLE_LENGTH, actors[0]))
        assert rolled.new_state.session.cycle_length in CYCLE_LENGTH_LABELS

        confirmed = machine.apply(
            rolled.new_state, Action.simple(ActionType.CONFIRM_CYCLE_LENGTH, actors[0])
        )
        session = confirmed.new_state.session
        assert session.phase == Phase.ESTABLISHING
        assert session.current_turn_id == "p1"

    def test_first_turn_skips_disconnected_creator(self, machine, make_snapshot, actors):
        snapshot = make_snapshot(
            Phase.CYCLE_LENGTH_SELECTION, disconnected=("p1",), cycle_length="One Week"
        )

        result = machine.apply(snapshot, Action.simple(ActionType.CONFIRM_CYCLE_LENGTH, actors[0]))

        assert result.new_state.session.current_turn_id == "p2"


class TestEstablishing:
    """Tests for face prompt draws and readiness."""

    def test_draw_face_prompt_appends_and_rotates(self, machine, make_snapshot, actors):
        snapshot = make_snapshot(Phase.ESTABLISHING)

        result = machine.apply(snapshot, Action.simple(ActionType.DRAW_FACE_PROMPT, actors[0]))

        assert result.success
        new_state = result.new_state
        assert len(new_state.turns) == 1
        record = new_state.turns[0]
        assert record.pool == PoolKind.FACE
        assert record.participant_id == "p1"
        assert record.face_prompt_id in FACE_PROMPT_IDS
        assert new_state.session.current_turn_id == "p2"
        assert new_state.session.last_turn_id == "p1"
        assert result.delta.drawn.face_prompt_id == record.face_prompt_id

    def test_input_snapshot_unchanged(self, machine, make_snapshot, actors):
        snapshot = make_snapshot(Phase.ESTABLISHING)

        machine.apply(snapshot, Action.simple(ActionType.DRAW_FACE_PROMPT, actors[0]))

        assert snapshot.turns == ()
        assert snapshot.session.current_turn_id == "p1"
        assert snapshot.revision == 0

    def test_turn_violation_changes_nothing(self, machine, make_snapshot, actors):
        """Drawing out of turn is refused with no delta."""
        snapshot = make_snapshot(Phase.ESTABLISHING)

        result = machine.apply(snapshot, Action.simple(ActionType.DRAW_FACE_PROMPT, actors[1]))

        assert not result.success
        assert result.error_code == RejectionCode.TURN_VIOLATION
        assert result.delta is None
        assert result.new_state is None

    def test_face_pool_exhausted(self, machine, make_snapshot, actors, face_turn):
        snapshot = make_snapshot(
            Phase.ESTABLISHING, turns=tuple(face_turn(i) for i in FACE_PROMPT_IDS)
        )

        result = machine.apply(snapshot, Action.simple(ActionType.DRAW_FACE_PROMPT, actors[0]))

        assert result.error_code == RejectionCode.POOL_EXHAUSTED
        assert result.delta is None

    def test_toggle_ready(self, machine, make_snapshot, actors):
        snapshot = make_snapshot(Phase.ESTABLISHING)

        on = machine.apply(snapshot, Action.simple(ActionType.TOGGLE_READY, actors[2]))
        assert on.new_state.session.ready_to_end == frozenset({"p3"})
        assert on.new_state.ready_count == 1

        off = machine.apply(on.new_state, Action.simple(ActionType.TOGGLE_READY, actors[2]))
        assert off.new_state.session.ready_to_end == frozenset()

    def test_advance_phase_resets_drawing_state(self, machine, make_snapshot, actors, face_turn):
        snapshot = make_snapshot(
            Phase.ESTABLISHING,
            turns=(face_turn(1), face_turn(2), face_turn(3)),
            ready_to_end=frozenset({"p1", "p2", "p3"}),
        )

        result = machine.apply(snapshot, Action.simple(ActionType.ADVANCE_PHASE, actors[2]))

        session = result.new_state.session
        assert session.phase == Phase.DRAWING
        assert session.cycle == 0
        assert session.ready_to_end == frozenset()
        assert not session.ten_flag and not session.focused_flag


class TestDrawing:
    """Tests for the drawing phase."""

    def test_numbered_draw_marks_turn(self, machine, make_snapshot, actors):
        snapshot = make_snapshot(Phase.DRAWING)

        result = machine.apply(snapshot, _draw(actors[0], face_value=6))

        new_state = result.new_state
        assert new_state.session.turn_drawn
        assert new_state.session.current_turn_id == "p1"
        record = new_state.turns[-1]
        assert (record.card_number, record.draw_order) == (6, 1)

    @pytest.mark.parametrize("face_value", [1, 11, "5"])
    def test_out_of_range_face_value_rejected(self, machine, make_snapshot, actors, face_value):
        """A physical card value outside 2-10 is refused, not raised."""
        snapshot = make_snapshot(Phase.DRAWING)

        result = machine.apply(snapshot, _draw(actors[0], face_value=face_value))

        assert result.error_code == RejectionCode.VALIDATION_ERROR
        assert snapshot.turns == ()
        assert not snapshot.session.turn_drawn

    def test_second_draw_in_turn_refused(self, machine, make_snapshot, actors):
        snapshot = make_snapshot(Phase.DRAWING)
        drawn = machine.apply(snapshot, _draw(actors[0]))

        result = machine.apply(drawn.new_state, _draw(actors[0]))

        assert result.error_code == RejectionCode.PHASE_VIOLATION

    def test_continue_turn_rotates(self, machine, make_snapshot, actors):
        snapshot = make_snapshot(Phase.DRAWING, turn_drawn=True)

        result = machine.apply(snapshot, Action.simple(ActionType.CONTINUE_TURN, actors[0]))

        session = result.new_state.session
        assert session.current_turn_id == "p2"
        assert not session.turn_drawn
        assert result.delta.new_turn_holder == "p2"

    def test_continue_turn_skips_disconnected(self, machine, make_snapshot, actors):
        snapshot = make_snapshot(Phase.DRAWING, turn_drawn=True, disconnected=("p2",))

        result = machine.apply(snapshot, Action.simple(ActionType.CONTINUE_TURN, actors[0]))

        assert result.new_state.session.current_turn_id == "p3"

    def test_terminal_draw_ends_cycle(self, machine, make_snapshot, actors, numbered_turn):
        snapshot = make_snapshot(
            Phase.DRAWING, cycle=1, turns=(numbered_turn(2, 1), numbered_turn(3, 1))
        )

        result = machine.apply(snapshot, _draw(actors[0], face_value=TERMINAL_CARD))

        session = result.new_state.session
        assert result.delta.drawn.is_terminal
        assert session.ten_flag
        assert session.cycle == 2
        assert session.current_turn_id == "p1"
        assert len(result.new_state.turns) == 2

    def test_focus_then_exit_rotates(self, machine, make_snapshot, actors):
        snapshot = make_snapshot(Phase.DRAWING)

        focused = machine.apply(snapshot, Action.simple(ActionType.ENTER_FOCUS, actors[0]))
        assert focused.new_state.session.focused_flag

        exited = machine.apply(focused.new_state, Action.simple(ActionType.EXIT_FOCUS, actors[0]))
        session = exited.new_state.session
        assert not session.focused_flag
        assert session.current_turn_id == "p2"

    def test_select_unknown_topic(self, machine, make_snapshot, actors):
        snapshot = make_snapshot(Phase.DRAWING, ten_flag=True)

        result = machine.apply(snapshot, Action.select_topic(actors[0], "weather"))

        assert result.error_code == RejectionCode.VALIDATION_ERROR

    def test_continue_cycle(self, machine, make_snapshot, actors):
        snapshot = make_snapshot(
            Phase.DRAWING, cycle=1, ten_flag=True, selected_topics=frozenset({"secret"})
        )

        result = machine.apply(snapshot, Action.simple(ActionType.CONTINUE_CYCLE, actors[0]))

        session = result.new_state.session
        assert session.phase == Phase.DRAWING
        assert not session.ten_flag
        assert session.selected_topics == frozenset()
        assert session.current_turn_id == "p2"

    def test_fourth_cycle_ends_game(self, machine, make_snapshot, actors):
        snapshot = make_snapshot(
            Phase.DRAWING, cycle=4, ten_flag=True, selected_topics=frozenset({"bond"})
        )

        result = machine.apply(snapshot, Action.simple(ActionType.CONTINUE_CYCLE, actors[0]))

        assert result.new_state.session.phase == Phase.ENDED


class TestConnectivity:
    """Tests for set_connected."""

    def test_disconnect(self, machine, make_snapshot, actors):
        snapshot = make_snapshot(Phase.DRAWING)

        result = machine.apply(snapshot, Action.set_connected(actors[1], False))

        assert not result.new_state.get_participant("p2").connected

    def test_same_value_is_noop(self, machine, make_snapshot, actors):
        result = machine.apply(make_snapshot(), Action.set_connected(actors[1], True))

        assert result.is_noop

    def test_requires_bool(self, machine, make_snapshot, actors):
        result = machine.apply(make_snapshot(), Action(ActionType.SET_CONNECTED, actors[1]))

        assert result.error_code == RejectionCode.VALIDATION_ERROR


class TestApplyAction:
    """Tests for the apply_action convenience function."""

    def test_seeded_draws_repeat(self, make_snapshot, actors):
        snapshot = make_snapshot(Phase.ESTABLISHING)
        action = Action.simple(ActionType.DRAW_FACE_PROMPT, actors[0])

        first = apply_action(snapshot, action, seed=5)
        second = apply_action(snapshot, action, seed=5)

        assert first.delta.drawn == second.delta.drawn
