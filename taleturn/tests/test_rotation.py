"""
Tests for turn rotation.
"""

from ..engine_core.rotation import first_holder, next_holder
from ..engine_core.state import ActorRef, Participant


def _seat(participant_id: str, turn_order: int, connected: bool = True) -> Participant:
    return Participant(
        participant_id=participant_id,
        session_id="s1",
        display_name=participant_id.upper(),
        actor=ActorRef.ephemeral(f"tok-{participant_id}"),
        turn_order=turn_order,
        connected=connected,
    )


class TestNextHolder:
    """Tests for next_holder."""

    def test_advances_by_turn_order(self):
        seats = [_seat("c", 2), _seat("a", 0), _seat("b", 1)]

        assert next_holder(seats, "a") == "b"
        assert next_holder(seats, "b") == "c"

    def test_wraps_around(self):
        seats = [_seat("a", 0), _seat("b", 1), _seat("c", 2)]

        assert next_holder(seats, "c") == "a"

    def test_skips_disconnected(self):
        """Ranks 0,1,2 with 1 disconnected: 0 passes to 2."""
        seats = [_seat("a", 0), _seat("b", 1, connected=False), _seat("c", 2)]

        assert next_holder(seats, "a") == "c"

    def test_skips_gaps_left_by_removals(self):
        seats = [_seat("a", 0), _seat("d", 3), _seat("f", 5)]

        assert next_holder(seats, "a") == "d"
        assert next_holder(seats, "f") == "a"

    def test_nobody_else_connected_falls_back_to_successor(self):
        """With every other seat disconnected, the raw successor is used."""
        seats = [_seat("a", 0), _seat("b", 1, connected=False), _seat("c", 2, connected=False)]

        assert next_holder(seats, "a") == "b"

    def test_unknown_current_starts_from_first_connected(self):
        seats = [_seat("a", 0, connected=False), _seat("b", 1), _seat("c", 2)]

        assert next_holder(seats, "gone") == "b"
        assert next_holder(seats, None) == "b"

    def test_no_participants(self):
        assert next_holder([], "a") is None

    def test_single_participant_keeps_turn(self):
        assert next_holder([_seat("a", 0)], "a") == "a"


class TestFirstHolder:
    """Tests for first_holder."""

    def test_lowest_connected_rank(self):
        seats = [_seat("b", 1), _seat("a", 0, connected=False)]

        assert first_holder(seats) == "b"

    def test_lowest_rank_when_nobody_connected(self):
        seats = [_seat("b", 1, connected=False), _seat("a", 0, connected=False)]

        assert first_holder(seats) == "a"
