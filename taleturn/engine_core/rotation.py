"""
Turn Rotator - Computes the next turn holder.

Participants are ordered by turn_order; gaps left by removals are
simply skipped. Disconnected participants are passed over. When nobody
else is connected the rotation degrades to the raw circular successor.
"""

from __future__ import annotations
from typing import Sequence

from .state import Participant


def next_holder(participants: Sequence[Participant], current_id: str | None) -> str | None:
    """
    Return the participant_id of the next turn holder.

    Deterministic and side-effect free. Returns None only when there are
    no participants at all.
    """
    ordered = sorted(participants, key=lambda p: p.turn_order)
    if not ordered:
        return None

    position = _position_of(ordered, current_id)
    if position is None:
        return first_holder(ordered)

    count = len(ordered)
    for step in range(1, count):
        candidate = ordered[(position + step) % count]
        if candidate.connected:
            return candidate.participant_id

    return ordered[(position + 1) % count].participant_id


def first_holder(participants: Sequence[Participant]) -> str | None:
    """First connected participant by turn order, else the lowest rank."""
    ordered = sorted(participants, key=lambda p: p.turn_order)
    for p in ordered:
        if p.connected:
            return p.participant_id
    return ordered[0].participant_id if ordered else None


def _position_of(ordered: list[Participant], participant_id: str | None) -> int | None:
    for i, p in enumerate(ordered):
        if p.participant_id == participant_id:
            return i
    return None
