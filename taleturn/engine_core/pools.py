"""
Prompt Pool Allocator - Picks an unconsumed prompt or reports exhaustion.

Consumption is always recomputed from the turn ledger; no counts are
cached anywhere. The allocator has no side effects: the caller appends
the turn record in the same atomic transition that used the check.

Face pool:
    candidates = {1..12} minus face ids already in the ledger,
    uniform random choice, exhausted when empty.

Numbered pool:
    roll a card value 2-10. For 2-9 the draw order is the lowest of
    {1,2,3,4} not yet consumed for that value. A value with all four
    orders consumed is excluded and the roll repeats. 10 is the terminal
    card; it only counts once MIN_DRAWS_BEFORE_TERMINAL numbered cards
    have been drawn this session, otherwise it is excluded and the roll
    repeats. At most MAX_DRAW_ATTEMPTS rolls are made per draw.
"""

from __future__ import annotations
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Iterable
import random

from .state import PoolKind, TurnRecord
from ..prompts.catalog import (
    FACE_PROMPT_IDS,
    NUMBERED_CARD_VALUES,
    DRAW_ORDERS,
    TERMINAL_CARD,
)

# Upper bound on rolls for one numbered draw. Failed values are excluded,
# so nine rollable values resolve within the bound.
MAX_DRAW_ATTEMPTS = 10

# Numbered cards that must be drawn before the terminal card may come up
MIN_DRAWS_BEFORE_TERMINAL = 2

ROLLABLE_VALUES = NUMBERED_CARD_VALUES + (TERMINAL_CARD,)


@dataclass(frozen=True)
class PromptRef:
    """Reference to a drawn prompt, or to the terminal card."""
    pool: PoolKind
    face_prompt_id: int | None = None
    card_number: int | None = None
    draw_order: int | None = None

    @classmethod
    def face(cls, prompt_id: int) -> PromptRef:
        return cls(pool=PoolKind.FACE, face_prompt_id=prompt_id)

    @classmethod
    def numbered(cls, card_number: int, draw_order: int) -> PromptRef:
        return cls(pool=PoolKind.NUMBERED, card_number=card_number, draw_order=draw_order)

    @classmethod
    def terminal(cls) -> PromptRef:
        return cls(pool=PoolKind.NUMBERED, card_number=TERMINAL_CARD)

    @property
    def is_terminal(self) -> bool:
        return self.card_number == TERMINAL_CARD


@dataclass(frozen=True)
class Exhausted:
    """No legal prompt remains for the requested pool."""
    pool: PoolKind
    reason: str


@dataclass(frozen=True)
class PoolConstraints:
    """
    Optional constraints on a draw.

    face_value fixes the first numbered roll (later rolls are random).
    """
    face_value: int | None = None


def consumed_face_ids(session_id: str, ledger: Iterable[TurnRecord]) -> set[int]:
    """Face prompt ids already drawn in a session."""
    return {
        t.face_prompt_id
        for t in ledger
        if t.session_id == session_id and t.face_prompt_id is not None
    }


def consumed_draw_orders(session_id: str, ledger: Iterable[TurnRecord]) -> dict[int, set[int]]:
    """Card value -> draw orders already drawn in a session."""
    consumed: dict[int, set[int]] = defaultdict(set)
    for t in ledger:
        if t.session_id == session_id and t.card_number is not None:
            consumed[t.card_number].add(t.draw_order)
    return dict(consumed)


@dataclass
class PromptPoolAllocator:
    """
    Computes prompt availability from the ledger.

    Stateless apart from the random source, which tests seed.
    """
    rng: random.Random = field(default_factory=random.Random)
    max_attempts: int = MAX_DRAW_ATTEMPTS

    def draw(
        self,
        pool: PoolKind,
        session_id: str,
        ledger: Iterable[TurnRecord],
        constraints: PoolConstraints | None = None,
    ) -> PromptRef | Exhausted:
        """
        Pick an unconsumed prompt from a pool.

        Returns PromptRef on success, Exhausted when nothing legal is left.
        """
        ledger = list(ledger)
        if pool == PoolKind.FACE:
            return self._draw_face(session_id, ledger)
        return self._draw_numbered(session_id, ledger, constraints or PoolConstraints())

    def _draw_face(self, session_id: str, ledger: list[TurnRecord]) -> PromptRef | Exhausted:
        consumed = consumed_face_ids(session_id, ledger)
        candidates = [i for i in FACE_PROMPT_IDS if i not in consumed]
        if not candidates:
            return Exhausted(PoolKind.FACE, "All face prompts have been drawn")
        return PromptRef.face(self.rng.choice(candidates))

    def _draw_numbered(
        self,
        session_id: str,
        ledger: list[TurnRecord],
        constraints: PoolConstraints,
    ) -> PromptRef | Exhausted:
        if constraints.face_value is not None and constraints.face_value not in ROLLABLE_VALUES:
            raise ValueError(f"Card value must be between 2 and {TERMINAL_CARD}")

        consumed = consumed_draw_orders(session_id, ledger)
        draws_so_far = sum(len(orders) for orders in consumed.values())
        excluded: set[int] = set()

        for attempt in range(self.max_attempts):
            candidates = [v for v in ROLLABLE_VALUES if v not in excluded]
            if not candidates:
                break

            if attempt == 0 and constraints.face_value is not None:
                value = constraints.face_value
            else:
                value = self.rng.choice(candidates)

            if value == TERMINAL_CARD:
                if draws_so_far >= MIN_DRAWS_BEFORE_TERMINAL:
                    return PromptRef.terminal()
                # Too early for the terminal card, roll again among 2-9
                excluded.add(TERMINAL_CARD)
                continue

            open_orders = [o for o in DRAW_ORDERS if o not in consumed.get(value, set())]
            if open_orders:
                return PromptRef.numbered(value, open_orders[0])
            excluded.add(value)

        return Exhausted(PoolKind.NUMBERED, "No numbered cards remain to be drawn")
