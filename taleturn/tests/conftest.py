"""
Pytest fixtures for Taleturn tests.
"""

import random
import pytest

from ..engine_core.state import ActorRef, Participant, Phase, Session, SessionSnapshot, TurnRecord
from ..engine_core.pools import PromptPoolAllocator
from ..engine_core.reducer import SessionMachine
from ..session import GameSessionGateway, InMemorySessionStore, SessionNotifier

SESSION_ID = "s1"


@pytest.fixture
def actors() -> list[ActorRef]:
    """Actors for seats p1..p4; p1 is the creator and holds an account."""
    return [
        ActorRef.account("creator"),
        ActorRef.ephemeral("token-2"),
        ActorRef.ephemeral("token-3"),
        ActorRef.account("account-4"),
    ]


@pytest.fixture
def make_snapshot(actors):
    """
    Build a snapshot for session s1.

    Players are p1..pN at turn orders 0..N-1. From the establishing phase
    on, p1 holds the turn unless current_turn_id is given.
    """
    def _make(
        phase: Phase = Phase.WAITING,
        players: int = 3,
        disconnected: tuple = (),
        turns: tuple = (),
        **session_fields,
    ) -> SessionSnapshot:
        participants = tuple(
            Participant(
                participant_id=f"p{n}",
                session_id=SESSION_ID,
                display_name=f"Player {n}",
                actor=actors[n - 1],
                turn_order=n - 1,
                connected=f"p{n}" not in disconnected,
                created_at=1000.0 + n,
            )
            for n in range(1, players + 1)
        )
        if phase >= Phase.ESTABLISHING:
            session_fields.setdefault("current_turn_id", "p1")
        if phase >= Phase.CYCLE_LENGTH_SELECTION:
            session_fields.setdefault("location", "A lighthouse on a cold coast")
        session = Session(
            session_id=SESSION_ID,
            code="ABC123",
            title="Harbor Town",
            created_by=actors[0],
            phase=phase,
            created_at=1000.0,
            updated_at=1000.0,
            **session_fields,
        )
        return SessionSnapshot(session=session, participants=participants, turns=tuple(turns))

    return _make


@pytest.fixture
def face_turn():
    """Build a face-pool ledger entry."""
    def _make(prompt_id: int, participant_id: str = "p1", session_id: str = SESSION_ID) -> TurnRecord:
        return TurnRecord(
            record_id=f"face-{session_id}-{prompt_id}",
            session_id=session_id,
            participant_id=participant_id,
            created_at=2000.0 + prompt_id,
            face_prompt_id=prompt_id,
        )
    return _make


@pytest.fixture
def numbered_turn():
    """Build a numbered-pool ledger entry."""
    def _make(card_number: int, draw_order: int, participant_id: str = "p1") -> TurnRecord:
        return TurnRecord(
            record_id=f"num-{card_number}-{draw_order}",
            session_id=SESSION_ID,
            participant_id=participant_id,
            created_at=3000.0 + card_number * 10 + draw_order,
            card_number=card_number,
            draw_order=draw_order,
        )
    return _make


@pytest.fixture
def deterministic_seed() -> int:
    """Fixed seed for reproducible draws."""
    return 42


@pytest.fixture
def machine(deterministic_seed) -> SessionMachine:
    """State machine with seeded random sources."""
    return SessionMachine(
        allocator=PromptPoolAllocator(rng=random.Random(deterministic_seed)),
        rng=random.Random(deterministic_seed),
    )


@pytest.fixture
def notifier() -> SessionNotifier:
    return SessionNotifier()


@pytest.fixture
def store() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture
def gateway(store, notifier, machine, deterministic_seed) -> GameSessionGateway:
    """Gateway over an in-memory store."""
    return GameSessionGateway(
        store=store,
        notifier=notifier,
        machine=machine,
        rng=random.Random(deterministic_seed),
    )
