"""
Engine Core - Session state and the rules that move it forward.

The engine is the pure part of the system:
1. Holds immutable session snapshots
2. Validates actions against the phase transition table
3. Allocates prompts from the turn ledger
4. Rotates turns
5. Produces one atomic delta per successful action
"""

from .state import (
    Phase,
    ActorKind,
    ActorRef,
    PoolKind,
    Participant,
    TurnRecord,
    Session,
    SessionSnapshot,
)
from .action import Action, ActionType, ActionPayload, ActionResult, RejectionCode, StateDelta
from .pools import PromptPoolAllocator, PromptRef, Exhausted, PoolConstraints
from .rotation import next_holder, first_holder
from .transitions import TRANSITION_TABLE, Transition, Rejection, check_action, allowed_actions
from .reducer import SessionMachine, apply_action

__all__ = [
    "Phase",
    "ActorKind",
    "ActorRef",
    "PoolKind",
    "Participant",
    "TurnRecord",
    "Session",
    "SessionSnapshot",
    "Action",
    "ActionType",
    "ActionPayload",
    "ActionResult",
    "RejectionCode",
    "StateDelta",
    "PromptPoolAllocator",
    "PromptRef",
    "Exhausted",
    "PoolConstraints",
    "next_holder",
    "first_holder",
    "TRANSITION_TABLE",
    "Transition",
    "Rejection",
    "check_action",
    "allowed_actions",
    "SessionMachine",
    "apply_action",
]
