"""
Game Session Gateway - The boundary between requests and the engine.

For every action the gateway:
1. Loads a fresh snapshot from the store
2. Runs the state machine on it
3. Commits the delta if the stored revision has not moved
4. Publishes "session changed" once

A commit that loses a race is retried from step 1, a bounded number of
times. Every other rejection is returned as is. No lock is held between
load and commit; the revision check replaces it.
"""

from __future__ import annotations
from typing import Callable
import logging
import random
import time
import uuid

from ..config import MAX_CONFLICT_RETRIES
from ..engine_core.action import Action, ActionPayload, ActionResult, ActionType, RejectionCode
from ..engine_core.reducer import MAX_DISPLAY_NAME_LENGTH, SessionMachine
from ..engine_core.state import ActorRef, Participant, Phase, Session, SessionSnapshot
from ..errors import ConcurrencyConflict, DuplicateJoinCode, SessionNotFound
from .codes import JOIN_CODE_LENGTH, MAX_CODE_ATTEMPTS, generate_unique_join_code, normalize_join_code
from .identity import IdentityProvider
from .notifier import SessionNotifier
from .store import InMemorySessionStore, SessionStore

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 100
DEFAULT_DISPLAY_NAME = "Player"


class GameSessionGateway:
    """
    Translates requests into state machine calls and persists the results.

    Usage:
        gateway = GameSessionGateway()

        created = gateway.create_session(ActorRef.account("u1"), "Harbor Town", "Ana")
        joined = gateway.join(created.new_state.session.code, "Bo", identity)
        result = gateway.apply(session_id, ActionType.START_GAME, creator)
    """

    def __init__(
        self,
        store: SessionStore | None = None,
        notifier: SessionNotifier | None = None,
        machine: SessionMachine | None = None,
        max_conflict_retries: int = MAX_CONFLICT_RETRIES,
        clock: Callable[[], float] = time.time,
        rng: random.Random | None = None,
    ):
        self.store = store or InMemorySessionStore()
        self.notifier = notifier or SessionNotifier()
        self.machine = machine or SessionMachine()
        self.max_conflict_retries = max_conflict_retries
        self.clock = clock
        self.rng = rng or random.Random()

    # =========================================================================
    # Reads
    # =========================================================================

    def load(self, session_id: str) -> SessionSnapshot | None:
        """Current snapshot, or None if the session does not exist."""
        try:
            return self.store.load(session_id)
        except SessionNotFound:
            return None

    def find_by_code(self, code: str) -> SessionSnapshot | None:
        """Current snapshot for a join code, or None."""
        try:
            return self.store.find_by_code(normalize_join_code(code))
        except SessionNotFound:
            return None

    # =========================================================================
    # Session creation
    # =========================================================================

    def create_session(
        self,
        actor: ActorRef | None,
        title: str,
        display_name: str | None = None,
    ) -> ActionResult:
        """
        Create a new session with the creator seated at turn order 0.

        Only account holders can create games.
        """
        if actor is None or not actor.is_durable:
            return ActionResult.failure(
                "You must be logged in to create a game",
                RejectionCode.PERMISSION_VIOLATION,
            )

        title = (title or "").strip()
        if not title:
            return ActionResult.failure("Game title is required", RejectionCode.VALIDATION_ERROR)
        if len(title) > MAX_TITLE_LENGTH:
            return ActionResult.failure(
                f"Game title must be {MAX_TITLE_LENGTH} characters or less",
                RejectionCode.VALIDATION_ERROR,
            )

        display_name = (display_name or "").strip() or DEFAULT_DISPLAY_NAME
        if len(display_name) > MAX_DISPLAY_NAME_LENGTH:
            return ActionResult.failure(
                f"Display name must be {MAX_DISPLAY_NAME_LENGTH} characters or less",
                RejectionCode.VALIDATION_ERROR,
            )

        now = self.clock()
        session_id = str(uuid.uuid4())
        creator = Participant(
            participant_id=str(uuid.uuid4()),
            session_id=session_id,
            display_name=display_name,
            actor=actor,
            turn_order=0,
            connected=True,
            created_at=now,
        )

        # The code check and the insert are separate calls; a clash in
        # between surfaces as DuplicateJoinCode and a fresh code is tried.
        for _ in range(MAX_CODE_ATTEMPTS):
            code = generate_unique_join_code(self.store.code_exists, self.rng, self.clock)
            session = Session(
                session_id=session_id,
                code=code,
                title=title,
                created_by=actor,
                phase=Phase.WAITING,
                location="",
                created_at=now,
                updated_at=now,
            )
            snapshot = SessionSnapshot(session=session, participants=(creator,))
            try:
                self.store.create(snapshot)
            except DuplicateJoinCode:
                logger.warning("Join code %s was taken concurrently, retrying", code)
                continue

            logger.info("Game %s created by %s (%s)", code, actor, session_id)
            self.notifier.publish(session_id)
            return ActionResult(
                success=True,
                new_state=snapshot,
                state_changes=[f"{display_name} created {title}"],
                participant=creator,
            )

        return ActionResult.failure(
            "Failed to create game. Please try again.",
            RejectionCode.CONCURRENCY_CONFLICT,
        )

    # =========================================================================
    # Joining
    # =========================================================================

    def join(self, code: str, display_name: str, identity: IdentityProvider) -> ActionResult:
        """
        Join a session by its code.

        An actor who is already seated gets their participant back unchanged.
        A request without any identity gets an ephemeral actor.
        """
        code = normalize_join_code(code)
        if not code:
            return ActionResult.failure("Game code is required", RejectionCode.VALIDATION_ERROR)
        if len(code) != JOIN_CODE_LENGTH:
            return ActionResult.failure(
                f"Game code must be exactly {JOIN_CODE_LENGTH} characters",
                RejectionCode.VALIDATION_ERROR,
            )

        snapshot = self.find_by_code(code)
        if snapshot is None:
            return ActionResult.failure(
                "Game not found. Please check the game code.",
                RejectionCode.NOT_FOUND,
            )
        if snapshot.session.phase >= Phase.ENDED:
            return ActionResult.failure(
                "This game has already ended.",
                RejectionCode.PHASE_VIOLATION,
            )

        actor = identity.get_current_actor(snapshot.session_id)
        if actor is not None:
            existing = snapshot.participant_for_actor(actor)
            if existing:
                return ActionResult.unchanged(snapshot, participant=existing)
        else:
            actor = identity.establish_ephemeral(snapshot.session_id)

        result = self.apply(
            snapshot.session_id,
            ActionType.JOIN,
            actor,
            ActionPayload(display_name=display_name),
        )
        if result.success and not result.is_noop:
            logger.info("%s joined game %s", result.participant.display_name, code)
        return result

    # =========================================================================
    # Actions
    # =========================================================================

    def apply(
        self,
        session_id: str,
        action_type: ActionType,
        actor: ActorRef | None,
        payload: ActionPayload | None = None,
        expected_revision: int | None = None,
    ) -> ActionResult:
        """
        Apply one action to a stored session.

        expected_revision, when given, is the revision the caller last saw;
        if the session has moved on the action is refused as a conflict
        without retrying.
        """
        action = Action(action_type, actor, payload or ActionPayload())
        return self.apply_action(session_id, action, expected_revision)

    def apply_action(
        self,
        session_id: str,
        action: Action,
        expected_revision: int | None = None,
    ) -> ActionResult:
        """Apply a prepared Action; see apply()."""
        for attempt in range(self.max_conflict_retries + 1):
            try:
                snapshot = self.store.load(session_id)
            except SessionNotFound as e:
                return ActionResult.failure(str(e), RejectionCode.NOT_FOUND)

            if expected_revision is not None and snapshot.revision != expected_revision:
                return ActionResult.failure(
                    "The game has changed since you last saw it. Refresh and try again.",
                    RejectionCode.CONCURRENCY_CONFLICT,
                )

            action.timestamp = self.clock()
            action.action_id = str(uuid.uuid4())
            result = self.machine.apply(snapshot, action)
            if not result.success:
                logger.debug(
                    "Rejected %s on %s: %s (%s)",
                    action.action_type.value, session_id, result.error, result.error_code,
                )
                return result
            if result.is_noop:
                return result

            try:
                result.new_state = self.store.commit(result.delta, expected_revision=snapshot.revision)
            except ConcurrencyConflict as e:
                logger.warning(
                    "Conflict applying %s to %s (attempt %d): %s",
                    action.action_type.value, session_id, attempt + 1, e,
                )
                continue
            except SessionNotFound as e:
                return ActionResult.failure(str(e), RejectionCode.NOT_FOUND)

            if result.new_state.session.phase != snapshot.session.phase:
                logger.info(
                    "Session %s moved from %s to %s",
                    session_id, snapshot.session.phase.name, result.new_state.session.phase.name,
                )
            self.notifier.publish(session_id)
            return result

        return ActionResult.failure(
            "Too many players acted at once. Please try again.",
            RejectionCode.CONCURRENCY_CONFLICT,
        )
