"""
FastAPI Application - REST + WebSocket API for the browser client.

Endpoints:
    POST   /api/v1/games                      Create a game (account required)
    POST   /api/v1/games/join                 Join a game by code
    GET    /api/v1/games/{code}               Get game state
    POST   /api/v1/games/{session_id}/actions Apply an action
    WS     /api/v1/games/{session_id}/ws      Change notifications

Identity:
    Account holders send X-Account-Id (set by the upstream auth layer).
    Players without an account get a per-game cookie named
    player_<session_id> when they join.

Change feed:
    Every successful action publishes {"type": "session_changed",
    "session_id": ...} to the game's WebSocket connections. Clients
    re-fetch state on each message.

All responses are JSON with explicit Pydantic schemas.
"""

from typing import Optional
import asyncio
import json
import logging

from ..config import ALLOWED_ORIGINS, TALETURN_ENV

logger = logging.getLogger(__name__)

# Rejection code -> HTTP status
ERROR_STATUS = {
    "NOT_FOUND": 404,
    "PHASE_VIOLATION": 409,
    "POOL_EXHAUSTED": 409,
    "CONCURRENCY_CONFLICT": 409,
    "TURN_VIOLATION": 403,
    "PERMISSION_VIOLATION": 403,
    "VALIDATION_ERROR": 400,
    "UNAUTHENTICATED": 401,
}

ACCOUNT_HEADER = "X-Account-Id"


def create_app(gateway=None):
    """
    Create the FastAPI application.

    Args:
        gateway: Optional GameSessionGateway (creates an in-memory one if not provided)

    Returns:
        FastAPI application instance
    """
    try:
        from fastapi import FastAPI, Request, Response, WebSocket, WebSocketDisconnect
        from fastapi.exceptions import RequestValidationError
        from fastapi.middleware.cors import CORSMiddleware
        from fastapi.responses import JSONResponse
    except ImportError:
        raise ImportError(
            "FastAPI not installed. Install with: pip install fastapi uvicorn"
        )

    from .. import __version__
    from ..engine_core.action import ActionPayload, ActionResult, ActionType
    from ..engine_core.state import ActorRef, Phase, PoolKind, SessionSnapshot
    from ..engine_core.transitions import allowed_actions
    from ..prompts.catalog import MAX_CYCLES, QUESTION_TOPICS, get_face_prompt, get_numbered_prompt
    from ..session import GameSessionGateway, RequestIdentity
    from ..session.identity import EPHEMERAL_COOKIE_MAX_AGE
    from .schemas import (
        # Request models
        CreateGameRequest,
        JoinGameRequest,
        ActionRequest,
        # Response models
        GameStateResponse,
        ActionResponse,
        ErrorResponse,
        HealthResponse,
        # Enums
        ErrorCode,
        # Nested models
        ParticipantInfo,
        TurnInfo,
        DrawnPromptInfo,
    )

    app = FastAPI(
        title="Taleturn API",
        description="""
Turn-based collaborative storytelling. Players take turns drawing prompts
and narrating a shared place through four cycles.

## Phases

| Phase | Name | Leaves when |
|-------|------|-------------|
| 0 | waiting | The creator starts the game |
| 1 | cycle_length_selection | The creator confirms the rolled cycle length |
| 2 | establishing | 3+ face prompts are drawn and every connected player is ready |
| 3 | drawing | The fourth cycle is continued |
| 4 | ended | - |

## Error Codes

| Code | HTTP | Description |
|------|------|-------------|
| `NOT_FOUND` | 404 | Game or player does not exist |
| `PHASE_VIOLATION` | 409 | Not allowed in the current phase or sub-state |
| `POOL_EXHAUSTED` | 409 | Nothing left to draw |
| `CONCURRENCY_CONFLICT` | 409 | The game changed first; refresh and retry |
| `TURN_VIOLATION` | 403 | Not your turn |
| `PERMISSION_VIOLATION` | 403 | Creator only |
| `VALIDATION_ERROR` | 400 | Malformed input |
| `UNAUTHENTICATED` | 401 | No identity on the request |
        """,
        version=__version__,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    game_gateway = gateway or GameSessionGateway()
    app.state.gateway = game_gateway

    # WebSocket connections
    ws_connections: dict[str, list[WebSocket]] = {}
    # Loop serving the sockets, for publishes that arrive from other threads
    ws_loop: dict[str, Optional[asyncio.AbstractEventLoop]] = {"loop": None}
    pending_broadcasts: set[asyncio.Future] = set()

    # =========================================================================
    # Error helpers
    # =========================================================================

    def make_error_response(
        error_code: ErrorCode,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[dict] = None,
    ) -> JSONResponse:
        """Create a standardized error response."""
        return JSONResponse(
            status_code=status_code or ERROR_STATUS[error_code.value],
            content=ErrorResponse(
                error=message,
                error_code=error_code,
                details=details,
            ).model_dump(mode="json"),
        )

    def rejection_response(result: ActionResult) -> JSONResponse:
        """Error response for a failed ActionResult."""
        code = ErrorCode(result.error_code.value) if result.error_code else ErrorCode.VALIDATION_ERROR
        return make_error_response(code, result.error or "Action failed")

    def unauthenticated() -> JSONResponse:
        return make_error_response(
            ErrorCode.UNAUTHENTICATED,
            "No player identity on this request. Join the game first.",
        )

    async def broadcast_to_session(session_id: str, message: dict):
        """Broadcast a message to all WebSocket connections for a session."""
        if session_id in ws_connections:
            dead_connections = []
            for ws in list(ws_connections[session_id]):
                try:
                    await ws.send_json(message)
                except (WebSocketDisconnect, RuntimeError):
                    dead_connections.append(ws)
            connections = ws_connections.get(session_id, [])
            for ws in dead_connections:
                if ws in connections:
                    connections.remove(ws)

    def on_session_changed(session_id: str):
        """Notifier subscriber: fan the change out to the game's sockets."""
        if not ws_connections.get(session_id):
            return
        message = {"type": "session_changed", "session_id": session_id}
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop is not None:
            task = loop.create_task(broadcast_to_session(session_id, message))
        elif ws_loop["loop"] is not None:
            task = asyncio.run_coroutine_threadsafe(
                broadcast_to_session(session_id, message), ws_loop["loop"]
            )
        else:
            return
        pending_broadcasts.add(task)
        task.add_done_callback(pending_broadcasts.discard)

    game_gateway.notifier.subscribe(on_session_changed)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        """Malformed request bodies use the same error shape as rejections."""
        errors = exc.errors()
        message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
        return make_error_response(
            ErrorCode.VALIDATION_ERROR,
            message,
            details={"errors": [
                {"loc": [str(part) for part in e.get("loc", ())], "msg": e.get("msg", "")}
                for e in errors
            ]},
        )

    def request_identity(request: Request) -> RequestIdentity:
        return RequestIdentity(
            account_id=request.headers.get(ACCOUNT_HEADER) or None,
            cookies=dict(request.cookies),
        )

    # =========================================================================
    # Game Endpoints
    # =========================================================================

    @app.post(
        "/api/v1/games",
        response_model=GameStateResponse,
        responses={
            400: {"model": ErrorResponse, "description": "Invalid title or name"},
            401: {"model": ErrorResponse, "description": "No account"},
        },
        tags=["Games"],
        summary="Create a new game",
    )
    async def create_game(body: CreateGameRequest, request: Request):
        """
        Create a new game. The creator is seated first.

        Requires an account (`X-Account-Id`).
        """
        identity = request_identity(request)
        actor = identity.get_current_actor()
        if actor is None:
            return make_error_response(
                ErrorCode.UNAUTHENTICATED, "You must be logged in to create a game"
            )

        result = game_gateway.create_session(actor, body.title, body.display_name)
        if not result.success:
            return rejection_response(result)
        return _convert_game_state(result.new_state, actor)

    @app.post(
        "/api/v1/games/join",
        response_model=GameStateResponse,
        responses={
            400: {"model": ErrorResponse, "description": "Invalid code or name"},
            404: {"model": ErrorResponse, "description": "Game not found"},
            409: {"model": ErrorResponse, "description": "Game already started"},
        },
        tags=["Games"],
        summary="Join a game by code",
    )
    async def join_game(body: JoinGameRequest, request: Request, response: Response):
        """
        Join a game by its 6 character code.

        Players without an account receive a `player_<session_id>` cookie
        that identifies them in this game for 7 days. Joining again with
        the same identity returns the current state unchanged.
        """
        identity = request_identity(request)
        result = game_gateway.join(body.code, body.display_name, identity)
        if not result.success:
            return rejection_response(result)

        if identity.issued:
            cookie_name, token = identity.issued
            response.set_cookie(
                key=cookie_name,
                value=token,
                max_age=EPHEMERAL_COOKIE_MAX_AGE,
                httponly=True,
                samesite="lax",
                secure=TALETURN_ENV == "production",
            )
        actor = identity.get_current_actor(result.new_state.session_id)
        return _convert_game_state(result.new_state, actor)

    @app.get(
        "/api/v1/games/{code}",
        response_model=GameStateResponse,
        responses={404: {"model": ErrorResponse}},
        tags=["Games"],
        summary="Get game state",
    )
    async def get_game(code: str, request: Request):
        """
        Get the full state of a game by its join code.

        `you` and `allowed_actions` reflect the identity on the request.
        """
        snapshot = game_gateway.find_by_code(code)
        if snapshot is None:
            return make_error_response(ErrorCode.NOT_FOUND, f"Game {code} not found")
        actor = request_identity(request).get_current_actor(snapshot.session_id)
        return _convert_game_state(snapshot, actor)

    @app.post(
        "/api/v1/games/{session_id}/actions",
        response_model=ActionResponse,
        responses={
            400: {"model": ErrorResponse},
            401: {"model": ErrorResponse},
            403: {"model": ErrorResponse},
            404: {"model": ErrorResponse},
            409: {"model": ErrorResponse},
        },
        tags=["Games"],
        summary="Apply an action",
    )
    async def apply_action(session_id: str, body: ActionRequest, request: Request):
        """
        Apply one action to a game.

        Pass `expected_revision` to refuse the action if the game changed
        since the client last saw it.
        """
        actor = request_identity(request).get_current_actor(session_id)
        if actor is None:
            return unauthenticated()

        params = {}
        if body.payload.face_value is not None:
            params["face_value"] = body.payload.face_value
        payload = ActionPayload(
            target_participant_id=body.payload.target_participant_id,
            location=body.payload.location,
            topic=body.payload.topic,
            connected=body.payload.connected,
            params=params,
        )

        result = game_gateway.apply(
            session_id, body.action, actor, payload, expected_revision=body.expected_revision
        )
        if not result.success:
            return rejection_response(result)

        delta = result.delta
        return ActionResponse(
            session_id=session_id,
            action=body.action.value,
            revision=result.new_state.revision,
            changes=result.state_changes,
            drawn=_convert_drawn(delta.drawn) if delta and delta.drawn else None,
            new_turn_holder=delta.new_turn_holder if delta else None,
            game_state=_convert_game_state(result.new_state, actor),
        )

    # =========================================================================
    # WebSocket Endpoint
    # =========================================================================

    @app.websocket("/api/v1/games/{session_id}/ws")
    async def websocket_endpoint(websocket: WebSocket, session_id: str):
        """
        WebSocket for change notifications.

        Messages from server:
        - session_changed: The game changed; re-fetch its state
        - error: Malformed client message

        Messages from client:
        - ping: Keep-alive

        A seated player's connected flag follows the socket.
        """
        await websocket.accept()
        ws_loop["loop"] = asyncio.get_running_loop()
        ws_connections.setdefault(session_id, []).append(websocket)

        identity = RequestIdentity(
            account_id=websocket.headers.get(ACCOUNT_HEADER) or None,
            cookies=dict(websocket.cookies),
        )
        actor = identity.get_current_actor(session_id)
        _set_presence(session_id, actor, True)

        try:
            while True:
                data = await websocket.receive_text()
                try:
                    message = json.loads(data)
                except json.JSONDecodeError:
                    await websocket.send_json({
                        "type": "error",
                        "payload": {"message": "Invalid JSON"},
                    })
                    continue
                if isinstance(message, dict) and message.get("type") == "ping":
                    await websocket.send_json({"type": "pong"})

        except WebSocketDisconnect:
            logger.debug("WebSocket for %s closed", session_id)
        finally:
            if session_id in ws_connections:
                if websocket in ws_connections[session_id]:
                    ws_connections[session_id].remove(websocket)
                if not ws_connections[session_id]:
                    del ws_connections[session_id]
            _set_presence(session_id, actor, False)

    def _set_presence(session_id: str, actor: Optional[ActorRef], connected: bool):
        """Mirror a socket opening or closing onto the player's connected flag."""
        if actor is None:
            return
        snapshot = game_gateway.load(session_id)
        if snapshot is None or snapshot.session.phase == Phase.ENDED:
            return
        if snapshot.participant_for_actor(actor) is None:
            return
        result = game_gateway.apply(
            session_id, ActionType.SET_CONNECTED, actor, ActionPayload(connected=connected)
        )
        if not result.success:
            logger.debug("Presence update for %s refused: %s", session_id, result.error)

    # =========================================================================
    # Health Check
    # =========================================================================

    @app.get(
        "/health",
        response_model=HealthResponse,
        tags=["System"],
        summary="Health check",
    )
    async def health_check() -> HealthResponse:
        """Health check endpoint for load balancers."""
        return HealthResponse(
            status="healthy",
            version=__version__,
            environment=TALETURN_ENV,
            sessions=len(game_gateway.store.list_session_ids()),
        )

    @app.get("/", tags=["System"])
    async def root():
        """Root endpoint with API info."""
        return {
            "name": "Taleturn API",
            "version": __version__,
            "docs": "/api/docs",
            "health": "/health",
        }

    # =========================================================================
    # Conversion Helpers
    # =========================================================================

    def _convert_drawn(ref) -> DrawnPromptInfo:
        """Convert a PromptRef to its response model."""
        card = None
        text = None
        if ref.pool == PoolKind.FACE:
            prompt = get_face_prompt(ref.face_prompt_id)
            card, text = prompt.card, prompt.prompt
        elif ref.is_terminal:
            card = "10"
            text = "The cycle ends. Choose a question to close it."
        else:
            prompt = get_numbered_prompt(ref.card_number, ref.draw_order)
            card, text = str(ref.card_number), prompt.prompt
        return DrawnPromptInfo(
            pool=ref.pool.value,
            face_prompt_id=ref.face_prompt_id,
            card_number=ref.card_number,
            draw_order=ref.draw_order,
            is_terminal=ref.is_terminal,
            card=card,
            prompt_text=text,
        )

    def _convert_turn(record) -> TurnInfo:
        """Convert a TurnRecord, attaching its prompt text."""
        if record.pool == PoolKind.FACE:
            prompt = get_face_prompt(record.face_prompt_id)
            card = prompt.card if prompt else None
        else:
            prompt = get_numbered_prompt(record.card_number, record.draw_order)
            card = str(record.card_number)
        return TurnInfo(
            record_id=record.record_id,
            participant_id=record.participant_id,
            created_at=record.created_at,
            pool=record.pool.value,
            face_prompt_id=record.face_prompt_id,
            card_number=record.card_number,
            draw_order=record.draw_order,
            card=card,
            prompt_text=prompt.prompt if prompt else None,
        )

    def _convert_game_state(snapshot: SessionSnapshot, actor: Optional[ActorRef]) -> GameStateResponse:
        """Convert a snapshot to the client view."""
        session = snapshot.session
        you = snapshot.participant_for_actor(actor)

        # The ledger shown is the one for the phase being played
        if session.phase == Phase.ESTABLISHING:
            turns = snapshot.turns_in_pool(PoolKind.FACE)
        elif session.phase >= Phase.DRAWING:
            turns = snapshot.turns_in_pool(PoolKind.NUMBERED)
        else:
            turns = []

        return GameStateResponse(
            session_id=session.session_id,
            code=session.code,
            title=session.title,
            phase=int(session.phase),
            phase_name=session.phase.name.lower(),
            revision=session.revision,
            cycle_length=session.cycle_length,
            cycle=session.cycle,
            max_cycles=MAX_CYCLES,
            ten_flag=session.ten_flag,
            focused_flag=session.focused_flag,
            turn_drawn=session.turn_drawn,
            selected_topics=sorted(session.selected_topics),
            topics=dict(QUESTION_TOPICS),
            current_turn_id=session.current_turn_id,
            last_turn_id=session.last_turn_id,
            location=session.location,
            participants=[
                ParticipantInfo(
                    participant_id=p.participant_id,
                    display_name=p.display_name,
                    turn_order=p.turn_order,
                    connected=p.connected,
                    is_creator=p.actor == session.created_by,
                    is_current_turn=p.participant_id == session.current_turn_id,
                    location_confirmed=p.participant_id in session.location_confirmed_by,
                    ready=p.participant_id in session.ready_to_end,
                )
                for p in snapshot.ordered_participants
            ],
            turns=[_convert_turn(t) for t in turns],
            face_prompts_drawn=len(snapshot.turns_in_pool(PoolKind.FACE)),
            ready_count=snapshot.ready_count,
            ready_threshold=snapshot.ready_threshold,
            you=you.participant_id if you else None,
            allowed_actions=[a.value for a in allowed_actions(snapshot, actor)],
            created_at=session.created_at,
            updated_at=session.updated_at,
        )

    return app
