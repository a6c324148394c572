"""
Pydantic Schemas for API - Request/response models for OpenAPI.

These models define the contract between the browser client and the
gateway. Clients are expected to re-fetch the game state whenever the
WebSocket feed reports a change.

Error Codes:
- NOT_FOUND: Game or player does not exist
- PHASE_VIOLATION: Action not allowed in the current phase or sub-state
- TURN_VIOLATION: Action requires the current turn
- PERMISSION_VIOLATION: Action requires the game creator
- VALIDATION_ERROR: Malformed input (name length, duplicate name, bad value)
- POOL_EXHAUSTED: No prompt is left to draw
- CONCURRENCY_CONFLICT: Someone else changed the game first; retry
- UNAUTHENTICATED: No identity on a request that needs one
"""

from enum import Enum
from typing import Optional, Any
from pydantic import BaseModel, Field

from ..engine_core.action import ActionType


# =============================================================================
# Enums
# =============================================================================

class ErrorCode(str, Enum):
    """Structured error codes."""
    NOT_FOUND = "NOT_FOUND"
    PHASE_VIOLATION = "PHASE_VIOLATION"
    TURN_VIOLATION = "TURN_VIOLATION"
    PERMISSION_VIOLATION = "PERMISSION_VIOLATION"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    POOL_EXHAUSTED = "POOL_EXHAUSTED"
    CONCURRENCY_CONFLICT = "CONCURRENCY_CONFLICT"
    UNAUTHENTICATED = "UNAUTHENTICATED"


# =============================================================================
# Shared Models
# =============================================================================

class ParticipantInfo(BaseModel):
    """A seated player."""
    participant_id: str
    display_name: str
    turn_order: int
    connected: bool = True
    is_creator: bool = False
    is_current_turn: bool = False
    location_confirmed: bool = False
    ready: bool = False

    model_config = {"from_attributes": True}


class TurnInfo(BaseModel):
    """One ledger entry with its prompt text."""
    record_id: str
    participant_id: str
    created_at: float
    pool: str = Field(description="face or numbered")
    face_prompt_id: Optional[int] = None
    card_number: Optional[int] = None
    draw_order: Optional[int] = None
    card: Optional[str] = None
    prompt_text: Optional[str] = None


class DrawnPromptInfo(BaseModel):
    """What a draw produced."""
    pool: str
    face_prompt_id: Optional[int] = None
    card_number: Optional[int] = None
    draw_order: Optional[int] = None
    is_terminal: bool = False
    card: Optional[str] = None
    prompt_text: Optional[str] = None


# =============================================================================
# Request Models
# =============================================================================

class CreateGameRequest(BaseModel):
    """Request to create a game."""
    title: str = Field(description="Game title, 1-100 characters")
    display_name: Optional[str] = Field(None, description="Creator's display name")


class JoinGameRequest(BaseModel):
    """Request to join a game by code."""
    code: str = Field(description="6 character join code, any case")
    display_name: str = Field(description="Display name, 1-50 characters, unique in the game")


class ActionPayloadModel(BaseModel):
    """
    Parameters of an action.

    Only the fields the action uses need to be set.
    """
    target_participant_id: Optional[str] = Field(None, description="kick")
    location: Optional[str] = Field(None, description="set_location")
    topic: Optional[str] = Field(None, description="select_topic")
    connected: Optional[bool] = Field(None, description="set_connected")
    face_value: Optional[int] = Field(
        None, ge=2, le=10, description="draw_numbered_card: a physically drawn card value"
    )


class ActionRequest(BaseModel):
    """An action on a game."""
    action: ActionType
    payload: ActionPayloadModel = Field(default_factory=ActionPayloadModel)
    expected_revision: Optional[int] = Field(
        None, description="Revision the client last saw; stale revisions are refused"
    )


# =============================================================================
# Response Models
# =============================================================================

class GameStateResponse(BaseModel):
    """Complete game state for display."""
    session_id: str
    code: str
    title: str
    phase: int
    phase_name: str
    revision: int

    cycle_length: Optional[str] = None
    cycle: int = 0
    max_cycles: int = 4
    ten_flag: bool = False
    focused_flag: bool = False
    turn_drawn: bool = False
    selected_topics: list[str] = Field(default_factory=list)
    topics: dict[str, str] = Field(default_factory=dict)

    current_turn_id: Optional[str] = None
    last_turn_id: Optional[str] = None

    location: str = ""
    participants: list[ParticipantInfo] = Field(default_factory=list)
    turns: list[TurnInfo] = Field(default_factory=list)
    face_prompts_drawn: int = 0
    ready_count: int = 0
    ready_threshold: int = 1

    you: Optional[str] = Field(None, description="Your participant id, if seated")
    allowed_actions: list[str] = Field(default_factory=list)

    created_at: float = 0.0
    updated_at: float = 0.0
    api_version: str = "v1"


class ActionResponse(BaseModel):
    """Result of a successful action."""
    success: bool = True
    session_id: str
    action: str
    revision: int
    changes: list[str] = Field(default_factory=list)
    drawn: Optional[DrawnPromptInfo] = None
    new_turn_holder: Optional[str] = None
    game_state: GameStateResponse


class ErrorResponse(BaseModel):
    """Error response with structured code."""
    success: bool = False
    error: str
    error_code: ErrorCode
    details: Optional[dict[str, Any]] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str = "healthy"
    version: str
    environment: str
    sessions: int = 0
