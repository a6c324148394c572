"""
API Module - Browser client interface.

Exposes the session gateway over REST and a WebSocket change feed.
The client:
1. Creates or joins a game
2. Fetches game state
3. Posts actions
4. Re-fetches whenever the feed says the game changed
"""

from .schemas import (
    # Requests
    CreateGameRequest,
    JoinGameRequest,
    ActionRequest,
    ActionPayloadModel,
    # Responses
    GameStateResponse,
    ActionResponse,
    ErrorResponse,
    HealthResponse,
    # Shared
    ErrorCode,
    ParticipantInfo,
    TurnInfo,
    DrawnPromptInfo,
)
from .app import create_app

__all__ = [
    # Requests
    "CreateGameRequest",
    "JoinGameRequest",
    "ActionRequest",
    "ActionPayloadModel",
    # Responses
    "GameStateResponse",
    "ActionResponse",
    "ErrorResponse",
    "HealthResponse",
    # Shared
    "ErrorCode",
    "ParticipantInfo",
    "TurnInfo",
    "DrawnPromptInfo",
    "create_app",
]
