"""
Tests for API Pydantic schemas.

Validates that:
- Request models parse client payloads
- Error codes are properly structured
- Game state carries the fields clients render
"""

import pytest
from pydantic import ValidationError

from ..api.schemas import (
    ActionRequest,
    ErrorCode,
    ErrorResponse,
    GameStateResponse,
    JoinGameRequest,
    ParticipantInfo,
)
from ..engine_core.action import ActionType, RejectionCode


class TestPydanticSchemas:
    """Tests for Pydantic schema validation."""

    def test_action_request_defaults(self):
        request = ActionRequest(action="draw_numbered_card")

        assert request.action == ActionType.DRAW_NUMBERED_CARD
        assert request.payload.face_value is None
        assert request.expected_revision is None

    def test_action_request_with_payload(self):
        request = ActionRequest.model_validate({
            "action": "kick",
            "payload": {"target_participant_id": "p3"},
            "expected_revision": 4,
        })

        assert request.action == ActionType.KICK
        assert request.payload.target_participant_id == "p3"
        assert request.expected_revision == 4

    def test_unknown_action_rejected(self):
        with pytest.raises(ValidationError):
            ActionRequest(action="flip_table")

    @pytest.mark.parametrize("face_value", [1, 11])
    def test_face_value_range(self, face_value):
        with pytest.raises(ValidationError):
            ActionRequest.model_validate({
                "action": "draw_numbered_card",
                "payload": {"face_value": face_value},
            })

    def test_join_request_requires_name(self):
        with pytest.raises(ValidationError):
            JoinGameRequest(code="ABC123")

    def test_error_response_schema(self):
        response = ErrorResponse(
            error="It is not your turn",
            error_code=ErrorCode.TURN_VIOLATION,
        )

        data = response.model_dump(mode="json")
        assert data["success"] is False
        assert data["error_code"] == "TURN_VIOLATION"
        assert data["details"] is None

    def test_error_codes_cover_rejections(self):
        """Every engine rejection has an API error code."""
        for code in RejectionCode:
            assert ErrorCode(code.value)

    def test_game_state_schema(self):
        state = GameStateResponse(
            session_id="s1",
            code="ABC123",
            title="Harbor Town",
            phase=3,
            phase_name="drawing",
            revision=17,
            cycle=2,
            participants=[
                ParticipantInfo(participant_id="p1", display_name="Ana", turn_order=0, is_creator=True),
                ParticipantInfo(participant_id="p2", display_name="Bo", turn_order=1, connected=False),
            ],
            ready_threshold=1,
        )

        data = state.model_dump()
        assert data["max_cycles"] == 4
        assert data["participants"][1]["connected"] is False
        assert data["turns"] == []
        assert data["allowed_actions"] == []
        assert data["api_version"] == "v1"
