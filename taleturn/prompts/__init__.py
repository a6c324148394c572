"""
Prompts Module - Static prompt catalogs.

The catalogs are fixed; which entries a session has consumed is derived
from its turn ledger, never stored here.
"""

from .catalog import (
    FacePrompt,
    NumberedPrompt,
    FACE_PROMPTS,
    NUMBERED_PROMPTS,
    FACE_PROMPT_IDS,
    NUMBERED_CARD_VALUES,
    DRAW_ORDERS,
    TERMINAL_CARD,
    MAX_CYCLES,
    CYCLE_LENGTH_LABELS,
    QUESTION_TOPICS,
    get_face_prompt,
    get_numbered_prompt,
)

__all__ = [
    "FacePrompt",
    "NumberedPrompt",
    "FACE_PROMPTS",
    "NUMBERED_PROMPTS",
    "FACE_PROMPT_IDS",
    "NUMBERED_CARD_VALUES",
    "DRAW_ORDERS",
    "TERMINAL_CARD",
    "MAX_CYCLES",
    "CYCLE_LENGTH_LABELS",
    "QUESTION_TOPICS",
    "get_face_prompt",
    "get_numbered_prompt",
]
