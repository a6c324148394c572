"""
Prompt Catalog - The static prompt pools.

Two disjoint pools are drawn from during a session:
- Face prompts (12): one per court card (Jack, Queen, King of each suit).
  Used while the group establishes the place and its people.
- Numbered prompts (32): keyed by (card number 2-9, draw order 1-4).
  The draw order is how many times that number has come up this session.

Card 10 is not a prompt. Drawing it closes the current cycle.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class FacePrompt:
    """A prompt from the small pool."""
    id: int
    card: str
    prompt: str


@dataclass(frozen=True)
class NumberedPrompt:
    """A prompt from the large pool."""
    card_number: int
    draw_order: int
    prompt: str


FACE_PROMPT_IDS = tuple(range(1, 13))
NUMBERED_CARD_VALUES = tuple(range(2, 10))
DRAW_ORDERS = (1, 2, 3, 4)
TERMINAL_CARD = 10

MAX_CYCLES = 4

# Labels the creator rolls between when choosing how long a cycle lasts
CYCLE_LENGTH_LABELS = (
    "One Night",
    "One Week",
    "One Season",
    "One Year",
)

# Questions the group answers when a cycle closes; exactly one is chosen
QUESTION_TOPICS = {
    "change": "What has changed in this place since the cycle began?",
    "loss": "What has been lost, and who mourns it?",
    "secret": "What secret has come closer to the surface?",
    "bond": "Which bond grew stronger, and which one frayed?",
}


# ============================================================================
# Face prompts
# ============================================================================

FACE_PROMPTS = (
    FacePrompt(1, "Jack of Hearts", "Someone here is newly in love. Who are they, and who do they love?"),
    FacePrompt(2, "Queen of Hearts", "Who is the person everyone goes to for comfort?"),
    FacePrompt(3, "King of Hearts", "Who once sacrificed something for this place, and what was it?"),
    FacePrompt(4, "Jack of Diamonds", "Who is chasing a fortune they will probably never catch?"),
    FacePrompt(5, "Queen of Diamonds", "Who controls the trade here, and what do they sell?"),
    FacePrompt(6, "King of Diamonds", "What is the most valuable thing in this place, and who guards it?"),
    FacePrompt(7, "Jack of Clubs", "Who is the troublemaker that everyone secretly likes?"),
    FacePrompt(8, "Queen of Clubs", "Who keeps the old traditions alive?"),
    FacePrompt(9, "King of Clubs", "Who gives the orders, and why does everyone follow them?"),
    FacePrompt(10, "Jack of Spades", "Who arrived recently, and what are they running from?"),
    FacePrompt(11, "Queen of Spades", "Who knows a truth that would tear this place apart?"),
    FacePrompt(12, "King of Spades", "What danger lurks just beyond the edge of this place?"),
)


# ============================================================================
# Numbered prompts
# ============================================================================

_NUMBERED_TEXT = {
    2: (
        "A stranger asks for shelter. Who takes them in?",
        "The stranger from before does something unexpected. What is it?",
        "Two people who never speak are forced to work together. Why?",
        "Someone makes a promise they cannot keep. Who hears it?",
    ),
    3: (
        "A celebration is planned. What is being celebrated?",
        "The celebration goes wrong. Describe the moment it turns.",
        "Someone is left out of the festivities. How do they respond?",
        "An old song is sung. What memory does it stir?",
    ),
    4: (
        "The weather turns. How does the place change?",
        "Something breaks that cannot easily be repaired. What is it?",
        "A building is abandoned. Who was the last to leave it?",
        "Someone finds something buried. What is it?",
    ),
    5: (
        "A rumor spreads. Where did it start?",
        "The rumor turns out to be partly true. Which part?",
        "Someone is blamed for something they did not do. Who?",
        "A confession is made in private. Who overhears it?",
    ),
    6: (
        "A child asks a question no one wants to answer. What is it?",
        "Someone teaches a skill to another. What do they learn besides the skill?",
        "A letter arrives for someone who is no longer here. What does it say?",
        "An elder tells a story about the founding of this place. What do they leave out?",
    ),
    7: (
        "Food runs short. Who goes hungry?",
        "Someone shares what little they have. What does it cost them?",
        "A hoard is discovered. Who was keeping it, and why?",
        "The harvest, catch or delivery finally arrives. Who celebrates first?",
    ),
    8: (
        "Someone falls ill. Who cares for them?",
        "A remedy is found in an unlikely place. Where?",
        "Someone does not recover. How is their passing marked?",
        "A healer makes a choice others question. What was it?",
    ),
    9: (
        "An outsider threatens the place. What do they want?",
        "The group must decide whether to fight or bargain. What do they choose?",
        "Someone betrays the group to the outsider. Why?",
        "The threat passes, for now. What scar does it leave?",
    ),
}

NUMBERED_PROMPTS = tuple(
    NumberedPrompt(card_number=card, draw_order=order, prompt=text)
    for card, texts in _NUMBERED_TEXT.items()
    for order, text in zip(DRAW_ORDERS, texts)
)


_FACE_BY_ID = {p.id: p for p in FACE_PROMPTS}
_NUMBERED_BY_KEY = {(p.card_number, p.draw_order): p for p in NUMBERED_PROMPTS}


def get_face_prompt(prompt_id: int) -> FacePrompt | None:
    """Get a face prompt by id."""
    return _FACE_BY_ID.get(prompt_id)


def get_numbered_prompt(card_number: int, draw_order: int) -> NumberedPrompt | None:
    """Get a numbered prompt by (card number, draw order)."""
    return _NUMBERED_BY_KEY.get((card_number, draw_order))
