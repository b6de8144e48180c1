"""Additive lead score for a finished conversation.

Every point comes from a named rule so sales staff can see why a lead scored
what it did. The total is clamped to 0-100.
"""

from datetime import datetime

from app.mappers.stage_classifier import (
    INTEREST_KEYWORDS,
    NEEDS_KEYWORDS,
    REJECTION_KEYWORDS,
    contains_any,
)
from app.schemas.conversation import Conversation, Stage

MIN_SCORE = 0
MAX_SCORE = 100

BRAND_KEYWORDS = (
    "emme3d",
    "3d",
    "3д",
    "принтер",
    "печать",
    "напечат",
)

PURCHASE_KEYWORDS = (
    "заказ",
    "заказать",
    "купить",
    "куплю",
    "цена",
    "стоимость",
    "сколько стоит",
    "order",
    "buy",
    "price",
)

# (threshold in seconds, points); cumulative
DURATION_BONUSES = ((60, 20), (120, 30))
# (threshold in messages, points); cumulative
MESSAGE_BONUSES = ((4, 25), (8, 25))

KEYWORD_BONUSES = (
    ("interest", INTEREST_KEYWORDS, 30),
    ("brand", BRAND_KEYWORDS, 20),
    ("needs", NEEDS_KEYWORDS, 25),
    ("purchase_intent", PURCHASE_KEYWORDS, 50),
)

STAGE_DELTAS: dict[Stage, int] = {
    Stage.interested: 40,
    Stage.discussing_needs: 60,
    Stage.order_created: 100,
    Stage.rejection: -20,
}


def _without(text: str, phrases: tuple[str, ...]) -> str:
    lowered = text.lower()
    for phrase in phrases:
        lowered = lowered.replace(phrase, " ")
    return lowered


def explain_score(
    conversation: Conversation, now: datetime | None = None
) -> list[tuple[str, int]]:
    """Return the (reason, points) pairs behind the raw, unclamped score."""
    parts: list[tuple[str, int]] = []

    duration = conversation.duration_seconds(now)
    for threshold, points in DURATION_BONUSES:
        if duration > threshold:
            parts.append((f"duration>{threshold}s", points))

    count = len(conversation.messages)
    for threshold, points in MESSAGE_BONUSES:
        if count > threshold:
            parts.append((f"messages>{threshold}", points))

    # "не интересно" must not count as interest
    transcript = _without(" ".join(m.text for m in conversation.messages), REJECTION_KEYWORDS)
    for name, keywords, points in KEYWORD_BONUSES:
        if contains_any(transcript, keywords):
            parts.append((f"keywords:{name}", points))

    delta = STAGE_DELTAS.get(conversation.stage)
    if delta:
        parts.append((f"stage:{conversation.stage.value}", delta))

    return parts


def score_conversation(conversation: Conversation, now: datetime | None = None) -> int:
    raw = sum(points for _, points in explain_score(conversation, now))
    return max(MIN_SCORE, min(MAX_SCORE, raw))
