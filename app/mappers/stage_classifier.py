"""Rule-based conversation stage classification.

Rules are evaluated top to bottom and the first match wins. User rules look
at the caller's utterance; agent rules look at the generated reply. When no
rule matches the stage stays where it was.
"""

from enum import StrEnum
from typing import NamedTuple

from app.schemas.conversation import Stage


class Source(StrEnum):
    user = "user"
    agent = "agent"


class StageRule(NamedTuple):
    stage: Stage
    keywords: tuple[str, ...]
    source: Source


REJECTION_KEYWORDS = (
    "не интересно",
    "неинтересно",
    "не интересует",
    "не нужно",
    "не надо",
    "нам не нужно",
    "не звоните",
    "больше не звоните",
    "отказываюсь",
    "нет, спасибо",
    "нет спасибо",
    "не актуально",
    "неактуально",
    "not interested",
    "don't call",
    "no thanks",
)

INTEREST_KEYWORDS = (
    "интересно",
    "интересует",
    "расскажите",
    "подробнее",
    "да, удобно",
    "слушаю",
    "interested",
    "tell me more",
)

NEEDS_KEYWORDS = (
    "запчаст",
    "деталь",
    "детали",
    "бампер",
    "фара",
    "фары",
    "крепление",
    "кронштейн",
    "решетк",
    "пластик",
    "модель",
    "машин",
    "автомобил",
    "spare part",
    "bumper",
)

DEFERRAL_KEYWORDS = (
    "может быть",
    "подумаю",
    "подумать",
    "не сейчас",
    "позже",
    "в другой раз",
    "потом",
    "maybe later",
    "not now",
)

CALLBACK_KEYWORDS = (
    "перезвоните",
    "перезвонить",
    "перезвоню",
    "позвоните",
    "наберите",
    "call back",
    "call me",
)

ORDER_KEYWORDS = (
    "оформляю заказ",
    "оформим заказ",
    "оформлю заказ",
    "заказ принят",
    "номер заказа",
    "ваш заказ",
    "placing your order",
)

STAGE_RULES: tuple[StageRule, ...] = (
    StageRule(Stage.rejection, REJECTION_KEYWORDS, Source.user),
    StageRule(Stage.interested, INTEREST_KEYWORDS, Source.user),
    StageRule(Stage.discussing_needs, NEEDS_KEYWORDS, Source.user),
    StageRule(Stage.maybe_later, DEFERRAL_KEYWORDS, Source.user),
    StageRule(Stage.callback_requested, CALLBACK_KEYWORDS, Source.user),
    StageRule(Stage.order_process, ORDER_KEYWORDS, Source.agent),
)


def contains_any(text: str, keywords: tuple[str, ...]) -> bool:
    lowered = text.lower()
    return any(kw in lowered for kw in keywords)


def classify(
    current_stage: Stage,
    utterance: str,
    agent_reply: str | None = None,
    rules: tuple[StageRule, ...] = STAGE_RULES,
) -> Stage:
    """Return the stage for this turn; ``current_stage`` if nothing matches."""
    for rule in rules:
        text = utterance if rule.source == Source.user else agent_reply
        if text and contains_any(text, rule.keywords):
            return rule.stage
    return current_stage
