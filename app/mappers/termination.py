"""Decide after each turn whether the call should be hung up.

Independent of the reply agent's own judgment: a declining caller, a runaway
dialogue, or an overlong call all end the call.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from app.mappers.stage_classifier import contains_any
from app.schemas.conversation import Conversation, Stage

DEFAULT_MAX_MESSAGES = 10
DEFAULT_MAX_DURATION = timedelta(minutes=3)

CLOSING_PHRASES = (
    "до свидания",
    "всего доброго",
    "всего хорошего",
    "хорошего дня",
    "спасибо за ваше время",
    "спасибо за уделенное время",
    "спасибо за уделённое время",
    "заказ оформлен",
    "ваш заказ принят",
    "goodbye",
    "thank you for your time",
)


@dataclass(frozen=True)
class TerminationPolicy:
    max_messages: int = DEFAULT_MAX_MESSAGES
    max_duration: timedelta = DEFAULT_MAX_DURATION

    @classmethod
    def from_settings(cls, settings) -> "TerminationPolicy":
        return cls(
            max_messages=settings.max_messages,
            max_duration=timedelta(seconds=settings.max_call_duration_seconds),
        )


def end_reason(
    conversation: Conversation,
    agent_reply: str | None,
    policy: TerminationPolicy = TerminationPolicy(),
    now: datetime | None = None,
) -> str | None:
    """Return why the call should end, or None to keep talking."""
    if now is None:
        now = datetime.now(timezone.utc)

    if agent_reply and contains_any(agent_reply, CLOSING_PHRASES):
        return "closing_phrase"
    if conversation.stage == Stage.rejection:
        return "rejection"
    if len(conversation.messages) > policy.max_messages:
        return "max_messages"
    if now - conversation.started_at > policy.max_duration:
        return "max_duration"
    return None


def should_end(
    conversation: Conversation,
    agent_reply: str | None,
    policy: TerminationPolicy = TerminationPolicy(),
    now: datetime | None = None,
) -> bool:
    return end_reason(conversation, agent_reply, policy, now) is not None
