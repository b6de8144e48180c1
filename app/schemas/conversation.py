from __future__ import annotations

from datetime import datetime, timezone
from enum import StrEnum

from pydantic import BaseModel, Field


class Stage(StrEnum):
    greeting = "greeting"
    interested = "interested"
    discussing_needs = "discussing_needs"
    rejection = "rejection"
    callback_requested = "callback_requested"
    maybe_later = "maybe_later"
    order_process = "order_process"
    # Scored but never produced by the classifier yet
    order_created = "order_created"


class Role(StrEnum):
    user = "user"
    agent = "agent"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Message(BaseModel):
    role: Role
    text: str
    timestamp: datetime = Field(default_factory=_utcnow)


class Conversation(BaseModel):
    call_id: str
    contact_id: str | None = None
    phone: str
    display_name: str = ""
    campaign_tag: str | None = None
    stage: Stage = Stage.greeting
    messages: list[Message] = []
    started_at: datetime = Field(default_factory=_utcnow)
    reprompts: int = 0

    def duration_seconds(self, now: datetime | None = None) -> float:
        if now is None:
            now = _utcnow()
        return max((now - self.started_at).total_seconds(), 0.0)

    def transcript_text(self) -> str:
        """Render messages as "Клиент: ..." / "Агент: ..." lines."""
        lines: list[str] = []
        for msg in self.messages:
            label = "Клиент" if msg.role == Role.user else "Агент"
            lines.append(f"{label}: {msg.text}")
        return "\n".join(lines)
