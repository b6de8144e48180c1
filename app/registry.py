from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from app.exceptions.custom import ConversationNotFoundError, DuplicateConversationError
from app.schemas.conversation import Conversation, Message, Role, Stage

logger = logging.getLogger(__name__)


class ConversationRegistry:
    """In-memory store of live calls keyed by call_id.

    A conversation lives here from call-answer until ``finalize``. Webhook
    handlers for one call run inside ``lock(call_id)`` so turns for the
    same call never interleave; different calls never block each other.
    """

    def __init__(self) -> None:
        self._conversations: dict[str, Conversation] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._conversations)

    def __contains__(self, call_id: str) -> bool:
        return call_id in self._conversations

    @asynccontextmanager
    async def lock(self, call_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(call_id, asyncio.Lock())
        self._waiters[call_id] = self._waiters.get(call_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[call_id] -= 1
            if self._waiters[call_id] == 0:
                del self._waiters[call_id]
                if call_id not in self._conversations:
                    self._locks.pop(call_id, None)

    def create(
        self,
        call_id: str,
        phone: str,
        name: str = "",
        contact_id: str | None = None,
        campaign_tag: str | None = None,
    ) -> Conversation:
        if call_id in self._conversations:
            raise DuplicateConversationError(call_id)
        conversation = Conversation(
            call_id=call_id,
            contact_id=contact_id,
            phone=phone,
            display_name=name,
            campaign_tag=campaign_tag,
        )
        self._conversations[call_id] = conversation
        logger.info("Conversation %s created for %s", call_id, phone)
        return conversation

    def get(self, call_id: str) -> Conversation:
        conversation = self._conversations.get(call_id)
        if conversation is None:
            raise ConversationNotFoundError(call_id)
        return conversation

    def append_message(self, call_id: str, role: Role, text: str) -> Conversation:
        conversation = self.get(call_id)
        conversation.messages.append(Message(role=role, text=text))
        return conversation

    def update_stage(self, call_id: str, stage: Stage) -> Conversation:
        conversation = self.get(call_id)
        if conversation.stage != stage:
            logger.info(
                "Conversation %s stage %s -> %s", call_id, conversation.stage, stage
            )
            conversation.stage = stage
        return conversation

    def finalize(self, call_id: str) -> Conversation:
        conversation = self._conversations.pop(call_id, None)
        if conversation is None:
            raise ConversationNotFoundError(call_id)
        if call_id not in self._waiters:
            self._locks.pop(call_id, None)
        logger.info(
            "Conversation %s finalized at stage %s (%d messages)",
            call_id,
            conversation.stage,
            len(conversation.messages),
        )
        return conversation

    def active_call_ids(self) -> list[str]:
        return list(self._conversations)
