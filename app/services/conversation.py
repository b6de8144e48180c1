import asyncio
import logging
from collections.abc import Awaitable
from datetime import datetime, timezone

from app.exceptions.custom import DuplicateConversationError, RateLimitError, RecordStoreError
from app.mappers.lead_scoring import explain_score, score_conversation
from app.mappers.retry_scheduler import compute_next_call_date
from app.mappers.stage_classifier import classify
from app.mappers.termination import TerminationPolicy, end_reason
from app.mappers.twiml_builder import (
    REPROMPT_LIMIT_GOODBYE,
    VoiceOptions,
    build_error,
    build_greeting,
    build_hangup,
    build_reprompt,
    build_turn,
)
from app.registry import ConversationRegistry
from app.schemas.conversation import Conversation, Role, Stage
from app.schemas.record_store import CallRecord
from app.schemas.responses import CallResult
from app.services.record_store import RecordStoreService
from app.services.reply_agent import ReplyAgentService

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE_THRESHOLD = 0.4
DEFAULT_MAX_REPROMPTS = 3

TERMINAL_STATUSES = {"completed", "failed", "no-answer", "busy", "canceled"}
UNANSWERED_STATUSES = {"failed", "no-answer", "busy", "canceled"}


def session_id_for(call_id: str) -> str:
    return f"voice_{call_id}"


class ConversationService:
    """Drives one call turn by turn from the telephony webhooks.

    All work for a call happens under ``registry.lock(call_id)``. Writes to
    the record store run as background tasks: a failed write is logged and
    dropped, it never delays or breaks the live call.
    """

    def __init__(
        self,
        registry: ConversationRegistry,
        reply_agent: ReplyAgentService,
        record_store: RecordStoreService,
        *,
        policy: TerminationPolicy = TerminationPolicy(),
        confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
        max_reprompts: int = DEFAULT_MAX_REPROMPTS,
        voice: VoiceOptions = VoiceOptions(),
        campaign_country: str | None = None,
    ):
        self._registry = registry
        self._reply_agent = reply_agent
        self._store = record_store
        self._policy = policy
        self._confidence_threshold = confidence_threshold
        self._max_reprompts = max_reprompts
        self._voice = voice
        self._country = campaign_country or None
        self._background: set[asyncio.Task] = set()

    async def start_call(
        self,
        call_id: str,
        phone: str,
        name: str = "",
        contact_id: str | None = None,
        campaign_tag: str | None = None,
    ) -> str:
        async with self._registry.lock(call_id):
            try:
                conversation = self._registry.create(
                    call_id, phone, name, contact_id=contact_id, campaign_tag=campaign_tag
                )
            except DuplicateConversationError:
                logger.warning("Duplicate answer callback for %s, re-serving greeting", call_id)
                return build_greeting(self._voice)

            self._persist(self._save_call_started(conversation), f"call start {call_id}")
        return build_greeting(self._voice)

    async def handle_speech(self, call_id: str, speech: str | None, confidence: float) -> str:
        """Process one caller utterance and return the TwiML to play next.

        Raises ConversationNotFoundError for calls that are unknown or
        already finalized.
        """
        async with self._registry.lock(call_id):
            conversation = self._registry.get(call_id)
            try:
                return await self._process_turn(conversation, speech, confidence)
            except Exception:
                logger.exception("Error processing turn for call %s", call_id)
                if call_id in self._registry:
                    self._finalize(call_id, "completed")
                return build_error(self._voice)

    async def _process_turn(
        self, conversation: Conversation, speech: str | None, confidence: float
    ) -> str:
        call_id = conversation.call_id
        speech = (speech or "").strip()

        if not speech or confidence < self._confidence_threshold:
            conversation.reprompts += 1
            logger.info(
                "Unintelligible speech on %s (confidence=%.2f, reprompt %d/%d)",
                call_id, confidence, conversation.reprompts, self._max_reprompts,
            )
            if conversation.reprompts > self._max_reprompts:
                self._finalize(call_id, "completed")
                return build_hangup(REPROMPT_LIMIT_GOODBYE, self._voice)
            return build_reprompt(self._voice)

        conversation.reprompts = 0
        self._registry.append_message(call_id, Role.user, speech)

        reply = await self._reply_agent.generate_reply(
            speech,
            session_id_for(call_id),
            conversation.phone,
            conversation.display_name,
        )
        self._registry.append_message(call_id, Role.agent, reply)

        stage = classify(conversation.stage, speech, reply)
        self._registry.update_stage(call_id, stage)

        reason = end_reason(conversation, reply, self._policy)
        if reason:
            logger.info("Ending call %s: %s", call_id, reason)
            self._finalize(call_id, "completed")
            return build_hangup(reply, self._voice)

        return build_turn(reply, self._voice)

    async def handle_status(
        self, call_id: str, status: str, contact_id: str | None = None
    ) -> CallResult | None:
        """Apply a telephony status callback; terminal statuses finalize."""
        if status not in TERMINAL_STATUSES:
            logger.info("Call %s status: %s", call_id, status)
            return None

        async with self._registry.lock(call_id):
            if call_id in self._registry:
                return self._finalize(call_id, status)

        if status in UNANSWERED_STATUSES and contact_id:
            self._persist(
                self._save_unanswered(call_id, contact_id, status),
                f"unanswered call {call_id}",
            )
        else:
            logger.info("Call %s ended with %s, nothing left to finalize", call_id, status)
        return None

    async def terminate(self, call_id: str) -> CallResult | None:
        """Finalize a call stopped from outside (campaign pause)."""
        async with self._registry.lock(call_id):
            if call_id not in self._registry:
                return None
            return self._finalize(call_id, "completed")

    def get_conversation(self, call_id: str) -> Conversation:
        return self._registry.get(call_id)

    def _finalize(self, call_id: str, call_status: str) -> CallResult:
        conversation = self._registry.finalize(call_id)
        now = datetime.now(timezone.utc)

        score = score_conversation(conversation, now)
        logger.info(
            "Call %s scored %d: %s", call_id, score, explain_score(conversation, now)
        )
        next_call_date = compute_next_call_date(
            conversation.stage, call_status, now, country=self._country
        )
        result = CallResult(
            call_id=call_id,
            contact_id=conversation.contact_id,
            stage=conversation.stage.value,
            call_status=call_status,
            lead_score=score,
            duration_seconds=int(conversation.duration_seconds(now)),
            message_count=len(conversation.messages),
            next_call_date=next_call_date,
        )
        self._persist(self._save_result(conversation, result), f"call result {call_id}")
        return result

    # --- persistence (background, log-and-drop) ---

    def _persist(self, coro: Awaitable[None], what: str) -> asyncio.Task:
        task = asyncio.create_task(self._guarded(coro, what))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    @staticmethod
    async def _guarded(coro: Awaitable[None], what: str) -> None:
        try:
            await coro
        except (RecordStoreError, RateLimitError) as exc:
            logger.warning("Skipped saving %s: %s", what, exc)
        except Exception:
            logger.exception("Unexpected error saving %s, skipped", what)

    async def drain(self) -> None:
        """Wait for pending background writes (shutdown, tests)."""
        if self._background:
            await asyncio.gather(*list(self._background))

    async def _save_call_started(self, conversation: Conversation) -> None:
        now = datetime.now(timezone.utc)
        await self._store.upsert_call(CallRecord(
            call_sid=conversation.call_id,
            contact_id=conversation.contact_id,
            phone_number=conversation.phone,
            contact_name=conversation.display_name,
            call_status="in-progress",
            conversation_state=conversation.stage.value,
            campaign_tag=conversation.campaign_tag,
            updated_at=now,
        ))
        if conversation.contact_id:
            await self._store.update_contact(conversation.contact_id, {
                "call_status": "answered",
                "call_sid": conversation.call_id,
            })

    async def _save_result(self, conversation: Conversation, result: CallResult) -> None:
        now = datetime.now(timezone.utc)
        await self._store.upsert_call(CallRecord(
            call_sid=result.call_id,
            contact_id=conversation.contact_id,
            phone_number=conversation.phone,
            contact_name=conversation.display_name,
            call_status=result.call_status,
            conversation_state=result.stage,
            lead_score=result.lead_score,
            duration_seconds=result.duration_seconds,
            message_count=result.message_count,
            transcript=conversation.transcript_text(),
            campaign_tag=conversation.campaign_tag,
            next_call_date=result.next_call_date,
            updated_at=now,
        ))
        if conversation.contact_id:
            await self._store.update_contact(conversation.contact_id, {
                "call_status": result.call_status,
                "conversation_state": result.stage,
                "lead_score": result.lead_score,
                "next_call_date": (
                    result.next_call_date.isoformat() if result.next_call_date else None
                ),
                "last_call_at": now.isoformat(),
            })

    async def _save_unanswered(self, call_id: str, contact_id: str, status: str) -> None:
        now = datetime.now(timezone.utc)
        next_call_date = compute_next_call_date(
            Stage.greeting, status, now, country=self._country
        )
        await self._store.update_contact(contact_id, {
            "call_status": status,
            "call_sid": call_id,
            "next_call_date": next_call_date.isoformat() if next_call_date else None,
            "last_call_at": now.isoformat(),
        })
        logger.info("Contact %s not reached (%s), retry at %s", contact_id, status, next_call_date)
