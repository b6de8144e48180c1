import asyncio
import logging
from datetime import datetime, timezone
from urllib.parse import urlencode

import httpx

from app.exceptions.custom import RateLimitError, RecordStoreError
from app.mappers.eligibility import is_eligible
from app.mappers.pacing import PacingPolicy
from app.mappers.phone_normalizer import DEFAULT_COUNTRY_CODE, normalize_phone, to_e164
from app.registry import ConversationRegistry
from app.schemas.responses import CampaignBatchResult, ContactOutcome
from app.services.conversation import ConversationService
from app.services.record_store import RecordStoreService
from app.services.twilio import TwilioService

logger = logging.getLogger(__name__)

VOICE_PATH = "/handle-cold-call"
STATUS_PATH = "/call-status"
INVALID_PHONE_REASON = "invalid phone number"
# Twilio statuses of a call that has been placed but not yet answered
PENDING_STATUSES = {"queued", "initiated", "ringing"}


def _describe_error(exc: Exception) -> str:
    """Return a human-readable description for common call exceptions."""
    if isinstance(exc, httpx.ReadTimeout):
        return "Timed out waiting for telephony provider (ReadTimeout)"
    if isinstance(exc, httpx.ConnectTimeout):
        return "Could not connect to telephony provider (ConnectTimeout)"
    if isinstance(exc, httpx.ConnectError):
        return "Connection error"
    if isinstance(exc, RateLimitError):
        return str(exc)
    message = getattr(exc, "message", None) or str(exc).strip()
    if message:
        return message
    return type(exc).__name__


class CampaignDispatcher:
    """Dials a batch of contacts one at a time with a randomized pause between calls."""

    def __init__(
        self,
        record_store: RecordStoreService,
        twilio: TwilioService,
        conversations: ConversationService,
        registry: ConversationRegistry,
        *,
        public_base_url: str,
        pacing: PacingPolicy | None = None,
        country_code: str = DEFAULT_COUNTRY_CODE,
    ):
        self._store = record_store
        self._twilio = twilio
        self._conversations = conversations
        self._registry = registry
        self._base_url = public_base_url.rstrip("/")
        self._pacing = pacing or PacingPolicy()
        self._country_code = country_code
        self._paused = asyncio.Event()
        self._ringing: set[str] = set()

    @property
    def paused(self) -> bool:
        return self._paused.is_set()

    async def run_batch(
        self, campaign_name: str, max_calls: int, priority: str
    ) -> CampaignBatchResult:
        now = datetime.now(timezone.utc)
        contacts = await self._store.search_eligible_contacts(priority, max_calls, now)
        contacts = [c for c in contacts if is_eligible(c, priority, now)][:max_calls]

        if not contacts:
            logger.info("Campaign '%s': no eligible contacts (priority=%s)", campaign_name, priority)
            return CampaignBatchResult(
                campaign_name=campaign_name,
                priority=priority,
                total_found=0,
                initiated=0,
                failed=0,
                paused=self.paused,
            )

        logger.info(
            "Campaign '%s': dialing %d contacts (priority=%s)",
            campaign_name, len(contacts), priority,
        )
        results: list[ContactOutcome] = []
        interrupted = False

        for index, contact in enumerate(contacts):
            if self.paused:
                logger.info(
                    "Campaign '%s' paused, %d contacts left undialed",
                    campaign_name, len(contacts) - index,
                )
                interrupted = True
                break

            outcome = await self._dial(
                contact.phone_number,
                contact.contact_name or "",
                contact_id=contact.id,
                campaign_tag=campaign_name,
            )
            results.append(outcome)

            is_last = index == len(contacts) - 1
            if outcome.status == "initiated" and not is_last:
                delay = await self._pacing.wait(self._paused)
                logger.info("Paced %.0fs before next call", delay)

        initiated = sum(1 for r in results if r.status == "initiated")
        failed = len(results) - initiated
        logger.info(
            "Campaign '%s' finished: %d initiated, %d failed",
            campaign_name, initiated, failed,
        )
        return CampaignBatchResult(
            campaign_name=campaign_name,
            priority=priority,
            total_found=len(contacts),
            initiated=initiated,
            failed=failed,
            paused=interrupted,
            results=results,
        )

    async def call_contact(
        self,
        phone: str,
        name: str = "",
        contact_id: str | None = None,
        campaign_tag: str | None = None,
    ) -> ContactOutcome:
        """Dial a single number outside of any batch."""
        return await self._dial(phone, name, contact_id=contact_id, campaign_tag=campaign_tag)

    async def _dial(
        self,
        raw_phone: str | None,
        name: str,
        contact_id: str | None,
        campaign_tag: str | None,
    ) -> ContactOutcome:
        national = normalize_phone(raw_phone, self._country_code)
        if not national:
            logger.warning("Contact %s skipped: invalid phone %r", contact_id, raw_phone)
            return ContactOutcome(
                contact_id=contact_id,
                phone_number=raw_phone or "",
                status="failed",
                reason=INVALID_PHONE_REASON,
            )

        to_number = to_e164(national, self._country_code)
        try:
            call = await self._twilio.start_call(
                to_number,
                self._voice_url(to_number, name, contact_id, campaign_tag),
                self._status_url(contact_id),
            )
        except Exception as exc:
            logger.warning(
                "Call to %s failed: %s: %s", to_number, type(exc).__name__, exc
            )
            return ContactOutcome(
                contact_id=contact_id,
                phone_number=to_number,
                status="failed",
                reason=_describe_error(exc),
            )

        self._ringing.add(call.sid)
        if contact_id:
            await self._mark_initiated(contact_id, call.sid, campaign_tag)

        return ContactOutcome(
            contact_id=contact_id,
            phone_number=to_number,
            status="initiated",
            call_sid=call.sid,
        )

    async def _mark_initiated(
        self, contact_id: str, call_sid: str, campaign_tag: str | None
    ) -> None:
        fields = {
            "call_status": "initiated",
            "call_sid": call_sid,
            "last_call_at": datetime.now(timezone.utc).isoformat(),
        }
        if campaign_tag:
            fields["campaign_tag"] = campaign_tag
        try:
            await self._store.update_contact(contact_id, fields)
        except (RecordStoreError, RateLimitError) as exc:
            logger.warning(
                "Failed to mark contact %s as initiated, call continues: %s",
                contact_id, exc,
            )

    def _voice_url(
        self,
        phone: str,
        name: str,
        contact_id: str | None,
        campaign_tag: str | None,
    ) -> str:
        params = {"phone": phone, "name": name}
        if contact_id:
            params["contact_id"] = contact_id
        if campaign_tag:
            params["campaign"] = campaign_tag
        return f"{self._base_url}{VOICE_PATH}?{urlencode(params)}"

    def _status_url(self, contact_id: str | None) -> str:
        if contact_id:
            return f"{self._base_url}{STATUS_PATH}?{urlencode({'contact_id': contact_id})}"
        return f"{self._base_url}{STATUS_PATH}"

    async def pause(self) -> list[str]:
        """Stop dialing and hang up live calls; return the call ids stopped."""
        self._paused.set()
        logger.info("Campaign dispatch paused")

        in_flight = self._registry.active_call_ids()
        in_flight += sorted(self._ringing.difference(in_flight))

        stopped: list[str] = []
        for call_sid in in_flight:
            try:
                await self._twilio.hangup_call(call_sid)
            except Exception as exc:
                # Left to end on its own via the termination policy
                logger.warning("Could not hang up call %s: %s", call_sid, exc)
                continue
            await self._conversations.terminate(call_sid)
            stopped.append(call_sid)
        self._ringing.clear()
        return stopped

    def call_progressed(self, call_sid: str, status: str) -> None:
        """Forget a dialed call once Twilio reports it past ringing."""
        if status not in PENDING_STATUSES:
            self._ringing.discard(call_sid)

    def resume(self) -> None:
        self._paused.clear()
        logger.info("Campaign dispatch resumed")
