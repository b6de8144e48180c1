import logging
import sys
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI

from app.config import Settings
from app.exceptions.custom import (
    ConversationNotFoundError,
    RateLimitError,
    RecordStoreError,
    TwilioError,
)
from app.exceptions.handlers import (
    conversation_not_found_handler,
    rate_limit_error_handler,
    record_store_error_handler,
    twilio_error_handler,
)
from app.jobs import JobStore
from app.mappers.pacing import PacingPolicy
from app.mappers.termination import TerminationPolicy
from app.mappers.twiml_builder import VoiceOptions
from app.registry import ConversationRegistry
from app.routers.calls import router as calls_router
from app.routers.campaigns import router as campaigns_router
from app.services.campaign import CampaignDispatcher
from app.services.conversation import ConversationService
from app.services.record_store import RecordStoreService
from app.services.reply_agent import ReplyAgentService
from app.services.twilio import TwilioService


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = Settings()

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stdout,
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)

    async with httpx.AsyncClient(timeout=30.0) as client:
        twilio = TwilioService(
            client,
            settings.twilio_account_sid,
            settings.twilio_auth_token,
            settings.twilio_phone_number,
        )
        reply_agent = ReplyAgentService(
            client, settings.n8n_webhook_url, timeout=settings.reply_timeout_seconds
        )
        record_store = RecordStoreService(
            client,
            settings.supabase_url,
            settings.supabase_key,
            timeout=settings.store_timeout_seconds,
        )

        registry = ConversationRegistry()
        conversations = ConversationService(
            registry,
            reply_agent,
            record_store,
            policy=TerminationPolicy.from_settings(settings),
            confidence_threshold=settings.confidence_threshold,
            max_reprompts=settings.max_reprompts,
            voice=VoiceOptions(voice=settings.voice, language=settings.language),
            campaign_country=settings.campaign_country,
        )
        dispatcher = CampaignDispatcher(
            record_store,
            twilio,
            conversations,
            registry,
            public_base_url=settings.public_base_url,
            pacing=PacingPolicy(settings.pacing_min_seconds, settings.pacing_max_seconds),
            country_code=settings.country_code,
        )

        app.state.registry = registry
        app.state.conversation_service = conversations
        app.state.dispatcher = dispatcher
        app.state.job_store = JobStore()

        yield

        # Let pending record-store writes finish before the client closes
        await conversations.drain()


app = FastAPI(title="Cold Call Agent", lifespan=lifespan)

app.add_exception_handler(TwilioError, twilio_error_handler)
app.add_exception_handler(RecordStoreError, record_store_error_handler)
app.add_exception_handler(RateLimitError, rate_limit_error_handler)
app.add_exception_handler(ConversationNotFoundError, conversation_not_found_handler)

app.include_router(calls_router)
app.include_router(campaigns_router)
