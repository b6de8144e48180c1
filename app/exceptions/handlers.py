import logging

from fastapi import Request
from fastapi.responses import JSONResponse, PlainTextResponse

from .custom import (
    ConversationNotFoundError,
    RateLimitError,
    RecordStoreError,
    TwilioError,
)

logger = logging.getLogger(__name__)


async def twilio_error_handler(_request: Request, exc: TwilioError) -> JSONResponse:
    logger.error("Twilio error: %s (status=%s)", exc.message, exc.status_code)
    return JSONResponse(
        status_code=502,
        content={"detail": f"Twilio error: {exc.message}"},
    )


async def record_store_error_handler(_request: Request, exc: RecordStoreError) -> JSONResponse:
    logger.error("Record store error: %s (status=%s)", exc.message, exc.status_code)
    return JSONResponse(
        status_code=502,
        content={"detail": f"Record store error: {exc.message}"},
    )


async def rate_limit_error_handler(_request: Request, exc: RateLimitError) -> JSONResponse:
    logger.warning("Rate limit hit for %s", exc.service)
    return JSONResponse(
        status_code=429,
        content={"detail": f"Rate limit exceeded for {exc.service}"},
    )


async def conversation_not_found_handler(
    _request: Request, exc: ConversationNotFoundError
) -> PlainTextResponse:
    # Stray webhooks after hangup are expected; Twilio must not retry them
    logger.warning("Conversation %s not found", exc.call_id)
    return PlainTextResponse("Разговор не найден", status_code=404)
