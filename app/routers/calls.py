import logging
from typing import Annotated

from fastapi import APIRouter, Form, Response

from app.dependencies import ConversationDep, DispatcherDep
from app.schemas.conversation import Conversation

logger = logging.getLogger(__name__)

router = APIRouter()

TWIML_MEDIA_TYPE = "application/xml"


@router.post("/handle-cold-call")
async def handle_cold_call(
    service: ConversationDep,
    dispatcher: DispatcherDep,
    call_sid: Annotated[str, Form(alias="CallSid")],
    phone: str = "",
    name: str = "",
    contact_id: str | None = None,
    campaign: str | None = None,
) -> Response:
    logger.info("Cold call %s answered by contact %s: %s", call_sid, contact_id, phone)
    dispatcher.call_progressed(call_sid, "in-progress")
    twiml = await service.start_call(
        call_sid, phone, name, contact_id=contact_id, campaign_tag=campaign
    )
    return Response(content=twiml, media_type=TWIML_MEDIA_TYPE)


@router.post("/process-customer-response")
async def process_customer_response(
    service: ConversationDep,
    call_sid: Annotated[str, Form(alias="CallSid")],
    speech_result: Annotated[str | None, Form(alias="SpeechResult")] = None,
    confidence: Annotated[float, Form(alias="Confidence")] = 0.0,
) -> Response:
    logger.info("Call %s: caller said %r (confidence %.2f)", call_sid, speech_result, confidence)
    twiml = await service.handle_speech(call_sid, speech_result, confidence)
    return Response(content=twiml, media_type=TWIML_MEDIA_TYPE)


@router.post("/call-status", status_code=204)
async def call_status(
    service: ConversationDep,
    dispatcher: DispatcherDep,
    call_sid: Annotated[str, Form(alias="CallSid")],
    status: Annotated[str, Form(alias="CallStatus")],
    contact_id: str | None = None,
) -> Response:
    dispatcher.call_progressed(call_sid, status)
    await service.handle_status(call_sid, status, contact_id=contact_id)
    return Response(status_code=204)


@router.get("/conversations/{call_id}", response_model=Conversation)
async def get_conversation(call_id: str, service: ConversationDep) -> Conversation:
    return service.get_conversation(call_id)
