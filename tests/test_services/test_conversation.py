from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from app.exceptions.custom import ConversationNotFoundError, RecordStoreError
from app.mappers.termination import TerminationPolicy
from app.mappers.twiml_builder import GREETING, REPROMPT, REPROMPT_LIMIT_GOODBYE, TECHNICAL_ERROR
from app.registry import ConversationRegistry
from app.schemas.conversation import Role, Stage
from app.services.conversation import ConversationService, session_id_for
from app.services.record_store import RecordStoreService
from app.services.reply_agent import ReplyAgentService

CALL_ID = "CA100"
PHONE = "+380501234567"


@pytest.fixture
def registry():
    return ConversationRegistry()


@pytest.fixture
def reply_agent():
    agent = AsyncMock(spec=ReplyAgentService)
    agent.generate_reply.return_value = "Какие запчасти вас интересуют?"
    return agent


@pytest.fixture
def record_store():
    return AsyncMock(spec=RecordStoreService)


@pytest.fixture
def service(registry, reply_agent, record_store):
    return ConversationService(registry, reply_agent, record_store)


async def _start(service, contact_id="c1"):
    return await service.start_call(CALL_ID, PHONE, "Иван", contact_id=contact_id, campaign_tag="spring")


@pytest.mark.asyncio
async def test_start_call_greets_and_saves(service, registry, record_store):
    xml = await _start(service)
    await service.drain()

    assert GREETING in xml
    assert "<Gather" in xml
    assert CALL_ID in registry

    record = record_store.upsert_call.call_args.args[0]
    assert record.call_sid == CALL_ID
    assert record.call_status == "in-progress"
    assert record.campaign_tag == "spring"
    record_store.update_contact.assert_awaited_once_with(
        "c1", {"call_status": "answered", "call_sid": CALL_ID}
    )


@pytest.mark.asyncio
async def test_duplicate_start_reserves_greeting(service, registry, record_store):
    await _start(service)
    xml = await _start(service)
    await service.drain()

    assert GREETING in xml
    assert len(registry) == 1
    assert record_store.upsert_call.await_count == 1


@pytest.mark.asyncio
async def test_turn_records_both_sides(service, registry, reply_agent):
    await _start(service)

    xml = await service.handle_speech(CALL_ID, "Расскажите подробнее", 0.9)

    assert "Какие запчасти вас интересуют?" in xml
    assert "<Gather" in xml
    reply_agent.generate_reply.assert_awaited_once_with(
        "Расскажите подробнее", session_id_for(CALL_ID), PHONE, "Иван"
    )
    conv = registry.get(CALL_ID)
    assert [(m.role, m.text) for m in conv.messages] == [
        (Role.user, "Расскажите подробнее"),
        (Role.agent, "Какие запчасти вас интересуют?"),
    ]
    assert conv.stage == Stage.interested


@pytest.mark.asyncio
async def test_low_confidence_reprompts_without_agent(service, registry, reply_agent):
    await _start(service)

    xml = await service.handle_speech(CALL_ID, "бу-бу", 0.2)

    assert REPROMPT in xml
    reply_agent.generate_reply.assert_not_awaited()
    assert registry.get(CALL_ID).messages == []


@pytest.mark.asyncio
async def test_empty_speech_reprompts(service, registry, reply_agent):
    await _start(service)

    xml = await service.handle_speech(CALL_ID, "   ", 0.95)

    assert REPROMPT in xml
    reply_agent.generate_reply.assert_not_awaited()


@pytest.mark.asyncio
async def test_reprompt_limit_hangs_up(service, registry):
    await _start(service)

    for _ in range(3):
        assert REPROMPT in await service.handle_speech(CALL_ID, None, 0.0)
    xml = await service.handle_speech(CALL_ID, None, 0.0)
    await service.drain()

    assert REPROMPT_LIMIT_GOODBYE in xml
    assert "<Gather" not in xml
    assert CALL_ID not in registry


@pytest.mark.asyncio
async def test_good_turn_resets_reprompts(service, registry):
    await _start(service)
    await service.handle_speech(CALL_ID, None, 0.0)
    await service.handle_speech(CALL_ID, None, 0.0)

    await service.handle_speech(CALL_ID, "Алло", 0.9)

    assert registry.get(CALL_ID).reprompts == 0


@pytest.mark.asyncio
async def test_rejection_ends_call_and_schedules_retry(service, registry, reply_agent, record_store):
    reply_agent.generate_reply.return_value = "Понимаю, всего доброго!"
    await _start(service)
    await service.drain()
    record_store.reset_mock()

    before = datetime.now(timezone.utc)
    xml = await service.handle_speech(CALL_ID, "Нет, спасибо, не интересно", 0.9)
    await service.drain()

    assert "Понимаю, всего доброго!" in xml
    assert "<Hangup" in xml
    assert "<Gather" not in xml
    assert CALL_ID not in registry

    record = record_store.upsert_call.call_args.args[0]
    assert record.call_status == "completed"
    assert record.conversation_state == "rejection"
    assert record.lead_score == 0
    assert record.message_count == 2
    assert record.transcript == "Клиент: Нет, спасибо, не интересно\nАгент: Понимаю, всего доброго!"
    assert before + timedelta(days=30) <= record.next_call_date <= before + timedelta(days=33)
    assert record.next_call_date.weekday() < 5

    contact_id, fields = record_store.update_contact.call_args.args
    assert contact_id == "c1"
    assert fields["call_status"] == "completed"
    assert fields["conversation_state"] == "rejection"
    assert fields["lead_score"] == 0
    assert fields["next_call_date"] == record.next_call_date.isoformat()


@pytest.mark.asyncio
async def test_message_cap_ends_call(registry, reply_agent, record_store):
    service = ConversationService(
        registry, reply_agent, record_store, policy=TerminationPolicy(max_messages=2)
    )
    await _start(service)

    first = await service.handle_speech(CALL_ID, "Алло", 0.9)
    second = await service.handle_speech(CALL_ID, "Да", 0.9)

    assert "<Gather" in first
    assert "<Gather" not in second
    assert CALL_ID not in registry


@pytest.mark.asyncio
async def test_agent_order_phrase_moves_to_order_process(service, registry, reply_agent):
    reply_agent.generate_reply.return_value = "Отлично, оформляю заказ на бампер."
    await _start(service)

    await service.handle_speech(CALL_ID, "Хорошо", 0.9)

    assert registry.get(CALL_ID).stage == Stage.order_process


@pytest.mark.asyncio
async def test_unknown_call_raises(service):
    with pytest.raises(ConversationNotFoundError):
        await service.handle_speech("missing", "Алло", 0.9)


@pytest.mark.asyncio
async def test_error_during_turn_returns_error_twiml(service, registry, reply_agent):
    reply_agent.generate_reply.side_effect = RuntimeError("boom")
    await _start(service)

    xml = await service.handle_speech(CALL_ID, "Алло", 0.9)
    await service.drain()

    assert TECHNICAL_ERROR in xml
    assert CALL_ID not in registry


@pytest.mark.asyncio
async def test_store_failures_do_not_break_call(service, registry, record_store):
    record_store.upsert_call.side_effect = RecordStoreError("down", status_code=503)
    record_store.update_contact.side_effect = RecordStoreError("down", status_code=503)

    await _start(service)
    xml = await service.handle_speech(CALL_ID, "Расскажите подробнее", 0.9)
    await service.drain()

    assert "<Gather" in xml
    assert CALL_ID in registry


@pytest.mark.asyncio
async def test_non_terminal_status_is_ignored(service, registry):
    await _start(service)

    assert await service.handle_status(CALL_ID, "in-progress") is None
    assert CALL_ID in registry


@pytest.mark.asyncio
async def test_completed_status_finalizes(service, registry, record_store):
    await _start(service)
    await service.handle_speech(CALL_ID, "Расскажите подробнее", 0.9)

    result = await service.handle_status(CALL_ID, "completed", contact_id="c1")
    await service.drain()

    assert result.call_status == "completed"
    assert result.stage == "interested"
    assert result.next_call_date is None
    assert result.lead_score >= 40
    assert result.message_count == 2
    assert CALL_ID not in registry


@pytest.mark.asyncio
async def test_status_after_finalize_is_noop(service, reply_agent, record_store):
    reply_agent.generate_reply.return_value = "Всего доброго!"
    await _start(service)
    await service.handle_speech(CALL_ID, "Пока", 0.9)
    await service.drain()
    record_store.reset_mock()

    assert await service.handle_status(CALL_ID, "completed", contact_id="c1") is None
    await service.drain()

    record_store.upsert_call.assert_not_awaited()
    record_store.update_contact.assert_not_awaited()


@pytest.mark.asyncio
async def test_unanswered_call_updates_contact(service, record_store):
    assert await service.handle_status("CA200", "no-answer", contact_id="c7") is None
    await service.drain()

    contact_id, fields = record_store.update_contact.call_args.args
    assert contact_id == "c7"
    assert fields["call_status"] == "no-answer"
    assert fields["call_sid"] == "CA200"
    assert fields["next_call_date"] is not None


@pytest.mark.asyncio
async def test_terminate(service, registry):
    await _start(service)

    result = await service.terminate(CALL_ID)

    assert result.call_id == CALL_ID
    assert CALL_ID not in registry
    assert await service.terminate(CALL_ID) is None


@pytest.mark.asyncio
async def test_get_conversation(service):
    await _start(service)
    assert service.get_conversation(CALL_ID).phone == PHONE
    with pytest.raises(ConversationNotFoundError):
        service.get_conversation("missing")
