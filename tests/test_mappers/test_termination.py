"""Tests for the termination policy (pure functions, no I/O)."""

from datetime import datetime, timedelta, timezone

from app.mappers.termination import TerminationPolicy, end_reason, should_end
from app.schemas.conversation import Conversation, Message, Role, Stage

START = datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc)


def _conversation(stage=Stage.greeting, messages=0):
    return Conversation(
        call_id="CA1",
        phone="+380501234567",
        display_name="Иван",
        stage=stage,
        started_at=START,
        messages=[
            Message(role=Role.user if i % 2 == 0 else Role.agent, text=f"msg {i}")
            for i in range(messages)
        ],
    )


def test_keeps_talking_by_default():
    conv = _conversation(messages=2)
    assert should_end(conv, "Какие детали вас интересуют?", now=START + timedelta(seconds=30)) is False


def test_closing_phrase_in_reply():
    conv = _conversation(messages=2)
    now = START + timedelta(seconds=30)
    assert end_reason(conv, "Спасибо за ваше время, до свидания!", now=now) == "closing_phrase"


def test_closing_phrase_case_insensitive():
    conv = _conversation()
    assert should_end(conv, "ХОРОШЕГО ДНЯ", now=START) is True


def test_rejection_stage_ends_call():
    conv = _conversation(stage=Stage.rejection, messages=2)
    assert end_reason(conv, "Понимаю.", now=START) == "rejection"


def test_message_cap():
    policy = TerminationPolicy(max_messages=4)
    assert should_end(_conversation(messages=4), "Ок", policy, now=START) is False
    assert end_reason(_conversation(messages=5), "Ок", policy, now=START) == "max_messages"


def test_duration_cap():
    policy = TerminationPolicy(max_duration=timedelta(minutes=3))
    conv = _conversation(messages=2)
    assert should_end(conv, "Ок", policy, now=START + timedelta(minutes=3)) is False
    assert end_reason(conv, "Ок", policy, now=START + timedelta(minutes=3, seconds=1)) == "max_duration"


def test_empty_reply_is_not_closing():
    assert should_end(_conversation(), "", now=START) is False
    assert should_end(_conversation(), None, now=START) is False


def test_monotonic_when_messages_added():
    policy = TerminationPolicy(max_messages=4)
    conv = _conversation(messages=5)
    now = START + timedelta(seconds=10)
    assert should_end(conv, "Ок", policy, now=now) is True
    for i in range(5):
        conv.messages.append(Message(role=Role.user, text=f"more {i}"))
        assert should_end(conv, "Ок", policy, now=now) is True


def test_from_settings():
    class _Settings:
        max_messages = 12
        max_call_duration_seconds = 240

    policy = TerminationPolicy.from_settings(_Settings())
    assert policy.max_messages == 12
    assert policy.max_duration == timedelta(minutes=4)
