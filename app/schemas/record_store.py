from datetime import datetime

from pydantic import BaseModel


class Contact(BaseModel):
    id: str
    phone_number: str | None = None
    contact_name: str | None = None
    priority: str | None = None
    call_status: str | None = None  # initiated | answered | completed | failed | no-answer | busy
    next_call_date: datetime | None = None
    conversation_state: str | None = None
    lead_score: int | None = None
    call_sid: str | None = None
    last_call_at: datetime | None = None
    campaign_tag: str | None = None


class CallRecord(BaseModel):
    call_sid: str
    contact_id: str | None = None
    phone_number: str
    contact_name: str | None = None
    call_status: str
    conversation_state: str
    lead_score: int | None = None
    duration_seconds: int | None = None
    message_count: int = 0
    transcript: str | None = None
    campaign_tag: str | None = None
    next_call_date: datetime | None = None
    updated_at: datetime
