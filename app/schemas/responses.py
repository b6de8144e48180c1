from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class ContactOutcome(BaseModel):
    contact_id: str | None = None
    phone_number: str
    status: str  # "initiated" | "failed"
    call_sid: str | None = None
    reason: str | None = None


class CampaignBatchResult(BaseModel):
    campaign_name: str
    priority: str
    total_found: int
    initiated: int
    failed: int
    paused: bool = False
    results: list[ContactOutcome] = []


class CallResult(BaseModel):
    call_id: str
    contact_id: str | None = None
    stage: str
    call_status: str
    lead_score: int
    duration_seconds: int
    message_count: int
    next_call_date: datetime | None = None


class JobSubmittedResponse(BaseModel):
    job_id: str
    status: str
    message: str


class JobStatusResponse(BaseModel):
    job_id: str
    status: str
    campaign_name: str
    priority: str
    max_calls: int
    created_at: datetime
    started_at: datetime | None = None
    finished_at: datetime | None = None
    result: CampaignBatchResult | None = None
    error: str | None = None
