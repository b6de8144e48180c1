from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import StrEnum

from pydantic import BaseModel

from app.schemas.responses import CampaignBatchResult


class JobStatus(StrEnum):
    pending = "pending"
    running = "running"
    completed = "completed"
    failed = "failed"


FINISHED = (JobStatus.completed, JobStatus.failed)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CampaignJob(BaseModel):
    """One background campaign batch, from submission to its batch result."""

    job_id: str
    campaign_name: str
    priority: str
    max_calls: int
    status: JobStatus = JobStatus.pending
    created_at: datetime
    started_at: datetime | None = None
    finished_at: datetime | None = None
    result: CampaignBatchResult | None = None
    error: str | None = None

    @property
    def finished(self) -> bool:
        return self.status in FINISHED


class JobStore:
    """In-memory registry of campaign jobs; at most one runs at a time."""

    def __init__(self, keep_finished: int = 100) -> None:
        self._jobs: dict[str, CampaignJob] = {}
        self._keep_finished = keep_finished

    def submit(self, campaign_name: str, priority: str, max_calls: int) -> CampaignJob:
        job = CampaignJob(
            job_id=uuid.uuid4().hex[:12],
            campaign_name=campaign_name,
            priority=priority,
            max_calls=max_calls,
            created_at=_utcnow(),
        )
        self._jobs[job.job_id] = job
        self._prune()
        return job

    def get(self, job_id: str) -> CampaignJob | None:
        return self._jobs.get(job_id)

    def active(self) -> CampaignJob | None:
        return next((j for j in self._jobs.values() if not j.finished), None)

    def recent(self, limit: int = 20) -> list[CampaignJob]:
        """Newest first."""
        jobs = sorted(self._jobs.values(), key=lambda j: j.created_at, reverse=True)
        return jobs[:limit]

    def start(self, job_id: str) -> None:
        if job := self._jobs.get(job_id):
            job.status = JobStatus.running
            job.started_at = _utcnow()

    def complete(self, job_id: str, result: CampaignBatchResult) -> None:
        if job := self._jobs.get(job_id):
            job.status = JobStatus.completed
            job.result = result
            job.finished_at = _utcnow()

    def fail(self, job_id: str, error: str) -> None:
        if job := self._jobs.get(job_id):
            job.status = JobStatus.failed
            job.error = error
            job.finished_at = _utcnow()

    def _prune(self) -> None:
        finished = sorted(
            (j for j in self._jobs.values() if j.finished),
            key=lambda j: j.finished_at or j.created_at,
        )
        for job in finished[: max(len(finished) - self._keep_finished, 0)]:
            del self._jobs[job.job_id]
