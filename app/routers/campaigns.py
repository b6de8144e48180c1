import asyncio
import logging

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from app.dependencies import DispatcherDep, JobStoreDep
from app.jobs import JobStore
from app.schemas.responses import (
    CampaignBatchResult,
    ContactOutcome,
    JobStatusResponse,
    JobSubmittedResponse,
)
from app.services.campaign import INVALID_PHONE_REASON, CampaignDispatcher

logger = logging.getLogger(__name__)

router = APIRouter()


class CampaignRunRequest(BaseModel):
    campaign_name: str = "default"
    max_calls: int = Field(default=10, gt=0, le=500)
    priority: str = "high"


class SingleCallRequest(BaseModel):
    phone: str
    name: str = ""
    contact_id: str | None = None
    campaign_tag: str | None = None


class PauseResponse(BaseModel):
    paused: bool
    stopped_calls: list[str] = []


async def _run_campaign(
    job_id: str,
    dispatcher: CampaignDispatcher,
    store: JobStore,
    request: CampaignRunRequest,
) -> None:
    store.start(job_id)
    try:
        result = await dispatcher.run_batch(
            request.campaign_name, request.max_calls, request.priority
        )
        store.complete(job_id, result)
    except Exception as exc:
        logger.exception("Campaign job %s failed", job_id)
        store.fail(job_id, str(exc))


@router.post("/campaigns/run", response_model=JobSubmittedResponse, status_code=202)
async def run_campaign(
    dispatcher: DispatcherDep,
    store: JobStoreDep,
    request: CampaignRunRequest | None = None,
) -> JobSubmittedResponse:
    request = request or CampaignRunRequest()
    if dispatcher.paused:
        raise HTTPException(status_code=409, detail="Campaign dispatch is paused")

    existing = store.active()
    if existing:
        return JSONResponse(content={
            "job_id": existing.job_id,
            "status": "already_running",
            "message": "A campaign batch is already running",
        })

    job = store.submit(request.campaign_name, request.priority, request.max_calls)
    asyncio.create_task(_run_campaign(job.job_id, dispatcher, store, request))
    return JobSubmittedResponse(
        job_id=job.job_id,
        status=job.status,
        message="Campaign job submitted",
    )


@router.post("/campaigns/run/sync", response_model=CampaignBatchResult)
async def run_campaign_sync(
    dispatcher: DispatcherDep,
    request: CampaignRunRequest | None = None,
) -> CampaignBatchResult:
    request = request or CampaignRunRequest()
    if dispatcher.paused:
        raise HTTPException(status_code=409, detail="Campaign dispatch is paused")
    return await dispatcher.run_batch(
        request.campaign_name, request.max_calls, request.priority
    )


@router.post("/campaigns/pause", response_model=PauseResponse)
async def pause_campaign(dispatcher: DispatcherDep) -> PauseResponse:
    stopped = await dispatcher.pause()
    return PauseResponse(paused=True, stopped_calls=stopped)


@router.post("/campaigns/resume", response_model=PauseResponse)
async def resume_campaign(dispatcher: DispatcherDep) -> PauseResponse:
    dispatcher.resume()
    return PauseResponse(paused=False)


@router.post("/calls", response_model=ContactOutcome)
async def make_call(request: SingleCallRequest, dispatcher: DispatcherDep) -> ContactOutcome:
    outcome = await dispatcher.call_contact(
        request.phone,
        request.name,
        contact_id=request.contact_id,
        campaign_tag=request.campaign_tag,
    )
    if outcome.reason == INVALID_PHONE_REASON:
        raise HTTPException(status_code=422, detail=f"Invalid phone number: {request.phone}")
    return outcome


@router.get("/jobs", response_model=list[JobStatusResponse])
async def list_jobs(store: JobStoreDep, limit: int = 20) -> list[JobStatusResponse]:
    return [JobStatusResponse(**job.model_dump()) for job in store.recent(limit)]


@router.get("/jobs/{job_id}", response_model=JobStatusResponse)
async def get_job_status(job_id: str, store: JobStoreDep) -> JobStatusResponse:
    job = store.get(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return JobStatusResponse(**job.model_dump())
