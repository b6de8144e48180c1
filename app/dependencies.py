from typing import Annotated

from fastapi import Depends, Request

from app.jobs import JobStore
from app.services.campaign import CampaignDispatcher
from app.services.conversation import ConversationService


def get_conversation_service(request: Request) -> ConversationService:
    return request.app.state.conversation_service


def get_dispatcher(request: Request) -> CampaignDispatcher:
    return request.app.state.dispatcher


def get_job_store(request: Request) -> JobStore:
    return request.app.state.job_store


ConversationDep = Annotated[ConversationService, Depends(get_conversation_service)]
DispatcherDep = Annotated[CampaignDispatcher, Depends(get_dispatcher)]
JobStoreDep = Annotated[JobStore, Depends(get_job_store)]
