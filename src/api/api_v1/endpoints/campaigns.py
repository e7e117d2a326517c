from typing import Annotated, List

from fastapi import APIRouter, HTTPException, Path, status
from fastapi.responses import JSONResponse

from api.api_v1.deps import ServiceDep, status_code_for
from core.constants import UINT64_MAX
from schemas.action_status import StatusSnapshot, TransactionOutcome
from schemas.campaign import Campaign
from schemas.intents import (
    ClaimFundsIntent,
    ClaimRefundIntent,
    ContributeIntent,
    ContributeRequest,
    CreateCampaignIntent,
    Intent,
)

router = APIRouter()

CampaignId = Annotated[int, Path(ge=1, le=UINT64_MAX)]


async def _submit(service, intent: Intent):
    outcome = await service.submit(intent)
    if outcome.succeeded:
        return outcome
    return JSONResponse(
        status_code=status_code_for(outcome.error),
        content=outcome.model_dump(mode="json"),
    )


@router.get("/", response_model=List[Campaign])
async def get_campaigns(service: ServiceDep):
    return service.get_campaigns()


@router.get("/status", response_model=StatusSnapshot)
async def get_status(service: ServiceDep):
    return service.status()


@router.post("/refresh", response_model=List[Campaign])
async def refresh_campaigns(service: ServiceDep, force: bool = False):
    return await service.refresh_all(force=force)


@router.get("/{campaign_id}", response_model=Campaign)
async def get_campaign(campaign_id: CampaignId, service: ServiceDep):
    campaign = service.get_campaign(campaign_id)
    if campaign is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Campaign {campaign_id} not found",
        )
    return campaign


@router.post("/", response_model=TransactionOutcome)
async def create_campaign(intent: CreateCampaignIntent, service: ServiceDep):
    return await _submit(service, intent)


@router.post("/{campaign_id}/contribute", response_model=TransactionOutcome)
async def contribute(campaign_id: CampaignId, body: ContributeRequest, service: ServiceDep):
    return await _submit(
        service, ContributeIntent(campaign_id=campaign_id, amount=body.amount)
    )


@router.post("/{campaign_id}/claim-funds", response_model=TransactionOutcome)
async def claim_funds(campaign_id: CampaignId, service: ServiceDep):
    return await _submit(service, ClaimFundsIntent(campaign_id=campaign_id))


@router.post("/{campaign_id}/claim-refund", response_model=TransactionOutcome)
async def claim_refund(campaign_id: CampaignId, service: ServiceDep):
    return await _submit(service, ClaimRefundIntent(campaign_id=campaign_id))
