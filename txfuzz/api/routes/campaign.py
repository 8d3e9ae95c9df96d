"""Campaign control and observation endpoints."""
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException

from txfuzz.api.deps import get_controller
from txfuzz.models import CampaignResults, CampaignStatus, Severity, StartCampaignRequest

logger = structlog.get_logger()
router = APIRouter(prefix="/api/campaign", tags=["campaign"])


@router.get("", response_model=CampaignStatus)
async def get_campaign_status(controller=Depends(get_controller)):
    return controller.status()


@router.post("/start", response_model=CampaignStatus)
async def start_campaign(request: StartCampaignRequest, controller=Depends(get_controller)):
    started = controller.start_campaign(
        request.identity,
        request.endpoint_name,
        continuous=request.continuous,
    )
    if not started:
        raise HTTPException(status_code=409, detail="A campaign is already running")
    logger.info(
        "campaign_started_via_api",
        identity=request.identity,
        endpoint=request.endpoint_name,
        continuous=request.continuous,
    )
    return controller.status()


@router.post("/cancel", response_model=CampaignStatus)
async def cancel_campaign(controller=Depends(get_controller)):
    controller.cancel()
    return controller.status()


@router.get("/results", response_model=CampaignResults)
async def get_campaign_results(
    limit: Optional[int] = None,
    offset: int = 0,
    severity: Optional[Severity] = None,
    controller=Depends(get_controller),
):
    ledger = controller.state.ledger
    results = list(ledger.snapshot())
    if severity is not None:
        results = [r for r in results if r.severity == severity]
    results = results[offset:]
    if limit is not None:
        results = results[:limit]
    return CampaignResults(
        target=controller.state.target,
        crash_found=controller.crash_found,
        total_count=len(ledger),
        results=results,
    )
