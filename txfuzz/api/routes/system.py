"""System-level endpoints."""
from fastapi import APIRouter, Depends

from txfuzz.api.deps import get_controller
from txfuzz.config import settings

router = APIRouter(prefix="/api/system", tags=["system"])


@router.get("/health")
async def system_health(controller=Depends(get_controller)):
    return {
        "status": "healthy",
        "campaign_running": controller.running,
        "corpus_size": controller.corpus.corpus_size(),
        "known_targets": len(controller.list_targets()),
    }


@router.get("/config")
async def get_config():
    return {
        "max_transaction_code": settings.max_transaction_code,
        "bind_timeout_ms": settings.bind_timeout_ms,
        "transaction_timeout_ms": settings.transaction_timeout_ms,
        "inter_trial_delay_ms": settings.inter_trial_delay_ms,
        "inter_round_delay_ms": settings.inter_round_delay_ms,
        "report_anomalies": settings.report_anomalies,
    }
