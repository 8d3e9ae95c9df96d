"""Target enumeration endpoints."""
from typing import List, Optional

from fastapi import APIRouter, Depends

from txfuzz.api.deps import get_controller
from txfuzz.models import TargetCandidate

router = APIRouter(prefix="/api/targets", tags=["targets"])


@router.get("", response_model=List[TargetCandidate])
async def list_targets(identity: Optional[str] = None, controller=Depends(get_controller)):
    candidates = controller.list_targets()
    if identity is not None:
        candidates = [c for c in candidates if c.identity == identity]
    return candidates
