from __future__ import annotations

from fastapi import APIRouter, Depends

from basesplit.api.deps import get_claim_coordinator
from basesplit.modules.claims.schemas import ClaimOut, ClaimRequest
from basesplit.modules.claims.service import ClaimCoordinator

router = APIRouter(tags=["claims"])


@router.post("/claim", response_model=ClaimOut, response_model_by_alias=True)
def claim_items_endpoint(
    payload: ClaimRequest,
    coordinator: ClaimCoordinator = Depends(get_claim_coordinator),
) -> ClaimOut:
    result = coordinator.claim(payload.item_ids, payload.claimed_by, payload.tx_hash)
    return ClaimOut(items_claimed=result.items_claimed)
