from __future__ import annotations

from fastapi import APIRouter

from basesplit.modules.bills.api import router as bills_router
from basesplit.modules.claims.api import router as claims_router

router = APIRouter()

router.include_router(bills_router, prefix="/api")
router.include_router(claims_router, prefix="/api")


@router.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "ok"}
