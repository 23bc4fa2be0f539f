from __future__ import annotations

from fastapi import HTTPException, Request, status

from basesplit.modules.bills.service import BillLedger
from basesplit.modules.claims.service import ClaimCoordinator


def get_ledger(request: Request) -> BillLedger:
    ledger = getattr(request.app.state, "ledger", None)
    if ledger is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Ledger not initialized"
        )
    return ledger


def get_claim_coordinator(request: Request) -> ClaimCoordinator:
    coordinator = getattr(request.app.state, "claim_coordinator", None)
    if coordinator is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Claims not initialized"
        )
    return coordinator
