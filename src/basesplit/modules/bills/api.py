from __future__ import annotations

from fastapi import APIRouter, Depends

from basesplit.api.deps import get_ledger
from basesplit.modules.bills.schemas import BillOut, BillWithItemsOut, LineItemOut
from basesplit.modules.bills.service import BillLedger
from basesplit.modules.identity.service import get_display_names

router = APIRouter(tags=["bills"])


@router.get("/bills/{bill_id}", response_model=BillWithItemsOut)
def get_bill_endpoint(bill_id: str, ledger: BillLedger = Depends(get_ledger)) -> BillWithItemsOut:
    with ledger.transaction() as session:
        data = ledger.get_bill_with_items(bill_id, session=session)
        names = get_display_names(session, addresses=[data.bill.payer_address])

    bill = BillOut.model_validate(data.bill, from_attributes=True)
    bill.payer_display_name = names.get(data.bill.payer_address)
    return BillWithItemsOut(
        bill=bill,
        items=[LineItemOut.model_validate(i, from_attributes=True) for i in data.items],
    )
