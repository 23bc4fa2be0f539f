from __future__ import annotations

import uuid
from decimal import Decimal

import pytest
from sqlalchemy import func, select, text
from sqlalchemy.exc import IntegrityError

from basesplit.core.errors import DuplicateId, NotFound, UnknownBill
from basesplit.modules.bills.models import Bill, LineItem
from basesplit.modules.bills.service import LineItemDraft


def _count(ledger, model) -> int:
    with ledger.transaction() as session:
        return session.scalar(select(func.count()).select_from(model))


def test_create_bill_with_items_is_atomic_and_ordered(ledger):
    created = ledger.create_bill_with_items(
        conversation_id="conv-1",
        payer_address="0xABC",
        total_amount=Decimal("15.5"),
        items=[LineItemDraft("Burger", Decimal("10.00")), LineItemDraft("Fries", Decimal("5.50"))],
        merchant="Diner",
    )

    assert created.bill.payer_address == "0xabc"
    assert created.bill.total_amount == Decimal("15.50")
    assert created.bill.is_settled is False

    loaded = ledger.get_bill_with_items(str(created.bill.id))
    assert [i.description for i in loaded.items] == ["Burger", "Fries"]
    assert [i.position for i in loaded.items] == [0, 1]
    assert all(i.claimed_by is None and i.paid_tx_hash is None for i in loaded.items)


def test_failed_item_rolls_back_the_whole_bill(ledger):
    with pytest.raises(ValueError):
        ledger.create_bill_with_items(
            conversation_id="conv-1",
            payer_address="0xabc",
            total_amount=Decimal("10.00"),
            items=[LineItemDraft("Burger", Decimal("10.00")), LineItemDraft("", Decimal("1.00"))],
        )

    assert _count(ledger, Bill) == 0
    assert _count(ledger, LineItem) == 0


def test_create_bill_rejects_duplicate_id(ledger):
    bill_id = uuid.uuid4()
    ledger.create_bill(
        conversation_id="c", payer_address="0xabc", total_amount=Decimal("1"), bill_id=bill_id
    )

    with pytest.raises(DuplicateId):
        ledger.create_bill(
            conversation_id="c", payer_address="0xabc", total_amount=Decimal("2"), bill_id=bill_id
        )


def test_create_bill_rejects_second_bill_for_same_event(ledger):
    ledger.create_bill(
        conversation_id="c", payer_address="0xabc", total_amount=Decimal("1"), source_event_id="e1"
    )

    with pytest.raises(DuplicateId):
        ledger.create_bill(
            conversation_id="c",
            payer_address="0xabc",
            total_amount=Decimal("1"),
            source_event_id="e1",
        )
    assert _count(ledger, Bill) == 1


def test_create_line_item_requires_existing_bill(ledger):
    with pytest.raises(UnknownBill):
        ledger.create_line_item(bill_id=uuid.uuid4(), description="Ghost", price=Decimal("1.00"))


def test_get_bill_with_items_unknown_or_malformed_id(ledger):
    with pytest.raises(NotFound):
        ledger.get_bill_with_items(uuid.uuid4())
    with pytest.raises(NotFound):
        ledger.get_bill_with_items("not-a-uuid")


def test_update_line_item_claim_is_compare_and_swap(ledger, make_bill):
    created = make_bill("10.00")
    item_id = created.items[0].id

    assert ledger.update_line_item_claim(item_id, "0xaaa", "0xtx1") is True
    assert ledger.update_line_item_claim(item_id, "0xbbb", "0xtx2") is False

    item = ledger.get_bill_with_items(created.bill.id).items[0]
    assert (item.claimed_by, item.paid_tx_hash) == ("0xaaa", "0xtx1")
    assert item.claimed_at is not None


def test_unconditional_claim_update_overwrites(ledger, make_bill):
    created = make_bill("10.00")
    item_id = created.items[0].id
    ledger.update_line_item_claim(item_id, "0xaaa", "0xtx1")

    assert ledger.update_line_item_claim(item_id, "0xbbb", "0xtx2", only_if_unclaimed=False)

    item = ledger.get_bill_with_items(created.bill.id).items[0]
    assert (item.claimed_by, item.paid_tx_hash) == ("0xbbb", "0xtx2")


def test_claim_pair_constraint_rejects_half_written_claim(ledger, make_bill):
    created = make_bill("10.00")

    with pytest.raises(IntegrityError):
        with ledger.transaction() as session:
            session.execute(
                text("UPDATE line_items SET claimed_by = '0xaaa' WHERE id = :id"),
                {"id": created.items[0].id.hex},
            )


def test_mark_settled_is_idempotent(ledger, make_bill):
    created = make_bill("10.00")

    first = ledger.mark_settled(created.bill.id)
    assert first.is_settled and first.settled_at is not None
    settled_at = ledger.get_bill_with_items(created.bill.id).bill.settled_at

    second = ledger.mark_settled(str(created.bill.id))

    assert second.is_settled
    assert second.settled_at == settled_at

    with pytest.raises(NotFound):
        ledger.mark_settled(uuid.uuid4())


def test_total_is_independent_of_item_prices(ledger, make_bill):
    created = make_bill("10.00", "5.50", total="18.00")

    loaded = ledger.get_bill_with_items(created.bill.id)
    assert loaded.bill.total_amount == Decimal("18.00")
    assert sum(i.price for i in loaded.items) == Decimal("15.50")


def test_delete_bill_cascades_to_items(ledger, make_bill):
    created = make_bill("10.00", "5.50")
    other = make_bill("3.00")

    ledger.delete_bill(created.bill.id)

    assert _count(ledger, Bill) == 1
    assert _count(ledger, LineItem) == 1
    assert ledger.get_bill_with_items(other.bill.id).items[0].price == Decimal("3.00")
    with pytest.raises(NotFound):
        ledger.delete_bill(created.bill.id)
