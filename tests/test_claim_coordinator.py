from __future__ import annotations

import threading
import uuid

import pytest

from basesplit.core.errors import AlreadyClaimed, InvalidRequest, NotFound
from basesplit.modules.claims.service import ClaimCoordinator

ALICE = "0x" + "a" * 40
BOB = "0x" + "b" * 40


def _items(ledger, bill_id):
    return ledger.get_bill_with_items(bill_id).items


def test_claim_writes_pair_for_each_item(ledger, make_bill):
    created = make_bill("10.00", "5.50")
    ids = [str(i.id) for i in created.items]

    result = ClaimCoordinator(ledger).claim(ids, "0xabc", "0xdef")

    assert result.items_claimed == 2
    assert result.items_written == 2
    assert result.bill_ids == [created.bill.id]
    for item in _items(ledger, created.bill.id):
        assert (item.claimed_by, item.paid_tx_hash) == ("0xabc", "0xdef")


def test_second_claimant_gets_already_claimed(ledger, make_bill):
    created = make_bill("10.00", "5.50")
    burger = str(created.items[0].id)
    coordinator = ClaimCoordinator(ledger)
    coordinator.claim([burger], "0xaaa", "0x111")

    with pytest.raises(AlreadyClaimed) as exc:
        coordinator.claim([burger], "0xbbb", "0x222")

    assert exc.value.details["itemIds"] == [burger]
    item = _items(ledger, created.bill.id)[0]
    assert (item.claimed_by, item.paid_tx_hash) == ("0xaaa", "0x111")


def test_identical_replay_is_accepted_without_writing(ledger, make_bill):
    created = make_bill("10.00", "5.50")
    burger = str(created.items[0].id)
    coordinator = ClaimCoordinator(ledger)
    coordinator.claim([burger], "0xAAA", "0x111")

    replay = coordinator.claim([burger], "0xaaa", "0x111")

    assert replay.items_claimed == 1
    assert replay.items_written == 0


def test_same_claimant_with_new_hash_conflicts(ledger, make_bill):
    created = make_bill("10.00")
    burger = str(created.items[0].id)
    coordinator = ClaimCoordinator(ledger)
    coordinator.claim([burger], "0xaaa", "0x111")

    with pytest.raises(AlreadyClaimed):
        coordinator.claim([burger], "0xaaa", "0x999")


def test_partial_conflict_writes_nothing(ledger, make_bill):
    created = make_bill("10.00", "5.50", "2.00")
    first, second, third = (str(i.id) for i in created.items)
    coordinator = ClaimCoordinator(ledger)
    coordinator.claim([second], "0xaaa", "0x111")

    with pytest.raises(AlreadyClaimed) as exc:
        coordinator.claim([first, second, third], "0xbbb", "0x222")

    assert exc.value.details["itemIds"] == [second]
    items = _items(ledger, created.bill.id)
    assert items[0].claimed_by is None
    assert items[2].claimed_by is None


@pytest.mark.parametrize(
    "item_ids, claimant, tx_hash",
    [
        ([], "0xabc", "0xdef"),
        (None, "0xabc", "0xdef"),
        ("not-a-list", "0xabc", "0xdef"),
        (["not-a-uuid"], "0xabc", "0xdef"),
        ([123], "0xabc", "0xdef"),
        ("ITEM", "", "0xdef"),
        ("ITEM", None, "0xdef"),
        ("ITEM", "abc", "0xdef"),
        ("ITEM", "0xzz", "0xdef"),
        ("ITEM", "0xabc", ""),
        ("ITEM", "0xabc", None),
    ],
)
def test_invalid_requests_leave_ledger_untouched(ledger, make_bill, item_ids, claimant, tx_hash):
    created = make_bill("10.00")
    if item_ids == "ITEM":
        item_ids = [str(created.items[0].id)]

    with pytest.raises(InvalidRequest):
        ClaimCoordinator(ledger).claim(item_ids, claimant, tx_hash)

    assert _items(ledger, created.bill.id)[0].claimed_by is None


def test_strict_addresses_require_forty_hex_digits(ledger, make_bill):
    created = make_bill("10.00")
    item_ids = [str(created.items[0].id)]
    strict = ClaimCoordinator(ledger, strict_addresses=True)

    with pytest.raises(InvalidRequest):
        strict.claim(item_ids, "0xabc", "0xdef")

    assert strict.claim(item_ids, ALICE.upper().replace("0X", "0x"), "0xdef").items_claimed == 1
    assert _items(ledger, created.bill.id)[0].claimed_by == ALICE


def test_unknown_item_fails_whole_request(ledger, make_bill):
    created = make_bill("10.00")
    known = str(created.items[0].id)
    ghost = str(uuid.uuid4())

    with pytest.raises(NotFound) as exc:
        ClaimCoordinator(ledger).claim([known, ghost], "0xabc", "0xdef")

    assert exc.value.details["itemIds"] == [ghost]
    assert _items(ledger, created.bill.id)[0].claimed_by is None


def test_duplicate_ids_in_one_request_count_once(ledger, make_bill):
    created = make_bill("10.00")
    item_id = str(created.items[0].id)

    result = ClaimCoordinator(ledger).claim([item_id, item_id], "0xabc", "0xdef")

    assert result.items_claimed == 1


def test_auto_settle_only_when_every_item_is_claimed(ledger, make_bill):
    created = make_bill("10.00", "5.50")
    first, second = (str(i.id) for i in created.items)
    coordinator = ClaimCoordinator(ledger)

    partial = coordinator.claim([first], "0xaaa", "0x111")
    assert partial.settled_bill_ids == []
    assert ledger.get_bill_with_items(created.bill.id).bill.is_settled is False

    full = coordinator.claim([second], "0xbbb", "0x222")
    assert full.settled_bill_ids == [created.bill.id]
    assert ledger.get_bill_with_items(created.bill.id).bill.is_settled is True

    coordinator.claim([second], "0xbbb", "0x222")
    assert ledger.get_bill_with_items(created.bill.id).bill.is_settled is True


def test_auto_settle_can_be_disabled(ledger, make_bill):
    created = make_bill("10.00")

    ClaimCoordinator(ledger, auto_settle=False).claim([str(created.items[0].id)], "0xa", "0x1")

    assert ledger.get_bill_with_items(created.bill.id).bill.is_settled is False


def test_concurrent_claims_have_exactly_one_winner(ledger, make_bill):
    created = make_bill("10.00")
    item_id = str(created.items[0].id)
    coordinator = ClaimCoordinator(ledger)
    claimants = [ALICE, BOB, "0x" + "c" * 40, "0x" + "d" * 40]
    barrier = threading.Barrier(len(claimants))
    winners: list[str] = []
    losers: list[str] = []
    errors: list[BaseException] = []

    def _run(claimant: str) -> None:
        barrier.wait()
        try:
            coordinator.claim([item_id], claimant, f"0xtx-{claimant[-1]}")
            winners.append(claimant)
        except AlreadyClaimed:
            losers.append(claimant)
        except Exception as e:  # noqa: BLE001
            errors.append(e)

    threads = [threading.Thread(target=_run, args=(c,)) for c in claimants]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert len(winners) == 1
    assert len(losers) == len(claimants) - 1
    item = _items(ledger, created.bill.id)[0]
    assert item.claimed_by == winners[0]
    assert item.paid_tx_hash == f"0xtx-{winners[0][-1]}"
