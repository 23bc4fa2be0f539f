from __future__ import annotations

import re
import time
import uuid
from dataclasses import dataclass, field

from basesplit.core.errors import AlreadyClaimed, InvalidRequest, NotFound
from basesplit.core.logging import get_logger, log_event, monotonic_ms
from basesplit.modules.bills.service import BillLedger

logger = get_logger(__name__)

_ADDRESS_RE = re.compile(r"^0x[0-9a-f]+$")
_STRICT_ADDRESS_RE = re.compile(r"^0x[0-9a-f]{40}$")


@dataclass(frozen=True)
class ClaimResult:
    items_claimed: int
    items_written: int
    bill_ids: list[uuid.UUID] = field(default_factory=list)
    settled_bill_ids: list[uuid.UUID] = field(default_factory=list)


class ClaimCoordinator:
    """
    The only writer of line-item claim fields.

    Each request is all-or-nothing: every item is compare-and-swapped from
    unclaimed to (claimant, tx_hash) in one transaction, and any item already held
    by a different claim rolls the whole request back with ``AlreadyClaimed``.
    Replaying an identical claim is accepted without writing anything.
    """

    def __init__(
        self,
        ledger: BillLedger,
        *,
        strict_addresses: bool = False,
        auto_settle: bool = True,
    ) -> None:
        self._ledger = ledger
        self._strict_addresses = strict_addresses
        self._auto_settle = auto_settle

    def claim(self, item_ids: object, claimant: object, tx_hash: object) -> ClaimResult:
        ids = _validate_item_ids(item_ids)
        address = self._validate_claimant(claimant)
        evidence = _validate_tx_hash(tx_hash)

        start = time.monotonic()
        written = 0
        touched_bills: list[uuid.UUID] = []
        settled: list[uuid.UUID] = []

        with self._ledger.transaction() as session:
            items = {i.id: i for i in self._ledger.get_line_items(ids, session=session)}
            missing = [str(i) for i in ids if i not in items]
            if missing:
                raise NotFound("Line item(s) not found", itemIds=missing)

            conflicts: list[str] = []
            for item_id in ids:
                item = items[item_id]
                if item.bill_id not in touched_bills:
                    touched_bills.append(item.bill_id)
                if item.claimed_by is None:
                    if self._ledger.update_line_item_claim(
                        item_id, address, evidence, session=session
                    ):
                        written += 1
                        continue
                    # Lost the race to a concurrent claim; look at who won.
                    session.refresh(item)
                if item.claimed_by == address and item.paid_tx_hash == evidence:
                    continue
                conflicts.append(str(item_id))

            if conflicts:
                log_event(
                    logger,
                    "claims.claim.rejected",
                    claimant=address,
                    tx_hash=evidence,
                    conflicting_item_ids=conflicts,
                    duration_ms=monotonic_ms(start),
                )
                raise AlreadyClaimed(itemIds=conflicts)

            if self._auto_settle:
                for bill_id in touched_bills:
                    if self._ledger.count_unclaimed_items(bill_id, session=session) == 0:
                        self._ledger.mark_settled(bill_id, session=session)
                        settled.append(bill_id)

        log_event(
            logger,
            "claims.claim.accepted",
            claimant=address,
            tx_hash=evidence,
            items_claimed=len(ids),
            items_written=written,
            bill_ids=[str(b) for b in touched_bills],
            settled_bill_ids=[str(b) for b in settled] or None,
            duration_ms=monotonic_ms(start),
        )
        return ClaimResult(
            items_claimed=len(ids),
            items_written=written,
            bill_ids=touched_bills,
            settled_bill_ids=settled,
        )

    def _validate_claimant(self, claimant: object) -> str:
        if not isinstance(claimant, str) or not claimant.strip():
            raise InvalidRequest("Claimed by address is required")
        address = claimant.strip().lower()
        pattern = _STRICT_ADDRESS_RE if self._strict_addresses else _ADDRESS_RE
        if not pattern.match(address):
            raise InvalidRequest("Claimed by address is malformed", claimedBy=claimant)
        return address


def _validate_item_ids(item_ids: object) -> list[uuid.UUID]:
    if not isinstance(item_ids, list) or not item_ids:
        raise InvalidRequest("Item IDs array is required")
    out: list[uuid.UUID] = []
    for raw in item_ids:
        if not isinstance(raw, str):
            raise InvalidRequest("Item IDs must be strings")
        try:
            item_id = uuid.UUID(raw)
        except ValueError as e:
            raise InvalidRequest("Item ID is malformed", itemId=raw) from e
        if item_id not in out:
            out.append(item_id)
    return out


def _validate_tx_hash(tx_hash: object) -> str:
    if not isinstance(tx_hash, str) or not tx_hash.strip():
        raise InvalidRequest("Transaction hash is required")
    return tx_hash.strip()
