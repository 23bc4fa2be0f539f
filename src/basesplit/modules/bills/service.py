from __future__ import annotations

import uuid
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload, sessionmaker

from basesplit.core.amounts import CENTS
from basesplit.core.errors import DuplicateId, NotFound, UnknownBill
from basesplit.core.logging import get_logger, log_event
from basesplit.core.models import utcnow
from basesplit.modules.bills.models import Bill, LineItem

logger = get_logger(__name__)


@dataclass(frozen=True)
class LineItemDraft:
    description: str
    price: Decimal


@dataclass(frozen=True)
class BillWithItems:
    bill: Bill
    items: list[LineItem]


def as_uuid(value: uuid.UUID | str, *, what: str = "Record") -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError as e:
        raise NotFound(f"{what} not found", id=str(value)) from e


class BillLedger:
    """
    Single source of truth for bills and their line items.

    Each method runs in its own transaction unless a ``session`` is passed, in which
    case it joins the caller's transaction and leaves the commit to the caller.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    @property
    def session_factory(self) -> sessionmaker[Session]:
        return self._session_factory

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        with self._session_factory.begin() as session:
            yield session

    @contextmanager
    def _scope(self, session: Session | None) -> Iterator[Session]:
        if session is not None:
            yield session
            return
        with self.transaction() as own:
            yield own

    def create_bill(
        self,
        *,
        conversation_id: str,
        payer_address: str,
        total_amount: Decimal,
        image_ref: str | None = None,
        merchant: str = "Unknown",
        currency: str = "USD",
        bill_id: uuid.UUID | None = None,
        source_event_id: str | None = None,
        session: Session | None = None,
    ) -> Bill:
        if total_amount < 0:
            raise ValueError("total_amount must be non-negative")
        if not payer_address.strip():
            raise ValueError("payer_address is required")

        with self._scope(session) as s:
            bill_id = bill_id or uuid.uuid4()
            if s.get(Bill, bill_id) is not None:
                raise DuplicateId("Bill already exists", id=str(bill_id))
            if source_event_id and s.scalar(
                select(Bill.id).where(Bill.source_event_id == source_event_id)
            ):
                raise DuplicateId("Bill already exists for event", event_id=source_event_id)

            bill = Bill(
                id=bill_id,
                conversation_id=conversation_id,
                payer_address=payer_address.strip().lower(),
                image_ref=image_ref,
                total_amount=total_amount.quantize(CENTS),
                merchant=merchant,
                currency=currency,
                source_event_id=source_event_id,
                created_at=utcnow(),
                is_settled=False,
            )
            s.add(bill)
            try:
                s.flush()
            except IntegrityError as e:
                raise DuplicateId("Bill already exists", id=str(bill_id)) from e
            return bill

    def create_line_item(
        self,
        *,
        bill_id: uuid.UUID,
        description: str,
        price: Decimal,
        position: int = 0,
        item_id: uuid.UUID | None = None,
        session: Session | None = None,
    ) -> LineItem:
        description = (description or "").strip()
        if not description:
            raise ValueError("description is required")
        if price < 0:
            raise ValueError("price must be non-negative")

        with self._scope(session) as s:
            if s.get(Bill, bill_id) is None:
                raise UnknownBill(id=str(bill_id))
            item_id = item_id or uuid.uuid4()
            if s.get(LineItem, item_id) is not None:
                raise DuplicateId("Line item already exists", id=str(item_id))
            item = LineItem(
                id=item_id,
                bill_id=bill_id,
                position=position,
                description=description,
                price=price.quantize(CENTS),
            )
            s.add(item)
            s.flush()
            return item

    def create_bill_with_items(
        self,
        *,
        conversation_id: str,
        payer_address: str,
        total_amount: Decimal,
        items: Iterable[LineItemDraft],
        image_ref: str | None = None,
        merchant: str = "Unknown",
        currency: str = "USD",
        source_event_id: str | None = None,
        session: Session | None = None,
    ) -> BillWithItems:
        with self._scope(session) as s:
            bill = self.create_bill(
                conversation_id=conversation_id,
                payer_address=payer_address,
                total_amount=total_amount,
                image_ref=image_ref,
                merchant=merchant,
                currency=currency,
                source_event_id=source_event_id,
                session=s,
            )
            created = [
                self.create_line_item(
                    bill_id=bill.id,
                    description=draft.description,
                    price=draft.price,
                    position=idx,
                    session=s,
                )
                for idx, draft in enumerate(items)
            ]
            log_event(
                logger,
                "ledger.bill.created",
                bill_id=str(bill.id),
                payer_address=bill.payer_address,
                total_amount=str(bill.total_amount),
                item_count=len(created),
                source_event_id=source_event_id,
            )
            return BillWithItems(bill=bill, items=created)

    def get_bill_with_items(
        self, bill_id: uuid.UUID | str, *, session: Session | None = None
    ) -> BillWithItems:
        bill_uuid = as_uuid(bill_id, what="Bill")
        with self._scope(session) as s:
            bill = s.scalar(
                select(Bill).options(selectinload(Bill.items)).where(Bill.id == bill_uuid)
            )
            if not bill:
                raise NotFound("Bill not found", id=str(bill_id))
            return BillWithItems(bill=bill, items=list(bill.items))

    def get_line_items(
        self, item_ids: Iterable[uuid.UUID], *, session: Session | None = None
    ) -> list[LineItem]:
        ids = list(item_ids)
        if not ids:
            return []
        with self._scope(session) as s:
            return list(
                s.scalars(
                    select(LineItem)
                    .where(LineItem.id.in_(ids))
                    .order_by(LineItem.bill_id, LineItem.position)
                )
            )

    def count_unclaimed_items(self, bill_id: uuid.UUID, *, session: Session | None = None) -> int:
        with self._scope(session) as s:
            return int(
                s.scalar(
                    select(func.count())
                    .select_from(LineItem)
                    .where(LineItem.bill_id == bill_id, LineItem.claimed_by.is_(None))
                )
                or 0
            )

    def update_line_item_claim(
        self,
        item_id: uuid.UUID,
        claimant: str,
        tx_hash: str,
        *,
        only_if_unclaimed: bool = True,
        session: Session | None = None,
    ) -> bool:
        """
        Write ``claimed_by`` and ``paid_tx_hash`` together in one statement.

        With ``only_if_unclaimed`` (the default) the UPDATE is a compare-and-swap on
        ``claimed_by IS NULL``; the return value says whether this call won the row.
        """
        if not claimant or not tx_hash:
            raise ValueError("claimant and tx_hash are both required")

        stmt = update(LineItem).where(LineItem.id == item_id)
        if only_if_unclaimed:
            stmt = stmt.where(LineItem.claimed_by.is_(None))
        stmt = stmt.values(claimed_by=claimant, paid_tx_hash=tx_hash, claimed_at=utcnow())

        with self._scope(session) as s:
            result = s.execute(stmt.execution_options(synchronize_session=False))
            return bool(result.rowcount)

    def mark_settled(self, bill_id: uuid.UUID | str, *, session: Session | None = None) -> Bill:
        bill_uuid = as_uuid(bill_id, what="Bill")
        with self._scope(session) as s:
            bill = s.get(Bill, bill_uuid)
            if not bill:
                raise NotFound("Bill not found", id=str(bill_id))
            if not bill.is_settled:
                bill.is_settled = True
                bill.settled_at = utcnow()
                s.add(bill)
                s.flush()
                log_event(logger, "ledger.bill.settled", bill_id=str(bill.id))
            return bill

    def delete_bill(self, bill_id: uuid.UUID | str, *, session: Session | None = None) -> None:
        """Administrative removal; the foreign key cascade drops the bill's items."""
        bill_uuid = as_uuid(bill_id, what="Bill")
        with self._scope(session) as s:
            result = s.execute(delete(Bill).where(Bill.id == bill_uuid))
            if not result.rowcount:
                raise NotFound("Bill not found", id=str(bill_id))
            log_event(logger, "ledger.bill.deleted", bill_id=str(bill_uuid))
