from __future__ import annotations

import time
import uuid
from datetime import timedelta

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from basesplit.core.errors import BaseSplitError, LedgerError
from basesplit.core.logging import (
    get_logger,
    log_event,
    log_exception,
    monotonic_ms,
    reset_event_context,
    set_event_context,
)
from basesplit.core.models import utcnow
from basesplit.modules.attachments.schemas import attachment_from_payload
from basesplit.modules.attachments.service import AttachmentResolver
from basesplit.modules.bills.service import BillLedger, LineItemDraft
from basesplit.modules.identity.service import AddressResolver
from basesplit.modules.ingestion import replies
from basesplit.modules.ingestion.models import ProcessedEvent, ProcessedEventStatus
from basesplit.modules.ingestion.schemas import (
    ChatEvent,
    EventClass,
    IngestionOutcome,
    MessageTransport,
    OutcomeStatus,
    classify,
)
from basesplit.modules.receipts.service import ReceiptInterpreter, calculate_total

logger = get_logger(__name__)

INTERNAL_ERROR = "INTERNAL_ERROR"
STORAGE_ERROR = "STORAGE_ERROR"


def try_begin_event(
    session_factory: sessionmaker[Session], event: ChatEvent, *, stale_after: timedelta
) -> bool:
    """
    Insert the idempotency marker for ``event`` and commit it.

    Returns False when a marker already exists, unless that marker is stuck in
    PROCESSING for longer than ``stale_after``; such a marker is taken over with a
    compare-and-swap so only one consumer wins it.
    """
    with session_factory() as session:
        session.add(
            ProcessedEvent(
                event_id=event.event_id,
                conversation_id=event.conversation_id,
                content_kind=event.content_kind,
                status=ProcessedEventStatus.PROCESSING,
                attempts=1,
            )
        )
        try:
            session.commit()
            return True
        except IntegrityError:
            session.rollback()

        stale_before = utcnow() - stale_after
        result = session.execute(
            update(ProcessedEvent)
            .where(
                ProcessedEvent.event_id == event.event_id,
                ProcessedEvent.status == ProcessedEventStatus.PROCESSING,
                ProcessedEvent.updated_at < stale_before,
            )
            .values(
                attempts=ProcessedEvent.attempts + 1,
                error_code=None,
                updated_at=utcnow(),
            )
        )
        if not result.rowcount:
            session.rollback()
            return False
        session.commit()
        log_event(logger, "ingestion.event.stale_retaken", event_id=event.event_id)
        return True


def finish_event(
    session: Session,
    event_id: str,
    *,
    status: ProcessedEventStatus,
    bill_id: uuid.UUID | None = None,
    error_code: str | None = None,
) -> None:
    session.execute(
        update(ProcessedEvent)
        .where(ProcessedEvent.event_id == event_id)
        .values(status=status, bill_id=bill_id, error_code=error_code, updated_at=utcnow())
    )


class IngestionDeduplicator:
    """
    Turn chat events into bills, at most one bill per event.

    Replayed events are recognized by their committed marker and dropped without
    a reply. Failures on the attachment path end in one failure reply and a FAILED
    marker; only storage errors propagate to the caller.
    """

    def __init__(
        self,
        *,
        ledger: BillLedger,
        resolver: AttachmentResolver,
        interpreter: ReceiptInterpreter,
        identity: AddressResolver,
        transport: MessageTransport,
        miniapp_url: str,
        send_ack: bool = True,
        stale_after_minutes: int = 30,
    ) -> None:
        self._ledger = ledger
        self._resolver = resolver
        self._interpreter = interpreter
        self._identity = identity
        self._transport = transport
        self._miniapp_url = miniapp_url
        self._send_ack = send_ack
        self._stale_after = timedelta(minutes=stale_after_minutes)

    def handle(self, event: ChatEvent) -> IngestionOutcome:
        tokens = set_event_context(
            event_id=event.event_id, conversation_id=event.conversation_id
        )
        try:
            return self._handle(event)
        finally:
            reset_event_context(tokens)

    def _handle(self, event: ChatEvent) -> IngestionOutcome:
        event_class = classify(event.content_kind)
        log_event(
            logger,
            "ingestion.event.received",
            content_kind=event.content_kind,
            event_class=event_class.value,
            sender_id=event.sender_id,
        )

        if not try_begin_event(self._ledger.session_factory, event, stale_after=self._stale_after):
            log_event(logger, "ingestion.event.duplicate")
            return IngestionOutcome(status=OutcomeStatus.DUPLICATE)

        if event_class == EventClass.TEXT:
            self._reply(event, replies.TEXT_STEERING)
            self._finish(event, status=ProcessedEventStatus.COMPLETED)
            return IngestionOutcome(status=OutcomeStatus.COMPLETED)

        if event_class == EventClass.UNSUPPORTED:
            log_event(logger, "ingestion.event.ignored", content_kind=event.content_kind)
            self._finish(event, status=ProcessedEventStatus.IGNORED)
            return IngestionOutcome(status=OutcomeStatus.IGNORED)

        return self._process_attachment(event)

    def _process_attachment(self, event: ChatEvent) -> IngestionOutcome:
        start = time.monotonic()
        if self._send_ack:
            self._reply(event, replies.ACK)

        try:
            descriptor = attachment_from_payload(event.content_kind, event.payload)
            resolved = self._resolver.resolve(descriptor)
            receipt = self._interpreter.interpret(resolved.data, mime_type=resolved.mime_type)
            payer_address = self._identity.resolve_address(event.sender_id)
        except BaseSplitError as e:
            return self._fail(event, e, start=start)
        except Exception:  # noqa: BLE001
            return self._fail_internal(event, start=start)

        total = receipt.total if receipt.total is not None else calculate_total(receipt)
        try:
            with self._ledger.transaction() as session:
                created = self._ledger.create_bill_with_items(
                    conversation_id=event.conversation_id,
                    payer_address=payer_address,
                    total_amount=total,
                    items=[LineItemDraft(i.description, i.price) for i in receipt.items],
                    image_ref=resolved.filename or resolved.source_url,
                    merchant=receipt.merchant,
                    currency=receipt.currency,
                    source_event_id=event.event_id,
                    session=session,
                )
                finish_event(
                    session,
                    event.event_id,
                    status=ProcessedEventStatus.COMPLETED,
                    bill_id=created.bill.id,
                )
        except (LedgerError, SQLAlchemyError) as e:
            log_exception(logger, "ingestion.bill.store_failed")
            self._reply(event, replies.failure(None))
            try:
                self._finish(
                    event,
                    status=ProcessedEventStatus.FAILED,
                    error_code=e.code if isinstance(e, BaseSplitError) else STORAGE_ERROR,
                )
            except SQLAlchemyError:
                log_exception(logger, "ingestion.event.mark_failed_error")
            raise
        except Exception:  # noqa: BLE001
            return self._fail_internal(event, start=start)

        bill = created.bill
        log_event(
            logger,
            "ingestion.bill.created",
            bill_id=str(bill.id),
            item_count=len(created.items),
            total_amount=str(bill.total_amount),
            duration_ms=monotonic_ms(start),
        )
        self._reply(
            event,
            replies.success(
                total=bill.total_amount,
                currency=bill.currency,
                item_count=len(created.items),
                link=replies.bill_link(self._miniapp_url, bill.id),
            ),
        )
        return IngestionOutcome(status=OutcomeStatus.COMPLETED, bill_id=bill.id)

    def _fail(self, event: ChatEvent, error: BaseSplitError, *, start: float) -> IngestionOutcome:
        log_event(
            logger,
            "ingestion.event.failed",
            error_code=error.code,
            error=error.message,
            reason=getattr(error, "reason", None),
            duration_ms=monotonic_ms(start),
        )
        self._reply(event, replies.failure(error))
        self._finish(event, status=ProcessedEventStatus.FAILED, error_code=error.code)
        return IngestionOutcome(status=OutcomeStatus.FAILED, error_code=error.code)

    def _fail_internal(self, event: ChatEvent, *, start: float) -> IngestionOutcome:
        log_exception(logger, "ingestion.event.internal_error", duration_ms=monotonic_ms(start))
        self._reply(event, replies.failure(None))
        self._finish(event, status=ProcessedEventStatus.FAILED, error_code=INTERNAL_ERROR)
        return IngestionOutcome(status=OutcomeStatus.FAILED, error_code=INTERNAL_ERROR)

    def _finish(
        self,
        event: ChatEvent,
        *,
        status: ProcessedEventStatus,
        error_code: str | None = None,
    ) -> None:
        with self._ledger.transaction() as session:
            finish_event(session, event.event_id, status=status, error_code=error_code)

    def _reply(self, event: ChatEvent, text: str) -> None:
        try:
            self._transport.send(event.conversation_id, text)
        except Exception:  # noqa: BLE001
            log_exception(logger, "ingestion.reply.failed")
