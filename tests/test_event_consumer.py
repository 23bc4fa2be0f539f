from __future__ import annotations

import asyncio
import threading

from basesplit.modules.ingestion.schemas import ChatEvent
from basesplit.worker.consumer import EventConsumer


def _event(n: int) -> ChatEvent:
    return ChatEvent(
        event_id=f"evt-{n}", conversation_id="conv-1", sender_id="inbox-1", content_kind="text"
    )


def test_events_are_handled_in_delivery_order():
    seen: list[str] = []

    async def _main() -> None:
        consumer = EventConsumer(lambda e: seen.append(e.event_id), max_queue_size=10)
        consumer.start()
        for n in range(5):
            await consumer.submit(_event(n))
        await consumer.shutdown()
        assert consumer.processed == 5

    asyncio.run(_main())

    assert seen == [f"evt-{n}" for n in range(5)]


def test_failing_handler_does_not_stop_the_loop():
    seen: list[str] = []

    def handler(event: ChatEvent) -> None:
        if event.event_id == "evt-1":
            raise RuntimeError("boom")
        seen.append(event.event_id)

    async def _main() -> EventConsumer:
        consumer = EventConsumer(handler)
        consumer.start()
        for n in range(3):
            await consumer.submit(_event(n))
        await consumer.shutdown()
        return consumer

    consumer = asyncio.run(_main())

    assert seen == ["evt-0", "evt-2"]
    assert consumer.failed == 1
    assert consumer.processed == 2


def test_full_queue_refuses_try_submit():
    release = threading.Event()

    async def _main() -> list[bool]:
        consumer = EventConsumer(lambda _e: release.wait(5), max_queue_size=1)
        consumer.start()
        assert consumer.try_submit(_event(0))
        # Let the consumer take the first event so it blocks inside the handler.
        while consumer.processed == 0 and consumer._queue.qsize():
            await asyncio.sleep(0.01)
        results = [consumer.try_submit(_event(1)), consumer.try_submit(_event(2))]
        release.set()
        await consumer.shutdown()
        return results

    assert asyncio.run(_main()) == [True, False]


def test_shutdown_without_start_is_a_no_op():
    async def _main() -> None:
        consumer = EventConsumer(lambda _e: None)
        await consumer.shutdown()
        assert not consumer.running

    asyncio.run(_main())


def test_app_lifespan_drains_consumer_on_shutdown(ledger, transport):
    from fastapi.testclient import TestClient

    from basesplit.main import create_app
    from basesplit.modules.attachments.service import AttachmentResolver
    from basesplit.modules.identity.service import StaticAddressResolver
    from basesplit.modules.ingestion.service import IngestionDeduplicator
    from basesplit.modules.receipts.backends import StubVisionBackend
    from basesplit.modules.receipts.service import ReceiptInterpreter

    pipeline = IngestionDeduplicator(
        ledger=ledger,
        resolver=AttachmentResolver(gateways=[]),
        interpreter=ReceiptInterpreter(StubVisionBackend()),
        identity=StaticAddressResolver({}),
        transport=transport,
        miniapp_url="https://split.test",
    )
    app = create_app(ledger=ledger, ingestion=pipeline)

    with TestClient(app) as client:
        consumer = app.state.consumer
        assert consumer.running
        client.portal.call(consumer.submit, _event(0))

    assert not consumer.running
    assert transport.texts() == ["Cool! Please only share receipts tho!"]
