from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

from basesplit.core.logging import get_logger, log_event, log_exception
from basesplit.modules.ingestion.schemas import ChatEvent

logger = get_logger(__name__)

_STOP = object()


class EventConsumer:
    """
    Feed chat events to ``handler`` one at a time, in delivery order.

    The queue is bounded: ``submit`` waits for room and ``try_submit`` refuses when
    full. The handler is blocking and runs in a worker thread.
    """

    def __init__(self, handler: Callable[[ChatEvent], Any], *, max_queue_size: int = 100) -> None:
        self._handler = handler
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=max_queue_size)
        self._task: asyncio.Task[None] | None = None
        self.processed = 0
        self.failed = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task[None]:
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self.run())
            log_event(logger, "consumer.started", max_queue_size=self._queue.maxsize)
        return self._task

    async def submit(self, event: ChatEvent) -> None:
        await self._queue.put(event)

    def try_submit(self, event: ChatEvent) -> bool:
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            log_event(logger, "consumer.queue.full", event_id=event.event_id)
            return False
        return True

    async def run(self) -> None:
        while True:
            item = await self._queue.get()
            try:
                if item is _STOP:
                    return
                await self._dispatch(item)
            finally:
                self._queue.task_done()

    async def _dispatch(self, event: ChatEvent) -> None:
        try:
            await asyncio.to_thread(self._handler, event)
            self.processed += 1
        except Exception:  # noqa: BLE001
            self.failed += 1
            log_exception(
                logger,
                "consumer.handler.error",
                event_id=event.event_id,
                conversation_id=event.conversation_id,
            )

    async def shutdown(self) -> None:
        if self._task is None:
            return
        await self._queue.put(_STOP)
        await self._task
        self._task = None
        log_event(logger, "consumer.stopped", processed=self.processed, failed=self.failed)
