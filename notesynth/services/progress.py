"""
Progress Sinks

A progress sink receives ProgressEvents while a batch runs: item_started
when an item leaves the queue, item_fetched after a content source
answered, one item_retrying event per backoff, one item_completed event per
Result, and exactly one terminal batch event (completed, failed or
cancelled).

Sinks:
- CallbackProgressSink: forwards to a sync or async callable
- QueueProgressSink: buffers events for a consumer, e.g. an SSE stream
- LoggingProgressSink: writes events to the log

Usage:
    sink = QueueProgressSink()
    task = asyncio.create_task(dispatcher.run_batch(items, sink=sink))
    async for event in sink.events():
        yield event.to_sse()
"""

import asyncio
import inspect
import logging
from typing import AsyncIterator, Callable, Protocol

from notesynth.enums.dispatch import ProgressEventType
from notesynth.models.dispatch import ProgressEvent

logger = logging.getLogger(__name__)

TERMINAL_EVENTS = frozenset(
    {
        ProgressEventType.BATCH_COMPLETED,
        ProgressEventType.BATCH_FAILED,
        ProgressEventType.BATCH_CANCELLED,
    }
)


class ProgressSink(Protocol):
    async def publish(self, event: ProgressEvent) -> None: ...


class CallbackProgressSink:
    """Call a function with every event."""

    def __init__(self, callback: Callable[[ProgressEvent], object]) -> None:
        self._callback = callback

    async def publish(self, event: ProgressEvent) -> None:
        outcome = self._callback(event)
        if inspect.isawaitable(outcome):
            await outcome


class QueueProgressSink:
    """
    Buffer events in an asyncio.Queue.

    events() yields buffered events and stops after the terminal batch event.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[ProgressEvent] = asyncio.Queue()

    async def publish(self, event: ProgressEvent) -> None:
        await self._queue.put(event)

    async def events(self) -> AsyncIterator[ProgressEvent]:
        while True:
            event = await self._queue.get()
            yield event
            if event.event in TERMINAL_EVENTS:
                return


class LoggingProgressSink:
    """Log each event at INFO level (retries at WARNING, item starts at DEBUG)."""

    def __init__(self, log: logging.Logger = logger) -> None:
        self._log = log

    async def publish(self, event: ProgressEvent) -> None:
        if event.event in (ProgressEventType.ITEM_STARTED, ProgressEventType.ITEM_FETCHED):
            self._log.debug(f"[{event.batch_id}] {event.item_id}: {event.message}")
        elif event.event == ProgressEventType.ITEM_RETRYING:
            self._log.warning(
                f"[{event.batch_id}] {event.item_id}: {event.provider_used} retry "
                f"{event.attempt} in {event.backoff_ms:.0f}ms"
            )
        elif event.event == ProgressEventType.ITEM_COMPLETED:
            if event.success:
                status = event.provider_used or "captions"
            else:
                status = event.error_kind.value if event.error_kind else "failed"
            self._log.info(
                f"[{event.batch_id}] {event.completed}/{event.total} ({event.progress}%) "
                f"{event.item_id}: {status}"
            )
        else:
            self._log.info(f"[{event.batch_id}] {event.event.value}: {event.message}")
