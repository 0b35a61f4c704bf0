"""
Progress reporting.

A run pushes tagged events into a reporter. Two delivery modes:

- streaming: events are queued for a consumer that writes each one as an
  NDJSON line the moment it arrives, and stops right after the terminal one
- buffered: progress events are dropped, only the terminal event is kept
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from contextlib import aclosing
from typing import AsyncIterator, Awaitable, Optional

from latencybench.core.errors import ProgressChannelClosed, friendly_message
from latencybench.models.events import ErrorEvent, LatencyEvent

logger = logging.getLogger(__name__)

# Strong references to running producers so they are not garbage collected
# while the response is still being written.
_background_tasks: set[asyncio.Task] = set()


class ProgressReporter(ABC):
    """
    Sink for run events.

    Enforces the ordering contract: nothing may follow the terminal event.
    """

    def __init__(self) -> None:
        self._terminal: Optional[LatencyEvent] = None

    @property
    def terminal(self) -> Optional[LatencyEvent]:
        return self._terminal

    async def emit(self, event: LatencyEvent) -> None:
        if self._terminal is not None:
            raise RuntimeError(
                f"{event.type!r} event emitted after terminal {self._terminal.type!r}"
            )
        if event.is_terminal:
            self._terminal = event
        await self._deliver(event)

    @abstractmethod
    async def _deliver(self, event: LatencyEvent) -> None:
        """Hand ``event`` to the consumer."""


class BufferedProgressReporter(ProgressReporter):
    """Keeps only the terminal event."""

    async def _deliver(self, event: LatencyEvent) -> None:
        return None

    def result(self) -> LatencyEvent:
        if self._terminal is None:
            raise RuntimeError("run finished without a terminal event")
        return self._terminal


class StreamingProgressReporter(ProgressReporter):
    """
    Queue-backed channel between a producing run and an HTTP response.

    Each emit waits until the consumer has taken the event and come back
    for the next one, so records are written in lockstep with the run.

    Usage:
        reporter = StreamingProgressReporter()
        reporter.start(orchestrator.run(reporter))
        return StreamingResponse(reporter.records(), ...)
    """

    def __init__(self) -> None:
        super().__init__()
        self._queue: asyncio.Queue[LatencyEvent] = asyncio.Queue(maxsize=1)
        self._closed = False
        self._producer: Optional[asyncio.Task] = None

    @property
    def closed(self) -> bool:
        return self._closed

    async def _deliver(self, event: LatencyEvent) -> None:
        if self._closed:
            raise ProgressChannelClosed("progress consumer disconnected")
        await self._queue.put(event)
        # Returns once the consumer has written this record and asked for the
        # next one.
        await self._queue.join()

    def start(self, producer: Awaitable) -> asyncio.Task:
        """Run ``producer`` in the background, feeding this reporter."""
        task = asyncio.ensure_future(producer)
        self._producer = task
        _background_tasks.add(task)
        task.add_done_callback(_on_producer_done)
        return task

    async def events(self) -> AsyncIterator[LatencyEvent]:
        """
        Yield events as they are emitted, ending after the terminal one.

        If the producer finishes without emitting a terminal event, an
        ``error`` event is synthesized so the stream still ends. The channel
        is marked closed when iteration stops for any reason, so a consumer
        that goes away early makes the next emit fail.
        """
        try:
            while True:
                event = await self._next_event()
                if event is None:
                    yield self._orphaned_terminal()
                    return
                try:
                    yield event
                finally:
                    self._queue.task_done()
                if event.is_terminal:
                    return
        finally:
            self._release()

    async def close(self) -> None:
        """Close the channel; the producer's next emit fails. Idempotent."""
        self._release()

    async def records(self) -> AsyncIterator[bytes]:
        """NDJSON-encoded events, one line per record."""
        async with aclosing(self.events()) as events:
            async for event in events:
                yield event.to_ndjson().encode("utf-8")

    async def _next_event(self) -> Optional[LatencyEvent]:
        """Next queued event, or None once the producer is gone for good."""
        producer = self._producer
        if producer is None or not self._queue.empty():
            return await self._queue.get()
        if producer.done():
            return None

        getter = asyncio.ensure_future(self._queue.get())
        try:
            await asyncio.wait(
                {getter, producer}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            if not getter.done():
                getter.cancel()

        if getter.done() and not getter.cancelled():
            return getter.result()
        # A cancelled get leaves any event it was woken for in the queue.
        if not self._queue.empty():
            return self._queue.get_nowait()
        return None

    def _release(self) -> None:
        self._closed = True
        # Release a producer waiting on an undelivered event.
        while not self._queue.empty():
            self._queue.get_nowait()
            self._queue.task_done()

    def _orphaned_terminal(self) -> ErrorEvent:
        producer = self._producer
        exc = None if producer is None or producer.cancelled() else producer.exception()
        message = (
            friendly_message(exc)
            if exc is not None
            else "latency run ended without a result"
        )
        logger.error(f"Latency run ended without a terminal event: {message}")
        self._terminal = ErrorEvent(error=message)
        return self._terminal


def _on_producer_done(task: asyncio.Task) -> None:
    _background_tasks.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error(f"Latency run task failed: {exc!r}")
