"""Debounced bulk delivery (core domain).

A single task owns every pending buffer. Producers only ever talk to it
through a bounded queue, so buffer state needs no lock. A buffer is flushed
as one message once it has been quiet for the debounce window.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional

from core.config import AggregatorConfig
from core.models import Notification

LOGGER = logging.getLogger(__name__)

Deliver = Callable[[int, str], Awaitable[bool]]

FRAGMENT_SEPARATOR = "\n\n"


@dataclass
class PendingBuffer:
    touched_at: float
    fragments: List[str] = field(default_factory=list)
    overflowed: bool = False


class BulkAggregator:
    """Coalesce bursts of notifications per destination."""

    def __init__(
        self,
        deliver: Deliver,
        stop_event: asyncio.Event,
        config: Optional[AggregatorConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._deliver = deliver
        self._stop = stop_event
        self._config = config or AggregatorConfig()
        self._clock = clock
        self._queue: asyncio.Queue[Notification] = asyncio.Queue(maxsize=self._config.queue_size)
        self._buffers: dict[int, PendingBuffer] = {}

    async def submit(self, notification: Notification) -> None:
        """Queue a notification, waiting when the queue is full."""

        await self._queue.put(notification)

    def pending(self, destination: int) -> List[str]:
        buffer = self._buffers.get(destination)
        return list(buffer.fragments) if buffer else []

    def accept(self, notification: Notification) -> None:
        """Append one fragment to its destination buffer, enforcing the burst cap.

        The overflow marker is appended when the first fragment past
        ``max_fragments`` arrives, so a burst of exactly ``max_fragments``
        carries no marker.
        """

        buffer = self._buffers.get(notification.destination)
        if buffer is None:
            buffer = PendingBuffer(touched_at=self._clock())
            self._buffers[notification.destination] = buffer

        if len(buffer.fragments) < self._config.max_fragments:
            buffer.fragments.append(notification.text)
            buffer.touched_at = self._clock()
        elif not buffer.overflowed:
            buffer.fragments.append(self._config.overflow_marker)
            buffer.overflowed = True

    async def flush_due(self) -> int:
        """Flush every buffer quiet for at least the debounce window."""

        now = self._clock()
        due = [
            destination
            for destination, buffer in self._buffers.items()
            if now - buffer.touched_at >= self._config.debounce_seconds
        ]
        for destination in due:
            await self._flush(destination)
        return len(due)

    async def _flush(self, destination: int) -> None:
        buffer = self._buffers.pop(destination)
        text = FRAGMENT_SEPARATOR.join(buffer.fragments)
        try:
            await self._deliver(destination, text)
        except Exception:
            LOGGER.exception("Bulk delivery to chat:%s failed", destination)

    def _drain_queue(self) -> None:
        while True:
            try:
                notification = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            self.accept(notification)

    async def run(self) -> None:
        """Own the buffers until shutdown, then drain them best-effort."""

        tick = self._config.tick_seconds
        next_tick = self._clock() + tick
        while not self._stop.is_set():
            # Wait for the queue or the next tick, whichever is sooner.
            timeout = max(0.0, next_tick - self._clock())
            try:
                notification = await asyncio.wait_for(self._queue.get(), timeout=timeout)
            except asyncio.TimeoutError:
                pass
            else:
                self.accept(notification)

            if self._clock() >= next_tick:
                await self.flush_due()
                next_tick = self._clock() + tick

        await self.drain()
        LOGGER.info("Bulk aggregator done")

    async def drain(self) -> None:
        """Flush everything pending regardless of age, bounded by the drain timeout."""

        self._drain_queue()
        if not self._buffers:
            return

        async def _flush_all() -> None:
            for destination in list(self._buffers):
                await self._flush(destination)

        try:
            await asyncio.wait_for(_flush_all(), timeout=self._config.drain_timeout_seconds)
        except asyncio.TimeoutError:
            LOGGER.warning("Drain timed out with %s buffers pending", len(self._buffers))
