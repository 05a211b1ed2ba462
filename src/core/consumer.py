"""Resumable ledger stream consumer (core domain).

One consumer drives one stream through a small state machine:

    CONNECTING -> STREAMING -> BACKING_OFF -> CONNECTING -> ... -> STOPPED

Events are translated synchronously in arrival order before the next pull,
so cursor advancement follows stream order exactly. Failures are never fatal;
a tight failure loop is broken by a fixed cooldown.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import time
from typing import AsyncIterator, Awaitable, Callable, Optional

from core.checkpoints import CheckpointStore
from core.config import ConsumerConfig
from core.models import LedgerEvent, Notification
from core.ports import LedgerSourcePort
from core.translator import EventTranslator

LOGGER = logging.getLogger(__name__)

NotificationSink = Callable[[Notification], Awaitable[None]]


class ConsumerState(enum.Enum):
    CONNECTING = "connecting"
    STREAMING = "streaming"
    BACKING_OFF = "backing_off"
    STOPPED = "stopped"


class StreamEnded(Exception):
    """The source closed the stream without an error."""


async def _pull(iterator: AsyncIterator[LedgerEvent]) -> LedgerEvent:
    return await iterator.__anext__()


class StreamConsumer:
    """Consume one named stream until the shutdown event fires."""

    def __init__(
        self,
        stream_name: str,
        source: LedgerSourcePort,
        checkpoints: CheckpointStore,
        translator: EventTranslator,
        sink: NotificationSink,
        stop_event: asyncio.Event,
        config: Optional[ConsumerConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.stream_name = stream_name
        self._source = source
        self._checkpoints = checkpoints
        self._translator = translator
        self._sink = sink
        self._stop = stop_event
        self._config = config or ConsumerConfig()
        self._clock = clock
        self._state = ConsumerState.CONNECTING
        self._failures = 0

    @property
    def state(self) -> ConsumerState:
        return self._state

    @property
    def failures(self) -> int:
        return self._failures

    def _set_state(self, state: ConsumerState) -> None:
        if state is not self._state:
            LOGGER.debug("%s consumer: %s -> %s", self.stream_name, self._state.value, state.value)
        self._state = state

    async def run(self) -> None:
        """Drive the state machine until shutdown is requested."""

        while not self._stop.is_set():
            self._set_state(ConsumerState.CONNECTING)
            cursor = self._checkpoints.get(self.stream_name)
            started = self._clock()
            LOGGER.info("Streaming %s from cursor %s", self.stream_name, cursor)
            try:
                await self._consume(cursor)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                LOGGER.warning(
                    "Horizon %s stream failure (%r) attempt %d",
                    self.stream_name,
                    exc,
                    self._failures,
                )

            if self._stop.is_set():
                break

            self._set_state(ConsumerState.BACKING_OFF)
            if self.record_failure(started):
                LOGGER.warning(
                    "Horizon %s stream failed %d times in a row, cooling down for %s seconds",
                    self.stream_name,
                    self._failures,
                    self._config.cooldown_seconds,
                )
                await self._cooldown()

        self._set_state(ConsumerState.STOPPED)
        LOGGER.info("Horizon %s consumer done", self.stream_name)

    def record_failure(self, started: float) -> bool:
        """Update the rolling failure counter and return True when a cooldown is due.

        Only connections that died within the short-run window count; a
        connection that survived longer resets the counter.
        """

        if self._clock() - started < self._config.short_run_seconds:
            self._failures += 1
        else:
            self._failures = 0
        return self._failures > self._config.max_failures

    async def _cooldown(self) -> None:
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=self._config.cooldown_seconds)
        except asyncio.TimeoutError:
            pass

    async def _consume(self, cursor: str) -> None:
        iterator = self._source.stream(self.stream_name, cursor).__aiter__()
        stop_waiter = asyncio.ensure_future(self._stop.wait())
        pull: Optional[asyncio.Future] = None
        self._set_state(ConsumerState.STREAMING)
        try:
            while True:
                pull = asyncio.ensure_future(_pull(iterator))
                done, _ = await asyncio.wait({pull, stop_waiter}, return_when=asyncio.FIRST_COMPLETED)
                if pull not in done:
                    return
                try:
                    event = pull.result()
                except StopAsyncIteration:
                    raise StreamEnded(f"{self.stream_name} stream closed by source") from None

                for notification in self._translator.handle(self.stream_name, event):
                    await self._sink(notification)
        finally:
            stop_waiter.cancel()
            # A pending pull must be cancelled before the generator can be closed.
            if pull is not None and not pull.done():
                pull.cancel()
                await asyncio.gather(pull, return_exceptions=True)
            aclose = getattr(iterator, "aclose", None)
            if aclose is not None:
                try:
                    await aclose()
                except Exception:
                    LOGGER.debug("Error closing %s stream", self.stream_name, exc_info=True)
