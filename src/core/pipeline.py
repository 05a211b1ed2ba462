"""Task lifecycle for the streaming pipeline (core domain).

Consumers feed the aggregator through its bounded queue, so shutdown runs
in two phases: producers first, then the aggregator. The aggregator keeps
reading the queue until every consumer has returned, which lets a consumer
parked on a full queue finish its current event before it notices the stop.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Iterable, List

from core.aggregator import BulkAggregator
from core.consumer import StreamConsumer

LOGGER = logging.getLogger(__name__)


def _log_failures(tasks: List[asyncio.Task], results: list) -> None:
    for task, result in zip(tasks, results):
        if isinstance(result, BaseException) and not isinstance(result, asyncio.CancelledError):
            LOGGER.error("Task %s ended with %r", task.get_name(), result)


async def run_pipeline(
    consumers: Iterable[StreamConsumer],
    aggregator: BulkAggregator,
    aggregator_stop: asyncio.Event,
    stop_event: asyncio.Event,
    extra: Iterable[tuple[str, Awaitable[None]]] = (),
) -> None:
    """Run consumers and the aggregator until ``stop_event`` is set.

    ``aggregator_stop`` must be the event the aggregator was built with and
    must differ from ``stop_event``. ``extra`` holds named side jobs (the
    checkpoint persister) that watch ``stop_event`` like the consumers do.
    """

    aggregator_task = asyncio.create_task(aggregator.run(), name="bulk-aggregator")
    producers = [
        asyncio.create_task(consumer.run(), name=f"stream-{consumer.stream_name}")
        for consumer in consumers
    ]
    producers.extend(asyncio.create_task(job, name=name) for name, job in extra)

    try:
        await stop_event.wait()
    finally:
        stop_event.set()
        LOGGER.info("Waiting stream consumers done")
        results = await asyncio.gather(*producers, return_exceptions=True)
        _log_failures(producers, results)

        aggregator_stop.set()
        LOGGER.info("Waiting bulk aggregator drain")
        results = await asyncio.gather(aggregator_task, return_exceptions=True)
        _log_failures([aggregator_task], results)
