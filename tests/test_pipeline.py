from __future__ import annotations

import asyncio

from core.aggregator import BulkAggregator
from core.checkpoints import CheckpointStore
from core.config import AggregatorConfig
from core.consumer import ConsumerState, StreamConsumer
from core.models import Asset, Notification, Subscriber, Transfer
from core.pipeline import run_pipeline
from core.registry import SubscriberRegistry
from core.translator import EventTranslator

XLM = Asset(asset_type="native")


class FakeStorage:
    def load_subscribers(self):
        return [Subscriber(subscriber_id=key, account="DST") for key in (1, 2, 3)]

    def insert_subscriber(self, subscriber_id: int, account: str) -> None:
        pass

    def delete_subscriber(self, subscriber_id: int) -> None:
        pass

    def load_checkpoints(self) -> dict:
        return {}

    def save_checkpoints(self, cursors, saved_at) -> None:
        pass


class OneEventSource:
    """Yields a single transfer once released, then idles like a long-poll."""

    def __init__(self) -> None:
        self.release = asyncio.Event()

    async def stream(self, stream_name: str, cursor: str):
        await self.release.wait()
        yield Transfer(cursor="c1", source="SRC", destination="DST", amount="1", asset=XLM)
        await asyncio.Event().wait()


class GatedDelivery:
    """Records deliveries; chat 9 blocks until the gate opens."""

    def __init__(self) -> None:
        self.gate = asyncio.Event()
        self.blocked = asyncio.Event()
        self.sent: list[tuple[int, str]] = []

    async def __call__(self, destination: int, text: str) -> bool:
        if destination == 9:
            self.blocked.set()
            await self.gate.wait()
        self.sent.append((destination, text))
        return True


async def _wait_until(predicate, attempts: int = 200) -> None:
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0.01)
    raise AssertionError("condition not reached")


def test_shutdown_with_full_queue_delivers_whole_fan_out() -> None:
    async def scenario():
        storage = FakeStorage()
        registry = SubscriberRegistry(storage)
        registry.load()
        checkpoints = CheckpointStore(storage)
        translator = EventTranslator(registry, checkpoints)

        stop = asyncio.Event()
        aggregator_stop = asyncio.Event()
        delivery = GatedDelivery()
        aggregator = BulkAggregator(
            delivery,
            aggregator_stop,
            AggregatorConfig(tick_seconds=0.01, debounce_seconds=0.01, queue_size=1),
        )
        source = OneEventSource()
        consumer = StreamConsumer("operations", source, checkpoints, translator, aggregator.submit, stop)

        await aggregator.submit(Notification(destination=9, text="earlier"))
        pipeline = asyncio.create_task(run_pipeline([consumer], aggregator, aggregator_stop, stop))

        # The aggregator is stuck on chat 9 while the consumer fills the queue.
        await asyncio.wait_for(delivery.blocked.wait(), timeout=1)
        source.release.set()
        await _wait_until(lambda: checkpoints.get("operations") == "c1")
        await asyncio.sleep(0.05)

        stop.set()
        await asyncio.sleep(0.05)
        assert not pipeline.done()
        assert not aggregator_stop.is_set()

        delivery.gate.set()
        await asyncio.wait_for(pipeline, timeout=2)
        return consumer, delivery

    consumer, delivery = asyncio.run(scenario())

    assert delivery.sent == [
        (9, "earlier"),
        (1, "Received 1 XLM from SRC"),
        (2, "Received 1 XLM from SRC"),
        (3, "Received 1 XLM from SRC"),
    ]
    assert consumer.state is ConsumerState.STOPPED


def test_aggregator_stops_after_consumers() -> None:
    async def scenario():
        stop = asyncio.Event()
        aggregator_stop = asyncio.Event()
        delivery = GatedDelivery()
        aggregator = BulkAggregator(delivery, aggregator_stop, AggregatorConfig(tick_seconds=0.01))
        order: list[str] = []

        async def side_job() -> None:
            await stop.wait()
            assert not aggregator_stop.is_set()
            order.append("side job")

        pipeline = asyncio.create_task(
            run_pipeline([], aggregator, aggregator_stop, stop, extra=[("side", side_job())])
        )
        await asyncio.sleep(0.02)
        stop.set()
        await asyncio.wait_for(pipeline, timeout=1)
        order.append("aggregator" if aggregator_stop.is_set() else "missing")
        return order

    assert asyncio.run(scenario()) == ["side job", "aggregator"]
