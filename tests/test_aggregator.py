from __future__ import annotations

import asyncio

from core.aggregator import BulkAggregator
from core.config import AggregatorConfig
from core.models import Notification


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class RecordingDelivery:
    def __init__(self) -> None:
        self.sent: list[tuple[int, str]] = []

    async def deliver(self, destination: int, text: str) -> bool:
        self.sent.append((destination, text))
        return True


def _aggregator(clock=None, **config) -> tuple[BulkAggregator, RecordingDelivery]:
    delivery = RecordingDelivery()
    kwargs = {"clock": clock} if clock is not None else {}
    aggregator = BulkAggregator(delivery.deliver, asyncio.Event(), AggregatorConfig(**config), **kwargs)
    return aggregator, delivery


def test_burst_is_capped_with_marker() -> None:
    clock = FakeClock()
    aggregator, delivery = _aggregator(clock)

    for index in range(25):
        aggregator.accept(Notification(destination=7, text=f"msg {index}"))
    clock.now += 2.0
    flushed = asyncio.run(aggregator.flush_due())

    assert flushed == 1
    [(destination, text)] = delivery.sent
    fragments = text.split("\n\n")
    assert destination == 7
    assert fragments[:20] == [f"msg {index}" for index in range(20)]
    assert fragments[20:] == ["... too many messages"]
    assert aggregator.pending(7) == []


def test_exactly_max_fragments_has_no_marker() -> None:
    clock = FakeClock()
    aggregator, delivery = _aggregator(clock)

    for index in range(20):
        aggregator.accept(Notification(destination=7, text=f"msg {index}"))
    clock.now += 2.0
    asyncio.run(aggregator.flush_due())

    assert "too many messages" not in delivery.sent[0][1]


def test_buffer_waits_for_debounce_window() -> None:
    clock = FakeClock()
    aggregator, delivery = _aggregator(clock)

    aggregator.accept(Notification(destination=1, text="first"))
    clock.now += 1.5
    aggregator.accept(Notification(destination=1, text="second"))
    clock.now += 1.9
    assert asyncio.run(aggregator.flush_due()) == 0
    assert delivery.sent == []

    clock.now += 0.1
    assert asyncio.run(aggregator.flush_due()) == 1
    assert delivery.sent == [(1, "first\n\nsecond")]


def test_destinations_are_flushed_independently() -> None:
    clock = FakeClock()
    aggregator, delivery = _aggregator(clock)

    aggregator.accept(Notification(destination=1, text="a"))
    clock.now += 1.0
    aggregator.accept(Notification(destination=2, text="b"))
    clock.now += 1.0
    asyncio.run(aggregator.flush_due())

    assert delivery.sent == [(1, "a")]
    assert aggregator.pending(2) == ["b"]


def test_run_coalesces_and_drains_on_shutdown() -> None:
    delivery = RecordingDelivery()

    async def scenario() -> None:
        stop = asyncio.Event()
        aggregator = BulkAggregator(
            delivery.deliver,
            stop,
            AggregatorConfig(tick_seconds=0.01, debounce_seconds=0.05),
        )
        task = asyncio.create_task(aggregator.run())
        await aggregator.submit(Notification(destination=1, text="one"))
        await aggregator.submit(Notification(destination=1, text="two"))
        await asyncio.sleep(0.2)
        await aggregator.submit(Notification(destination=2, text="late"))
        stop.set()
        await asyncio.wait_for(task, timeout=1)

    asyncio.run(scenario())

    assert delivery.sent == [(1, "one\n\ntwo"), (2, "late")]


def test_delivery_failure_does_not_stop_flushing() -> None:
    clock = FakeClock()
    sent: list[int] = []

    async def flaky(destination: int, text: str) -> bool:
        if destination == 1:
            raise RuntimeError("boom")
        sent.append(destination)
        return True

    aggregator = BulkAggregator(flaky, asyncio.Event(), AggregatorConfig(), clock=clock)
    aggregator.accept(Notification(destination=1, text="x"))
    aggregator.accept(Notification(destination=2, text="y"))
    clock.now += 5
    asyncio.run(aggregator.flush_due())

    assert sent == [2]
    assert aggregator.pending(1) == []
