from __future__ import annotations

import asyncio
from typing import Optional

from core.config import DeliveryConfig
from core.delivery import DeliveryService, truncate_text
from core.errors import PermanentDeliveryError, RecoverableDeliveryError
from core.models import Subscriber
from core.registry import SubscriberRegistry


class FakeStorage:
    def __init__(self, rows: list[tuple[int, str]]) -> None:
        self.rows = dict(rows)

    def load_subscribers(self):
        return [Subscriber(subscriber_id=key, account=value) for key, value in self.rows.items()]

    def insert_subscriber(self, subscriber_id: int, account: str) -> None:
        self.rows[subscriber_id] = account

    def delete_subscriber(self, subscriber_id: int) -> None:
        self.rows.pop(subscriber_id, None)


class FakeOutbound:
    def __init__(self, error: Optional[Exception] = None, members: Optional[int] = None) -> None:
        self.error = error
        self.members = members
        self.sent: list[tuple[int, str]] = []
        self.member_queries: list[int] = []

    async def send(self, destination: int, text: str) -> None:
        if self.error is not None:
            raise self.error
        self.sent.append((destination, text))

    async def member_count(self, destination: int) -> Optional[int]:
        self.member_queries.append(destination)
        return self.members


def _service(outbound: FakeOutbound, *rows: tuple[int, str]) -> tuple[DeliveryService, SubscriberRegistry]:
    registry = SubscriberRegistry(FakeStorage(list(rows)))
    registry.load()
    return DeliveryService(outbound, registry, DeliveryConfig()), registry


def test_truncate_text_appends_marker() -> None:
    assert truncate_text("abc", 5, "!") == "abc"
    assert truncate_text("abcdef", 5, "!") == "abcde!"


def test_long_text_is_truncated_before_sending() -> None:
    outbound = FakeOutbound()
    service, _ = _service(outbound, (1, "ACC1"))

    assert asyncio.run(service.deliver(1, "x" * 4500)) is True

    [(_, text)] = outbound.sent
    assert text == "x" * 4000 + "\n... truncated"


def test_permanent_error_unsubscribes_destination() -> None:
    outbound = FakeOutbound(error=PermanentDeliveryError("Forbidden: bot was blocked by the user"))
    service, registry = _service(outbound, (1, "ACC1"))

    assert asyncio.run(service.deliver(1, "hello")) is False
    assert registry.lookup(1) is None
    assert registry.subscribers_of("ACC1") == frozenset()

    # A second permanent failure for the removed chat is a no-op.
    assert asyncio.run(service.deliver(1, "hello")) is False
    assert registry.count() == (0, 0)


def test_recoverable_error_keeps_subscription() -> None:
    outbound = FakeOutbound(error=RecoverableDeliveryError("flood wait"))
    service, registry = _service(outbound, (1, "ACC1"))

    assert asyncio.run(service.deliver(1, "hello")) is False
    assert registry.lookup(1) is not None


def test_lonely_group_is_removed_without_sending() -> None:
    outbound = FakeOutbound(members=1)
    service, registry = _service(outbound, (-100, "ACC1"))

    assert asyncio.run(service.deliver(-100, "hello")) is False
    assert outbound.sent == []
    assert registry.lookup(-100) is None


def test_group_membership_checked_once_per_interval() -> None:
    outbound = FakeOutbound(members=5)
    service, _ = _service(outbound, (-100, "ACC1"))

    asyncio.run(service.deliver(-100, "one"))
    asyncio.run(service.deliver(-100, "two"))

    assert outbound.member_queries == [-100]
    assert [text for _, text in outbound.sent] == ["one", "two"]


def test_private_chats_skip_membership_check() -> None:
    outbound = FakeOutbound(members=0)
    service, registry = _service(outbound, (5, "ACC1"))

    assert asyncio.run(service.deliver(5, "hello")) is True
    assert outbound.member_queries == []
    assert registry.lookup(5) is not None
