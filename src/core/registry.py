"""Subscriber registry (core domain).

The registry owns every Subscriber record and the derived account index.
Durable writes always happen before the in-memory state changes, so a failed
write leaves memory untouched.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterator, Optional

from core.errors import AlreadySubscribedError, SubscriberNotFoundError
from core.models import Subscriber
from core.ports import SubscriberStoragePort

LOGGER = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReadWriteLock:
    """Many concurrent readers or one writer."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._readers:
                self._cond.wait()
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class SubscriberRegistry:
    """Concurrent mapping of subscriber id to watched account."""

    def __init__(
        self,
        storage: SubscriberStoragePort,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._storage = storage
        self._clock = clock
        self._lock = ReadWriteLock()
        self._subscribers: dict[int, Subscriber] = {}
        self._accounts: dict[str, set[int]] = {}

    def load(self) -> int:
        """Replay all durable records into memory and return how many were loaded."""

        records = list(self._storage.load_subscribers())
        with self._lock.write():
            self._subscribers.clear()
            self._accounts.clear()
            for record in records:
                self._subscribers[record.subscriber_id] = record
                if record.account:
                    self._accounts.setdefault(record.account, set()).add(record.subscriber_id)
        LOGGER.info("Loaded %s subscribers watching %s accounts", len(records), len(self._accounts))
        return len(records)

    def subscribe(self, subscriber_id: int, account: str) -> Subscriber:
        """Start watching `account` for `subscriber_id`.

        Raises AlreadySubscribedError when the subscriber already watches an
        account, and StorageError when the durable write fails.
        """

        with self._lock.write():
            existing = self._subscribers.get(subscriber_id)
            if existing is not None:
                raise AlreadySubscribedError(subscriber_id, existing.account)
            self._storage.insert_subscriber(subscriber_id, account)
            subscriber = Subscriber(subscriber_id=subscriber_id, account=account)
            self._subscribers[subscriber_id] = subscriber
            self._accounts.setdefault(account, set()).add(subscriber_id)
        LOGGER.info("New tracking chat:%s address:%s", subscriber_id, account)
        return subscriber

    def unsubscribe(self, subscriber_id: int) -> Subscriber:
        """Stop watching for `subscriber_id` and return the removed record."""

        with self._lock.write():
            subscriber = self._subscribers.get(subscriber_id)
            if subscriber is None:
                raise SubscriberNotFoundError(subscriber_id)
            self._storage.delete_subscriber(subscriber_id)
            watchers = self._accounts.get(subscriber.account)
            if watchers is not None:
                watchers.discard(subscriber_id)
                # Drop empty entries so the index never outgrows the subscriber set.
                if not watchers:
                    del self._accounts[subscriber.account]
            del self._subscribers[subscriber_id]
        LOGGER.info("Removed chat:%s address:%s", subscriber_id, subscriber.account)
        return subscriber

    def lookup(self, subscriber_id: int) -> Optional[Subscriber]:
        with self._lock.read():
            subscriber = self._subscribers.get(subscriber_id)
            if subscriber is None:
                return None
            return Subscriber(
                subscriber_id=subscriber.subscriber_id,
                account=subscriber.account,
                sanity_checked_at=subscriber.sanity_checked_at,
            )

    def subscribers_of(self, account: str) -> frozenset[int]:
        """Return a snapshot of the ids watching `account`."""

        with self._lock.read():
            return frozenset(self._accounts.get(account, ()))

    def count(self) -> tuple[int, int]:
        """Return (subscriber count, watched account count)."""

        with self._lock.read():
            return len(self._subscribers), len(self._accounts)

    def touch_sanity(self, subscriber_id: int, min_interval: timedelta) -> bool:
        """Return True at most once per `min_interval` for a subscriber.

        Unknown subscribers always return False.
        """

        with self._lock.write():
            subscriber = self._subscribers.get(subscriber_id)
            if subscriber is None:
                return False
            now = self._clock()
            last = subscriber.sanity_checked_at
            if last is not None and now - last <= min_interval:
                return False
            subscriber.sanity_checked_at = now
            return True
