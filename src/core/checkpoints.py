"""Per-stream cursor checkpoints (core domain).

Cursors are updated in memory after every handled event and written to
durable storage periodically and at shutdown. Stale checkpoints are ignored
on startup so a long outage does not trigger a large replay.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from core.config import CheckpointConfig
from core.errors import StorageError
from core.models import CURSOR_NOW
from core.ports import CheckpointStoragePort

LOGGER = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CheckpointStore:
    """Last-seen cursor per stream name."""

    def __init__(
        self,
        storage: CheckpointStoragePort,
        config: Optional[CheckpointConfig] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._storage = storage
        self._config = config or CheckpointConfig()
        self._clock = clock
        self._lock = threading.Lock()
        self._cursors: dict[str, str] = {}
        self._resumable: dict[str, str] = {}

    def load(self) -> None:
        """Read persisted checkpoints, keeping only the fresh ones."""

        try:
            records = self._storage.load_checkpoints()
        except StorageError:
            LOGGER.exception("Failed to load checkpoints, starting from now")
            return

        max_age = timedelta(seconds=self._config.max_age_seconds)
        now = self._clock()
        fresh: dict[str, str] = {}
        for stream_name, (cursor, saved_at) in records.items():
            if now - saved_at > max_age:
                LOGGER.info(
                    "Checkpoint for %s older than %s seconds... starting from now",
                    stream_name,
                    int(self._config.max_age_seconds),
                )
                continue
            fresh[stream_name] = cursor
            LOGGER.info("Resume %s from %s", stream_name, cursor)

        with self._lock:
            self._resumable = fresh

    def get(self, stream_name: str) -> str:
        """Return the cursor to resume `stream_name` from."""

        with self._lock:
            cursor = self._cursors.get(stream_name)
            if cursor is not None:
                return cursor
            return self._resumable.get(stream_name, CURSOR_NOW)

    def set(self, stream_name: str, cursor: str) -> None:
        with self._lock:
            self._cursors[stream_name] = cursor

    def snapshot(self) -> dict[str, str]:
        with self._lock:
            return dict(self._cursors)

    def persist(self) -> bool:
        """Write every known cursor with the current timestamp.

        Failures are logged and reported through the return value; losing a
        checkpoint only means re-processing a short window after restart.
        """

        cursors = self.snapshot()
        if not cursors:
            return False
        try:
            self._storage.save_checkpoints(cursors, self._clock())
        except StorageError:
            LOGGER.exception("Fail saving checkpoint")
            return False
        LOGGER.debug("Checkpoint saved: %s", cursors)
        return True

    async def run(self, stop_event: asyncio.Event) -> None:
        """Persist periodically until shutdown; the final write is left to the caller."""

        interval = self._config.persist_interval_seconds
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                self.persist()
        LOGGER.info("Checkpoint task done")
