"""Ports (interfaces) used by the core pipeline.

Ports define the minimal contracts for storage, ledger and delivery adapters
so that the core can be reused with different backends.
"""

from __future__ import annotations

from datetime import datetime
from typing import AsyncIterator, Iterable, Optional, Protocol

from core.models import LedgerEvent, Subscriber


class SubscriberStoragePort(Protocol):
    """Durable subscriber records."""

    def load_subscribers(self) -> Iterable[Subscriber]:
        ...

    def insert_subscriber(self, subscriber_id: int, account: str) -> None:
        ...

    def delete_subscriber(self, subscriber_id: int) -> None:
        ...


class CheckpointStoragePort(Protocol):
    """Durable (cursor, timestamp) pairs keyed by stream name."""

    def load_checkpoints(self) -> dict[str, tuple[str, datetime]]:
        ...

    def save_checkpoints(self, cursors: dict[str, str], saved_at: datetime) -> None:
        ...


class LedgerSourcePort(Protocol):
    """Long-lived pull of typed ledger events starting at a cursor."""

    def stream(self, stream_name: str, cursor: str) -> AsyncIterator[LedgerEvent]:
        ...


class OutboundPort(Protocol):
    """Delivery of one text message to one destination.

    Implementations raise RecoverableDeliveryError or PermanentDeliveryError.
    """

    async def send(self, destination: int, text: str) -> None:
        ...

    async def member_count(self, destination: int) -> Optional[int]:
        ...
