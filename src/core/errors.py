"""Error taxonomy shared by the core and its adapters.

Adapters translate library-specific failures into these types at the
boundary so the core only ever reasons about the classes below.
"""

from __future__ import annotations


class StellariumError(Exception):
    """Base class for all application errors."""


class StorageError(StellariumError):
    """A durable write or read failed."""


class AlreadySubscribedError(StellariumError):
    """The subscriber already watches an account."""

    def __init__(self, subscriber_id: int, account: str) -> None:
        super().__init__(f"subscriber {subscriber_id} already watches {account}")
        self.subscriber_id = subscriber_id
        self.account = account


class SubscriberNotFoundError(StellariumError):
    """The subscriber has no watched account."""

    def __init__(self, subscriber_id: int) -> None:
        super().__init__(f"subscriber {subscriber_id} not found")
        self.subscriber_id = subscriber_id


class MalformedEventError(StellariumError):
    """A ledger event carried a field that could not be interpreted."""


class DeliveryError(StellariumError):
    """Base class for outbound delivery failures."""


class RecoverableDeliveryError(DeliveryError):
    """Delivery failed for a transient reason; the message is dropped."""


class PermanentDeliveryError(DeliveryError):
    """The destination rejected delivery as invalid or forbidden."""


class WalletLookupError(StellariumError):
    """Account details could not be fetched from the ledger."""
