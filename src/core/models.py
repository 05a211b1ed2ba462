"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to Horizon or Telegram specific types.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

# Horizon reports the lumen balance with this asset type instead of a code.
NATIVE_ASSET_TYPE = "native"

# Resume sentinel understood by Horizon: start streaming from the ledger head.
CURSOR_NOW = "now"

OPERATIONS_STREAM = "operations"
TRADES_STREAM = "trades"


@dataclass
class Subscriber:
    """A chat that watches one Stellar account."""

    subscriber_id: int
    account: str
    sanity_checked_at: Optional[datetime] = None


@dataclass(frozen=True)
class Asset:
    """Asset as declared on the ledger."""

    asset_type: str
    code: Optional[str] = None

    @property
    def is_native(self) -> bool:
        return self.asset_type == NATIVE_ASSET_TYPE


@dataclass(frozen=True)
class Transfer:
    """Value moved from one account to another."""

    cursor: str
    source: str
    destination: str
    amount: str
    asset: Asset
    memo: Optional[str] = None


@dataclass(frozen=True)
class AccountCreated:
    """A funder created and seeded a new account."""

    cursor: str
    funder: str
    account: str
    starting_balance: str
    memo: Optional[str] = None


@dataclass(frozen=True)
class Trade:
    """An executed trade between two counterparties."""

    cursor: str
    base_account: str
    base_amount: str
    base_asset: Asset
    counter_account: str
    counter_amount: str
    counter_asset: Asset


@dataclass(frozen=True)
class IgnoredEvent:
    """A stream record that produces no notification but still moves the cursor."""

    cursor: str
    reason: str


LedgerEvent = Union[Transfer, AccountCreated, Trade, IgnoredEvent]


@dataclass(frozen=True)
class Notification:
    """One text fragment addressed to one destination."""

    destination: int
    text: str
