"""Ledger event to notification translation (core domain).

Translation is a pure function of the event and the current subscriber set.
The EventTranslator wrapper adds cursor advancement and error containment so
a single bad record never stops a stream.
"""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from core.checkpoints import CheckpointStore
from core.config import TranslatorConfig
from core.errors import MalformedEventError
from core.models import (
    AccountCreated,
    Asset,
    IgnoredEvent,
    LedgerEvent,
    Notification,
    Trade,
    Transfer,
)
from core.registry import SubscriberRegistry

LOGGER = logging.getLogger(__name__)


def asset_label(asset: Asset, config: TranslatorConfig) -> str:
    """Return the display code, resolving the native asset to its short code."""

    if asset.is_native:
        return config.native_code
    return asset.code or "?"


def parse_amount(raw: str, field: str) -> Decimal:
    try:
        value = Decimal(raw)
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise MalformedEventError(f"{field} is not a number: {raw!r}") from exc
    if not value.is_finite():
        raise MalformedEventError(f"{field} is not a finite number: {raw!r}")
    return value


def _with_memo(text: str, memo: Optional[str]) -> str:
    if memo:
        return f"{text}\nMemo: {memo}"
    return text


def _fan_out(registry: SubscriberRegistry, account: str, text: str) -> List[Notification]:
    return [Notification(destination=chat_id, text=text) for chat_id in sorted(registry.subscribers_of(account))]


def _translate_transfer(
    event: Transfer, registry: SubscriberRegistry, config: TranslatorConfig
) -> List[Notification]:
    asset = asset_label(event.asset, config)
    amount = parse_amount(event.amount, "amount")

    sent = _with_memo(f"Sent {event.amount} {asset} to {event.destination}", event.memo)
    received = _with_memo(f"Received {event.amount} {asset} from {event.source}", event.memo)

    # Dust payments in lumens are a common spam vector.
    if event.asset.is_native and amount < config.spam_threshold:
        LOGGER.info("SPAM: %s", sent.replace("\n", " "))
        return []

    notifications = _fan_out(registry, event.source, sent)
    notifications.extend(_fan_out(registry, event.destination, received))
    return notifications


def _translate_account_created(
    event: AccountCreated, registry: SubscriberRegistry, config: TranslatorConfig
) -> List[Notification]:
    code = config.native_code
    created = _with_memo(
        f"Create account {event.account} with {event.starting_balance} {code}", event.memo
    )
    funded = _with_memo(
        f"Account created by funder {event.funder} with {event.starting_balance} {code}", event.memo
    )
    notifications = _fan_out(registry, event.funder, created)
    notifications.extend(_fan_out(registry, event.account, funded))
    return notifications


def _translate_trade(
    event: Trade, registry: SubscriberRegistry, config: TranslatorConfig
) -> List[Notification]:
    base_value = parse_amount(event.base_amount, "base_amount")
    counter_value = parse_amount(event.counter_amount, "counter_amount")
    if counter_value == 0:
        raise MalformedEventError("counter_amount is zero")

    base = asset_label(event.base_asset, config)
    counter = asset_label(event.counter_asset, config)
    price = base_value / counter_value
    deal = f"{event.counter_amount} {counter} for {event.base_amount} {base}\nPrice: {price:.6f} {base}/{counter}"

    notifications = _fan_out(registry, event.base_account, f"Bought {deal}")
    notifications.extend(_fan_out(registry, event.counter_account, f"Sold {deal}"))
    return notifications


def translate(
    event: LedgerEvent,
    registry: SubscriberRegistry,
    config: Optional[TranslatorConfig] = None,
) -> List[Notification]:
    """Map one ledger event into zero or more notifications.

    Raises MalformedEventError when a numeric field cannot be interpreted.
    """

    config = config or TranslatorConfig()
    if isinstance(event, Transfer):
        return _translate_transfer(event, registry, config)
    if isinstance(event, AccountCreated):
        return _translate_account_created(event, registry, config)
    if isinstance(event, Trade):
        return _translate_trade(event, registry, config)
    if isinstance(event, IgnoredEvent):
        return []
    raise TypeError(f"Unsupported event type: {type(event).__name__}")


class EventTranslator:
    """Translate events for one or more streams and advance their cursors."""

    def __init__(
        self,
        registry: SubscriberRegistry,
        checkpoints: CheckpointStore,
        config: Optional[TranslatorConfig] = None,
    ) -> None:
        self._registry = registry
        self._checkpoints = checkpoints
        self._config = config or TranslatorConfig()

    def handle(self, stream_name: str, event: LedgerEvent) -> List[Notification]:
        """Translate `event` and record its cursor for `stream_name`.

        The cursor tracks stream position, not delivery success, so it moves
        forward even for suppressed or malformed events.
        """

        try:
            return translate(event, self._registry, self._config)
        except MalformedEventError as exc:
            LOGGER.warning("Skipping malformed %s event at %s: %s", stream_name, event.cursor, exc)
            return []
        finally:
            self._checkpoints.set(stream_name, event.cursor)
