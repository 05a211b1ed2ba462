"""Outbound delivery policy (core domain).

Wraps an OutboundPort with the rules every message follows: a length cap,
a throttled liveness check for group chats, and automatic unsubscription of
destinations that permanently reject delivery.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional

from core.config import DeliveryConfig
from core.errors import (
    PermanentDeliveryError,
    RecoverableDeliveryError,
    StorageError,
    SubscriberNotFoundError,
)
from core.ports import OutboundPort
from core.registry import SubscriberRegistry

LOGGER = logging.getLogger(__name__)


def truncate_text(text: str, max_chars: int, marker: str) -> str:
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + marker


def is_group(destination: int) -> bool:
    # Telegram uses negative ids for groups, supergroups and channels.
    return destination < 0


class DeliveryService:
    """Send text to a destination and react to delivery failures."""

    def __init__(
        self,
        outbound: OutboundPort,
        registry: SubscriberRegistry,
        config: Optional[DeliveryConfig] = None,
    ) -> None:
        self._outbound = outbound
        self._registry = registry
        self._config = config or DeliveryConfig()

    async def deliver(self, destination: int, text: str) -> bool:
        """Deliver `text` and return True when the channel accepted it.

        Delivery errors never propagate: recoverable ones are logged and the
        message is dropped, permanent ones also unsubscribe the destination.
        """

        if not await self._still_member(destination):
            return False

        text = truncate_text(text, self._config.max_chars, self._config.truncation_marker)
        LOGGER.info("Sent to chat:%s text:%r", destination, text)
        try:
            await self._outbound.send(destination, text)
        except PermanentDeliveryError as exc:
            LOGGER.warning("error sending message to chat:%s error:%s", destination, exc)
            LOGGER.info("Autoremove chat:%s", destination)
            self.auto_remove(destination)
            return False
        except RecoverableDeliveryError as exc:
            LOGGER.warning("error sending message to chat:%s error:%s", destination, exc)
            return False
        return True

    def auto_remove(self, destination: int) -> bool:
        """Unsubscribe `destination`; a destination that is already gone is a no-op."""

        try:
            self._registry.unsubscribe(destination)
        except SubscriberNotFoundError:
            return False
        except StorageError:
            LOGGER.exception("Failed to autoremove chat:%s", destination)
            return False
        return True

    async def _still_member(self, destination: int) -> bool:
        interval = timedelta(seconds=self._config.sanity_interval_seconds)
        if not self._registry.touch_sanity(destination, interval):
            return True
        if not is_group(destination):
            return True
        try:
            members = await self._outbound.member_count(destination)
        except (RecoverableDeliveryError, PermanentDeliveryError) as exc:
            LOGGER.debug("Member count failed for chat:%s: %s", destination, exc)
            return True
        if members is not None and members < 2:
            LOGGER.info("Bot left alone. Autoremove chat:%s", destination)
            self.auto_remove(destination)
            return False
        return True
