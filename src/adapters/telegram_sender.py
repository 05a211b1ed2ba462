"""Telegram outbound adapter.

Delivers bot messages through Telethon and translates Telethon failures
into the core delivery error taxonomy.
"""

from __future__ import annotations

import asyncio
import io
from typing import Optional

from telethon import TelegramClient, errors

from core.errors import PermanentDeliveryError, RecoverableDeliveryError


def _classify(exc: Exception) -> Exception:
    # 400 and 403 mean the chat is gone, blocked us, or never existed.
    if isinstance(exc, (errors.BadRequestError, errors.ForbiddenError)):
        return PermanentDeliveryError(f"{type(exc).__name__}: {exc}")
    # Telethon raises ValueError when a peer cannot be resolved at all.
    if isinstance(exc, ValueError):
        return PermanentDeliveryError(f"Unknown chat: {exc}")
    return RecoverableDeliveryError(f"{type(exc).__name__}: {exc}")


_DELIVERY_ERRORS = (errors.RPCError, ValueError, ConnectionError, OSError, asyncio.TimeoutError)


class TelegramSender:
    """OutboundPort implementation backed by a Telethon bot client."""

    def __init__(self, client: TelegramClient) -> None:
        self._client = client

    async def send(self, destination: int, text: str) -> None:
        try:
            await self._client.send_message(destination, text, link_preview=False)
        except _DELIVERY_ERRORS as exc:
            raise _classify(exc) from exc

    async def send_photo(self, destination: int, png: bytes, filename: str, caption: str) -> None:
        """Upload a PNG image with a caption."""

        image = io.BytesIO(png)
        # Telethon infers the media type from the file name.
        image.name = filename
        try:
            await self._client.send_file(destination, image, caption=caption)
        except _DELIVERY_ERRORS as exc:
            raise _classify(exc) from exc

    async def member_count(self, destination: int) -> Optional[int]:
        """Return the participant count of a group chat."""

        try:
            participants = await self._client.get_participants(destination, limit=0)
        except _DELIVERY_ERRORS as exc:
            raise _classify(exc) from exc
        return getattr(participants, "total", None)
