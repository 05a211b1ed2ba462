"""Telegram command adapter.

Turns raw chat text into (command, argument) pairs and serves the bot's
commands on top of the core registry. Replies go straight to the delivery
service; they are never batched with ledger notifications.
"""

from __future__ import annotations

import io
import logging
import time
from typing import Awaitable, Callable, Optional, Protocol, Tuple

import qrcode
from stellar_sdk import Keypair

from adapters.reply_formatting import format_help, format_stats, format_wallet_info
from core.delivery import DeliveryService
from core.errors import (
    AlreadySubscribedError,
    DeliveryError,
    PermanentDeliveryError,
    StellariumError,
    SubscriberNotFoundError,
    WalletLookupError,
)
from core.registry import SubscriberRegistry

LOGGER = logging.getLogger(__name__)

INTERNAL_ERROR = "Sorry, Internal error"


class WalletSource(Protocol):
    async def balances(self, address: str) -> list[dict]:
        ...


class PhotoSender(Protocol):
    async def send_photo(self, destination: int, png: bytes, filename: str, caption: str) -> None:
        ...


def parse_command(text: str) -> Optional[Tuple[str, str]]:
    """Split "/cmd@botname argument" into ("/cmd", "argument").

    Returns None for anything that is not a command.
    """

    if not text or not text.startswith("/"):
        return None
    head, _, rest = text.partition(" ")
    command = head.split("@", 1)[0].strip().lower()
    return command, rest.strip()


def is_valid_address(address: str) -> bool:
    """Return True for a well-formed Stellar public key (G...)."""

    try:
        Keypair.from_public_key(address)
    except ValueError:
        return False
    return True


def qr_png(data: str) -> bytes:
    """Render `data` as a PNG QR code."""

    qr = qrcode.QRCode(error_correction=qrcode.ERROR_CORRECT_M, border=4)
    qr.add_data(data)
    qr.make(fit=True)
    buffer = io.BytesIO()
    qr.make_image().save(buffer)
    return buffer.getvalue()


class CommandHandler:
    """Serve /start, /stop, /info, /qr, /donate, /stats and /help."""

    def __init__(
        self,
        registry: SubscriberRegistry,
        delivery: DeliveryService,
        photos: PhotoSender,
        wallets: WalletSource,
        donation_account: str,
        chat_link: str = "",
        native_code: str = "XLM",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._registry = registry
        self._delivery = delivery
        self._photos = photos
        self._wallets = wallets
        self._donation_account = donation_account
        self._chat_link = chat_link
        self._native_code = native_code
        self._clock = clock
        self._started_at = clock()
        self._handlers: dict[str, Callable[[int, str], Awaitable[None]]] = {
            "/help": self._help,
            "/start": self._start,
            "/stop": self._stop,
            "/info": self._info,
            "/qr": self._qr,
            "/donate": self._donate,
            "/stats": self._stats,
        }

    async def handle(self, chat_id: int, text: str) -> None:
        """Dispatch one incoming chat message."""

        parsed = parse_command(text)
        if parsed is None:
            return
        command, argument = parsed
        LOGGER.info("Received from chat:%s text:%r", chat_id, text)

        handler = self._handlers.get(command)
        if handler is None:
            await self._reply(chat_id, "Invalid command")
            await self._help(chat_id, "")
            return
        try:
            await handler(chat_id, argument)
        except DeliveryError as exc:
            LOGGER.warning("error sending %s reply to chat:%s error:%s", command, chat_id, exc)
            if isinstance(exc, PermanentDeliveryError):
                self._delivery.auto_remove(chat_id)
        except StellariumError:
            LOGGER.exception("Command %s failed for chat:%s", command, chat_id)
            await self._reply(chat_id, INTERNAL_ERROR)

    async def _reply(self, chat_id: int, text: str) -> None:
        await self._delivery.deliver(chat_id, text)

    async def _help(self, chat_id: int, argument: str) -> None:
        await self._reply(chat_id, format_help(self._chat_link))

    async def _start(self, chat_id: int, address: str) -> None:
        current = self._registry.lookup(chat_id)
        if current is not None:
            await self._reply(chat_id, "Bot already started.")
            if address:
                await self._reply(chat_id, "If you want change tracking account, send /stop first")
            else:
                await self._reply(chat_id, f"Tracking Stellar address: {current.account}")
            return

        if not address:
            await self._reply(chat_id, "Stellar address not provided")
            await self._help(chat_id, "")
            return
        if not is_valid_address(address):
            await self._reply(chat_id, "Invalid Stellar address")
            return

        try:
            self._registry.subscribe(chat_id, address)
        except AlreadySubscribedError:
            await self._reply(chat_id, "Bot already started.")
            return
        await self._reply(chat_id, f"Tracking Stellar address: {address}")

    async def _stop(self, chat_id: int, argument: str) -> None:
        try:
            self._registry.unsubscribe(chat_id)
        except SubscriberNotFoundError:
            await self._reply(chat_id, "Bot already stopped")
            return
        await self._reply(chat_id, "Bot stopped")

    async def _info(self, chat_id: int, argument: str) -> None:
        subscriber = self._registry.lookup(chat_id)
        if subscriber is None:
            await self._reply(chat_id, "You must /start bot first")
            return
        try:
            balances = await self._wallets.balances(subscriber.account)
        except WalletLookupError:
            LOGGER.warning("Wallet lookup failed for chat:%s", chat_id, exc_info=True)
            await self._reply(chat_id, "Error obtaining wallet info")
            return
        await self._reply(chat_id, format_wallet_info(subscriber.account, balances, self._native_code))

    async def _qr(self, chat_id: int, argument: str) -> None:
        subscriber = self._registry.lookup(chat_id)
        if subscriber is None:
            await self._reply(chat_id, "You must /start bot first")
            return
        await self._photos.send_photo(chat_id, qr_png(subscriber.account), "wallet.png", subscriber.account)

    async def _donate(self, chat_id: int, argument: str) -> None:
        await self._photos.send_photo(
            chat_id,
            qr_png(self._donation_account),
            "donation.png",
            f"Donation account:\n{self._donation_account}",
        )

    async def _stats(self, chat_id: int, argument: str) -> None:
        chats, accounts = self._registry.count()
        uptime = self._clock() - self._started_at
        await self._reply(chat_id, format_stats(uptime, accounts, chats))
