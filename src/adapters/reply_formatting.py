"""Shared formatting helpers for bot replies.

Keeping reply texts here prevents drift between command handlers and keeps
wording consistent.
"""

from __future__ import annotations

from typing import Any, Iterable

from core.models import NATIVE_ASSET_TYPE


def format_help(chat_link: str = "") -> str:
    lines = [
        "/start stellar_address -> Starts bot",
        "/stop -> Stops bot",
        "/info -> Shows account info",
        "/qr -> Shows stellar address QR code",
        "/help -> This help",
        "/donate -> Donation account",
    ]
    if chat_link:
        lines.append(f"Chat: {chat_link}")
    return "\n".join(lines)


def format_uptime(seconds: float) -> str:
    """Render an elapsed duration as days, hours and minutes."""

    minutes_total = int(seconds) // 60
    days, remainder = divmod(minutes_total, 24 * 60)
    hours, minutes = divmod(remainder, 60)
    return f"{days} Days {hours} Hours {minutes} Minutes"


def format_stats(uptime_seconds: float, accounts: int, chats: int) -> str:
    return f"Uptime: {format_uptime(uptime_seconds)}\nAccounts: {accounts}\nChats: {chats}"


def format_wallet_info(address: str, balances: Iterable[dict[str, Any]], native_code: str = "XLM") -> str:
    """List each balance of a wallet, showing the native asset by its short code."""

    lines = [f"Wallet address: {address}", "Balances:"]
    for balance in balances:
        if balance.get("asset_type") == NATIVE_ASSET_TYPE:
            code = native_code
        else:
            code = balance.get("asset_code") or balance.get("liquidity_pool_id") or "?"
        lines.append(f"{code}: {balance.get('balance')}")
    return "\n".join(lines)
