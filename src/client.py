"""Telegram client factory for stellarium.

We explicitly manage the client's lifecycle (start/disconnect) so it is
obvious when the bot session is created and when it ends.
"""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv
from telethon import TelegramClient


def build_client(test_mode: bool = False) -> TelegramClient:
    """Create a Telethon client from environment variables.

    We read API_ID/API_HASH via python-dotenv to keep secrets out of the repo.
    The session name defaults to "stellarium" (or "stellarium-test") to create
    a local .session file.
    """

    load_dotenv()

    api_id = os.getenv("API_ID")
    api_hash = os.getenv("API_HASH")
    default_session = "stellarium-test" if test_mode else "stellarium"
    session_name = os.getenv("SESSION_NAME", default_session)

    # Fail fast on missing credentials to avoid an ambiguous login prompt.
    if not api_id or not api_hash:
        raise RuntimeError("Missing API_ID or API_HASH in environment")

    logging.getLogger(__name__).info("Initializing Telegram client")

    return TelegramClient(session_name, int(api_id), api_hash)


def bot_token(test_mode: bool = False) -> str:
    """Return the bot token, preferring BOT_TOKEN_TEST in test mode."""

    load_dotenv()
    token = os.getenv("BOT_TOKEN_TEST") if test_mode else None
    token = token or os.getenv("BOT_TOKEN")
    if not token:
        raise RuntimeError("BOT_TOKEN is required to run the bot")
    return token.strip()
