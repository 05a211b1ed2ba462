"""Application entry point for the stellarium bot."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal
from logging.handlers import RotatingFileHandler
from typing import Optional

from art import tprint
from dotenv import load_dotenv
from telethon import events

import settings
from adapters.horizon_source import HorizonSource
from adapters.sqlite_storage import SQLiteStorage
from adapters.telegram_commands import CommandHandler
from adapters.telegram_sender import TelegramSender
from client import bot_token, build_client
from core.aggregator import BulkAggregator
from core.checkpoints import CheckpointStore
from core.config import (
    AggregatorConfig,
    CheckpointConfig,
    ConsumerConfig,
    DeliveryConfig,
    TranslatorConfig,
)
from core.consumer import StreamConsumer
from core.delivery import DeliveryService
from core.pipeline import run_pipeline
from core.registry import SubscriberRegistry
from core.translator import EventTranslator

NAME = "STELLARIUM"
FONT = "tarty-1"
VERSION = "0.5.0"


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _RedactingFormatter(logging.Formatter):
    def __init__(self, secrets: list[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._secrets = [secret for secret in secrets if secret]

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        return message


def _collect_redaction_values(config: dict) -> list[str]:
    redact_cfg = config.get("redact", {}) if config else {}
    if not redact_cfg.get("enabled", False):
        return []
    values = []
    for name in redact_cfg.get("patterns", []):
        value = os.getenv(name)
        if value:
            values.append(value)
    return sorted(set(values), key=len, reverse=True)


def _configure_logging() -> None:
    config = settings.LOGGING or {}
    if not config.get("enabled", False):
        return

    load_dotenv()
    level_name = str(config.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    secrets = _collect_redaction_values(config)
    formatter = _RedactingFormatter(secrets, fmt=fmt, datefmt=datefmt)

    handlers: list[logging.Handler] = []

    if config.get("console", True):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        path = file_cfg.get("path", "logs/stellarium.log")
        if not os.path.isabs(path):
            path = os.path.join(settings.PROJECT_ROOT, path)
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        max_bytes = int(file_cfg.get("max_bytes", 5 * 1024 * 1024))
        backup_count = int(file_cfg.get("backup_count", 5))
        file_handler = RotatingFileHandler(
            path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if not handlers:
        return

    logging.basicConfig(level=level, handlers=handlers)
    # Telethon is chatty at INFO about reconnects and update gaps.
    logging.getLogger("telethon").setLevel(max(level, logging.WARNING))


def _install_signal_handlers(stop_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    logger = logging.getLogger(__name__)

    def _on_signal(signum: int) -> None:
        logger.info("Received %s signal, leaving...", signal.Signals(signum).name)
        stop_event.set()

    for signum in (signal.SIGINT, signal.SIGTERM, getattr(signal, "SIGHUP", None)):
        if signum is None:
            continue
        try:
            loop.add_signal_handler(signum, _on_signal, signum)
        except NotImplementedError:
            # Windows event loops do not support signal handlers.
            signal.signal(signum, lambda num, _frame: loop.call_soon_threadsafe(_on_signal, num))


async def _serve(test_mode: bool) -> None:
    logger = logging.getLogger(__name__)

    db_path = settings.TEST_DB_PATH if test_mode else settings.DB_PATH
    logger.info("Opening database: %s", db_path)
    storage = SQLiteStorage(db_path)
    storage.init_db()

    # The registry must be fully loaded before any stream is consumed.
    registry = SubscriberRegistry(storage)
    registry.load()

    checkpoints = CheckpointStore(
        storage,
        CheckpointConfig(
            max_age_seconds=settings.CHECKPOINT_MAX_AGE_SECONDS,
            persist_interval_seconds=settings.CHECKPOINT_PERSIST_INTERVAL_SECONDS,
        ),
    )
    checkpoints.load()

    stop_event = asyncio.Event()
    _install_signal_handlers(stop_event)
    # The aggregator outlives the consumers feeding it; see core.pipeline.
    aggregator_stop = asyncio.Event()

    client = build_client(test_mode)
    await client.start(bot_token=bot_token(test_mode))
    me = await client.get_me()
    logger.info("Telegram bot account %s", getattr(me, "username", None))

    sender = TelegramSender(client)
    delivery = DeliveryService(
        sender,
        registry,
        DeliveryConfig(
            max_chars=settings.DELIVERY_MAX_CHARS,
            sanity_interval_seconds=settings.DELIVERY_SANITY_INTERVAL_HOURS * 3600,
        ),
    )
    aggregator = BulkAggregator(
        delivery.deliver,
        aggregator_stop,
        AggregatorConfig(
            tick_seconds=settings.AGGREGATOR_TICK_MS / 1000,
            debounce_seconds=settings.AGGREGATOR_DEBOUNCE_MS / 1000,
            max_fragments=settings.AGGREGATOR_MAX_FRAGMENTS,
            queue_size=settings.AGGREGATOR_QUEUE_SIZE,
            drain_timeout_seconds=settings.AGGREGATOR_DRAIN_TIMEOUT_SECONDS,
        ),
    )
    horizon = HorizonSource(settings.HORIZON_URL)
    translator = EventTranslator(
        registry,
        checkpoints,
        TranslatorConfig(native_code=settings.NATIVE_CODE, spam_threshold=settings.SPAM_THRESHOLD),
    )
    commands = CommandHandler(
        registry=registry,
        delivery=delivery,
        photos=sender,
        wallets=horizon,
        donation_account=settings.DONATION_ACCOUNT,
        chat_link=settings.CHAT_LINK,
        native_code=settings.NATIVE_CODE,
    )

    # Single handler keeps Telethon integration minimal and defers all command
    # handling to the command adapter.
    @client.on(events.NewMessage(incoming=True))
    async def handler(event) -> None:
        try:
            await commands.handle(event.chat_id, event.raw_text or "")
        except Exception:
            logger.exception("Error while processing message")

    consumer_config = ConsumerConfig(
        short_run_seconds=settings.CONSUMER_SHORT_RUN_SECONDS,
        max_failures=settings.CONSUMER_MAX_FAILURES,
        cooldown_seconds=settings.CONSUMER_COOLDOWN_SECONDS,
    )
    consumers = [
        StreamConsumer(
            stream_name=stream_name,
            source=horizon,
            checkpoints=checkpoints,
            translator=translator,
            sink=aggregator.submit,
            stop_event=stop_event,
            config=consumer_config,
        )
        for stream_name in settings.STREAMS
    ]

    logger.info("Bot running on %s. Listening for ledger events...", settings.HORIZON_URL)
    try:
        await run_pipeline(
            consumers,
            aggregator,
            aggregator_stop,
            stop_event,
            extra=[("checkpoints", checkpoints.run(stop_event))],
        )
    finally:
        if checkpoints.persist():
            logger.info("Checkpoint saved")
        await horizon.close()
        await client.disconnect()
        logger.info("Stellarium stopped")


def _run(test_mode: bool) -> None:
    _print_banner()
    _configure_logging()
    logger = logging.getLogger(__name__)

    logger.info("Stellarium bot version: %s", VERSION)
    if test_mode:
        logger.info("Running in test mode")

    asyncio.run(_serve(test_mode))


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="stellarium")
    subparsers = parser.add_subparsers(dest="command")

    run_parser = subparsers.add_parser("run", help="Start the bot")
    run_parser.add_argument("--test", dest="run_test", action="store_true", help="Use the test bot token and database")
    parser.add_argument("--test", action="store_true", help=argparse.SUPPRESS)

    args = parser.parse_args(argv)
    _run(test_mode=args.test or getattr(args, "run_test", False))


if __name__ == "__main__":
    main()
