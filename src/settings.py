"""Static configuration for stellarium.

All user-editable settings (Horizon endpoint, storage, stream tuning, bot
texts, logging) live in a single JSON file for quick edits without touching
Python. Secrets stay in the environment.
"""

import json
import os
from decimal import Decimal

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

# Settings are loaded from config.json so operators can point at another
# Horizon or retune the pipeline without editing code.
CONFIG_PATH = os.environ.get("STELLARIUM_CONFIG", os.path.join(PROJECT_ROOT, "config.json"))


def _load_json_config() -> dict:
    """Load config.json with a flat, user-friendly schema."""

    if not os.path.exists(CONFIG_PATH):
        raise FileNotFoundError(f"Config file not found: {CONFIG_PATH}")

    with open(CONFIG_PATH, "r", encoding="utf-8") as handle:
        return json.load(handle)


def _resolve_path(path: str) -> str:
    if os.path.isabs(path):
        return path
    return os.path.join(PROJECT_ROOT, path)


_CONFIG = _load_json_config()

# Expose the raw config for modules that need structured access.
CONFIG = _CONFIG

# Horizon server and the streams consumed from it.
_horizon = _CONFIG.get("horizon", {})
HORIZON_URL = _horizon.get("url", "https://horizon.stellar.org")
STREAMS = list(_horizon.get("streams", ["operations", "trades"]))

# SQLite database holding chats and checkpoints; --test uses its own file.
_storage = _CONFIG.get("storage", {})
DB_PATH = _resolve_path(_storage.get("db_path", "stellarium.db"))
TEST_DB_PATH = _resolve_path(_storage.get("test_db_path", "stellarium-test.db"))

# Checkpoints older than the max age are discarded on startup.
_checkpoints = _CONFIG.get("checkpoints", {})
CHECKPOINT_MAX_AGE_SECONDS = float(_checkpoints.get("max_age_seconds", 300))
CHECKPOINT_PERSIST_INTERVAL_SECONDS = float(_checkpoints.get("persist_interval_seconds", 10))

# Stream restart policy: cool down after too many short-lived connections.
_consumer = _CONFIG.get("consumer", {})
CONSUMER_SHORT_RUN_SECONDS = float(_consumer.get("short_run_seconds", 30))
CONSUMER_MAX_FAILURES = int(_consumer.get("max_failures", 10))
CONSUMER_COOLDOWN_SECONDS = float(_consumer.get("cooldown_seconds", 30))

# Native payments below the threshold are dropped as spam.
_translator = _CONFIG.get("translator", {})
NATIVE_CODE = _translator.get("native_code", "XLM")
SPAM_THRESHOLD = Decimal(str(_translator.get("spam_threshold", "0.001")))

# Per-chat debounce for bursts of notifications.
_aggregator = _CONFIG.get("aggregator", {})
AGGREGATOR_TICK_MS = int(_aggregator.get("tick_ms", 200))
AGGREGATOR_DEBOUNCE_MS = int(_aggregator.get("debounce_ms", 2000))
AGGREGATOR_MAX_FRAGMENTS = int(_aggregator.get("max_fragments", 20))
AGGREGATOR_QUEUE_SIZE = int(_aggregator.get("queue_size", 5000))
AGGREGATOR_DRAIN_TIMEOUT_SECONDS = float(_aggregator.get("drain_timeout_seconds", 5))

# Outbound limits and the group liveness check cadence.
_delivery = _CONFIG.get("delivery", {})
DELIVERY_MAX_CHARS = int(_delivery.get("max_chars", 4000))
DELIVERY_SANITY_INTERVAL_HOURS = float(_delivery.get("sanity_interval_hours", 24))

# Texts shown by bot commands.
_bot = _CONFIG.get("bot", {})
DONATION_ACCOUNT = _bot.get("donation_account", "")
CHAT_LINK = _bot.get("chat_link", "")

# Logging configuration (optional).
LOGGING = _CONFIG.get("logging", {})
