"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so the app layer can build them safely. Defaults match
the values the bot has always run with.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class CheckpointConfig:
    """Staleness bound for resuming and the periodic persist cadence."""

    max_age_seconds: float = 300.0
    persist_interval_seconds: float = 10.0


@dataclass(frozen=True)
class ConsumerConfig:
    """Restart policy for a stream consumer."""

    short_run_seconds: float = 30.0
    max_failures: int = 10
    cooldown_seconds: float = 30.0


@dataclass(frozen=True)
class TranslatorConfig:
    """Event translation settings."""

    native_code: str = "XLM"
    spam_threshold: Decimal = Decimal("0.001")


@dataclass(frozen=True)
class AggregatorConfig:
    """Debounce and burst settings for bulk delivery."""

    tick_seconds: float = 0.2
    debounce_seconds: float = 2.0
    max_fragments: int = 20
    queue_size: int = 5000
    drain_timeout_seconds: float = 5.0
    overflow_marker: str = "... too many messages"


@dataclass(frozen=True)
class DeliveryConfig:
    """Outbound text limits and liveness check cadence."""

    max_chars: int = 4000
    truncation_marker: str = "\n... truncated"
    sanity_interval_seconds: float = 24 * 60 * 60
