"""Horizon-to-core event mapping adapter.

This keeps Horizon JSON details out of the core pipeline. Records that carry
nothing worth notifying about still map to an IgnoredEvent so their paging
token advances the stream cursor.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from core.errors import MalformedEventError
from core.models import (
    AccountCreated,
    Asset,
    OPERATIONS_STREAM,
    TRADES_STREAM,
    IgnoredEvent,
    LedgerEvent,
    Trade,
    Transfer,
)

LOGGER = logging.getLogger(__name__)

PAYMENT_TYPES = {
    "payment",
    "path_payment_strict_send",
    "path_payment_strict_receive",
}


def _require(record: Mapping[str, Any], key: str) -> Any:
    value = record.get(key)
    if value is None:
        raise MalformedEventError(f"Horizon record is missing {key!r}")
    return value


def _asset(record: Mapping[str, Any], prefix: str = "") -> Asset:
    asset_type = _require(record, f"{prefix}asset_type")
    return Asset(asset_type=asset_type, code=record.get(f"{prefix}asset_code"))


def _text_memo(record: Mapping[str, Any]) -> Optional[str]:
    # Only populated when the stream was joined with transactions.
    transaction = record.get("transaction") or {}
    if transaction.get("memo_type") != "text":
        return None
    memo = transaction.get("memo")
    return memo or None


def map_operation(record: Mapping[str, Any]) -> LedgerEvent:
    """Map one record of the operations stream."""

    cursor = _require(record, "paging_token")
    if not record.get("transaction_successful", True):
        return IgnoredEvent(cursor=cursor, reason="failed transaction")

    op_type = record.get("type")
    if op_type in PAYMENT_TYPES:
        return Transfer(
            cursor=cursor,
            source=_require(record, "from"),
            destination=_require(record, "to"),
            amount=_require(record, "amount"),
            asset=_asset(record),
            memo=_text_memo(record),
        )
    if op_type == "create_account":
        return AccountCreated(
            cursor=cursor,
            funder=_require(record, "funder"),
            account=_require(record, "account"),
            starting_balance=_require(record, "starting_balance"),
            memo=_text_memo(record),
        )
    return IgnoredEvent(cursor=cursor, reason=f"operation type {op_type}")


def map_trade(record: Mapping[str, Any]) -> LedgerEvent:
    """Map one record of the trades stream."""

    cursor = _require(record, "paging_token")
    base_account = record.get("base_account")
    counter_account = record.get("counter_account")
    # Liquidity pool trades have no account on one side.
    if not base_account or not counter_account:
        return IgnoredEvent(cursor=cursor, reason="liquidity pool trade")
    return Trade(
        cursor=cursor,
        base_account=base_account,
        base_amount=_require(record, "base_amount"),
        base_asset=_asset(record, "base_"),
        counter_account=counter_account,
        counter_amount=_require(record, "counter_amount"),
        counter_asset=_asset(record, "counter_"),
    )


def map_record(stream_name: str, record: Mapping[str, Any]) -> LedgerEvent:
    """Dispatch a raw record to the mapper for its stream.

    A record whose non-cursor fields are broken maps to an IgnoredEvent so
    the stream position still moves; a record without a paging token cannot
    be placed in the stream and raises MalformedEventError.
    """

    if stream_name == TRADES_STREAM:
        mapper = map_trade
    elif stream_name == OPERATIONS_STREAM:
        mapper = map_operation
    else:
        raise ValueError(f"Unsupported stream: {stream_name}")

    try:
        return mapper(record)
    except MalformedEventError as exc:
        cursor = record.get("paging_token")
        if not cursor:
            raise
        LOGGER.warning("Malformed %s record %s: %s", stream_name, cursor, exc)
        return IgnoredEvent(cursor=cursor, reason=str(exc))
