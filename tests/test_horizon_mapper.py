from __future__ import annotations

import pytest

from adapters.horizon_mapper import map_operation, map_record, map_trade
from core.errors import MalformedEventError
from core.models import AccountCreated, Asset, IgnoredEvent, Trade, Transfer


def _payment(**overrides) -> dict:
    record = {
        "paging_token": "100-1",
        "type": "payment",
        "transaction_successful": True,
        "from": "GSRC",
        "to": "GDST",
        "amount": "12.0000000",
        "asset_type": "credit_alphanum4",
        "asset_code": "USD",
        "transaction": {"memo_type": "text", "memo": "invoice 7"},
    }
    record.update(overrides)
    return record


def test_payment_maps_to_transfer_with_memo() -> None:
    event = map_operation(_payment())

    assert event == Transfer(
        cursor="100-1",
        source="GSRC",
        destination="GDST",
        amount="12.0000000",
        asset=Asset(asset_type="credit_alphanum4", code="USD"),
        memo="invoice 7",
    )


def test_non_text_memo_is_dropped() -> None:
    event = map_operation(_payment(transaction={"memo_type": "hash", "memo": "abcd"}))
    assert event.memo is None


def test_native_payment_has_no_code() -> None:
    record = _payment(asset_type="native")
    del record["asset_code"]

    event = map_operation(record)

    assert event.asset.is_native
    assert event.asset.code is None


def test_path_payment_is_a_transfer() -> None:
    event = map_operation(_payment(type="path_payment_strict_send"))
    assert isinstance(event, Transfer)


def test_failed_transaction_is_ignored() -> None:
    event = map_operation(_payment(transaction_successful=False))
    assert event == IgnoredEvent(cursor="100-1", reason="failed transaction")


def test_create_account_maps_to_account_created() -> None:
    event = map_operation(
        {
            "paging_token": "200-1",
            "type": "create_account",
            "transaction_successful": True,
            "funder": "GFUND",
            "account": "GNEW",
            "starting_balance": "2.0000000",
        }
    )
    assert event == AccountCreated(
        cursor="200-1", funder="GFUND", account="GNEW", starting_balance="2.0000000"
    )


def test_other_operations_only_carry_cursor() -> None:
    event = map_operation({"paging_token": "300-1", "type": "manage_data", "transaction_successful": True})
    assert isinstance(event, IgnoredEvent)
    assert event.cursor == "300-1"


def test_trade_maps_both_assets() -> None:
    event = map_trade(
        {
            "paging_token": "400-0",
            "base_account": "GBASE",
            "base_amount": "10.0000000",
            "base_asset_type": "native",
            "counter_account": "GCOUNTER",
            "counter_amount": "5.0000000",
            "counter_asset_type": "credit_alphanum4",
            "counter_asset_code": "USD",
        }
    )
    assert isinstance(event, Trade)
    assert event.base_asset.is_native
    assert event.counter_asset == Asset(asset_type="credit_alphanum4", code="USD")


def test_pool_trade_is_ignored() -> None:
    event = map_trade({"paging_token": "500-0", "base_liquidity_pool_id": "abc"})
    assert isinstance(event, IgnoredEvent)


def test_broken_record_keeps_cursor() -> None:
    record = _payment()
    del record["amount"]

    event = map_record("operations", record)

    assert isinstance(event, IgnoredEvent)
    assert event.cursor == "100-1"


def test_record_without_cursor_is_malformed() -> None:
    with pytest.raises(MalformedEventError):
        map_record("operations", {"type": "payment"})


def test_unknown_stream_is_rejected() -> None:
    with pytest.raises(ValueError):
        map_record("effects", _payment())
