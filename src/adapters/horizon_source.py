"""Horizon ledger source adapter.

Streams operations and trades from a Horizon server through stellar-sdk's
async client and maps each record into a core event.
"""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator

from stellar_sdk import ServerAsync
from stellar_sdk.client.aiohttp_client import AiohttpClient
from stellar_sdk.exceptions import BaseRequestError

from adapters.horizon_mapper import map_record
from core.errors import WalletLookupError
from core.models import OPERATIONS_STREAM, TRADES_STREAM, LedgerEvent

LOGGER = logging.getLogger(__name__)


class HorizonSource:
    """LedgerSourcePort backed by a Horizon server."""

    def __init__(self, horizon_url: str) -> None:
        self._horizon_url = horizon_url
        self._server = ServerAsync(horizon_url=horizon_url, client=AiohttpClient())

    def _call_builder(self, stream_name: str, cursor: str):
        if stream_name == OPERATIONS_STREAM:
            # Joining transactions makes memos available on each operation.
            return self._server.operations().cursor(cursor).join("transactions")
        if stream_name == TRADES_STREAM:
            return self._server.trades().cursor(cursor)
        raise ValueError(f"Unsupported stream: {stream_name}")

    async def stream(self, stream_name: str, cursor: str) -> AsyncIterator[LedgerEvent]:
        """Yield events for `stream_name` starting after `cursor`."""

        LOGGER.debug("Opening %s stream on %s", stream_name, self._horizon_url)
        async for record in self._call_builder(stream_name, cursor).stream():
            yield map_record(stream_name, record)

    async def balances(self, address: str) -> list[dict[str, Any]]:
        """Return the raw balance entries of `address`."""

        try:
            account = await self._server.accounts().account_id(address).call()
        except BaseRequestError as exc:
            raise WalletLookupError(f"Error obtaining wallet info for {address}: {exc}") from exc
        return list(account.get("balances", []))

    async def close(self) -> None:
        await self._server.close()
