"""
Read-only JSON-RPC client for the public ledger explorer.

Only used for queries: chain tip and height, blocks, transactions.  The
swap monitor consumes it to watch for settlement; the API exposes the
same calls as pass-throughs.

Usage:
    rpc = LedgerRPC("https://nockblocks.com/rpc")
    height = await rpc.current_height()
    await rpc.close()
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from typing import Any, Optional

import aiohttp

from nockgate_core.errors import ExecutionError

logger = logging.getLogger("nockgate_ledger_rpc")

DEFAULT_RPC_URL = "https://nockblocks.com/rpc"


class LedgerRPCError(ExecutionError):
    code = "ledger_rpc_error"

    def __init__(self, rpc_code: int, message: str):
        super().__init__(f"Ledger RPC error {rpc_code}: {message}")
        self.rpc_code = rpc_code


class MaintenanceError(LedgerRPCError):
    """The explorer answered "try again" — transient, retry later."""
    code = "ledger_maintenance"
    http_status = 503


class LedgerRPC:

    def __init__(
        self,
        url: str = DEFAULT_RPC_URL,
        timeout: float = 30.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.url = url
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()

    async def call(self, method: str, params: Optional[list] = None) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params or [],
            "id": f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}",
        }
        session = await self._get_session()
        try:
            async with session.post(
                self.url,
                json=payload,
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            ) as resp:
                if resp.status >= 400:
                    raise LedgerRPCError(resp.status, resp.reason or "HTTP error")
                data = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            logger.error(f"RPC {method} failed: {exc!r}")
            raise ExecutionError(f"Ledger RPC unavailable ({method})") from exc

        if not isinstance(data, dict):
            raise LedgerRPCError(-32700, "malformed response")
        error = data.get("error")
        if error:
            code = error.get("code", -1) if isinstance(error, dict) else -1
            message = str(error.get("message", "")) if isinstance(error, dict) else str(error)
            if code == -32000 and "Try again" in message:
                raise MaintenanceError(code, message)
            raise LedgerRPCError(code, message)
        return data.get("result")

    # ── queries ──────────────────────────────────────────────────

    async def get_tip(self) -> Any:
        return await self.call("getTip")

    async def get_height(self) -> Any:
        return await self.call("getHeight")

    async def current_height(self) -> int:
        """Height as an int, whichever shape the explorer returns."""
        data = await self.get_height()
        if isinstance(data, dict):
            data = data.get("height")
        if isinstance(data, bool) or not isinstance(data, (int, float, str)):
            raise LedgerRPCError(-32700, "height missing from response")
        try:
            return int(data)
        except ValueError as exc:
            raise LedgerRPCError(-32700, "height is not a number") from exc

    async def get_block_by_height(self, height: int) -> Any:
        return await self.call("getBlockByHeight", [{"height": height}])

    async def get_block_by_hash(self, block_hash: str) -> Any:
        return await self.call("getBlockByHash", [{"hash": block_hash}])

    async def get_transaction_by_id(self, tx_id: str) -> Any:
        return await self.call("getTransactionById", [{"id": tx_id}])

    async def get_all_transactions(self, limit: int = 100, offset: int = 0) -> Any:
        return await self.call("getAllTransactions", [{"limit": limit, "offset": offset}])

    async def get_transactions_by_block_height(self, height: int) -> list:
        result = await self.call("getTransactionsByBlockHeight", [{"height": height}])
        return result if isinstance(result, list) else []

    async def is_mainnet(self) -> Any:
        return await self.call("isMainnet")

    async def get_mining_pubkeys(self) -> Any:
        return await self.call("getMiningPubkeys")

    async def get_network_health_summary(self, height: Optional[int] = None) -> Any:
        return await self.call(
            "getNetworkHealthSummary", [{"height": height}] if height else [],
        )
