"""
Tests for nockgate_core.ledger_rpc against a local aiohttp JSON-RPC server.
"""

from __future__ import annotations

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from nockgate_core.errors import ExecutionError
from nockgate_core.ledger_rpc import LedgerRPC, LedgerRPCError, MaintenanceError


def _rpc_app(responses: dict, seen: list) -> web.Application:
    async def handler(request: web.Request) -> web.Response:
        body = await request.json()
        seen.append(body)
        reply = responses.get(body["method"])
        if isinstance(reply, web.Response):
            return reply
        if isinstance(reply, dict) and "error" in reply:
            return web.json_response({"jsonrpc": "2.0", "id": body["id"], **reply})
        return web.json_response({"jsonrpc": "2.0", "id": body["id"], "result": reply})

    app = web.Application()
    app.router.add_post("/rpc", handler)
    return app


class TestLedgerRPC:
    @pytest.mark.asyncio
    async def test_request_shape(self):
        seen: list = []
        async with TestServer(_rpc_app({"getBlockByHeight": {"height": 7}}, seen)) as server:
            rpc = LedgerRPC(str(server.make_url("/rpc")))
            try:
                assert await rpc.get_block_by_height(7) == {"height": 7}
            finally:
                await rpc.close()
        [body] = seen
        assert body["jsonrpc"] == "2.0"
        assert body["method"] == "getBlockByHeight"
        assert body["params"] == [{"height": 7}]
        assert isinstance(body["id"], str) and body["id"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("reply,expected", [
        (1234, 1234),
        ({"height": 55}, 55),
        ("77", 77),
    ])
    async def test_current_height_shapes(self, reply, expected):
        async with TestServer(_rpc_app({"getHeight": reply}, [])) as server:
            rpc = LedgerRPC(str(server.make_url("/rpc")))
            try:
                assert await rpc.current_height() == expected
            finally:
                await rpc.close()

    @pytest.mark.asyncio
    async def test_current_height_missing(self):
        async with TestServer(_rpc_app({"getHeight": {"tip": 1}}, [])) as server:
            rpc = LedgerRPC(str(server.make_url("/rpc")))
            try:
                with pytest.raises(LedgerRPCError):
                    await rpc.current_height()
            finally:
                await rpc.close()

    @pytest.mark.asyncio
    async def test_transactions_by_block_height_always_list(self):
        responses = {"getTransactionsByBlockHeight": None}
        async with TestServer(_rpc_app(responses, [])) as server:
            rpc = LedgerRPC(str(server.make_url("/rpc")))
            try:
                assert await rpc.get_transactions_by_block_height(3) == []
            finally:
                await rpc.close()

    @pytest.mark.asyncio
    async def test_rpc_error(self):
        responses = {"getTip": {"error": {"code": -32601, "message": "Method not found"}}}
        async with TestServer(_rpc_app(responses, [])) as server:
            rpc = LedgerRPC(str(server.make_url("/rpc")))
            try:
                with pytest.raises(LedgerRPCError) as exc:
                    await rpc.get_tip()
            finally:
                await rpc.close()
        assert exc.value.rpc_code == -32601
        assert exc.value.http_status == 502

    @pytest.mark.asyncio
    async def test_maintenance(self):
        responses = {"getHeight": {"error": {"code": -32000, "message": "Busy. Try again later"}}}
        async with TestServer(_rpc_app(responses, [])) as server:
            rpc = LedgerRPC(str(server.make_url("/rpc")))
            try:
                with pytest.raises(MaintenanceError) as exc:
                    await rpc.get_height()
            finally:
                await rpc.close()
        assert exc.value.http_status == 503
        assert exc.value.code == "ledger_maintenance"

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        responses = {"getTip": web.Response(status=500, text="oops")}
        async with TestServer(_rpc_app(responses, [])) as server:
            rpc = LedgerRPC(str(server.make_url("/rpc")))
            try:
                with pytest.raises(LedgerRPCError):
                    await rpc.get_tip()
            finally:
                await rpc.close()

    @pytest.mark.asyncio
    async def test_unreachable(self):
        rpc = LedgerRPC("http://127.0.0.1:9/rpc", timeout=2)
        try:
            with pytest.raises(ExecutionError, match="unavailable"):
                await rpc.get_tip()
        finally:
            await rpc.close()

    @pytest.mark.asyncio
    async def test_network_queries(self):
        seen: list = []
        responses = {
            "isMainnet": True,
            "getMiningPubkeys": ["pk1", "pk2"],
            "getNetworkHealthSummary": {"ok": True},
        }
        async with TestServer(_rpc_app(responses, seen)) as server:
            rpc = LedgerRPC(str(server.make_url("/rpc")))
            try:
                assert await rpc.is_mainnet() is True
                assert await rpc.get_mining_pubkeys() == ["pk1", "pk2"]
                assert await rpc.get_network_health_summary() == {"ok": True}
                assert await rpc.get_network_health_summary(9) == {"ok": True}
            finally:
                await rpc.close()
        assert [b["params"] for b in seen[2:]] == [[], [{"height": 9}]]
