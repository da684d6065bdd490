"""
REST / HTTP API server for the NockGate gateway.

Built on ``aiohttp``; started by the gateway node inside its event loop.

Endpoints
---------
GET  /                                  Self-description
GET  /health                            Liveness + configuration summary
POST /send                              Execute any signed command
POST /sign                              Sign a command with the gateway key (dev only)
POST /verify                            {valid, authorized} for a signed command
POST /swap/initiate                     Start a tracked swap (signed ``swap`` envelope)
GET  /swap/status/{swap_id}             Current swap state (advances lazily)
GET  /swap/pending                      Non-terminal swaps
POST /wallet/list-notes                 Signed list-notes[-by-pubkey], parsed
GET  /blockchain/tip                    Ledger pass-throughs …
GET  /blockchain/height
GET  /blockchain/transactions/latest?limit=N
GET  /blockchain/block?height=N | ?hash=H
GET  /blockchain/transaction?id=ID

Security
--------
- Every state-changing call is authorized by an Ed25519-signed envelope,
  not by transport credentials.
- Per-IP token-bucket rate limiter (configurable RPM).
- CORS middleware (explicit origins only).
- Request body size cap (``max_body_bytes``, default 1 MiB).
- Error bodies carry ``error`` and ``code`` only; no internals.

Usage:
    api = APIServer(node, host="127.0.0.1", port=3000)
    await api.start()
    ...
    await api.stop()
"""

from __future__ import annotations

import json
import logging
import time
from collections import defaultdict
from typing import TYPE_CHECKING, Any

from aiohttp import web

from nockgate_core.actions import SUPPORTED_ACTIONS
from nockgate_core.envelope import CommandRequest
from nockgate_core.errors import GatewayError, ValidationError
from nockgate_core.notes import parse_notes_output, total_assets

if TYPE_CHECKING:
    from nockgate_core.config import APIConfig

logger = logging.getLogger("nockgate_api")

MAX_LATEST_TX = 100


# ═══════════════════════════════════════════════════════════════════
#  Input helpers
# ═══════════════════════════════════════════════════════════════════

def _json_dumps(obj: Any) -> str:
    """JSON serialiser that handles non-standard types."""
    return json.dumps(obj, default=str)


def _ok(payload: dict, status: int = 200) -> web.Response:
    return web.json_response({"success": True, **payload}, status=status, dumps=_json_dumps)


def _fail(error: str, code: str, status: int) -> web.Response:
    return web.json_response({"success": False, "error": error, "code": code}, status=status)


async def _read_json(request: web.Request) -> dict:
    try:
        body = await request.json()
    except (ValueError, UnicodeDecodeError) as exc:
        raise ValidationError("Invalid JSON body", code="invalid_body") from exc
    if not isinstance(body, dict):
        raise ValidationError("JSON body must be an object", code="invalid_body")
    return body


def _query_int(request: web.Request, name: str, default: int | None = None) -> int | None:
    raw = request.query.get(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer") from None


# ═══════════════════════════════════════════════════════════════════
#  Rate Limiter (per-IP token bucket)
# ═══════════════════════════════════════════════════════════════════

class _TokenBucket:
    """Simple per-IP token-bucket rate limiter."""

    __slots__ = ("_buckets", "_rpm")

    def __init__(self, rpm: int):
        self._rpm = rpm  # 0 = unlimited
        # ip -> (tokens, last_refill_timestamp)
        self._buckets: dict[str, list[float]] = defaultdict(lambda: [float(rpm), time.monotonic()])

    def allow(self, ip: str) -> bool:
        if self._rpm <= 0:
            return True
        bucket = self._buckets[ip]
        now = time.monotonic()
        elapsed = now - bucket[1]
        bucket[0] = min(float(self._rpm), bucket[0] + elapsed * (self._rpm / 60.0))
        bucket[1] = now
        if bucket[0] >= 1.0:
            bucket[0] -= 1.0
            return True
        return False


# ═══════════════════════════════════════════════════════════════════
#  Middleware factories
# ═══════════════════════════════════════════════════════════════════

@web.middleware
async def error_middleware(request: web.Request, handler):
    """Turn gateway errors and unknown routes into JSON error bodies."""
    try:
        return await handler(request)
    except GatewayError as exc:
        return _fail(exc.message, exc.code, exc.http_status)
    except web.HTTPNotFound:
        return _fail("Endpoint not found", "not_found", 404)
    except web.HTTPException:
        raise
    except Exception:
        logger.exception(f"Unhandled error on {request.method} {request.path}")
        return _fail("Internal server error", "internal_error", 500)


def _make_rate_limit_middleware(bucket: _TokenBucket):
    """aiohttp middleware that enforces per-IP rate limits."""

    @web.middleware
    async def rate_limit_middleware(request: web.Request, handler):
        ip = request.remote or "unknown"
        if not bucket.allow(ip):
            raise web.HTTPTooManyRequests(
                text="Rate limit exceeded. Try again later.",
                headers={"Retry-After": "5"},
            )
        return await handler(request)

    return rate_limit_middleware


def _make_cors_middleware(origins: list[str]):
    """aiohttp middleware that adds CORS headers.

    The ``*`` wildcard is **not** supported; operators must list concrete
    origins.
    """

    allowed = set(origins) if origins else set()
    allowed.discard("*")

    @web.middleware
    async def cors_middleware(request: web.Request, handler):
        origin = request.headers.get("Origin", "")
        if request.method == "OPTIONS":
            resp = web.Response(status=204)
        else:
            resp = await handler(request)

        if origin in allowed:
            resp.headers["Access-Control-Allow-Origin"] = origin
            resp.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
            resp.headers["Access-Control-Allow-Headers"] = "Content-Type"
            resp.headers["Access-Control-Max-Age"] = "3600"
        return resp

    return cors_middleware


def build_middlewares(cfg: APIConfig | None) -> list:
    middlewares: list = [error_middleware]
    if cfg is None:
        return middlewares
    if cfg.rate_limit_rpm > 0:
        middlewares.append(_make_rate_limit_middleware(_TokenBucket(cfg.rate_limit_rpm)))
    if cfg.cors_origins:
        middlewares.append(_make_cors_middleware(cfg.cors_origins))
    return middlewares


class APIServer:
    """Thin aiohttp wrapper around a running GatewayNode."""

    def __init__(
        self,
        node: Any,
        host: str = "127.0.0.1",
        port: int = 3000,
        *,
        api_config: APIConfig | None = None,
    ):
        self.node = node
        self.host = host
        self.port = port
        self._api_config = api_config
        self._app: web.Application | None = None
        self._runner: web.AppRunner | None = None

    # ── lifecycle ────────────────────────────────────────────────

    def build_app(self) -> web.Application:
        max_body = self._api_config.max_body_bytes if self._api_config else 1_048_576
        app = web.Application(
            middlewares=build_middlewares(self._api_config),
            client_max_size=max_body,
        )
        self._register_routes(app)
        self._app = app
        return app

    async def start(self) -> None:
        self._runner = web.AppRunner(self.build_app())
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        logger.info(f"API listening on http://{self.host}:{self.port}")

    async def stop(self) -> None:
        if self._runner:
            await self._runner.cleanup()

    @property
    def sign_enabled(self) -> bool:
        return bool(self._api_config and self._api_config.enable_sign_endpoint)

    # ── routes ───────────────────────────────────────────────────

    def _register_routes(self, app: web.Application) -> None:
        app.router.add_get("/", self._index)
        app.router.add_get("/health", self._health)
        app.router.add_post("/send", self._send)
        app.router.add_post("/sign", self._sign)
        app.router.add_post("/verify", self._verify)
        # Swaps
        app.router.add_post("/swap/initiate", self._swap_initiate)
        app.router.add_get("/swap/status/{swap_id}", self._swap_status)
        app.router.add_get("/swap/pending", self._swap_pending)
        # Wallet reads
        app.router.add_post("/wallet/list-notes", self._list_notes)
        # Ledger pass-throughs
        app.router.add_get("/blockchain/tip", self._chain_tip)
        app.router.add_get("/blockchain/height", self._chain_height)
        app.router.add_get("/blockchain/transactions/latest", self._chain_latest)
        app.router.add_get("/blockchain/block", self._chain_block)
        app.router.add_get("/blockchain/transaction", self._chain_transaction)

    # ── handlers ─────────────────────────────────────────────────

    async def _index(self, _request: web.Request) -> web.Response:
        return web.json_response({
            "name": "NockGate Signed Command API",
            "version": self.node.version,
            "endpoints": {
                "POST /send": "Send any signed command (main endpoint)",
                "POST /sign": "Create signed command (development)",
                "POST /verify": "Verify signature",
                "POST /swap/initiate": "Start a tracked swap",
                "GET /swap/status/{swap_id}": "Swap status",
                "GET /swap/pending": "Swaps not yet settled",
                "POST /wallet/list-notes": "Signed note listing",
                "GET /blockchain/*": "Blockchain queries (read-only)",
            },
            "supportedActions": list(SUPPORTED_ACTIONS),
            "commandFormat": {
                "action": "simple-spend",
                "params": {
                    "gifts": [100, 200],
                    "recipients": [
                        {"count": 1, "address": "address1"},
                        {"count": 2, "address": "address2"},
                    ],
                    "names": [["first1", "last1"], ["first2", "last2"]],
                    "fee": 10,
                },
                "timestamp": "unix_timestamp",
                "nonce": "random_string",
            },
            "note": "All commands must be signed with Ed25519 over the canonical "
                    "(sorted-key, compact) JSON encoding of the envelope",
        })

    async def _health(self, _request: web.Request) -> web.Response:
        return web.json_response(self.node.status(), dumps=_json_dumps)

    async def _send(self, request: web.Request) -> web.Response:
        """
        POST /send
        Body: {"msg": "<canonical envelope>", "sig": "<b58>", "publicKey": "<b58>"}
        """
        body = await _read_json(request)
        result = await self.node.service.submit_command(CommandRequest.from_dict(body))
        return web.json_response(result.to_dict(), status=result.http_status, dumps=_json_dumps)

    async def _sign(self, request: web.Request) -> web.Response:
        """
        POST /sign
        Body: {"action": "list-notes", "params": {}}
        """
        if not self.sign_enabled:
            return _fail("Signing endpoint disabled", "signing_disabled", 403)
        body = await _read_json(request)
        if not body.get("action"):
            raise ValidationError("Missing required field: action")
        signed = self.node.service.create_signed_command(body["action"], body.get("params"))
        return _ok({"signedCommand": signed.to_dict()})

    async def _verify(self, request: web.Request) -> web.Response:
        body = await _read_json(request)
        result = self.node.service.verify_signature(CommandRequest.from_dict(body))
        return _ok(result)

    # ── swaps ────────────────────────────────────────────────────

    async def _swap_initiate(self, request: web.Request) -> web.Response:
        """
        POST /swap/initiate
        Body: {"swap_id", "recipient", "amount", "fee", "msg", "sig", "publicKey"}

        ``msg`` must be a signed ``swap`` envelope whose params repeat
        swap_id, recipient, amount and fee.
        """
        body = await _read_json(request)
        missing = [k for k in ("swap_id", "recipient", "amount", "msg", "sig", "publicKey")
                   if not body.get(k)]
        if missing:
            raise ValidationError(
                "Missing required fields: swap_id, recipient, amount, msg, sig, publicKey",
                code="missing_fields",
            )
        swap = await self.node.swaps.initiate_swap(
            body["swap_id"],
            body["recipient"],
            body["amount"],
            body.get("fee", 10),
            CommandRequest.from_dict(body),
        )
        return _ok({
            "swap_id": swap.swap_id,
            "status": swap.status.value,
            "initial_block_height": swap.initial_block_height,
            "created_at": swap.created_at,
        })

    async def _swap_status(self, request: web.Request) -> web.Response:
        swap = await self.node.swaps.get_swap_status(request.match_info["swap_id"])
        return _ok(swap.to_dict())

    async def _swap_pending(self, _request: web.Request) -> web.Response:
        swaps = [
            {
                "swap_id": s.swap_id,
                "status": s.status.value,
                "recipient": s.recipient,
                "amount": s.amount,
                "created_at": s.created_at,
                "updated_at": s.updated_at,
                "initial_block_height": s.initial_block_height,
            }
            for s in self.node.swaps.pending_swaps()
        ]
        return _ok({"count": len(swaps), "swaps": swaps})

    # ── wallet ───────────────────────────────────────────────────

    async def _list_notes(self, request: web.Request) -> web.Response:
        """
        POST /wallet/list-notes
        Body: signed ``list-notes`` or ``list-notes-by-pubkey`` envelope.
        """
        body = await _read_json(request)
        result = await self.node.service.submit_command(
            CommandRequest.from_dict(body),
            allowed_actions=("list-notes", "list-notes-by-pubkey"),
        )
        if not result.success:
            return web.json_response(result.to_dict(), status=result.http_status)
        notes = parse_notes_output(result.output or "")
        return _ok({
            "notes": [n.to_dict() for n in notes],
            "count": len(notes),
            "total_assets": total_assets(notes),
        })

    # ── ledger pass-throughs ─────────────────────────────────────

    async def _chain_tip(self, _request: web.Request) -> web.Response:
        return _ok({"data": await self.node.ledger.get_tip()})

    async def _chain_height(self, _request: web.Request) -> web.Response:
        return _ok({"data": await self.node.ledger.get_height()})

    async def _chain_latest(self, request: web.Request) -> web.Response:
        limit = _query_int(request, "limit", 10)
        limit = max(1, min(limit or 10, MAX_LATEST_TX))
        return _ok({"data": await self.node.ledger.get_all_transactions(limit, 0)})

    async def _chain_block(self, request: web.Request) -> web.Response:
        height = _query_int(request, "height")
        if height is not None:
            return _ok({"data": await self.node.ledger.get_block_by_height(height)})
        block_hash = request.query.get("hash")
        if block_hash:
            return _ok({"data": await self.node.ledger.get_block_by_hash(block_hash)})
        raise ValidationError("Height or hash required")

    async def _chain_transaction(self, request: web.Request) -> web.Response:
        tx_id = request.query.get("id")
        if not tx_id:
            raise ValidationError("Transaction ID required")
        return _ok({"data": await self.node.ledger.get_transaction_by_id(tx_id)})
