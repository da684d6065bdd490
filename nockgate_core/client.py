"""
Gateway client and ``nockgate-client`` command line.

``GatewayClient`` signs envelopes locally with the caller's Ed25519 seed
and talks to a running gateway over HTTP.  The seed never leaves this
process; only ``{msg, sig, publicKey}`` is sent.

Usage:
    async with GatewayClient(load_signing_key("./my-private-key")) as client:
        print(await client.check_status())
        await client.send_nock(1.5, "<recipient address>", fee=10)

Environment variables:
    NOCKGATE_API_BASE          gateway URL (default http://localhost:3000)
    NOCKGATE_PRIVATE_KEY_PATH  32-byte seed file (default ./my-private-key)
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from typing import Any, Optional

import aiohttp
from nacl.signing import SigningKey

from nockgate_core import envelope as env
from nockgate_core.coin_select import NICKS_PER_NOCK
from nockgate_core.errors import KeyLoadError

DEFAULT_API_BASE = "http://localhost:3000"
DEFAULT_KEY_PATH = "./my-private-key"
DEFAULT_FEE = 10


class GatewayClientError(Exception):
    """The gateway answered with a non-2xx status."""

    def __init__(self, status: int, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.status = status
        self.code = code


class GatewayClient:

    def __init__(
        self,
        signing_key: SigningKey,
        api_base: str = DEFAULT_API_BASE,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 60.0,
    ):
        self.signing_key = signing_key
        self.api_base = api_base.rstrip("/")
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    async def __aenter__(self) -> GatewayClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session

    @property
    def public_key(self) -> str:
        return env.public_key_b58(self.signing_key)

    def sign(self, action: str, params: Optional[dict] = None) -> env.CommandRequest:
        return env.create_signed_command(action, params, self.signing_key)

    # ── transport ────────────────────────────────────────────────

    async def _request(
        self, method: str, path: str, *, body: Optional[dict] = None,
        params: Optional[dict] = None,
    ) -> Any:
        session = self._get_session()
        async with session.request(
            method, f"{self.api_base}{path}", json=body, params=params,
        ) as resp:
            try:
                data = await resp.json(content_type=None)
            except ValueError:
                data = {"error": (await resp.text()) or resp.reason}
            if resp.status >= 400:
                error = data.get("error") if isinstance(data, dict) else None
                code = data.get("code") if isinstance(data, dict) else None
                raise GatewayClientError(resp.status, error or f"HTTP {resp.status}", code)
            return data

    # ── commands ─────────────────────────────────────────────────

    async def send_command(self, action: str, params: Optional[dict] = None) -> dict:
        return await self._request("POST", "/send", body=self.sign(action, params).to_dict())

    async def send_nock(self, amount: float, recipient: str, fee: int = DEFAULT_FEE) -> dict:
        """Amount-based send; the gateway picks the notes."""
        return await self.send_command(
            "send", {"recipient": recipient, "amount": amount, "fee": fee},
        )

    async def list_notes(self, pubkey: Optional[str] = None) -> dict:
        request = (
            self.sign("list-notes-by-pubkey", {"pubkey": pubkey})
            if pubkey else self.sign("list-notes", {})
        )
        return await self._request("POST", "/wallet/list-notes", body=request.to_dict())

    async def get_balance(self, pubkey: Optional[str] = None) -> dict:
        result = await self.list_notes(pubkey)
        assets = int(result.get("total_assets", 0))
        return {"assets": assets, "nock": assets / NICKS_PER_NOCK, "notes": result.get("count", 0)}

    # ── swaps ────────────────────────────────────────────────────

    async def initiate_swap(
        self, swap_id: str, recipient: str, amount: float, fee: int = DEFAULT_FEE,
    ) -> dict:
        swap = {"swap_id": swap_id, "recipient": recipient, "amount": amount, "fee": fee}
        signed = self.sign("swap", swap)
        return await self._request("POST", "/swap/initiate", body={**swap, **signed.to_dict()})

    async def get_swap_status(self, swap_id: str) -> dict:
        return await self._request("GET", f"/swap/status/{swap_id}")

    async def get_pending_swaps(self) -> dict:
        return await self._request("GET", "/swap/pending")

    # ── ledger ───────────────────────────────────────────────────

    async def get_height(self) -> Any:
        return (await self._request("GET", "/blockchain/height")).get("data")

    async def get_transaction(self, tx_id: str) -> Any:
        return (await self._request("GET", "/blockchain/transaction", params={"id": tx_id})).get("data")

    async def get_latest_transactions(self, limit: int = 10) -> Any:
        return (await self._request(
            "GET", "/blockchain/transactions/latest", params={"limit": str(limit)},
        )).get("data")

    # ── status ───────────────────────────────────────────────────

    async def get_api_info(self) -> dict:
        return await self._request("GET", "/")

    async def check_status(self) -> dict:
        """Is the gateway up, and does it accept this key?"""
        try:
            await self._request("GET", "/health")
            result = await self._request("POST", "/verify", body=self.sign("verify", {}).to_dict())
        except (aiohttp.ClientError, asyncio.TimeoutError, GatewayClientError) as exc:
            return {"serverRunning": False, "authenticated": False, "error": str(exc)}

        valid, authorized = bool(result.get("valid")), bool(result.get("authorized"))
        status: dict[str, Any] = {
            "serverRunning": True,
            "authenticated": valid and authorized,
            "publicKey": self.public_key,
        }
        if not valid:
            status["error"] = "Invalid signature"
        elif not authorized:
            status["error"] = "Unauthorized public key"
        return status


# ═══════════════════════════════════════════════════════════════════
#  CLI
# ═══════════════════════════════════════════════════════════════════

def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="nockgate-client", description="NockGate API client")
    p.add_argument("--api", default=os.environ.get("NOCKGATE_API_BASE", DEFAULT_API_BASE),
                   help="Gateway base URL")
    p.add_argument("--key", default=os.environ.get("NOCKGATE_PRIVATE_KEY_PATH", DEFAULT_KEY_PATH),
                   help="Path to the 32-byte Ed25519 seed")
    sub = p.add_subparsers(dest="command", required=True)

    sub.add_parser("status", help="Check server status and authentication")

    s = sub.add_parser("send", help="Send NOCK to a recipient")
    s.add_argument("amount", type=float)
    s.add_argument("recipient")
    s.add_argument("fee", type=int, nargs="?", default=DEFAULT_FEE)

    s = sub.add_parser("notes", help="List wallet notes")
    s.add_argument("pubkey", nargs="?")

    s = sub.add_parser("balance", help="Sum of wallet notes")
    s.add_argument("pubkey", nargs="?")

    s = sub.add_parser("swap-init", help="Initiate a tracked swap")
    s.add_argument("swap_id")
    s.add_argument("recipient")
    s.add_argument("amount", type=float)
    s.add_argument("fee", type=int, nargs="?", default=DEFAULT_FEE)

    s = sub.add_parser("swap-status", help="Check a swap")
    s.add_argument("swap_id")

    sub.add_parser("height", help="Current blockchain height")

    s = sub.add_parser("tx", help="Transaction details")
    s.add_argument("tx_id")

    s = sub.add_parser("latest", help="Latest transactions")
    s.add_argument("limit", type=int, nargs="?", default=10)

    sub.add_parser("info", help="Gateway self-description")
    sub.add_parser("pubkey", help="Show your public key")

    s = sub.add_parser("sign", help="Print a signed command without sending it")
    s.add_argument("action")
    s.add_argument("params", nargs="?", default="{}", help="JSON object")
    return p


def _print(obj: Any) -> None:
    print(json.dumps(obj, indent=2, default=str))


async def run_command(client: GatewayClient, args: argparse.Namespace) -> int:
    cmd = args.command
    if cmd == "status":
        status = await client.check_status()
        print("Server Status:", "running" if status["serverRunning"] else "not running")
        print("Authentication:", "valid" if status["authenticated"] else "invalid")
        if status.get("publicKey"):
            print("Your Public Key:", status["publicKey"])
        if status.get("error"):
            print("Error:", status["error"])
    elif cmd == "send":
        result = await client.send_nock(args.amount, args.recipient, args.fee)
        print(result.get("output", ""))
    elif cmd == "notes":
        _print(await client.list_notes(args.pubkey))
    elif cmd == "balance":
        balance = await client.get_balance(args.pubkey)
        print(f"Balance: {balance['nock']} NOCK ({balance['assets']} assets, "
              f"{balance['notes']} notes)")
    elif cmd == "swap-init":
        _print(await client.initiate_swap(args.swap_id, args.recipient, args.amount, args.fee))
    elif cmd == "swap-status":
        _print(await client.get_swap_status(args.swap_id))
    elif cmd == "height":
        print("Current height:", await client.get_height())
    elif cmd == "tx":
        _print(await client.get_transaction(args.tx_id))
    elif cmd == "latest":
        _print(await client.get_latest_transactions(args.limit))
    elif cmd == "info":
        _print(await client.get_api_info())
    elif cmd == "pubkey":
        print(f"Your public key: {client.public_key}")
    elif cmd == "sign":
        try:
            params = json.loads(args.params)
        except ValueError:
            print("Error: params must be a JSON object", file=sys.stderr)
            return 1
        if not isinstance(params, dict):
            print("Error: params must be a JSON object", file=sys.stderr)
            return 1
        _print(client.sign(args.action, params).to_dict())
    return 0


async def _amain(args: argparse.Namespace) -> int:
    try:
        key = env.load_signing_key(args.key)
    except KeyLoadError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    async with GatewayClient(key, args.api) as client:
        try:
            return await run_command(client, args)
        except GatewayClientError as exc:
            suffix = f" ({exc.code})" if exc.code else ""
            print(f"Error: {exc}{suffix}", file=sys.stderr)
            return 1
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            print(f"Error: cannot reach gateway at {client.api_base}: {exc}", file=sys.stderr)
            return 1


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    return asyncio.run(_amain(args))


if __name__ == "__main__":
    sys.exit(main())
