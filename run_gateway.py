#!/usr/bin/env python3
"""
NockGate Gateway Runner — starts the signed-command gateway with:
  - Ed25519 envelope authentication and key allow-list
  - Wallet subprocess executor bound to one nockchain socket
  - Swap tracking with periodic sweep of settled swaps
  - HTTP API (aiohttp)

Usage:
    python run_gateway.py --config nockgate.toml
    python run_gateway.py --socket ./test-leader/nockchain.sock --port 3000
    python run_gateway.py --generate-key ./gateway-key

Environment variables (alternative to flags):
    NOCKGATE_WALLET_SOCKET, NOCKGATE_SIGNING_KEY, NOCKGATE_AUTHORIZED_KEYS,
    NOCKGATE_HOST, NOCKGATE_PORT, NOCKGATE_LOG_LEVEL (see nockgate_core.config)
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import os
import sys
import time

# ---------------------------------------------------------------------------
# Ensure the project root is in sys.path so imports work before pip install
# ---------------------------------------------------------------------------
PROJECT_ROOT = os.path.dirname(os.path.abspath(__file__))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from nockgate_core import __version__  # noqa: E402
from nockgate_core.api import APIServer  # noqa: E402
from nockgate_core.auth import CommandAuthenticator  # noqa: E402
from nockgate_core.commands import CommandBuilder  # noqa: E402
from nockgate_core.config import GatewayConfig, load_config  # noqa: E402
from nockgate_core.envelope import generate_seed_file, load_signing_key, public_key_b58  # noqa: E402
from nockgate_core.errors import ConfigError, KeyLoadError  # noqa: E402
from nockgate_core.executor import WalletExecutor  # noqa: E402
from nockgate_core.ledger_rpc import LedgerRPC  # noqa: E402
from nockgate_core.logging_config import setup_logging  # noqa: E402
from nockgate_core.service import CommandService  # noqa: E402
from nockgate_core.swap import SwapMonitor, SwapStore  # noqa: E402
from nockgate_core.wallet import WalletGateway  # noqa: E402

logger = logging.getLogger("nockgate_gateway")


# ===================================================================
#  Gateway node
# ===================================================================

class GatewayNode:
    """
    Wires authenticator, wallet executor, swap tracking and the HTTP API
    into a single runnable process.
    """

    def __init__(self, config: GatewayConfig | None = None):
        self.config = config or GatewayConfig()
        self.version = __version__
        self.started_at = time.time()
        cfg = self.config

        self.signing_key = None
        self.authenticator = CommandAuthenticator(
            authorized_keys=cfg.auth.authorized_keys,
            freshness_window=cfg.auth.freshness_window_minutes * 60,
        )
        self.builder = CommandBuilder(cfg.wallet.binary, cfg.wallet.socket_path)
        self.executor = WalletExecutor(
            self.builder,
            drafts_dir=cfg.wallet.drafts_dir,
            timeout=cfg.wallet.command_timeout,
            max_output=cfg.wallet.max_output_bytes,
        )
        self.wallet = WalletGateway(self.executor)
        self.service = CommandService(self.authenticator, self.wallet)
        self.ledger = LedgerRPC(cfg.ledger.rpc_url, timeout=cfg.ledger.rpc_timeout)

        self.store = SwapStore(
            retention_seconds=cfg.swap.retention_hours * 3600,
            sweep_interval=cfg.swap.sweep_interval_seconds,
        )
        self.swaps = SwapMonitor(
            self.store,
            self.authenticator,
            self.wallet,
            self.ledger,
            confirmation_blocks=cfg.swap.confirmation_blocks,
        )
        self._api: APIServer | None = None

    # ---- lifecycle ----

    def load_keys(self) -> None:
        """Load the gateway signing key; raises KeyLoadError if configured but unreadable."""
        path = self.config.auth.signing_key_path
        if not path:
            logger.info("No gateway signing key configured (/sign disabled)")
            return
        self.signing_key = load_signing_key(path)
        self.service.signing_key = self.signing_key
        logger.info(f"Gateway signing key loaded: {public_key_b58(self.signing_key)}")

    async def start(self) -> None:
        """Load keys, start the swap sweeper and the API."""
        self.load_keys()
        await self.store.start()
        self._api = APIServer(
            self,
            host=self.config.api.host,
            port=self.config.api.port,
            api_config=self.config.api,
        )
        await self._api.start()
        logger.info(
            f"Gateway started | wallet={self.config.wallet.binary} "
            f"socket={self.config.wallet.socket_path} | "
            f"api=http://{self.config.api.host}:{self.config.api.port}"
        )

    async def stop(self) -> None:
        if self._api is not None:
            await self._api.stop()
        await self.store.stop()
        await self.ledger.close()
        logger.info("Gateway stopped")

    def status(self) -> dict:
        return {
            "status": "ok",
            "version": self.version,
            "timestamp": time.time(),
            "uptime": round(time.time() - self.started_at, 3),
            "walletSocket": self.config.wallet.socket_path,
            "authorizedKeys": len(self.authenticator.authorized_keys),
            "openMode": self.authenticator.open_mode,
            "trackedSwaps": len(self.store),
            "pendingSwaps": len(self.swaps.pending_swaps()),
        }


# ===================================================================
#  Main entry point
# ===================================================================

def parse_args(argv: list[str] | None = None):
    p = argparse.ArgumentParser(description="NockGate signed-command gateway")
    p.add_argument("--config", default=None, help="Path to nockgate.toml config file")
    p.add_argument("--host", default=None, help="API listen host")
    p.add_argument("--port", type=int, default=None, help="API listen port")
    p.add_argument("--socket", default=None, help="nockchain wallet socket path")
    p.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING, ...")
    p.add_argument("--generate-key", metavar="PATH", default=None,
                   help="Write a fresh Ed25519 seed to PATH, print its public key and exit")
    return p.parse_args(argv)


def apply_overrides(cfg: GatewayConfig, args) -> GatewayConfig:
    """CLI flags override file and environment values."""
    if args.host:
        cfg.api.host = args.host
    if args.port:
        cfg.api.port = args.port
    if args.socket:
        cfg.wallet.socket_path = args.socket
    if args.log_level:
        cfg.logging.level = args.log_level
    return cfg


async def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    if args.generate_key:
        key = generate_seed_file(args.generate_key)
        print(f"Seed written to {args.generate_key}")
        print(f"Public key: {public_key_b58(key)}")
        return 0

    try:
        cfg = apply_overrides(load_config(args.config), args)
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2

    setup_logging(cfg.logging.level, cfg.logging.format, cfg.logging.file)

    node = GatewayNode(cfg)
    try:
        await node.start()
    except KeyLoadError as exc:
        logger.critical(f"Cannot start gateway: {exc}")
        await node.stop()
        return 1

    try:
        while True:
            await asyncio.sleep(3600)
    except asyncio.CancelledError:
        pass
    finally:
        await node.stop()
    return 0


if __name__ == "__main__":
    with contextlib.suppress(KeyboardInterrupt):
        sys.exit(asyncio.run(main()))


def main_sync():
    """Synchronous entry point for console_scripts."""
    with contextlib.suppress(KeyboardInterrupt):
        sys.exit(asyncio.run(main()))
