"""
TOML-based configuration for the NockGate gateway.

Loads settings from a TOML file and/or environment variables.
Environment variables take precedence over file values.

Usage:
    from nockgate_core.config import load_config
    cfg = load_config("nockgate.toml")
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from nockgate_core.errors import ConfigError

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib


@dataclass
class WalletConfig:
    """External wallet binary and its draft workspace."""
    binary: str = "nockchain-wallet"
    socket_path: str = "./test-leader/nockchain.sock"
    drafts_dir: str = "./drafts"
    command_timeout: float = 30.0
    max_output_bytes: int = 1_048_576


@dataclass
class AuthConfig:
    """Envelope authentication.

    ``authorized_keys`` holds base58 Ed25519 public keys.  An empty list
    runs the gateway in open mode, which is only meant for local testing.
    """
    signing_key_path: str = ""
    authorized_keys: list[str] = field(default_factory=list)
    freshness_window_minutes: float = 5.0


@dataclass
class SwapConfig:
    """Swap settlement tracking."""
    confirmation_blocks: int = 3
    retention_hours: float = 24.0
    sweep_interval_seconds: float = 3600.0


@dataclass
class LedgerRPCConfig:
    """Read-only ledger JSON-RPC endpoint."""
    rpc_url: str = "https://nockblocks.com/rpc"
    rpc_timeout: float = 30.0


@dataclass
class APIConfig:
    """REST API settings."""
    host: str = "127.0.0.1"
    port: int = 3000
    rate_limit_rpm: int = 120          # max requests per minute per IP (0 = unlimited)
    cors_origins: list[str] = field(default_factory=list)
    max_body_bytes: int = 1_048_576
    # /sign produces envelopes with the gateway's own key; development only
    enable_sign_endpoint: bool = False


@dataclass
class LoggingConfig:
    """Logging settings."""
    level: str = "INFO"
    format: str = "human"   # "human" or "json"
    file: str | None = None


@dataclass
class GatewayConfig:
    """Top-level configuration container."""
    wallet: WalletConfig = field(default_factory=WalletConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    swap: SwapConfig = field(default_factory=SwapConfig)
    ledger: LedgerRPCConfig = field(default_factory=LedgerRPCConfig)
    api: APIConfig = field(default_factory=APIConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _merge(dc: Any, raw: dict[str, Any]) -> None:
    """Merge a raw dict into a dataclass instance (in-place)."""
    for key, value in raw.items():
        key_under = key.replace("-", "_")
        if hasattr(dc, key_under):
            setattr(dc, key_under, value)


def _split_csv(value: str) -> list[str]:
    return [v.strip() for v in value.split(",") if v.strip()]


def _env_number(name: str, cast):
    raw = os.environ.get(name)
    if not raw:
        return None
    try:
        return cast(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from exc


def load_config(path: str | None = None) -> GatewayConfig:
    """
    Load configuration from a TOML file, then overlay environment variables.

    Env-var mapping:
        NOCKGATE_WALLET_SOCKET        -> wallet.socket_path
        NOCKGATE_WALLET_BINARY        -> wallet.binary
        NOCKGATE_DRAFTS_DIR           -> wallet.drafts_dir
        NOCKGATE_SIGNING_KEY          -> auth.signing_key_path
        NOCKGATE_AUTHORIZED_KEYS      -> auth.authorized_keys  (comma-separated)
        NOCKGATE_FRESHNESS_MINUTES    -> auth.freshness_window_minutes
        NOCKGATE_CONFIRMATION_BLOCKS  -> swap.confirmation_blocks
        NOCKGATE_RETENTION_HOURS      -> swap.retention_hours
        NOCKGATE_RPC_URL              -> ledger.rpc_url
        NOCKGATE_HOST / NOCKGATE_PORT -> api.host / api.port
        NOCKGATE_CORS_ORIGINS         -> api.cors_origins      (comma-separated)
        NOCKGATE_LOG_LEVEL            -> logging.level
        NOCKGATE_LOG_FMT              -> logging.format
    """
    cfg = GatewayConfig()

    # ── TOML file ────────────────────────────────────────────────
    if path is not None:
        p = Path(path)
        if p.exists():
            try:
                with open(p, "rb") as f:
                    data = tomllib.load(f)
            except tomllib.TOMLDecodeError as exc:
                raise ConfigError(f"cannot parse {path}: {exc}") from exc
            for section_name, section_dc in [
                ("wallet", cfg.wallet),
                ("auth", cfg.auth),
                ("swap", cfg.swap),
                ("ledger", cfg.ledger),
                ("api", cfg.api),
                ("logging", cfg.logging),
            ]:
                if section_name in data:
                    _merge(section_dc, data[section_name])

    # ── Environment variable overrides ───────────────────────────
    if v := os.environ.get("NOCKGATE_WALLET_SOCKET"):
        cfg.wallet.socket_path = v
    if v := os.environ.get("NOCKGATE_WALLET_BINARY"):
        cfg.wallet.binary = v
    if v := os.environ.get("NOCKGATE_DRAFTS_DIR"):
        cfg.wallet.drafts_dir = v
    if v := os.environ.get("NOCKGATE_SIGNING_KEY"):
        cfg.auth.signing_key_path = v
    if v := os.environ.get("NOCKGATE_AUTHORIZED_KEYS"):
        cfg.auth.authorized_keys = _split_csv(v)
    if (n := _env_number("NOCKGATE_FRESHNESS_MINUTES", float)) is not None:
        cfg.auth.freshness_window_minutes = n
    if (n := _env_number("NOCKGATE_CONFIRMATION_BLOCKS", int)) is not None:
        cfg.swap.confirmation_blocks = n
    if (n := _env_number("NOCKGATE_RETENTION_HOURS", float)) is not None:
        cfg.swap.retention_hours = n
    if v := os.environ.get("NOCKGATE_RPC_URL"):
        cfg.ledger.rpc_url = v
    if v := os.environ.get("NOCKGATE_HOST"):
        cfg.api.host = v
    if (n := _env_number("NOCKGATE_PORT", int)) is not None:
        cfg.api.port = n
    if v := os.environ.get("NOCKGATE_CORS_ORIGINS"):
        cfg.api.cors_origins = _split_csv(v)
    if v := os.environ.get("NOCKGATE_LOG_LEVEL"):
        cfg.logging.level = v.upper()
    if v := os.environ.get("NOCKGATE_LOG_FMT"):
        cfg.logging.format = v

    validate_config(cfg)
    return cfg


def validate_config(cfg: GatewayConfig) -> None:
    """Raise ConfigError if any setting would make the gateway unsafe to run."""
    if isinstance(cfg.auth.authorized_keys, str):
        cfg.auth.authorized_keys = _split_csv(cfg.auth.authorized_keys)
    if cfg.auth.freshness_window_minutes <= 0:
        raise ConfigError("auth.freshness_window_minutes must be positive")
    if cfg.swap.confirmation_blocks < 1:
        raise ConfigError("swap.confirmation_blocks must be at least 1")
    if cfg.swap.retention_hours <= 0 or cfg.swap.sweep_interval_seconds <= 0:
        raise ConfigError("swap retention and sweep interval must be positive")
    if cfg.wallet.command_timeout <= 0 or cfg.ledger.rpc_timeout <= 0:
        raise ConfigError("timeouts must be positive")
    if cfg.wallet.max_output_bytes <= 0:
        raise ConfigError("wallet.max_output_bytes must be positive")
    if not cfg.wallet.socket_path:
        raise ConfigError("wallet.socket_path must not be empty")
    if cfg.logging.format not in ("human", "json"):
        raise ConfigError(f"unknown logging.format {cfg.logging.format!r}")
