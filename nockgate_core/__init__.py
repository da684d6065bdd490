"""
NockGate - a signed-command gateway in front of a nockchain wallet.

Key features:
- Ed25519-signed, canonical JSON command envelopes with freshness windows
- Public-key allow-list authorization (open mode for development)
- Strict parameter validation before anything reaches the wallet binary
- Draft → sign → send spend pipeline with draft cleanup
- Amount-based sends with largest-first coin selection
- Swap tracking reconciled against the public ledger explorer
"""

__version__ = "0.3.0"
__all__ = [
    "envelope",
    "auth",
    "actions",
    "coin_select",
    "commands",
    "executor",
    "notes",
    "wallet",
    "service",
    "swap",
    "ledger_rpc",
    "api",
    "client",
]
