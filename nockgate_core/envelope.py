"""
Signed command envelopes.

An envelope is the unit of authorization: ``{action, params, timestamp,
nonce}``.  Its canonical encoding is compact JSON with keys sorted at every
nesting level, so a signer and a verifier always hash byte-identical input
no matter how the envelope was assembled.

Signatures are detached Ed25519 (32-byte seed, 32-byte public key, 64-byte
signature).  On the wire both signature and public key travel base58
encoded inside a ``CommandRequest``.
"""

from __future__ import annotations

import json
import secrets
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import base58
from nacl.signing import SigningKey

from nockgate_core.errors import KeyLoadError, ValidationError

SEED_BYTES = 32
PUBLIC_KEY_BYTES = 32
SIGNATURE_BYTES = 64


@dataclass(frozen=True)
class SignedEnvelope:
    action: str
    params: dict = field(default_factory=dict)
    timestamp: int = 0
    nonce: str = ""

    def to_dict(self) -> dict:
        return {
            "action": self.action,
            "params": self.params,
            "timestamp": self.timestamp,
            "nonce": self.nonce,
        }


@dataclass(frozen=True)
class CommandRequest:
    """What a caller submits: canonical message plus detached signature."""
    msg: str
    sig: str
    public_key: str

    @classmethod
    def from_dict(cls, body: Any) -> CommandRequest:
        if not isinstance(body, dict):
            body = {}
        return cls(
            msg=_as_str(body.get("msg")),
            sig=_as_str(body.get("sig")),
            public_key=_as_str(body.get("publicKey")),
        )

    def to_dict(self) -> dict:
        return {"msg": self.msg, "sig": self.sig, "publicKey": self.public_key}


def _as_str(value: Any) -> str:
    return value if isinstance(value, str) else ""


# ═══════════════════════════════════════════════════════════════════
#  Canonical codec
# ═══════════════════════════════════════════════════════════════════

def canonical_json(obj: Any) -> str:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=True)


def encode(envelope: SignedEnvelope) -> bytes:
    """Deterministic byte encoding used for signing and verification."""
    return canonical_json(envelope.to_dict()).encode("ascii")


def decode(msg: str) -> SignedEnvelope:
    """
    Parse a message into an envelope.

    Raises ``ValidationError`` with code ``invalid_envelope`` when the text
    is not a JSON object, and ``missing_envelope_fields`` when ``action`` or
    ``timestamp`` is absent or mistyped.
    """
    try:
        raw = json.loads(msg)
    except (TypeError, ValueError) as exc:
        raise ValidationError(
            "Invalid command format - must be valid JSON", code="invalid_envelope",
        ) from exc
    if not isinstance(raw, dict):
        raise ValidationError(
            "Invalid command format - must be a JSON object", code="invalid_envelope",
        )

    action = raw.get("action")
    timestamp = raw.get("timestamp")
    if not isinstance(action, str) or not action or isinstance(timestamp, bool) \
            or not isinstance(timestamp, int):
        raise ValidationError(
            "Command must include action and integer timestamp",
            code="missing_envelope_fields",
        )

    params = raw.get("params", {})
    if params is None:
        params = {}
    if not isinstance(params, dict):
        raise ValidationError("Command params must be an object", code="invalid_envelope")
    nonce = raw.get("nonce", "")
    if not isinstance(nonce, str):
        raise ValidationError("Command nonce must be a string", code="invalid_envelope")

    return SignedEnvelope(action=action, params=params, timestamp=timestamp, nonce=nonce)


def new_nonce() -> str:
    return secrets.token_hex(6)


# ═══════════════════════════════════════════════════════════════════
#  Key material & signing
# ═══════════════════════════════════════════════════════════════════

def signing_key_from_seed(seed: bytes) -> SigningKey:
    if len(seed) != SEED_BYTES:
        raise KeyLoadError(
            f"Invalid key length: expected {SEED_BYTES} bytes, got {len(seed)}"
        )
    return SigningKey(seed)


def load_signing_key(path: str | Path) -> SigningKey:
    """Load a raw 32-byte Ed25519 seed from *path*."""
    try:
        seed = Path(path).read_bytes()
    except OSError as exc:
        raise KeyLoadError(f"Failed to load signing key from {path}: {exc.strerror}") from exc
    return signing_key_from_seed(seed)


def generate_seed_file(path: str | Path) -> SigningKey:
    """Write a fresh seed to *path* (mode 0600) and return its key."""
    key = SigningKey.generate()
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_bytes(bytes(key))
    p.chmod(0o600)
    return key


def public_key_b58(signing_key: SigningKey) -> str:
    return base58.b58encode(bytes(signing_key.verify_key)).decode("ascii")


def sign(message: bytes, signing_key: SigningKey) -> bytes:
    """Detached 64-byte Ed25519 signature over *message*."""
    return signing_key.sign(message).signature


def sign_envelope(envelope: SignedEnvelope, signing_key: SigningKey) -> CommandRequest:
    message = encode(envelope)
    return CommandRequest(
        msg=message.decode("ascii"),
        sig=base58.b58encode(sign(message, signing_key)).decode("ascii"),
        public_key=public_key_b58(signing_key),
    )


def create_signed_command(
    action: str,
    params: Optional[dict],
    signing_key: SigningKey,
    now: Optional[int] = None,
) -> CommandRequest:
    """Build, stamp and sign an envelope for *action*."""
    envelope = SignedEnvelope(
        action=action,
        params=params or {},
        timestamp=int(time.time()) if now is None else now,
        nonce=new_nonce(),
    )
    return sign_envelope(envelope, signing_key)
