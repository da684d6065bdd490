"""
Envelope verification and authorization.

Three independent checks guard every signed command:

1. **Signature** – detached Ed25519 over the exact ``msg`` bytes.  Any
   decoding problem (bad base58, wrong key/signature length) counts as a
   failed verification, never as an unhandled exception.
2. **Authorization** – the public key must be in the allow-list.  An empty
   allow-list is *open mode*: every valid signature is accepted and a
   warning is logged.
3. **Freshness** – ``|now - timestamp| <= window``; stale and future
   envelopes are both rejected.

There is no nonce ledger: an intercepted envelope can be replayed while it
is still inside the freshness window.
"""

from __future__ import annotations

import logging
import time
from typing import Iterable, Optional

import base58
from nacl.exceptions import CryptoError
from nacl.signing import VerifyKey

from nockgate_core.envelope import (
    PUBLIC_KEY_BYTES,
    SIGNATURE_BYTES,
    CommandRequest,
    SignedEnvelope,
    decode,
    encode,
)
from nockgate_core.errors import (
    AuthorizationError,
    SignatureError,
    TimestampError,
    ValidationError,
)
from nockgate_core.logging_config import short

logger = logging.getLogger("nockgate_auth")

DEFAULT_FRESHNESS_WINDOW = 5 * 60


def verify_signature(msg: str, sig: str, public_key: str) -> bool:
    """Return True iff *sig* is a valid signature of *msg* under *public_key*."""
    try:
        sig_bytes = base58.b58decode(sig)
        key_bytes = base58.b58decode(public_key)
        if len(sig_bytes) != SIGNATURE_BYTES or len(key_bytes) != PUBLIC_KEY_BYTES:
            return False
        VerifyKey(key_bytes).verify(msg.encode("utf-8"), sig_bytes)
        return True
    except (CryptoError, ValueError, TypeError):
        return False


class CommandAuthenticator:
    """Runs the signature → allow-list → envelope → freshness pipeline."""

    def __init__(
        self,
        authorized_keys: Iterable[str] = (),
        freshness_window: float = DEFAULT_FRESHNESS_WINDOW,
    ):
        self.authorized_keys = frozenset(k.strip() for k in authorized_keys if k.strip())
        self.freshness_window = freshness_window
        if not self.authorized_keys:
            logger.warning(
                "No authorized public keys configured - OPEN MODE, any valid "
                "signature is accepted. Never run like this in production."
            )
        else:
            logger.info(f"{len(self.authorized_keys)} authorized public key(s) loaded")

    @property
    def open_mode(self) -> bool:
        return not self.authorized_keys

    def is_authorized(self, public_key: str) -> bool:
        if self.open_mode:
            logger.debug(f"Open mode: accepting key {short(public_key)}")
            return True
        return public_key in self.authorized_keys

    def is_fresh(self, timestamp: int, now: Optional[float] = None) -> bool:
        now = time.time() if now is None else now
        return abs(int(now) - timestamp) <= self.freshness_window

    def check(self, request: CommandRequest) -> dict:
        """Non-mutating check used by ``/verify``."""
        return {
            "valid": verify_signature(request.msg, request.sig, request.public_key),
            "authorized": self.is_authorized(request.public_key),
        }

    def authenticate(
        self, request: CommandRequest, now: Optional[float] = None,
    ) -> SignedEnvelope:
        """
        Verify *request* and return its envelope.

        Checks run in a fixed order and stop at the first failure, each
        failure carrying its own error code.
        """
        if not request.msg or not request.sig or not request.public_key:
            raise ValidationError(
                "Missing required fields: msg, sig, publicKey", code="missing_fields",
            )

        if not verify_signature(request.msg, request.sig, request.public_key):
            logger.warning(f"Rejected signature from key {short(request.public_key)}")
            raise SignatureError()

        if not self.is_authorized(request.public_key):
            logger.warning(f"Rejected unauthorized key {short(request.public_key)}")
            raise AuthorizationError("Unauthorized public key")

        envelope = decode(request.msg)
        if encode(envelope) != request.msg.encode("utf-8"):
            raise ValidationError(
                "Command message is not in canonical form", code="invalid_envelope",
            )

        if not self.is_fresh(envelope.timestamp, now):
            raise TimestampError("Command timestamp is too old or too far in the future")

        logger.debug(
            f"Authenticated {envelope.action!r} from {short(request.public_key)} "
            f"nonce={envelope.nonce}"
        )
        return envelope
