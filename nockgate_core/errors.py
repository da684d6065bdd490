"""
Error taxonomy for the NockGate command gateway.

Every error that can reach a caller carries a stable machine-readable
``code`` and the HTTP status the API layer answers with.  Messages are
written for the caller: they never contain paths, stderr dumps or
stack traces.

    ValidationError           400  malformed / out-of-range input
    SignatureError            401  signature did not verify
    TimestampError            401  envelope outside the freshness window
    AuthorizationError        403  valid signature, key not allowed
    NotFoundError             404  unknown swap id
    ConflictError             409  duplicate swap id
    InsufficientBalanceError  422  notes cannot cover amount + fee
    ExecutionError            502  wallet binary / ledger RPC failure

``KeyLoadError`` and ``ConfigError`` are startup-fatal and are never
turned into per-request results.
"""

from __future__ import annotations


class GatewayError(Exception):
    """Base class for all caller-facing gateway errors."""

    code = "error"
    http_status = 400

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def to_dict(self) -> dict:
        return {"success": False, "error": self.message, "code": self.code}


class ValidationError(GatewayError):
    code = "validation_error"
    http_status = 400


class SignatureError(GatewayError):
    """Signature verification failed.

    The message is fixed so callers cannot tell a bad key encoding from a
    bad signature.
    """

    code = "invalid_signature"
    http_status = 401

    def __init__(self, message: str = "Invalid signature"):
        super().__init__("Invalid signature")


class AuthorizationError(GatewayError):
    code = "unauthorized_key"
    http_status = 403


class TimestampError(GatewayError):
    code = "stale_timestamp"
    http_status = 401


class ExecutionError(GatewayError):
    code = "execution_error"
    http_status = 502


class InsufficientBalanceError(GatewayError):
    code = "insufficient_balance"
    http_status = 422


class NotFoundError(GatewayError):
    code = "not_found"
    http_status = 404


class ConflictError(GatewayError):
    code = "conflict"
    http_status = 409


class KeyLoadError(Exception):
    """Signing key material is missing or malformed."""


class ConfigError(Exception):
    """Configuration is unusable; the gateway must not start."""
