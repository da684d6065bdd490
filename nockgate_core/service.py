"""
Command service — the single generic entry point for signed commands.

    submit_command(request)          authenticate → validate → execute
    create_signed_command(action, …) sign with the gateway's own key (dev only)
    verify_signature(request)        {valid, authorized} check

All gateway errors are recovered here and returned as ``CommandResult``
values; nothing below this layer leaks into a caller's response.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from nacl.signing import SigningKey

from nockgate_core import envelope as env
from nockgate_core.actions import SwapParams, parse_action
from nockgate_core.auth import CommandAuthenticator
from nockgate_core.envelope import CommandRequest
from nockgate_core.errors import GatewayError, ValidationError
from nockgate_core.wallet import WalletGateway

logger = logging.getLogger("nockgate_service")


@dataclass
class CommandResult:
    success: bool
    output: Optional[str] = None
    error: Optional[str] = None
    code: Optional[str] = None
    http_status: int = 200
    command: Optional[dict] = None
    executed_at: Optional[str] = None

    @classmethod
    def failure(cls, exc: GatewayError) -> CommandResult:
        return cls(success=False, error=exc.message, code=exc.code, http_status=exc.http_status)

    def to_dict(self) -> dict:
        d: dict[str, Any] = {"success": self.success}
        if self.success:
            d["output"] = self.output
            d["command"] = self.command
            d["executedAt"] = self.executed_at
        else:
            d["error"] = self.error
            d["code"] = self.code
        return d


class CommandService:

    def __init__(
        self,
        authenticator: CommandAuthenticator,
        wallet: WalletGateway,
        signing_key: Optional[SigningKey] = None,
    ):
        self.authenticator = authenticator
        self.wallet = wallet
        self.signing_key = signing_key

    async def submit_command(
        self,
        request: CommandRequest,
        allowed_actions: Optional[Iterable[str]] = None,
    ) -> CommandResult:
        """Authenticate, validate and execute one signed command.

        ``allowed_actions`` narrows the accepted actions for endpoints that
        serve a single purpose (a note listing must never trigger a spend).
        """
        try:
            envelope = self.authenticator.authenticate(request)
            if allowed_actions is not None and envelope.action not in allowed_actions:
                raise ValidationError(
                    f"Action {envelope.action!r} not accepted here", code="action_not_allowed",
                )
            action = parse_action(envelope)
            if isinstance(action, SwapParams):
                raise ValidationError(
                    "swap envelopes must be submitted through swap initiation",
                    code="unknown_action",
                )
            output = await self.wallet.execute(action)
        except GatewayError as exc:
            logger.info(f"Command rejected ({exc.code}): {exc.message}")
            return CommandResult.failure(exc)
        except Exception:
            logger.exception("Unexpected error while processing signed command")
            return CommandResult(
                success=False, error="Internal server error", code="internal_error",
                http_status=500,
            )

        logger.info(f"Executed {envelope.action!r} nonce={envelope.nonce}")
        return CommandResult(
            success=True,
            output=output,
            command=envelope.to_dict(),
            executed_at=datetime.now(timezone.utc).isoformat(),
        )

    def create_signed_command(self, action: str, params: Optional[dict] = None) -> CommandRequest:
        if self.signing_key is None:
            raise ValidationError("No signing key configured", code="signing_disabled")
        if not isinstance(action, str) or not action:
            raise ValidationError("Missing required field: action")
        if params is not None and not isinstance(params, dict):
            raise ValidationError("Invalid params: must be an object")
        return env.create_signed_command(action, params, self.signing_key)

    def verify_signature(self, request: CommandRequest) -> dict:
        if not request.msg or not request.sig or not request.public_key:
            raise ValidationError(
                "Missing required fields: msg, sig, publicKey", code="missing_fields",
            )
        return self.authenticator.check(request)
