"""
Swap settlement tracking.

A swap is an intent to move ``amount`` to ``recipient``, followed from the
moment the gateway spends until the ledger shows the payment.  Local state
and ledger state are reconciled lazily, each time the status is queried:

    pending ──(notes_before no longer all present)──▶ sent-pending
    sent-pending ──(output {recipient, amount} in current/previous block)──▶ sent-confirmed
    sent-pending ──(height - initial_height >= confirmation_blocks)──▶ failed
    pending ──(spend rejected at initiation)──▶ failed

``sent-confirmed`` and ``failed`` are terminal.  Notes are compared by
``(first_name, last_name, assets)``; two distinct notes with the same name
and amount cannot be told apart.

Confirmation compares the ledger output amount with the swap amount as
given, in whole coins, and expects a single output carrying all of it.
The spend itself pays the recipient one nick-denominated gift per selected
note, so this only matches when the ledger RPC reports outputs in coins and
one note covered the swap.  A swap whose payment is split or reported in
nicks is never confirmed and ends as ``failed`` once the confirmation window
passes.

``SwapStore`` is the registry; it is created by the process that runs the
gateway, handed to ``SwapMonitor``, and swept of old terminal entries by a
background task between ``start()`` and ``stop()``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional, Union

from nockgate_core.actions import SendParams, SwapParams, parse_action, validate_swap_params
from nockgate_core.auth import CommandAuthenticator
from nockgate_core.coin_select import plan_spend
from nockgate_core.envelope import CommandRequest
from nockgate_core.errors import ConflictError, GatewayError, NotFoundError, ValidationError
from nockgate_core.notes import ParsedNote

logger = logging.getLogger("nockgate_swap")

DEFAULT_CONFIRMATION_BLOCKS = 3
DEFAULT_RETENTION_SECONDS = 24 * 60 * 60
DEFAULT_SWEEP_INTERVAL = 60 * 60


class SwapStatus(str, Enum):
    PENDING = "pending"
    UNCONFIRMED = "unconfirmed"
    SENT_PENDING = "sent-pending"
    SENT_CONFIRMED = "sent-confirmed"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (SwapStatus.SENT_CONFIRMED, SwapStatus.FAILED)


_TRANSITIONS: dict[SwapStatus, frozenset[SwapStatus]] = {
    SwapStatus.PENDING: frozenset({SwapStatus.SENT_PENDING, SwapStatus.FAILED}),
    SwapStatus.UNCONFIRMED: frozenset({SwapStatus.SENT_PENDING, SwapStatus.FAILED}),
    SwapStatus.SENT_PENDING: frozenset({SwapStatus.SENT_CONFIRMED, SwapStatus.FAILED}),
    SwapStatus.SENT_CONFIRMED: frozenset(),
    SwapStatus.FAILED: frozenset(),
}


@dataclass
class SwapTransaction:
    swap_id: str
    recipient: str
    amount: Union[int, float]
    fee: int
    initial_block_height: int
    status: SwapStatus = SwapStatus.PENDING
    created_at: float = 0.0
    updated_at: float = 0.0
    notes_before: list[ParsedNote] = field(default_factory=list)
    change_utxo: Optional[list[ParsedNote]] = None
    tx_id: Optional[str] = None
    confirmed_block_height: Optional[int] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "swap_id": self.swap_id,
            "status": self.status.value,
            "recipient": self.recipient,
            "amount": self.amount,
            "fee": self.fee,
            "initial_block_height": self.initial_block_height,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "tx_id": self.tx_id,
            "confirmed_block_height": self.confirmed_block_height,
            "change_utxo": (
                [n.to_dict() for n in self.change_utxo] if self.change_utxo else None
            ),
            "error": self.error,
        }


# ═══════════════════════════════════════════════════════════════════
#  Registry
# ═══════════════════════════════════════════════════════════════════

class SwapStore:
    """In-memory swap registry with periodic garbage collection."""

    def __init__(
        self,
        retention_seconds: float = DEFAULT_RETENTION_SECONDS,
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL,
        clock: Callable[[], float] = time.time,
    ):
        self.retention_seconds = retention_seconds
        self.sweep_interval = sweep_interval
        self.clock = clock
        self._swaps: dict[str, SwapTransaction] = {}
        self._task: asyncio.Task | None = None
        self._running = False

    def __len__(self) -> int:
        return len(self._swaps)

    def __contains__(self, swap_id: str) -> bool:
        return swap_id in self._swaps

    def get(self, swap_id: str) -> Optional[SwapTransaction]:
        return self._swaps.get(swap_id)

    def add(self, swap: SwapTransaction) -> None:
        if swap.swap_id in self._swaps:
            raise ConflictError("Swap ID already exists")
        self._swaps[swap.swap_id] = swap

    def values(self) -> list[SwapTransaction]:
        return list(self._swaps.values())

    def sweep(self, now: Optional[float] = None) -> int:
        """Drop terminal swaps not touched within the retention window."""
        now = self.clock() if now is None else now
        cutoff = now - self.retention_seconds
        expired = [
            sid for sid, swap in self._swaps.items()
            if swap.status.terminal and swap.updated_at < cutoff
        ]
        for sid in expired:
            del self._swaps[sid]
        if expired:
            logger.info(f"Swept {len(expired)} expired swap(s)")
        return len(expired)

    # ── Lifecycle ────────────────────────────────────────────────

    async def start(self) -> None:
        self._running = True
        self._task = asyncio.create_task(self._sweep_loop())
        logger.info("SwapStore sweeper started")

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        logger.info("SwapStore sweeper stopped")

    async def _sweep_loop(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self.sweep_interval)
                self.sweep()
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("Swap sweep error")


# ═══════════════════════════════════════════════════════════════════
#  State machine
# ═══════════════════════════════════════════════════════════════════

def _find_matching_tx(transactions: list, recipient: str, amount: Any) -> Optional[dict]:
    for tx in transactions:
        if not isinstance(tx, dict):
            continue
        outputs = tx.get("outputs")
        if not isinstance(outputs, list):
            continue
        for output in outputs:
            if not isinstance(output, dict):
                continue
            out_amount = output.get("amount")
            if isinstance(out_amount, bool):
                continue
            if output.get("address") == recipient and out_amount == amount:
                return tx
    return None


class SwapMonitor:
    """Owns every mutation of the swap registry."""

    def __init__(
        self,
        store: SwapStore,
        authenticator: CommandAuthenticator,
        wallet: Any,
        ledger: Any,
        confirmation_blocks: int = DEFAULT_CONFIRMATION_BLOCKS,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.authenticator = authenticator
        self.wallet = wallet
        self.ledger = ledger
        self.confirmation_blocks = confirmation_blocks
        self.clock = clock

    def _transition(self, swap: SwapTransaction, status: SwapStatus, **updates: Any) -> None:
        if status not in _TRANSITIONS[swap.status]:
            raise ValueError(f"illegal swap transition {swap.status.value} -> {status.value}")
        logger.info(f"Swap {swap.swap_id}: {swap.status.value} -> {status.value}")
        swap.status = status
        for key, value in updates.items():
            setattr(swap, key, value)
        swap.updated_at = self.clock()

    # ── initiation ───────────────────────────────────────────────

    async def initiate_swap(
        self,
        swap_id: Any,
        recipient: Any,
        amount: Any,
        fee: Any,
        request: CommandRequest,
    ) -> SwapTransaction:
        """
        Authenticate a signed ``swap`` envelope, snapshot notes, and spend.

        The envelope's params must equal the requested swap exactly; a
        rejected spend leaves the swap recorded as ``failed`` and re-raises.
        """
        envelope = self.authenticator.authenticate(request)
        signed = parse_action(envelope)
        if not isinstance(signed, SwapParams):
            raise ValidationError("Envelope does not authorize a swap", code="invalid_swap_envelope")
        requested = validate_swap_params(
            {"swap_id": swap_id, "recipient": recipient, "amount": amount, "fee": fee}
        )
        if requested != signed:
            raise ValidationError("Swap request does not match signed parameters",
                                  code="swap_mismatch")
        if requested.swap_id in self.store:
            raise ConflictError("Swap ID already exists")

        height = await self.ledger.current_height()
        notes_before = await self.wallet.list_notes()

        now = self.clock()
        swap = SwapTransaction(
            swap_id=requested.swap_id,
            recipient=requested.recipient,
            amount=requested.amount,
            fee=requested.fee,
            initial_block_height=height,
            created_at=now,
            updated_at=now,
            notes_before=notes_before,
        )
        # re-checked inside add(): another initiation may have won the race
        self.store.add(swap)
        logger.info(f"Swap registered at height {height}", extra={"swap_id": swap.swap_id})

        try:
            plan = plan_spend(
                SendParams(recipient=swap.recipient, amount=swap.amount, fee=swap.fee),
                notes_before,
            )
            await self.wallet.spend(plan)
        except GatewayError as exc:
            self._transition(swap, SwapStatus.FAILED, error=exc.message)
            raise
        except Exception:
            logger.exception(f"Swap {swap.swap_id} spend failed unexpectedly")
            self._transition(swap, SwapStatus.FAILED, error="Internal error during spend")
            raise
        return swap

    # ── status ───────────────────────────────────────────────────

    async def get_swap_status(self, swap_id: str) -> SwapTransaction:
        swap = self.store.get(swap_id)
        if swap is None:
            raise NotFoundError("Swap not found")
        if swap.status in (SwapStatus.PENDING, SwapStatus.UNCONFIRMED):
            await self._check_notes(swap)
        if swap.status is SwapStatus.SENT_PENDING:
            await self._check_confirmation(swap)
        return swap

    def pending_swaps(self) -> list[SwapTransaction]:
        return [s for s in self.store.values() if not s.status.terminal]

    async def _check_notes(self, swap: SwapTransaction) -> None:
        try:
            current = await self.wallet.list_notes()
        except GatewayError as exc:
            logger.warning(f"Swap {swap.swap_id}: note check failed: {exc.message}")
            return

        before_keys = {n.key for n in swap.notes_before}
        current_keys = {n.key for n in current}
        if not before_keys or before_keys <= current_keys:
            return

        change = [n for n in current if n.key not in before_keys]
        self._transition(swap, SwapStatus.SENT_PENDING, change_utxo=change or None)

    async def _check_confirmation(self, swap: SwapTransaction) -> None:
        try:
            height = await self.ledger.current_height()
        except GatewayError as exc:
            logger.warning(f"Swap {swap.swap_id}: height query failed: {exc.message}")
            return

        heights = [height]
        if height > swap.initial_block_height:
            heights.append(height - 1)

        for block_height in heights:
            try:
                transactions = await self.ledger.get_transactions_by_block_height(block_height)
            except GatewayError as exc:
                logger.warning(f"Swap {swap.swap_id}: block {block_height} query failed: "
                               f"{exc.message}")
                continue
            tx = _find_matching_tx(transactions, swap.recipient, swap.amount)
            if tx is not None:
                self._transition(
                    swap, SwapStatus.SENT_CONFIRMED,
                    tx_id=tx.get("id"), confirmed_block_height=block_height,
                )
                return

        if height - swap.initial_block_height >= self.confirmation_blocks:
            self._transition(
                swap, SwapStatus.FAILED,
                error=f"Transaction not confirmed after {self.confirmation_blocks} blocks",
            )
