"""
Note (UTXO) selection for amount-based spends.

Amounts arrive in whole coins; notes are denominated in nicks, the
ledger's smallest unit.  Selection is a largest-first greedy cover: it
favours few, large inputs rather than minimal change.
"""

from __future__ import annotations

import logging
from typing import Sequence, Union

from nockgate_core.actions import (
    MAX_RECIPIENTS,
    SendParams,
    SimpleSpendParams,
    ValidatedRecipient,
    sanitize_argument,
)
from nockgate_core.errors import InsufficientBalanceError, ValidationError
from nockgate_core.notes import ParsedNote

logger = logging.getLogger("nockgate_coin_select")

NICKS_PER_NOCK = 65_536


def to_nicks(amount: Union[int, float]) -> int:
    return int(round(amount * NICKS_PER_NOCK))


def required_nicks(amount: Union[int, float], fee: int) -> int:
    """Target plus fee overhead, in nicks."""
    return to_nicks(amount) + to_nicks(fee)


def select_notes(
    target_amount: Union[int, float],
    available: Sequence[ParsedNote],
    fee: int = 0,
) -> tuple[list[ParsedNote], int]:
    """
    Pick notes, largest first, until they cover ``target_amount + fee``.

    Returns ``(selected, total_nicks)``; raises InsufficientBalanceError
    when every note together is not enough.
    """
    required = required_nicks(target_amount, fee)
    selected: list[ParsedNote] = []
    total = 0
    for note in sorted(available, key=lambda n: n.assets, reverse=True):
        if total >= required:
            break
        selected.append(note)
        total += note.assets

    if total < required or not selected:
        raise InsufficientBalanceError(
            f"Insufficient balance: need {required} nicks across {len(available)} notes"
        )
    logger.debug(f"Selected {len(selected)} note(s) covering {total}/{required} nicks")
    return selected, total


def build_gifts_array(
    selected: Sequence[ParsedNote],
    amount: Union[int, float],
    fee: int,
) -> list[int]:
    """
    Split ``amount + fee`` across *selected* notes.

    Every note but the last contributes its full value, or only what is
    still needed; the last note takes the remainder.  The result always sums
    to ``required_nicks(amount, fee)``.
    """
    if not selected:
        raise InsufficientBalanceError("No notes selected")
    remaining = required_nicks(amount, fee)
    gifts = []
    for note in selected[:-1]:
        take = min(note.assets, remaining)
        gifts.append(take)
        remaining -= take
    gifts.append(remaining)
    return gifts


def _note_name(note: ParsedNote) -> tuple[str, str]:
    first, last = sanitize_argument(note.first_name), sanitize_argument(note.last_name)
    if not first or not last:
        raise ValidationError(
            f"Note name {note.first_name!r} is not usable on a command line",
            code="invalid_note_name",
        )
    return first, last


def plan_spend(params: SendParams, notes: Sequence[ParsedNote]) -> SimpleSpendParams:
    """
    Resolve an amount-based send into an explicit simple-spend.

    ``params`` is already validated, so the plan is assembled directly:
    gifts here are nicks and are not subject to the per-gift cap that
    applies to caller-supplied simple-spends.
    """
    selected, _total = select_notes(params.amount, notes, params.fee)
    if len(selected) > MAX_RECIPIENTS:
        raise InsufficientBalanceError(
            f"Amount needs {len(selected)} notes; one spend can use at most "
            f"{MAX_RECIPIENTS}",
            code="too_many_inputs",
        )
    gifts = build_gifts_array(selected, params.amount, params.fee)
    return SimpleSpendParams(
        recipients=tuple(
            ValidatedRecipient(count=1, address=params.recipient) for _ in selected
        ),
        gifts=tuple(gifts),
        names=tuple(_note_name(n) for n in selected),
        fee=params.fee,
    )
