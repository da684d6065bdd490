"""
Wallet gateway: the only path from a validated action to the wallet binary.

Composes the command builder, the executor, the note parser and coin
selection.  Callers hand it typed action parameters; it never sees raw
envelope data.
"""

from __future__ import annotations

import logging
from typing import Optional

from nockgate_core.actions import (
    ActionParams,
    ListNotesByPubkeyParams,
    ListNotesParams,
    SendParams,
    SimpleSpendParams,
    SwapParams,
)
from nockgate_core.coin_select import plan_spend
from nockgate_core.errors import ValidationError
from nockgate_core.executor import WalletExecutor
from nockgate_core.notes import ParsedNote, parse_notes_output

logger = logging.getLogger("nockgate_wallet")


class WalletGateway:

    def __init__(self, executor: WalletExecutor):
        self.executor = executor
        self.builder = executor.builder

    async def list_notes_raw(self, pubkey: Optional[str] = None) -> str:
        if pubkey:
            command = self.builder.list_notes_by_pubkey(ListNotesByPubkeyParams(pubkey=pubkey))
        else:
            command = self.builder.list_notes()
        return await self.executor.run(command, step="list-notes")

    async def list_notes(self, pubkey: Optional[str] = None) -> list[ParsedNote]:
        return parse_notes_output(await self.list_notes_raw(pubkey))

    async def spend(self, params: SimpleSpendParams) -> str:
        return await self.executor.run_spend(self.builder.simple_spend(params))

    async def send(self, params: SendParams) -> str:
        """Amount-based spend: snapshot notes, select, then spend."""
        notes = await self.list_notes()
        plan = plan_spend(params, notes)
        logger.info(
            f"Sending {params.amount} to {params.recipient[:12]}… "
            f"from {len(plan.names)} note(s), fee={params.fee}"
        )
        return await self.spend(plan)

    async def execute(self, action: ActionParams) -> str:
        match action:
            case SimpleSpendParams():
                return await self.spend(action)
            case SendParams():
                return await self.send(action)
            case ListNotesParams():
                return await self.list_notes_raw()
            case ListNotesByPubkeyParams(pubkey=pubkey):
                return await self.list_notes_raw(pubkey)
            case SwapParams():
                raise ValidationError(
                    "swap envelopes must be submitted through swap initiation",
                    code="unknown_action",
                )
            case _:
                raise ValidationError("Unsupported action", code="unknown_action")
