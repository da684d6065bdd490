"""
Render validated action parameters into wallet argument vectors.

Commands are argv lists handed to ``create_subprocess_exec``; no shell
ever parses them.  ``WalletCommand.render()`` gives the equivalent shell
line for logs and API output.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Union

from nockgate_core.actions import (
    ListNotesByPubkeyParams,
    ListNotesParams,
    SimpleSpendParams,
)

_PLAIN_ARG_RE = re.compile(r"^[A-Za-z0-9_./:=@+-]+$")
# list-valued options are always shown quoted, even with a single element
_LIST_FLAGS = frozenset({"--names", "--recipients", "--gifts"})


@dataclass(frozen=True)
class WalletCommand:
    argv: tuple[str, ...]
    multi_step: bool = False   # simple-spend: draft → sign-tx → send-tx

    def render(self) -> str:
        parts = []
        previous = ""
        for arg in self.argv:
            if previous in _LIST_FLAGS or not _PLAIN_ARG_RE.match(arg):
                parts.append(f'"{arg}"')
            else:
                parts.append(arg)
            previous = arg
        return " ".join(parts)


def format_amount(value: Union[int, float]) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


class CommandBuilder:
    """Knows the wallet binary's command-line syntax."""

    def __init__(self, binary: str = "nockchain-wallet", socket_path: str = ""):
        self.binary = binary
        self.socket_path = socket_path

    def _base(self) -> list[str]:
        return [self.binary, "--nockchain-socket", self.socket_path]

    def simple_spend(self, params: SimpleSpendParams) -> WalletCommand:
        # no names still renders as a list literal
        names = ",".join(f"[{' '.join(pair)}]" for pair in params.names) or "[]"
        recipients = ",".join(f"[{r.count} {r.address}]" for r in params.recipients)
        gifts = ",".join(format_amount(g) for g in params.gifts)
        argv = self._base() + [
            "simple-spend",
            "--names", names,
            "--recipients", recipients,
            "--gifts", gifts,
            "--fee", str(params.fee),
        ]
        return WalletCommand(argv=tuple(argv), multi_step=True)

    def list_notes(self, _params: ListNotesParams | None = None) -> WalletCommand:
        return WalletCommand(argv=tuple(self._base() + ["list-notes"]))

    def list_notes_by_pubkey(self, params: ListNotesByPubkeyParams) -> WalletCommand:
        argv = self._base() + ["list-notes-by-pubkey", "--pubkey", params.pubkey]
        return WalletCommand(argv=tuple(argv))

    def sign_tx(self, draft: Path) -> WalletCommand:
        return WalletCommand(argv=tuple(self._base() + ["sign-tx", "--draft", str(draft)]))

    def send_tx(self, draft: Path) -> WalletCommand:
        return WalletCommand(argv=tuple(self._base() + ["send-tx", "--draft", str(draft)]))
