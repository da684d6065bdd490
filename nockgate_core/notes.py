"""
Parser for the wallet's ``list-notes`` text output.

The wallet prints one block per note, each introduced by a ``details``
marker, e.g.::

    - details
      - name: [first='2VqV...' last='8cTR...']
      - assets: 1.245.184
      - source: [p=[[ab12 cd34]] is-coinbase=%.n]
    - lock
      - m: 1
      - signers: [m=1 pks=<|3Fq9...|>]

Numbers use ``.`` as a digit-group separator.  Blocks that lack a name or
an asset amount are dropped.
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass
from typing import Optional

_BLOCK_SPLIT_RE = re.compile(r"(?=details)")
_NAME_RE = re.compile(r"name:\s*\[first='([^']+)'\s+last='([^']+)'\]")
_ASSETS_RE = re.compile(r"assets:\s*([\d.]+)")
_SOURCE_RE = re.compile(r"source:\s*\[p=\[\[([^\]]+)\s+([^\]]+)\]\]\s+is-coinbase=([^\]]+)\]")
_LOCK_M_RE = re.compile(r"\bm:\s*(\d+)")
_SIGNERS_RE = re.compile(r"signers:\s*\[m=\d+\s+pks=<\|([^|]+)\|>\]")


@dataclass(frozen=True)
class ParsedNote:
    first_name: str
    last_name: str
    assets: int
    source_pubkey1: Optional[str] = None
    source_pubkey2: Optional[str] = None
    is_coinbase: Optional[bool] = None
    lock_m: Optional[int] = None
    lock_signers: Optional[tuple[str, ...]] = None

    @property
    def key(self) -> tuple[str, str, int]:
        """Identity used when comparing note snapshots."""
        return (self.first_name, self.last_name, self.assets)

    def to_dict(self) -> dict:
        d = asdict(self)
        if self.lock_signers is not None:
            d["lock_signers"] = list(self.lock_signers)
        return {k: v for k, v in d.items() if v is not None}


def _parse_block(block: str) -> Optional[ParsedNote]:
    name = _NAME_RE.search(block)
    assets = _ASSETS_RE.search(block)
    if not name or not assets:
        return None
    digits = assets.group(1).replace(".", "")
    if not digits:
        return None

    fields: dict = {}
    if source := _SOURCE_RE.search(block):
        fields["source_pubkey1"] = source.group(1).strip()
        fields["source_pubkey2"] = source.group(2).strip()
        fields["is_coinbase"] = source.group(3).strip() == "%.y"
    if lock_m := _LOCK_M_RE.search(block):
        fields["lock_m"] = int(lock_m.group(1))
    if signers := _SIGNERS_RE.search(block):
        fields["lock_signers"] = tuple(signers.group(1).split())

    return ParsedNote(
        first_name=name.group(1),
        last_name=name.group(2),
        assets=int(digits),
        **fields,
    )


def parse_notes_output(output: str) -> list[ParsedNote]:
    notes = []
    for block in _BLOCK_SPLIT_RE.split(output or ""):
        if not block.strip():
            continue
        note = _parse_block(block)
        if note is not None:
            notes.append(note)
    return notes


def total_assets(notes: list[ParsedNote]) -> int:
    return sum(n.assets for n in notes)
