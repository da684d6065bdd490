"""
Shared pytest fixtures for the NockGate test suite.
"""

import time

import pytest
from nacl.signing import SigningKey

from nockgate_core.auth import CommandAuthenticator
from nockgate_core.envelope import (
    CommandRequest,
    SignedEnvelope,
    public_key_b58,
    sign_envelope,
)
from nockgate_core.errors import ExecutionError
from nockgate_core.notes import ParsedNote

# 150-character base58 strings that decode to 110 bytes
ADDR_A = "2" * 150
ADDR_B = "z" * 150

NOTES_OUTPUT = """\
wallet notes:
- details
  - name: [first='2VqVfirst1' last='8cTRlast1']
  - assets: 6.553.600
  - source: [p=[[ab12 cd34]] is-coinbase=%.n]
- lock
  - m: 1
  - signers: [m=1 pks=<|3Fq9pk1|>]
- details
  - name: [first='2VqVfirst2' last='8cTRlast2']
  - assets: 13.107.200
  - source: [p=[[ef56 0789]] is-coinbase=%.y]
- lock
  - m: 2
  - signers: [m=2 pks=<|3Fq9pk2 4Gr0pk3|>]
"""


def make_request(
    key: SigningKey,
    action: str,
    params: dict | None = None,
    timestamp: int | None = None,
    nonce: str = "n0nce",
) -> CommandRequest:
    """Sign an envelope the way a well-behaved client does."""
    envelope = SignedEnvelope(
        action=action,
        params=params or {},
        timestamp=int(time.time()) if timestamp is None else timestamp,
        nonce=nonce,
    )
    return sign_envelope(envelope, key)


def note(first: str, assets: int, last: str = "last") -> ParsedNote:
    return ParsedNote(first_name=first, last_name=last, assets=assets)


@pytest.fixture
def signing_key():
    """Deterministic authorized key."""
    return SigningKey(bytes(range(32)))


@pytest.fixture
def other_key():
    """Deterministic key that is not on the allow-list."""
    return SigningKey(bytes(range(32, 64)))


@pytest.fixture
def authenticator(signing_key):
    """Authenticator that allows only ``signing_key``."""
    return CommandAuthenticator(authorized_keys=[public_key_b58(signing_key)])


class FakeWallet:
    """Stands in for WalletGateway; snapshots are consumed in order."""

    def __init__(self, snapshots=None, spend_error=None):
        self.snapshots = list(snapshots or [[]])
        self.spend_error = spend_error
        self.spends = []
        self.executed = []
        self.list_calls = 0

    async def list_notes(self, pubkey=None):
        self.list_calls += 1
        if len(self.snapshots) > 1:
            return self.snapshots.pop(0)
        return self.snapshots[0]

    async def spend(self, params):
        if self.spend_error is not None:
            raise self.spend_error
        self.spends.append(params)
        return "Draft: ok\nSign: ok\nSend: ok"

    async def execute(self, action):
        self.executed.append(action)
        return NOTES_OUTPUT


class FakeLedger:
    """Stands in for LedgerRPC."""

    def __init__(self, height=100):
        self.height = height
        self.blocks: dict[int, list] = {}
        self.fail = False

    async def current_height(self):
        if self.fail:
            raise ExecutionError("Ledger RPC unavailable (getHeight)")
        return self.height

    async def get_height(self):
        return {"height": self.height}

    async def get_tip(self):
        return {"height": self.height, "hash": "tiphash"}

    async def get_transactions_by_block_height(self, height):
        if self.fail:
            raise ExecutionError("Ledger RPC unavailable (getTransactionsByBlockHeight)")
        return self.blocks.get(height, [])

    async def get_block_by_height(self, height):
        return {"height": height}

    async def get_block_by_hash(self, block_hash):
        return {"hash": block_hash}

    async def get_transaction_by_id(self, tx_id):
        return {"id": tx_id}

    async def get_all_transactions(self, limit=100, offset=0):
        return [{"id": f"tx{i}"} for i in range(limit)]


@pytest.fixture
def fake_wallet():
    return FakeWallet()


@pytest.fixture
def fake_ledger():
    return FakeLedger()
