"""
Tests for nockgate_core.commands — wallet argument vectors and their
rendered form.
"""

from __future__ import annotations

from pathlib import Path

from conftest import ADDR_A, ADDR_B

from nockgate_core.actions import ListNotesByPubkeyParams, validate_simple_spend_params
from nockgate_core.commands import CommandBuilder, WalletCommand, format_amount

SOCK = "./test-leader/nockchain.sock"


def _builder():
    return CommandBuilder("nockchain-wallet", SOCK)


def _two_recipient_spend():
    return validate_simple_spend_params({
        "recipients": [{"count": 1, "address": ADDR_A}, {"count": 2, "address": ADDR_B}],
        "gifts": [100, 200],
        "names": [["Alice", "Sender"], ["Bob", "User"]],
        "fee": 10,
    })


class TestSimpleSpend:
    def test_argv(self):
        cmd = _builder().simple_spend(_two_recipient_spend())
        assert cmd.multi_step
        assert cmd.argv == (
            "nockchain-wallet", "--nockchain-socket", SOCK,
            "simple-spend",
            "--names", "[Alice Sender],[Bob User]",
            "--recipients", f"[1 {ADDR_A}],[2 {ADDR_B}]",
            "--gifts", "100,200",
            "--fee", "10",
        )

    def test_rendered_command_string(self):
        line = _builder().simple_spend(_two_recipient_spend()).render()
        assert line == (
            f"nockchain-wallet --nockchain-socket {SOCK} simple-spend "
            f'--names "[Alice Sender],[Bob User]" '
            f'--recipients "[1 {ADDR_A}],[2 {ADDR_B}]" '
            f'--gifts "100,200" --fee 10'
        )

    def test_recipient_and_name_order_preserved(self):
        line = _builder().simple_spend(_two_recipient_spend()).render()
        assert line.index(f"[1 {ADDR_A}]") < line.index(f"[2 {ADDR_B}]")
        assert line.index("[Alice Sender]") < line.index("[Bob User]")

    def test_single_gift_still_quoted(self):
        params = validate_simple_spend_params({
            "recipients": [{"count": 1, "address": ADDR_A}],
            "gifts": [5],
            "names": [["A", "B"]],
            "fee": 1,
        })
        assert '--gifts "5"' in _builder().simple_spend(params).render()

    def test_fractional_gift(self):
        params = validate_simple_spend_params({
            "recipients": [{"count": 1, "address": ADDR_A}],
            "gifts": [2.5],
            "names": [],
            "fee": 1,
        })
        cmd = _builder().simple_spend(params)
        assert cmd.argv[cmd.argv.index("--gifts") + 1] == "2.5"

    def test_empty_names_render_as_empty_list(self):
        params = validate_simple_spend_params({
            "recipients": [{"count": 1, "address": ADDR_A}],
            "gifts": [1],
            "names": [],
            "fee": 1,
        })
        cmd = _builder().simple_spend(params)
        assert cmd.argv[cmd.argv.index("--names") + 1] == "[]"
        assert '--names "[]"' in cmd.render()


class TestReadCommands:
    def test_list_notes(self):
        cmd = _builder().list_notes()
        assert cmd == WalletCommand(("nockchain-wallet", "--nockchain-socket", SOCK, "list-notes"))
        assert not cmd.multi_step

    def test_list_notes_by_pubkey(self):
        cmd = _builder().list_notes_by_pubkey(ListNotesByPubkeyParams(pubkey="3Fq9 pk"))
        assert cmd.argv[-3:] == ("list-notes-by-pubkey", "--pubkey", "3Fq9 pk")
        assert cmd.render().endswith('--pubkey "3Fq9 pk"')

    def test_draft_steps(self):
        draft = Path("drafts/draft_01.draft")
        assert _builder().sign_tx(draft).argv[-3:] == ("sign-tx", "--draft", str(draft))
        assert _builder().send_tx(draft).argv[-3:] == ("send-tx", "--draft", str(draft))


class TestFormatAmount:
    def test_integral(self):
        assert format_amount(100) == "100"
        assert format_amount(100.0) == "100"

    def test_fraction(self):
        assert format_amount(0.5) == "0.5"
