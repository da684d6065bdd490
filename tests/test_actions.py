"""
Tests for nockgate_core.actions — per-action parameter validation.

Covers:
  - Fee, count, gift and recipient-count boundaries
  - Address structure (length window, alphabet, decoded length)
  - Argument sanitization
  - Action dispatch via parse_action
"""

from __future__ import annotations

import pytest
from conftest import ADDR_A, ADDR_B

from nockgate_core.actions import (
    ListNotesByPubkeyParams,
    ListNotesParams,
    SendParams,
    SimpleSpendParams,
    SwapParams,
    ValidatedRecipient,
    is_valid_address,
    parse_action,
    sanitize_argument,
    validate_fee,
    validate_send_params,
    validate_simple_spend_params,
    validate_swap_params,
)
from nockgate_core.envelope import SignedEnvelope
from nockgate_core.errors import ValidationError


def _spend(**overrides):
    params = {
        "recipients": [{"count": 1, "address": ADDR_A}, {"count": 2, "address": ADDR_B}],
        "gifts": [100, 200],
        "names": [["Alice", "Sender"], ["Bob", "User"]],
        "fee": 10,
    }
    params.update(overrides)
    return params


# ═══════════════════════════════════════════════════════════════════
#  Addresses
# ═══════════════════════════════════════════════════════════════════

class TestAddress:
    @pytest.mark.parametrize("address", ["2" * 150, "2" * 156, "z" * 150, "z" * 156, "2" * 153])
    def test_valid(self, address):
        assert is_valid_address(address)

    @pytest.mark.parametrize("address", ["2" * 149, "2" * 157, "z" * 149, "z" * 157])
    def test_length_window(self, address):
        assert not is_valid_address(address)

    def test_non_base58_character(self):
        assert not is_valid_address("0" + "2" * 149)
        assert not is_valid_address("l" + "2" * 149)

    def test_decoded_length_checked(self):
        # leading '1's decode to zero bytes: 150 bytes, outside 110..115
        assert not is_valid_address("1" * 150)

    @pytest.mark.parametrize("value", [None, 123, ["2" * 150], b"2" * 150])
    def test_non_string(self, value):
        assert not is_valid_address(value)


class TestSanitize:
    def test_strips_metacharacters(self):
        assert sanitize_argument("a;b|c&d$e`f\\g'h\"i") == "abcdefghi"

    def test_collapses_whitespace(self):
        assert sanitize_argument("  a \t\n b  ") == "a b"

    def test_caps_length(self):
        assert sanitize_argument("x" * 500) == "x" * 100

    def test_non_string(self):
        assert sanitize_argument(42) == ""


# ═══════════════════════════════════════════════════════════════════
#  simple-spend
# ═══════════════════════════════════════════════════════════════════

class TestFee:
    @pytest.mark.parametrize("fee", [1, 10, 1000, 10.0])
    def test_accepted(self, fee):
        assert validate_fee(fee) == int(fee)

    @pytest.mark.parametrize("fee", [0, 1001, -1, 1.5, "10", None, True])
    def test_rejected(self, fee):
        with pytest.raises(ValidationError, match="fee"):
            validate_fee(fee)


class TestSimpleSpend:
    def test_valid(self):
        p = validate_simple_spend_params(_spend())
        assert isinstance(p, SimpleSpendParams)
        assert p.recipients == (ValidatedRecipient(1, ADDR_A), ValidatedRecipient(2, ADDR_B))
        assert p.gifts == (100, 200)
        assert p.names == (("Alice", "Sender"), ("Bob", "User"))
        assert p.fee == 10

    def test_fifty_recipients_accepted(self):
        p = _spend(recipients=[{"count": 1, "address": ADDR_A}] * 50, gifts=[1] * 50)
        assert len(validate_simple_spend_params(p).recipients) == 50

    def test_fifty_one_recipients_rejected(self):
        p = _spend(recipients=[{"count": 1, "address": ADDR_A}] * 51, gifts=[1] * 51)
        with pytest.raises(ValidationError, match="Too many recipients"):
            validate_simple_spend_params(p)

    def test_empty_recipients(self):
        with pytest.raises(ValidationError, match="non-empty"):
            validate_simple_spend_params(_spend(recipients=[], gifts=[]))

    @pytest.mark.parametrize("count", [0, 1000, 1.5, "1", None, True])
    def test_count_bounds(self, count):
        p = _spend(recipients=[{"count": count, "address": ADDR_A}], gifts=[1])
        with pytest.raises(ValidationError, match="count at recipient 0"):
            validate_simple_spend_params(p)

    def test_count_limits_inclusive(self):
        p = _spend(recipients=[{"count": 1, "address": ADDR_A},
                               {"count": 999, "address": ADDR_B}])
        assert validate_simple_spend_params(p).recipients[1].count == 999

    def test_bad_address_reports_index(self):
        p = _spend(recipients=[{"count": 1, "address": ADDR_A},
                               {"count": 1, "address": "short"}])
        with pytest.raises(ValidationError, match="recipient 1"):
            validate_simple_spend_params(p)

    def test_recipient_not_object(self):
        with pytest.raises(ValidationError, match="index 0"):
            validate_simple_spend_params(_spend(recipients=["x", "y"]))

    def test_gift_length_mismatch(self):
        with pytest.raises(ValidationError, match="must match recipients length"):
            validate_simple_spend_params(_spend(gifts=[100]))

    @pytest.mark.parametrize("gift", [0, -5, "100", None, float("inf"), float("nan")])
    def test_gift_must_be_positive_number(self, gift):
        with pytest.raises(ValidationError, match="gift at index 1"):
            validate_simple_spend_params(_spend(gifts=[100, gift]))

    def test_gift_cap(self):
        assert validate_simple_spend_params(_spend(gifts=[1, 1_000_000_000])).gifts[1] == 10**9
        with pytest.raises(ValidationError, match="maximum 1 billion"):
            validate_simple_spend_params(_spend(gifts=[1, 1_000_000_001]))

    def test_names_sanitized(self):
        p = validate_simple_spend_params(_spend(names=[["Al;ice", "Sen der  "], ["Bob"]]))
        assert p.names == (("Alice", "Sen der"), ("Bob",))

    def test_name_empty_after_sanitization(self):
        with pytest.raises(ValidationError, match="empty after sanitization"):
            validate_simple_spend_params(_spend(names=[[";|&"]]))

    def test_names_must_be_list_of_lists(self):
        with pytest.raises(ValidationError, match="names"):
            validate_simple_spend_params(_spend(names="Alice"))
        with pytest.raises(ValidationError, match="name at index 0"):
            validate_simple_spend_params(_spend(names=["Alice"]))
        with pytest.raises(ValidationError, match=r"name at 0\[1\]"):
            validate_simple_spend_params(_spend(names=[["Alice", 7]]))

    def test_params_not_object(self):
        with pytest.raises(ValidationError, match="must be an object"):
            validate_simple_spend_params([1, 2])


# ═══════════════════════════════════════════════════════════════════
#  send / swap / dispatch
# ═══════════════════════════════════════════════════════════════════

class TestSendAndSwap:
    def test_send(self):
        p = validate_send_params({"recipient": ADDR_A, "amount": 2.5, "fee": 10})
        assert p == SendParams(recipient=ADDR_A, amount=2.5, fee=10)

    def test_send_integral_float_normalized(self):
        assert validate_send_params({"recipient": ADDR_A, "amount": 3.0, "fee": 1}).amount == 3

    def test_send_requires_fee(self):
        with pytest.raises(ValidationError, match="fee"):
            validate_send_params({"recipient": ADDR_A, "amount": 1})

    def test_swap(self):
        p = validate_swap_params({"swap_id": "s1", "recipient": ADDR_B, "amount": 7, "fee": 10})
        assert p == SwapParams(swap_id="s1", recipient=ADDR_B, amount=7, fee=10)

    @pytest.mark.parametrize("swap_id", ["", "   ", None, 5, "x" * 101])
    def test_swap_id(self, swap_id):
        with pytest.raises(ValidationError, match="swap_id"):
            validate_swap_params({"swap_id": swap_id, "recipient": ADDR_B, "amount": 7,
                                  "fee": 10})


class TestParseAction:
    def _env(self, action, params=None):
        return SignedEnvelope(action=action, params=params or {}, timestamp=1, nonce="n")

    def test_list_notes(self):
        assert parse_action(self._env("list-notes")) == ListNotesParams()

    def test_list_notes_by_pubkey(self):
        p = parse_action(self._env("list-notes-by-pubkey", {"pubkey": "abc;def"}))
        assert p == ListNotesByPubkeyParams(pubkey="abcdef")

    def test_list_notes_by_pubkey_requires_pubkey(self):
        with pytest.raises(ValidationError, match="pubkey"):
            parse_action(self._env("list-notes-by-pubkey"))
        with pytest.raises(ValidationError, match="empty after sanitization"):
            parse_action(self._env("list-notes-by-pubkey", {"pubkey": "$$"}))

    def test_simple_spend(self):
        assert isinstance(parse_action(self._env("simple-spend", _spend())), SimpleSpendParams)

    def test_send(self):
        p = parse_action(self._env("send", {"recipient": ADDR_A, "amount": 1, "fee": 1}))
        assert isinstance(p, SendParams)

    def test_unknown(self):
        with pytest.raises(ValidationError) as exc:
            parse_action(self._env("rm -rf"))
        assert exc.value.code == "unknown_action"
        assert "simple-spend" in exc.value.message
