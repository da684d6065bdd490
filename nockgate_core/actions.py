"""
Action parameter validation.

Each supported action has its own strongly-typed parameter record;
``parse_action`` maps an authenticated envelope onto one of them:

    simple-spend          SimpleSpendParams     explicit recipients / gifts / names
    send                  SendParams            amount-based, notes chosen by coin selection
    list-notes            ListNotesParams
    list-notes-by-pubkey  ListNotesByPubkeyParams
    swap                  SwapParams            only valid through swap initiation

Anything destined for the wallet's argument vector is sanitized even
though no shell is involved.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any, Union

import base58

from nockgate_core.envelope import SignedEnvelope
from nockgate_core.errors import ValidationError

MAX_RECIPIENTS = 50
MIN_COUNT, MAX_COUNT = 1, 999
MAX_GIFT = 1_000_000_000
MIN_FEE, MAX_FEE = 1, 1000
MAX_ARG_LEN = 100

ADDRESS_MIN_LEN, ADDRESS_MAX_LEN = 150, 156
ADDRESS_MIN_BYTES, ADDRESS_MAX_BYTES = 110, 115

_BASE58_RE = re.compile(r"^[123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz]+$")
_UNSAFE_CHARS_RE = re.compile(r"[;|&$`\\'\"]")
_WHITESPACE_RE = re.compile(r"\s+")


# ═══════════════════════════════════════════════════════════════════
#  Parameter records
# ═══════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ValidatedRecipient:
    count: int
    address: str


@dataclass(frozen=True)
class SimpleSpendParams:
    recipients: tuple[ValidatedRecipient, ...]
    gifts: tuple[Union[int, float], ...]
    names: tuple[tuple[str, ...], ...]
    fee: int


@dataclass(frozen=True)
class SendParams:
    recipient: str
    amount: Union[int, float]
    fee: int


@dataclass(frozen=True)
class ListNotesParams:
    pass


@dataclass(frozen=True)
class ListNotesByPubkeyParams:
    pubkey: str


@dataclass(frozen=True)
class SwapParams:
    swap_id: str
    recipient: str
    amount: Union[int, float]
    fee: int


ActionParams = Union[
    SimpleSpendParams, SendParams, ListNotesParams, ListNotesByPubkeyParams, SwapParams,
]

SUPPORTED_ACTIONS = ("simple-spend", "send", "list-notes", "list-notes-by-pubkey")


# ═══════════════════════════════════════════════════════════════════
#  Field helpers
# ═══════════════════════════════════════════════════════════════════

def is_valid_address(address: Any) -> bool:
    """
    Structural address check: length window, base58 alphabet and decoded
    byte length.  No checksum is verified.
    """
    if not isinstance(address, str):
        return False
    if not ADDRESS_MIN_LEN <= len(address) <= ADDRESS_MAX_LEN:
        return False
    if not _BASE58_RE.match(address):
        return False
    try:
        decoded = base58.b58decode(address)
    except ValueError:
        return False
    return ADDRESS_MIN_BYTES <= len(decoded) <= ADDRESS_MAX_BYTES


def sanitize_argument(value: Any) -> str:
    """Strip shell metacharacters, collapse whitespace, trim, cap length."""
    if not isinstance(value, str):
        return ""
    cleaned = _UNSAFE_CHARS_RE.sub("", value)
    cleaned = _WHITESPACE_RE.sub(" ", cleaned).strip()
    return cleaned[:MAX_ARG_LEN]


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _positive_amount(value: Any, what: str) -> Union[int, float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"Invalid {what}: must be positive number")
    if isinstance(value, float) and not math.isfinite(value):
        raise ValidationError(f"Invalid {what}: must be positive number")
    if value <= 0:
        raise ValidationError(f"Invalid {what}: must be positive number")
    if value > MAX_GIFT:
        raise ValidationError(f"{what.capitalize()} too large: maximum 1 billion")
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def validate_fee(fee: Any) -> int:
    if isinstance(fee, float) and fee.is_integer():
        fee = int(fee)
    if not _is_int(fee) or not MIN_FEE <= fee <= MAX_FEE:
        raise ValidationError(f"Invalid fee: must be integer between {MIN_FEE}-{MAX_FEE}")
    return fee


def validate_address(address: Any, where: str = "recipient") -> str:
    if not is_valid_address(address):
        raise ValidationError(f"Invalid address at {where}")
    return address


def _require_object(params: Any) -> dict:
    if not isinstance(params, dict):
        raise ValidationError("Invalid params: must be an object")
    return params


# ═══════════════════════════════════════════════════════════════════
#  Per-action validators
# ═══════════════════════════════════════════════════════════════════

def validate_simple_spend_params(params: Any) -> SimpleSpendParams:
    params = _require_object(params)
    recipients = params.get("recipients")
    gifts = params.get("gifts")
    names = params.get("names")

    if not isinstance(recipients, list) or not recipients:
        raise ValidationError("Invalid recipients: must be non-empty array")
    if len(recipients) > MAX_RECIPIENTS:
        raise ValidationError(f"Too many recipients: maximum {MAX_RECIPIENTS} allowed")

    validated_recipients = []
    for index, recipient in enumerate(recipients):
        if not isinstance(recipient, dict):
            raise ValidationError(
                f"Invalid recipient at index {index}: must be object with count and address"
            )
        count = recipient.get("count")
        if not _is_int(count) or not MIN_COUNT <= count <= MAX_COUNT:
            raise ValidationError(
                f"Invalid count at recipient {index}: must be integer between "
                f"{MIN_COUNT}-{MAX_COUNT}"
            )
        address = validate_address(recipient.get("address"), f"recipient {index}")
        validated_recipients.append(ValidatedRecipient(count=count, address=address))

    if not isinstance(gifts, list) or not gifts:
        raise ValidationError("Invalid gifts: must be non-empty array")
    if len(gifts) != len(recipients):
        raise ValidationError(
            f"Gifts array length ({len(gifts)}) must match recipients length "
            f"({len(recipients)})"
        )
    validated_gifts = tuple(
        _positive_amount(gift, f"gift at index {index}") for index, gift in enumerate(gifts)
    )

    if not isinstance(names, list):
        raise ValidationError("Invalid names: must be array")
    validated_names = []
    for index, name_pair in enumerate(names):
        if not isinstance(name_pair, list):
            raise ValidationError(f"Invalid name at index {index}: must be array of strings")
        leaves = []
        for leaf_index, name in enumerate(name_pair):
            if not isinstance(name, str):
                raise ValidationError(f"Invalid name at {index}[{leaf_index}]: must be string")
            sanitized = sanitize_argument(name)
            if not sanitized:
                raise ValidationError(
                    f"Invalid name at {index}[{leaf_index}]: cannot be empty after sanitization"
                )
            leaves.append(sanitized)
        validated_names.append(tuple(leaves))

    return SimpleSpendParams(
        recipients=tuple(validated_recipients),
        gifts=validated_gifts,
        names=tuple(validated_names),
        fee=validate_fee(params.get("fee")),
    )


def validate_send_params(params: Any) -> SendParams:
    params = _require_object(params)
    return SendParams(
        recipient=validate_address(params.get("recipient")),
        amount=_positive_amount(params.get("amount"), "amount"),
        fee=validate_fee(params.get("fee")),
    )


def validate_pubkey_params(params: Any) -> ListNotesByPubkeyParams:
    params = _require_object(params)
    if not params.get("pubkey"):
        raise ValidationError("list-notes-by-pubkey requires pubkey parameter")
    pubkey = sanitize_argument(params["pubkey"])
    if not pubkey:
        raise ValidationError("Invalid pubkey: cannot be empty after sanitization")
    return ListNotesByPubkeyParams(pubkey=pubkey)


def validate_swap_params(params: Any) -> SwapParams:
    params = _require_object(params)
    swap_id = params.get("swap_id")
    if not isinstance(swap_id, str) or not swap_id.strip():
        raise ValidationError("Invalid swap_id: must be non-empty string")
    if len(swap_id) > MAX_ARG_LEN:
        raise ValidationError(f"Invalid swap_id: maximum {MAX_ARG_LEN} characters")
    return SwapParams(
        swap_id=swap_id,
        recipient=validate_address(params.get("recipient")),
        amount=_positive_amount(params.get("amount"), "amount"),
        fee=validate_fee(params.get("fee")),
    )


def parse_action(envelope: SignedEnvelope) -> ActionParams:
    """Decode an authenticated envelope into its typed parameter record."""
    match envelope.action:
        case "simple-spend":
            return validate_simple_spend_params(envelope.params)
        case "send":
            return validate_send_params(envelope.params)
        case "list-notes":
            return ListNotesParams()
        case "list-notes-by-pubkey":
            return validate_pubkey_params(envelope.params)
        case "swap":
            return validate_swap_params(envelope.params)
        case _:
            raise ValidationError(
                f"Unknown action. Supported: {', '.join(SUPPORTED_ACTIONS)}",
                code="unknown_action",
            )
