"""
Transfer message construction and Ed25519 signing.

The ledger verifies the signature against a byte-exact reproduction of the
record, so field order and JSON formatting here are part of the wire contract:
compact separators, insertion order from, to_, amount, nonce, ou, timestamp.
The optional memo ("message") travels with the payload but is never signed.
"""

from __future__ import annotations

import base64
import hashlib
import json
import random
import time
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

import nacl.exceptions
import nacl.signing

from backend_octra.core.exceptions import InvalidAmount

MICRO_UNITS = Decimal(1_000_000)
FEE_TIER_THRESHOLD = Decimal(1000)
FEE_TIER_LOW = "1"
FEE_TIER_HIGH = "3"
TIMESTAMP_JITTER_SEC = 0.01
MEMO_FIELD = "message"


def to_decimal(amount: Any) -> Decimal:
    """Parse a caller amount; floats go through str() so 0.1 stays 0.1."""
    if isinstance(amount, bool):
        raise InvalidAmount()
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    except (InvalidOperation, ValueError, TypeError) as e:
        raise InvalidAmount("Amount must be a number") from e
    if not value.is_finite():
        raise InvalidAmount("Amount must be a number")
    return value


def to_smallest_units(amount: Any) -> int:
    """Decimal amount × 10^6, rounded half-up; must be a positive integer."""
    units = int((to_decimal(amount) * MICRO_UNITS).quantize(Decimal(1), rounding=ROUND_HALF_UP))
    if units <= 0:
        raise InvalidAmount()
    return units


def quantize_amount(amount: Any) -> Decimal:
    """The amount the ledger actually moves: to_smallest_units(amount) / 10^6."""
    return Decimal(to_smallest_units(amount)) / MICRO_UNITS


def fee_tier(amount: Any) -> str:
    return FEE_TIER_LOW if to_decimal(amount) < FEE_TIER_THRESHOLD else FEE_TIER_HIGH


def build_transfer_message(
    sender: str,
    recipient: str,
    amount: Any,
    nonce: int,
    memo: str | None = None,
    *,
    now: float | None = None,
) -> dict[str, Any]:
    units = to_smallest_units(amount)
    ts = time.time() if now is None else now
    record: dict[str, Any] = {
        "from": sender,
        "to_": recipient,
        "amount": str(units),
        "nonce": int(nonce),
        "ou": fee_tier(amount),
        "timestamp": ts + random.uniform(0, TIMESTAMP_JITTER_SEC),
    }
    if memo:
        record[MEMO_FIELD] = memo
    return record


def signing_bytes(record: dict[str, Any]) -> bytes:
    body = {k: v for k, v in record.items() if k != MEMO_FIELD}
    return json.dumps(body, separators=(",", ":")).encode("utf-8")


def message_digest(record: dict[str, Any]) -> str:
    """SHA-256 hex of the signed bytes; a local reference, not the ledger hash."""
    return hashlib.sha256(signing_bytes(record)).hexdigest()


def sign(record: dict[str, Any], signing_key: nacl.signing.SigningKey) -> bytes:
    return signing_key.sign(signing_bytes(record)).signature


def verify(record: dict[str, Any], signature: bytes, public_key: bytes) -> bool:
    try:
        nacl.signing.VerifyKey(public_key).verify(signing_bytes(record), signature)
    except nacl.exceptions.BadSignatureError:
        return False
    return True


def assemble_signed_transaction(
    record: dict[str, Any],
    signature: bytes,
    public_key: bytes,
) -> dict[str, Any]:
    return {
        **record,
        "signature": base64.b64encode(signature).decode(),
        "public_key": base64.b64encode(public_key).decode(),
    }
