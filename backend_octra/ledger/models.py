"""
Data shapes exchanged with the Octra RPC node.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any


@dataclass(frozen=True)
class AccountState:
    """Balance (whole OCT) and the last nonce the ledger has applied for an address."""

    balance: Decimal
    nonce: int

    @classmethod
    def empty(cls) -> "AccountState":
        return cls(balance=Decimal(0), nonce=0)


@dataclass(frozen=True)
class SubmitResult:
    accepted: bool
    tx_hash: str | None = None
    detail: Any = None


@dataclass
class LedgerTransaction:
    """One history entry, seen from the perspective of `address`."""

    hash: str
    direction: str
    """'in' or 'out'."""
    amount: Decimal
    counterparty: str | None
    timestamp: float | None
    nonce: int
    status: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "hash": self.hash,
            "type": self.direction,
            "amount": float(self.amount),
            "counterparty": self.counterparty,
            "timestamp": self.timestamp,
            "nonce": self.nonce,
            "status": self.status,
        }
