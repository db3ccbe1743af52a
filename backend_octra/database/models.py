"""
Domain models for stored entities.

Wallet records (keys, profile, auto-cycle enrollment) and transaction records.
Used by the store layer; no ORM coupling so backends stay swappable.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from decimal import Decimal
from typing import Any

# Fields a partial update may touch. The key triple only changes via replace_keys().
UPDATABLE_FIELDS = frozenset(
    {
        "username",
        "auto_approved",
        "auto_active",
        "auto_amount",
        "auto_duration",
        "auto_started_at",
        "auto_stopped_at",
        "last_auto_cycle",
        "last_notified_tx",
    }
)


@dataclass
class WalletRecord:
    """One custodial wallet per user identity."""

    user_id: str
    address: str
    public_key: str
    """Hex-encoded Ed25519 public key."""
    private_key: str = field(repr=False)
    """Hex-encoded secret key (64-byte expanded form)."""
    mnemonic: str | None = field(default=None, repr=False)
    """Present only for wallets generated here; None for imported keys."""
    username: str = "unknown"
    created_at: float | None = None
    updated_at: float | None = None
    auto_approved: bool = False
    auto_active: bool = False
    auto_amount: Decimal | None = None
    auto_duration: int | None = None
    """Minutes the auto-cycle may run after auto_started_at."""
    auto_started_at: float | None = None
    auto_stopped_at: float | None = None
    last_auto_cycle: float | None = None
    last_notified_tx: str | None = None

    def __post_init__(self) -> None:
        self.user_id = str(self.user_id)

    @property
    def is_imported(self) -> bool:
        return not self.mnemonic

    def copy(self) -> "WalletRecord":
        return WalletRecord(**{f.name: getattr(self, f.name) for f in fields(self)})

    def public_view(self) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "address": self.address,
            "username": self.username,
            "createdAt": self.created_at,
        }


@dataclass
class TransactionRecord:
    """A transfer the ledger accepted. Status stays 'pending' until confirmed elsewhere."""

    user_id: str
    tx_hash: str
    sender: str
    recipient: str
    amount: Decimal
    nonce: int
    timestamp: float
    status: str = "pending"
    id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "txHash": self.tx_hash,
            "from": self.sender,
            "to": self.recipient,
            "amount": float(self.amount),
            "nonce": self.nonce,
            "timestamp": self.timestamp,
            "status": self.status,
        }
