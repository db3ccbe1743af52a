"""
Application-level exceptions.

Responsibilities:
- Define domain exceptions (e.g., WalletNotFound, LedgerRejected).
- Provide consistent error codes and messages for API and worker error handling.

Messages are user-facing and must never contain key material.
"""

from __future__ import annotations

from typing import Any


class WalletError(Exception):
    """Base class for every error the wallet core reports to callers."""

    code = "WalletError"
    status_code = 400
    default_message = "Wallet operation failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {"success": False, "error": self.message, "code": self.code}


class InvalidKeyFormat(WalletError):
    code = "InvalidKeyFormat"
    default_message = "Invalid private key"


class InvalidAmount(WalletError):
    code = "InvalidAmount"
    default_message = "Amount must be positive"


class InvalidAddress(WalletError):
    code = "InvalidAddress"
    default_message = "Invalid recipient address"


class InvalidRecipients(WalletError):
    code = "InvalidRecipients"
    default_message = "Missing or invalid recipients array"


class InsufficientBalance(WalletError):
    code = "InsufficientBalance"
    default_message = "Insufficient balance"


class WalletNotFound(WalletError):
    code = "WalletNotFound"
    status_code = 404
    default_message = "Wallet not found"


class NotApprovedForAutoCycle(WalletError):
    code = "NotApprovedForAutoCycle"
    status_code = 403
    default_message = "Wallet not approved for auto transactions"


class NonceUnavailable(WalletError):
    code = "NonceUnavailable"
    status_code = 503
    default_message = "Failed to get nonce"


class TransportFailure(WalletError):
    code = "TransportFailure"
    status_code = 502
    default_message = "Ledger unreachable"


class LedgerRejected(WalletError):
    """The ledger answered and refused the transaction; detail is its response."""

    code = "LedgerRejected"
    default_message = "Transaction rejected"

    def __init__(self, message: str | None = None, detail: Any = None) -> None:
        super().__init__(message)
        self.detail = detail

    def to_dict(self) -> dict[str, Any]:
        out = super().to_dict()
        if self.detail is not None:
            out["details"] = self.detail
        return out
