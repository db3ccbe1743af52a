"""
Core utilities: domain exceptions shared by every layer.
"""

from backend_octra.core.exceptions import (
    InsufficientBalance,
    InvalidAddress,
    InvalidAmount,
    InvalidKeyFormat,
    InvalidRecipients,
    LedgerRejected,
    NonceUnavailable,
    NotApprovedForAutoCycle,
    TransportFailure,
    WalletError,
    WalletNotFound,
)

__all__ = [
    "InsufficientBalance",
    "InvalidAddress",
    "InvalidAmount",
    "InvalidKeyFormat",
    "InvalidRecipients",
    "LedgerRejected",
    "NonceUnavailable",
    "NotApprovedForAutoCycle",
    "TransportFailure",
    "WalletError",
    "WalletNotFound",
]
