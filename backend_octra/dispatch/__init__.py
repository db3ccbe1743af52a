"""
Dispatch package: nonce sequencing, paced submission, transfers, notifications.
"""

from backend_octra.dispatch.dispatcher import (
    BatchResult,
    Recipient,
    TransferDispatcher,
    TransferResult,
)
from backend_octra.dispatch.nonce import AddressLocks, NonceSequencer
from backend_octra.dispatch.notifier import (
    NotificationSender,
    Notifier,
    NullNotifier,
    TelegramNotifier,
)
from backend_octra.dispatch.throttle import paced

__all__ = [
    "AddressLocks",
    "BatchResult",
    "NonceSequencer",
    "NotificationSender",
    "Notifier",
    "NullNotifier",
    "Recipient",
    "TelegramNotifier",
    "TransferDispatcher",
    "TransferResult",
    "paced",
]
