"""
Storage layer: wallet records and transaction log.

In-memory backend for tests and single-process runs; SQLAlchemy backend
(SQLite by default, any SQLAlchemy URL via DATABASE_URL) for production.
"""

from backend_octra.database.models import TransactionRecord, WalletRecord
from backend_octra.database.store import (
    InMemoryTransactionLog,
    InMemoryWalletStore,
    TransactionLog,
    WalletStore,
)

__all__ = [
    "InMemoryTransactionLog",
    "InMemoryWalletStore",
    "TransactionLog",
    "TransactionRecord",
    "WalletRecord",
    "WalletStore",
]
