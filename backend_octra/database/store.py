"""
Store abstraction for wallet records and the transaction log.

All access goes through the abstract interfaces; the in-memory backend here
serves tests and single-process runs, the SQLAlchemy backend (database.sql)
serves production. update() is a partial merge, never an overwrite, and the
address/public/private key triple only changes through replace_keys().
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from typing import Any

from backend_octra.core.exceptions import WalletNotFound
from backend_octra.database.models import UPDATABLE_FIELDS, TransactionRecord, WalletRecord

DEFAULT_LIST_LIMIT = 500


def check_update_fields(fields: dict[str, Any]) -> None:
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Fields not updatable: {sorted(unknown)}")


class WalletStore(ABC):
    """Keyed document store of wallet records."""

    @abstractmethod
    async def get(self, user_id: str) -> WalletRecord | None:
        """Return the wallet for user_id, or None."""

    async def require(self, user_id: str) -> WalletRecord:
        record = await self.get(str(user_id))
        if record is None:
            raise WalletNotFound()
        return record

    @abstractmethod
    async def put(self, record: WalletRecord) -> WalletRecord:
        """Insert or fully replace a record (fixtures and restores)."""

    @abstractmethod
    async def create(self, record: WalletRecord) -> WalletRecord | None:
        """Insert-only. Returns None when user_id already has a record."""

    @abstractmethod
    async def update(self, user_id: str, **fields: Any) -> WalletRecord:
        """Merge the given fields into an existing record; raises WalletNotFound."""

    @abstractmethod
    async def replace_keys(
        self,
        user_id: str,
        *,
        address: str,
        public_key: str,
        private_key: str,
    ) -> WalletRecord:
        """Atomically swap the key triple and clear the mnemonic; raises WalletNotFound."""

    @abstractmethod
    async def find_by_address(self, address: str) -> WalletRecord | None:
        """Return the wallet owning address, or None."""

    @abstractmethod
    async def list_wallets(self, limit: int = DEFAULT_LIST_LIMIT) -> list[WalletRecord]:
        """Return up to limit wallets in creation order."""

    @abstractmethod
    async def list_auto_approved(self, exclude_user_id: str, limit: int) -> list[WalletRecord]:
        """Return up to limit auto-approved wallets other than exclude_user_id."""

    @abstractmethod
    async def list_active_auto(self) -> list[WalletRecord]:
        """Return wallets whose auto-cycle is marked active."""


class TransactionLog(ABC):
    """Append-only audit log of accepted transfers."""

    @abstractmethod
    async def append(self, record: TransactionRecord) -> TransactionRecord:
        """Persist record; returns it with id assigned."""

    @abstractmethod
    async def list_for_address(self, address: str, limit: int = 50) -> list[TransactionRecord]:
        """Newest-first records where address is sender or recipient."""


class InMemoryWalletStore(WalletStore):
    """Dict-backed store. Each method runs without awaiting, so it is atomic on the loop."""

    def __init__(self) -> None:
        self._records: dict[str, WalletRecord] = {}

    async def get(self, user_id: str) -> WalletRecord | None:
        record = self._records.get(str(user_id))
        return record.copy() if record else None

    async def put(self, record: WalletRecord) -> WalletRecord:
        now = time.time()
        stored = record.copy()
        stored.created_at = stored.created_at or now
        stored.updated_at = now
        self._records[stored.user_id] = stored
        return stored.copy()

    async def create(self, record: WalletRecord) -> WalletRecord | None:
        if str(record.user_id) in self._records:
            return None
        return await self.put(record)

    async def update(self, user_id: str, **fields: Any) -> WalletRecord:
        check_update_fields(fields)
        record = self._records.get(str(user_id))
        if record is None:
            raise WalletNotFound()
        for name, value in fields.items():
            setattr(record, name, value)
        record.updated_at = time.time()
        return record.copy()

    async def replace_keys(
        self,
        user_id: str,
        *,
        address: str,
        public_key: str,
        private_key: str,
    ) -> WalletRecord:
        record = self._records.get(str(user_id))
        if record is None:
            raise WalletNotFound()
        updated = record.copy()
        updated.address = address
        updated.public_key = public_key
        updated.private_key = private_key
        updated.mnemonic = None
        updated.updated_at = time.time()
        self._records[updated.user_id] = updated
        return updated.copy()

    async def find_by_address(self, address: str) -> WalletRecord | None:
        for record in self._records.values():
            if record.address == address:
                return record.copy()
        return None

    async def list_wallets(self, limit: int = DEFAULT_LIST_LIMIT) -> list[WalletRecord]:
        return [r.copy() for r in list(self._records.values())[:limit]]

    async def list_auto_approved(self, exclude_user_id: str, limit: int) -> list[WalletRecord]:
        out = [
            r.copy()
            for r in self._records.values()
            if r.auto_approved and r.user_id != str(exclude_user_id)
        ]
        return out[:limit]

    async def list_active_auto(self) -> list[WalletRecord]:
        return [r.copy() for r in self._records.values() if r.auto_active]


class InMemoryTransactionLog(TransactionLog):
    def __init__(self) -> None:
        self.records: list[TransactionRecord] = []

    async def append(self, record: TransactionRecord) -> TransactionRecord:
        record.id = len(self.records) + 1
        self.records.append(record)
        return record

    async def list_for_address(self, address: str, limit: int = 50) -> list[TransactionRecord]:
        matches = [r for r in self.records if address in (r.sender, r.recipient)]
        return list(reversed(matches))[:limit]
