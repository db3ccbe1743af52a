"""
Nonce allocation and per-address serialization.

The ledger applies transactions from one account strictly in nonce order, so a
batch of N transfers built together takes nonces current+1 .. current+N. The
current value is always read from the ledger; it is never guessed.

AddressLocks keeps at most one allocate→submit section per address in flight
inside this process. It does not coordinate across processes.
"""

from __future__ import annotations

import asyncio
import weakref
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from backend_octra.core.exceptions import NonceUnavailable, TransportFailure
from backend_octra.octra_logging import get_logger

logger = get_logger(__name__)


class NonceSequencer:
    def __init__(self, ledger: Any) -> None:
        self._ledger = ledger

    async def current(self, address: str) -> int:
        try:
            state = await self._ledger.get_account_state(address)
        except TransportFailure as e:
            logger.warning("nonce_query_failed", address=address, error=e.message)
            raise NonceUnavailable() from e
        return state.nonce

    async def allocate(self, address: str, count: int = 1) -> int:
        """Return the first of `count` consecutive nonces for address."""
        if count < 1:
            raise ValueError("count must be at least 1")
        start = await self.current(address) + 1
        logger.debug("nonce_allocated", address=address, start=start, count=count)
        return start


class AddressLocks:
    """Registry of asyncio locks keyed by address; idle locks are dropped."""

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def _lock_for(self, address: str) -> asyncio.Lock:
        lock = self._locks.get(address)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[address] = lock
        return lock

    def is_locked(self, address: str) -> bool:
        lock = self._locks.get(address)
        return bool(lock and lock.locked())

    @asynccontextmanager
    async def hold(self, address: str) -> AsyncIterator[None]:
        lock = self._lock_for(address)
        async with lock:
            yield
