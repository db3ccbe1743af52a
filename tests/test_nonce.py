"""
NonceSequencer allocation and AddressLocks serialization.
"""

from __future__ import annotations

import asyncio

import pytest

from backend_octra.core.exceptions import NonceUnavailable
from backend_octra.dispatch.nonce import AddressLocks, NonceSequencer


def test_allocate_starts_after_ledger_nonce(ledger):
    ledger.nonces["octA"] = 41
    assert asyncio.run(NonceSequencer(ledger).allocate("octA")) == 42
    assert asyncio.run(NonceSequencer(ledger).allocate("octA", 5)) == 42


def test_fresh_account_starts_at_one(ledger):
    assert asyncio.run(NonceSequencer(ledger).allocate("octNew")) == 1


def test_ledger_outage_is_nonce_unavailable(ledger):
    ledger.state_down = True
    with pytest.raises(NonceUnavailable):
        asyncio.run(NonceSequencer(ledger).allocate("octA"))


def test_count_must_be_positive(ledger):
    with pytest.raises(ValueError):
        asyncio.run(NonceSequencer(ledger).allocate("octA", 0))


def test_address_lock_serializes_same_address():
    locks = AddressLocks()
    order: list[str] = []

    async def worker(name: str, address: str) -> None:
        async with locks.hold(address):
            order.append(f"{name}-in")
            await asyncio.sleep(0)
            await asyncio.sleep(0)
            order.append(f"{name}-out")

    async def main() -> None:
        await asyncio.gather(worker("a", "octA"), worker("b", "octA"))

    asyncio.run(main())
    assert order == ["a-in", "a-out", "b-in", "b-out"]


def test_different_addresses_do_not_block_each_other():
    locks = AddressLocks()
    order: list[str] = []

    async def worker(name: str, address: str) -> None:
        async with locks.hold(address):
            order.append(f"{name}-in")
            await asyncio.sleep(0)
            order.append(f"{name}-out")

    async def main() -> None:
        await asyncio.gather(worker("a", "octA"), worker("b", "octB"))

    asyncio.run(main())
    assert order.index("b-in") < order.index("a-out")


def test_is_locked_reflects_holder():
    locks = AddressLocks()

    async def main() -> None:
        assert not locks.is_locked("octA")
        async with locks.hold("octA"):
            assert locks.is_locked("octA")
        assert not locks.is_locked("octA")

    asyncio.run(main())
