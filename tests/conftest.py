"""
Pytest fixtures for Octra backend tests.

In-memory store and log, a scripted fake ledger, a recording notifier and a
recording scheduler. Async code is driven with asyncio.run in plain tests;
all sleeps are no-ops so pacing and cooldowns cost nothing.
"""

from __future__ import annotations

import itertools
from decimal import Decimal
from typing import Any

import pytest

from backend_octra.config.settings import Settings
from backend_octra.core.exceptions import TransportFailure
from backend_octra.database.models import WalletRecord
from backend_octra.database.store import InMemoryTransactionLog, InMemoryWalletStore
from backend_octra.dispatch.notifier import Notifier
from backend_octra.ledger.models import AccountState, LedgerTransaction, SubmitResult
from backend_octra.wallet.keys import derive_from_mnemonic


class FakeLedger:
    """Scripted ledger: per-address balance/nonce, rejects by nonce, optional outages."""

    def __init__(self) -> None:
        self.balances: dict[str, Decimal] = {}
        self.nonces: dict[str, int] = {}
        self.reject_nonces: set[int] = set()
        self.submitted: list[dict[str, Any]] = []
        self.history: dict[str, list[LedgerTransaction]] = {}
        self.state_calls = 0
        self.state_down = False
        self.submit_down = False

    async def get_account_state(self, address: str) -> AccountState:
        self.state_calls += 1
        if self.state_down:
            raise TransportFailure()
        return AccountState(
            balance=self.balances.get(address, Decimal(0)),
            nonce=self.nonces.get(address, 0),
        )

    async def submit_transaction(self, payload: dict[str, Any]) -> SubmitResult:
        self.submitted.append(payload)
        if self.submit_down:
            raise TransportFailure()
        if payload["nonce"] in self.reject_nonces:
            return SubmitResult(accepted=False, detail={"error": "nonce rejected"})
        sender = payload["from"]
        self.nonces[sender] = max(self.nonces.get(sender, 0), payload["nonce"])
        return SubmitResult(accepted=True, tx_hash=f"hash{len(self.submitted)}")

    async def get_recent_transactions(self, address: str, limit: int = 5) -> list[LedgerTransaction]:
        return self.history.get(address, [])[:limit]


class RecordingNotifier(Notifier):
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.messages: list[tuple[str, str]] = []

    async def notify(self, user_id: str, message: str) -> None:
        if self.fail:
            raise RuntimeError("bot unreachable")
        self.messages.append((user_id, message))


class RecordingScheduler:
    """Stands in for CycleScheduler; jobs are recorded, never run."""

    def __init__(self) -> None:
        self.jobs: dict[str, tuple[float, Any, tuple[Any, ...]]] = {}
        self.cancelled: list[str] = []
        self.running = False

    def start(self) -> None:
        self.running = True

    def shutdown(self) -> None:
        self.running = False

    def schedule(self, key: str, delay_sec: float, func: Any, *args: Any) -> None:
        self.jobs[key] = (delay_sec, func, args)

    def cancel(self, key: str) -> bool:
        self.cancelled.append(key)
        return self.jobs.pop(key, None) is not None

    def is_scheduled(self, key: str) -> bool:
        return key in self.jobs


async def no_sleep(delay: float) -> None:
    return None


@pytest.fixture
def settings() -> Settings:
    return Settings(
        rpc_url="http://ledger.test",
        explorer_url="https://octrascan.io/tx/",
        database_url="sqlite://",
        multi_send_interval_sec=0,
        auto_return_interval_sec=0,
    )


@pytest.fixture
def store() -> InMemoryWalletStore:
    return InMemoryWalletStore()


@pytest.fixture
def tx_log() -> InMemoryTransactionLog:
    return InMemoryTransactionLog()


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def scheduler() -> RecordingScheduler:
    return RecordingScheduler()


@pytest.fixture
def make_wallet(store):
    """Async factory: deterministic mnemonic wallet stored under user_id."""
    counter = itertools.count(1)

    async def _make(user_id: str, **fields: Any) -> WalletRecord:
        derived = derive_from_mnemonic(bytes([next(counter)]) * 16)
        return await store.put(
            WalletRecord(
                user_id=user_id,
                address=derived.address,
                public_key=derived.keypair.public_key_hex,
                private_key=derived.keypair.private_key_hex,
                mnemonic=derived.mnemonic,
                **fields,
            )
        )

    return _make


@pytest.fixture
def services(settings, store, tx_log, ledger, notifier, scheduler):
    from backend_octra.services import assemble_services

    return assemble_services(
        settings,
        store,
        tx_log,
        ledger,
        notifier=notifier,
        scheduler=scheduler,
        sleep=no_sleep,
    )
