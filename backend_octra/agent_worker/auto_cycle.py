"""
Auto-cycle worker: recurring fan-out / fan-back of an enrolled wallet's funds.

One pass ("cycle") for wallet W with configured amount A:
  1. load the cohort of other auto-approved wallets (capped);
  2. send A × fee_factor / |cohort| to every member in one multi-send;
  3. wait return_delay_sec;
  4. each member sends share × fee_factor back to W, paced one at a time.

Each wallet has one pending job in the CycleScheduler. A completed pass books
the next one after cooldown_sec; a failed pass books a retry after
retry_cooldown_sec and stays active. Every pass first checks the wallet is
still active and within auto_started_at + auto_duration minutes. An empty
cohort ends the chain for that pass (logged, nothing booked).

Risk: funds leave custodial control on every pass and there is no balance
reconciliation or loss cap; each round trip costs roughly 1 - fee_factor^2
of the cycled amount.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Awaitable, Callable

from backend_octra.core.exceptions import (
    InsufficientBalance,
    NotApprovedForAutoCycle,
    WalletError,
)
from backend_octra.database.models import WalletRecord
from backend_octra.database.store import WalletStore
from backend_octra.dispatch.dispatcher import Recipient, TransferDispatcher
from backend_octra.dispatch.throttle import paced
from backend_octra.octra_logging import get_logger
from backend_octra.wallet.signer import quantize_amount, to_decimal, to_smallest_units

logger = get_logger(__name__)

JOB_KEY_PREFIX = "auto-cycle:"


class CycleOutcome(str, Enum):
    IDLE = "idle"
    EXPIRED = "expired"
    EMPTY_COHORT = "empty_cohort"
    COMPLETED = "completed"
    FAILED = "failed"


class CycleFailed(Exception):
    """A pass could not move funds at all."""


@dataclass
class AutoCycleConfig:
    first_cycle_delay_sec: float = 1.0
    cohort_cap: int = 50
    fee_factor: Decimal = Decimal("0.95")
    return_delay_sec: float = 60.0
    return_interval_sec: float = 2.0
    cooldown_sec: float = 300.0
    retry_cooldown_sec: float = 600.0
    default_duration_min: int = 60
    max_concurrent_cycles: int = 10

    @classmethod
    def from_settings(cls, settings: Any) -> "AutoCycleConfig":
        return cls(
            first_cycle_delay_sec=settings.auto_first_cycle_delay_sec,
            cohort_cap=settings.auto_cohort_cap,
            fee_factor=settings.auto_fee_factor,
            return_delay_sec=settings.auto_return_delay_sec,
            return_interval_sec=settings.auto_return_interval_sec,
            cooldown_sec=settings.auto_cooldown_sec,
            retry_cooldown_sec=settings.auto_retry_cooldown_sec,
            default_duration_min=settings.auto_default_duration_min,
            max_concurrent_cycles=settings.auto_max_concurrent_cycles,
        )


def job_key(user_id: str) -> str:
    return f"{JOB_KEY_PREFIX}{user_id}"


class AutoCycleEngine:
    def __init__(
        self,
        store: WalletStore,
        ledger: Any,
        dispatcher: TransferDispatcher,
        scheduler: Any,
        config: AutoCycleConfig | None = None,
        *,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._store = store
        self._ledger = ledger
        self._dispatcher = dispatcher
        self._scheduler = scheduler
        self._config = config or AutoCycleConfig()
        self._clock = clock
        self._sleep = sleep
        # Global ceiling on passes running at once, across all wallets
        self._slots = asyncio.Semaphore(self._config.max_concurrent_cycles)

    def _ends_at(self, wallet: WalletRecord) -> float | None:
        if wallet.auto_started_at is None:
            return None
        duration = wallet.auto_duration or self._config.default_duration_min
        return wallet.auto_started_at + duration * 60

    def _expired(self, wallet: WalletRecord) -> bool:
        ends_at = self._ends_at(wallet)
        return ends_at is not None and self._clock() > ends_at

    async def start(self, user_id: str, amount: Any) -> dict[str, Any]:
        user_id = str(user_id)
        wallet = await self._store.require(user_id)
        if not wallet.auto_approved:
            raise NotApprovedForAutoCycle()
        amount = to_decimal(amount)
        to_smallest_units(amount)

        state = await self._ledger.get_account_state(wallet.address)
        if state.balance < amount:
            raise InsufficientBalance()

        fields: dict[str, Any] = {
            "auto_active": True,
            "auto_amount": amount,
            "auto_started_at": self._clock(),
            "last_auto_cycle": None,
        }
        if not wallet.auto_duration:
            fields["auto_duration"] = self._config.default_duration_min
        await self._store.update(user_id, **fields)
        self._scheduler.schedule(
            job_key(user_id), self._config.first_cycle_delay_sec, self.run_cycle, user_id
        )
        logger.info("auto_cycle_started", user_id=user_id, address=wallet.address, amount=str(amount))
        return {"success": True, "message": "Auto transactions started", "amount": float(amount), "active": True}

    async def stop(self, user_id: str) -> dict[str, Any]:
        user_id = str(user_id)
        await self._store.require(user_id)
        self._scheduler.cancel(job_key(user_id))
        await self._store.update(user_id, auto_active=False, auto_stopped_at=self._clock())
        logger.info("auto_cycle_stopped", user_id=user_id)
        return {"success": True, "message": "Auto transactions stopped", "active": False}

    async def status(self, user_id: str) -> dict[str, Any]:
        wallet = await self._store.require(str(user_id))
        ends_at = self._ends_at(wallet)
        remaining = max(0, round((ends_at - self._clock()) / 60)) if ends_at else 0
        return {
            "approved": wallet.auto_approved,
            "active": wallet.auto_active,
            "duration": wallet.auto_duration or 0,
            "amount": float(wallet.auto_amount or 0),
            "remainingMinutes": remaining,
            "remainingTime": f"{remaining} mins",
            "lastCycle": wallet.last_auto_cycle,
        }

    async def resume_active(self) -> int:
        """Book a pass for every wallet persisted as active (process restart)."""
        resumed = 0
        for wallet in await self._store.list_active_auto():
            if self._expired(wallet):
                await self._store.update(wallet.user_id, auto_active=False)
                continue
            self._scheduler.schedule(
                job_key(wallet.user_id), self._config.first_cycle_delay_sec, self.run_cycle, wallet.user_id
            )
            resumed += 1
        if resumed:
            logger.info("auto_cycle_resumed", wallets=resumed)
        return resumed

    async def run_cycle(self, user_id: str) -> CycleOutcome:
        """Scheduled job body. Never raises."""
        user_id = str(user_id)
        try:
            wallet = await self._store.get(user_id)
            if wallet is None or not wallet.auto_active:
                logger.debug("auto_cycle_inactive", user_id=user_id)
                return CycleOutcome.IDLE
            if self._expired(wallet):
                await self._store.update(user_id, auto_active=False)
                logger.info("auto_cycle_expired", user_id=user_id)
                return CycleOutcome.EXPIRED
            async with self._slots:
                outcome = await self._cycle(wallet)
        except Exception as e:
            logger.exception("auto_cycle_failed", user_id=user_id, error=str(e))
            await self._book_next(user_id, self._config.retry_cooldown_sec)
            return CycleOutcome.FAILED

        if outcome is CycleOutcome.COMPLETED:
            await self._book_next(user_id, self._config.cooldown_sec)
        return outcome

    async def _cycle(self, wallet: WalletRecord) -> CycleOutcome:
        cohort = await self._store.list_auto_approved(
            exclude_user_id=wallet.user_id, limit=self._config.cohort_cap
        )
        cohort = [m for m in cohort if m.address != wallet.address]
        if not cohort:
            logger.info("auto_cycle_empty_cohort", user_id=wallet.user_id)
            return CycleOutcome.EMPTY_COHORT

        fee = self._config.fee_factor
        share = quantize_amount((to_decimal(wallet.auto_amount or 0) * fee) / len(cohort))
        batch = await self._dispatcher.send_multi(
            wallet.user_id, [Recipient(address=m.address, amount=share) for m in cohort]
        )
        if batch.success_count == 0:
            raise CycleFailed(f"fan-out failed for all {len(cohort)} cohort members")

        await self._sleep(self._config.return_delay_sec)

        back = quantize_amount(share * fee)
        returned = 0
        async for member in paced(cohort, self._config.return_interval_sec, sleep=self._sleep):
            try:
                result = await self._dispatcher.send_single(member.user_id, wallet.address, back)
            except WalletError as e:
                logger.warning("auto_cycle_return_failed", user_id=wallet.user_id, member=member.address, error=e.message)
                continue
            if result.success:
                returned += 1
            else:
                logger.warning("auto_cycle_return_failed", user_id=wallet.user_id, member=member.address, error=result.error)

        await self._store.update(wallet.user_id, last_auto_cycle=self._clock())
        logger.info(
            "auto_cycle_completed",
            user_id=wallet.user_id,
            cohort=len(cohort),
            share=str(share),
            sent=batch.success_count,
            returned=returned,
        )
        return CycleOutcome.COMPLETED

    async def _book_next(self, user_id: str, delay_sec: float) -> None:
        # stop() may have run while the pass was in flight; only re-book active wallets.
        try:
            wallet = await self._store.get(user_id)
        except Exception as e:
            logger.warning("auto_cycle_state_unreadable", user_id=user_id, error=str(e))
            still_active = True
        else:
            still_active = wallet is not None and wallet.auto_active
        if still_active:
            self._scheduler.schedule(job_key(user_id), delay_sec, self.run_cycle, user_id)
