"""
Keyed one-shot job scheduling on the asyncio loop (APScheduler AsyncIOScheduler).

Each key (e.g. "auto-cycle:<user_id>") has at most one pending job; scheduling
again replaces it, cancel() removes it. A job that has already started running
is not interrupted by cancel(); it runs to completion.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import Any, Callable

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from pytz import utc

from backend_octra.octra_logging import get_logger

logger = get_logger(__name__)


class CycleScheduler:
    def __init__(self) -> None:
        self._scheduler: AsyncIOScheduler | None = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def start(self) -> None:
        """Start on the running event loop. Must be called from inside the loop."""
        if self.running:
            return
        self._scheduler = AsyncIOScheduler(
            event_loop=asyncio.get_running_loop(),
            timezone=utc,
            job_defaults={"coalesce": True, "max_instances": 1, "misfire_grace_time": None},
        )
        self._scheduler.start()
        logger.info("cycle_scheduler_started")

    def shutdown(self) -> None:
        if self.running:
            self._scheduler.shutdown(wait=False)
            logger.info("cycle_scheduler_stopped")
        self._scheduler = None

    def _require(self) -> AsyncIOScheduler:
        if self._scheduler is None:
            raise RuntimeError("CycleScheduler is not started")
        return self._scheduler

    def schedule(self, key: str, delay_sec: float, func: Callable[..., Any], *args: Any) -> None:
        run_date = datetime.now(utc) + timedelta(seconds=max(0.0, delay_sec))
        self._require().add_job(
            func,
            trigger="date",
            run_date=run_date,
            args=list(args),
            id=key,
            replace_existing=True,
        )
        logger.debug("cycle_job_scheduled", key=key, delay_sec=delay_sec)

    def cancel(self, key: str) -> bool:
        if self._scheduler is None:
            return False
        try:
            self._scheduler.remove_job(key)
        except JobLookupError:
            return False
        logger.debug("cycle_job_cancelled", key=key)
        return True

    def is_scheduled(self, key: str) -> bool:
        return self._scheduler is not None and self._scheduler.get_job(key) is not None
