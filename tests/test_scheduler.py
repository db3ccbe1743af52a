"""
CycleScheduler over APScheduler: keyed replacement, cancellation, execution.
"""

from __future__ import annotations

import asyncio

import pytest

from backend_octra.scheduler.engine import CycleScheduler


def test_schedule_requires_started_scheduler():
    with pytest.raises(RuntimeError):
        CycleScheduler().schedule("k", 1, lambda: None)
    assert CycleScheduler().cancel("k") is False


def test_same_key_replaces_and_cancel_removes():
    async def main():
        scheduler = CycleScheduler()
        scheduler.start()
        try:
            scheduler.schedule("auto-cycle:1", 60, asyncio.sleep, 0)
            scheduler.schedule("auto-cycle:1", 120, asyncio.sleep, 0)
            scheduler.schedule("auto-cycle:2", 60, asyncio.sleep, 0)
            assert scheduler.is_scheduled("auto-cycle:1")
            assert len(scheduler._scheduler.get_jobs()) == 2
            assert scheduler.cancel("auto-cycle:1") is True
            assert scheduler.cancel("auto-cycle:1") is False
            assert not scheduler.is_scheduled("auto-cycle:1")
        finally:
            scheduler.shutdown()
        assert not scheduler.running

    asyncio.run(main())


def test_due_job_runs_on_loop():
    async def main():
        done = asyncio.Event()

        async def job(value):
            done.set()
            return value

        scheduler = CycleScheduler()
        scheduler.start()
        try:
            scheduler.schedule("k", 0, job, "x")
            await asyncio.wait_for(done.wait(), timeout=5)
        finally:
            scheduler.shutdown()

    asyncio.run(main())
