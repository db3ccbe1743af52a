# Keyed one-shot job scheduling for recurring per-wallet work.

from backend_octra.scheduler.engine import CycleScheduler

__all__ = ["CycleScheduler"]
