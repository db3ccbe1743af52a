"""
Agent worker package: background jobs.

Runs the per-wallet auto-cycle passes on the shared scheduler.
"""

from backend_octra.agent_worker.auto_cycle import (
    AutoCycleConfig,
    AutoCycleEngine,
    CycleOutcome,
)

__all__ = ["AutoCycleConfig", "AutoCycleEngine", "CycleOutcome"]
