"""Periodic background tasks.

Tasks can be started via:
- PeriodicTask.run_once(): Single execution with failure isolation
- TaskRegistry.register(): Continuous execution with start staggering
"""

from payevents.workers.base import (
    PeriodicTask,
    TaskRunResult,
    TaskRunStatus,
)
from payevents.workers.runner import (
    TaskRegistry,
    configure_worker_logging,
)

__all__ = [
    "PeriodicTask",
    "TaskRunResult",
    "TaskRunStatus",
    "TaskRegistry",
    "configure_worker_logging",
]
