"""Periodic task abstraction.

A periodic task runs one unit of work at a fixed interval, forever.
A failing run is logged and swallowed so the next run still happens on
the same cadence:

    wait startup delay (once)
    loop:
        execute()        # failures logged, loop continues
        wait until next tick

The event processor and domain reconciliation loops (expiring stale
orders, verifying paid orders, resolving disputes) are all instances.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class TaskRunStatus(str, Enum):
    """Status of a single task run."""

    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class TaskRunResult:
    """Result of one execution of a periodic task.

    Attributes:
        task_name: Name of the task that ran
        status: Whether execute() returned or raised
        started_at: When the run started
        duration_ms: Time taken by execute()
        error: Error message when the run failed
    """

    task_name: str
    status: TaskRunStatus
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    duration_ms: float = 0.0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "task_name": self.task_name,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "duration_ms": self.duration_ms,
            "error": self.error,
        }


class PeriodicTask(ABC):
    """Abstract base class for periodic background tasks.

    Subclasses provide a name, an interval in seconds and ``execute()``.
    ``startup_delay`` defaults to zero.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the task name for logging."""

    @property
    @abstractmethod
    def interval(self) -> float:
        """Seconds between runs."""

    @property
    def startup_delay(self) -> float:
        """Seconds to wait once before the first run."""
        return 0.0

    @abstractmethod
    async def execute(self) -> None:
        """Do one unit of work.

        Raises:
            Exception: any failure; it is logged and the loop continues
        """

    async def run_once(self) -> TaskRunResult:
        """Execute once, converting any failure into a FAILED result."""
        started_at = datetime.now(timezone.utc)
        start = time.perf_counter()

        try:
            await self.execute()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            result = TaskRunResult(
                task_name=self.name,
                status=TaskRunStatus.FAILED,
                started_at=started_at,
                duration_ms=(time.perf_counter() - start) * 1000,
                error=str(e),
            )
            logger.error(
                f"{self.name} processing failed: {e}",
                extra=result.to_dict(),
                exc_info=True,
            )
            return result

        return TaskRunResult(
            task_name=self.name,
            status=TaskRunStatus.SUCCESS,
            started_at=started_at,
            duration_ms=(time.perf_counter() - start) * 1000,
        )

    async def run_forever(self, initial_delay: float = 0.0) -> None:
        """Run the task until cancelled.

        Args:
            initial_delay: Extra seconds to wait before the startup delay,
                used by the task registry to stagger tasks
        """
        delay = initial_delay + self.startup_delay
        if delay > 0:
            logger.info(
                f"{self.name} task waiting {delay:g} seconds before starting",
                extra={"task_name": self.name, "delay_seconds": delay},
            )
            await asyncio.sleep(delay)

        logger.info(f"{self.name} task started", extra={"task_name": self.name})

        loop = asyncio.get_running_loop()
        next_tick = loop.time()
        while True:
            await self.run_once()

            next_tick += self.interval
            now = loop.time()
            if next_tick < now:
                # Run overran one or more ticks; resume the cadence from now
                next_tick = now + self.interval
            await asyncio.sleep(next_tick - now)
