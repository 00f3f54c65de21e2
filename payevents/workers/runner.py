"""Task registry running many periodic tasks concurrently.

Tasks registered one after another start ``stagger_delay`` seconds apart
(0s, 15s, 30s, ... by default), so jobs polling the same store do not all
fire at once when the process boots.

Usage:
    registry = TaskRegistry(stagger_delay=15)
    registry.register(event_processor)
    registry.register(buy_expiration_task)

    finished = await registry.wait_for_any()   # normally never returns
    registry.abort_all()
"""

import asyncio
import logging

from payevents.workers.base import PeriodicTask

logger = logging.getLogger(__name__)

DEFAULT_STAGGER_DELAY_SECONDS = 15.0


class TaskRegistry:
    """Spawns periodic tasks with automatic start staggering.

    ``register`` must be called from a running event loop.
    """

    def __init__(self, stagger_delay: float = DEFAULT_STAGGER_DELAY_SECONDS) -> None:
        self.stagger_delay = stagger_delay
        self._handles: list[asyncio.Task[None]] = []
        self._registered = 0
        self._logger = logging.getLogger(self.__class__.__name__)

    def register(self, task: PeriodicTask) -> asyncio.Task[None]:
        """Start ``task`` after ``stagger_delay * registration_index`` seconds."""
        delay = self.stagger_delay * self._registered
        self._registered += 1

        handle = asyncio.create_task(
            task.run_forever(initial_delay=delay),
            name=task.name,
        )
        self._handles.append(handle)

        self._logger.info(
            f"Registered periodic task {task.name}",
            extra={
                "task_name": task.name,
                "interval_seconds": task.interval,
                "stagger_seconds": delay,
            },
        )
        return handle

    @property
    def task_count(self) -> int:
        """Number of tasks still tracked by the registry."""
        return len(self._handles)

    async def wait_for_any(self) -> asyncio.Task[None] | None:
        """Wait until any task ends and return it.

        Periodic tasks only end by crashing or being cancelled, so this is
        the signal to shut the process down. Returns None when no tasks
        are registered.
        """
        if not self._handles:
            return None

        done, pending = await asyncio.wait(
            self._handles, return_when=asyncio.FIRST_COMPLETED
        )
        finished = next(iter(done))
        self._handles = [h for h in self._handles if h is not finished]

        if finished.cancelled():
            self._logger.warning(f"Task {finished.get_name()} was cancelled")
        elif finished.exception() is not None:
            self._logger.error(
                f"Task {finished.get_name()} crashed",
                exc_info=finished.exception(),
            )
        else:
            self._logger.info(f"Task {finished.get_name()} finished")
        return finished

    def abort_all(self) -> None:
        """Cancel every running task immediately, possibly mid-run."""
        handles, self._handles = self._handles, []
        for handle in handles:
            handle.cancel()

        self._logger.info(
            "Aborted all periodic tasks",
            extra={"task_count": len(handles)},
        )


def configure_worker_logging(level: int = logging.INFO) -> None:
    """Configure logging for worker processes.

    Args:
        level: Logging level (default: INFO)
    """
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    logging.getLogger("payevents").setLevel(level)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
