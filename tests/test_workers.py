"""Tests for periodic tasks and the task registry.

Tests cover:
- TaskRunResult serialization
- PeriodicTask run_once failure handling
- run_forever cadence and failure isolation
- TaskRegistry staggering, wait_for_any and abort_all
"""

import asyncio
from datetime import datetime, timezone

import pytest

from payevents.workers.base import PeriodicTask, TaskRunResult, TaskRunStatus
from payevents.workers.runner import DEFAULT_STAGGER_DELAY_SECONDS, TaskRegistry


# ============================================================================
# TaskRunResult Tests
# ============================================================================

class TestTaskRunResult:
    """Tests for TaskRunResult dataclass."""

    def test_to_dict(self):
        """TaskRunResult converts to dict correctly."""
        started = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        result = TaskRunResult(
            task_name="Event Processor",
            status=TaskRunStatus.FAILED,
            started_at=started,
            duration_ms=12.5,
            error="db down",
        )

        d = result.to_dict()

        assert d["task_name"] == "Event Processor"
        assert d["status"] == "failed"
        assert d["started_at"] == started.isoformat()
        assert d["duration_ms"] == 12.5
        assert d["error"] == "db down"


# ============================================================================
# PeriodicTask Tests
# ============================================================================

class TestPeriodicTask:
    """Tests for the periodic task loop."""

    @pytest.mark.asyncio
    async def test_run_once_success(self):
        task = CountingTask("Counter")

        result = await task.run_once()

        assert result.status == TaskRunStatus.SUCCESS
        assert result.error is None
        assert task.runs == 1

    @pytest.mark.asyncio
    async def test_run_once_failure_is_captured(self):
        """A raising execute() yields a FAILED result instead of propagating."""
        task = CountingTask("Counter", fail_first=1)

        result = await task.run_once()

        assert result.status == TaskRunStatus.FAILED
        assert result.error == "run 1 failed"

    @pytest.mark.asyncio
    async def test_failing_run_does_not_stop_loop(self):
        """The loop keeps ticking after a failed run."""
        task = CountingTask("Counter", interval=0.01, fail_first=1)

        handle = asyncio.create_task(task.run_forever())
        await asyncio.sleep(0.1)
        handle.cancel()
        await asyncio.gather(handle, return_exceptions=True)

        assert task.runs >= 3

    @pytest.mark.asyncio
    async def test_first_tick_is_immediate(self):
        """Without a startup delay the first run happens right away."""
        task = CountingTask("Counter", interval=60)
        loop = asyncio.get_running_loop()
        started = loop.time()

        handle = asyncio.create_task(task.run_forever())
        await asyncio.sleep(0.05)
        handle.cancel()
        await asyncio.gather(handle, return_exceptions=True)

        assert task.runs == 1
        assert task.first_run_at - started < 0.05

    @pytest.mark.asyncio
    async def test_startup_delay_postpones_first_run(self):
        task = CountingTask("Counter", interval=60, startup_delay=0.1)

        handle = asyncio.create_task(task.run_forever())
        await asyncio.sleep(0.05)
        assert task.runs == 0
        await asyncio.sleep(0.1)
        handle.cancel()
        await asyncio.gather(handle, return_exceptions=True)

        assert task.runs == 1


# ============================================================================
# TaskRegistry Tests
# ============================================================================

class TestTaskRegistry:
    """Tests for task registration and lifecycle."""

    def test_default_stagger(self):
        assert TaskRegistry().stagger_delay == DEFAULT_STAGGER_DELAY_SECONDS == 15.0

    @pytest.mark.asyncio
    async def test_tasks_start_staggered(self):
        """Three tasks start roughly 0, s and 2s after registration."""
        stagger = 0.1
        registry = TaskRegistry(stagger_delay=stagger)
        tasks = [CountingTask(f"Task {i}", interval=60) for i in range(3)]
        started = asyncio.get_running_loop().time()

        handles = [registry.register(task) for task in tasks]
        await asyncio.sleep(0.35)

        assert registry.task_count == 3
        offsets = [task.first_run_at - started for task in tasks]
        for index, offset in enumerate(offsets):
            assert offset == pytest.approx(index * stagger, abs=0.05)

        registry.abort_all()
        await asyncio.gather(*handles, return_exceptions=True)

    @pytest.mark.asyncio
    async def test_default_stagger_offsets(self):
        """With the default stagger, tasks are offset by 0s, 15s and 30s."""
        registry = TaskRegistry()
        tasks = [DelayRecordingTask() for _ in range(3)]

        handles = [registry.register(task) for task in tasks]
        await asyncio.gather(*handles)

        assert [task.initial_delay for task in tasks] == [0.0, 15.0, 30.0]

    @pytest.mark.asyncio
    async def test_handles_named_after_tasks(self):
        registry = TaskRegistry(stagger_delay=0)

        handle = registry.register(CountingTask("Buy Expiration", interval=60))

        assert handle.get_name() == "Buy Expiration"
        registry.abort_all()
        await asyncio.gather(handle, return_exceptions=True)

    @pytest.mark.asyncio
    async def test_wait_for_any_returns_ended_task(self):
        """wait_for_any returns as soon as one task ends."""
        registry = TaskRegistry(stagger_delay=0)
        long_running = registry.register(CountingTask("Long", interval=60))
        short = registry.register(EndingTask())

        finished = await registry.wait_for_any()

        assert finished is short
        assert registry.task_count == 1
        assert not long_running.done()

        registry.abort_all()
        await asyncio.gather(long_running, return_exceptions=True)
        assert long_running.cancelled()
        assert registry.task_count == 0

    @pytest.mark.asyncio
    async def test_wait_for_any_reports_cancelled_task(self):
        registry = TaskRegistry(stagger_delay=0)
        handle = registry.register(CountingTask("Counter", interval=60))
        handle.cancel()

        finished = await registry.wait_for_any()

        assert finished is handle
        assert finished.cancelled()

    @pytest.mark.asyncio
    async def test_wait_for_any_without_tasks(self):
        assert await TaskRegistry().wait_for_any() is None


# ============================================================================
# Test doubles
# ============================================================================

class CountingTask(PeriodicTask):
    """Periodic task that counts runs and can fail the first N."""

    def __init__(self, name, interval=0.01, startup_delay=0.0, fail_first=0):
        self._name = name
        self._interval = interval
        self._startup_delay = startup_delay
        self.fail_first = fail_first
        self.runs = 0
        self.first_run_at = None

    @property
    def name(self) -> str:
        return self._name

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def startup_delay(self) -> float:
        return self._startup_delay

    async def execute(self) -> None:
        self.runs += 1
        if self.first_run_at is None:
            self.first_run_at = asyncio.get_running_loop().time()
        if self.runs <= self.fail_first:
            raise RuntimeError(f"run {self.runs} failed")


class EndingTask(PeriodicTask):
    """Task whose loop returns immediately."""

    @property
    def name(self) -> str:
        return "Ending"

    @property
    def interval(self) -> float:
        return 60

    async def execute(self) -> None:
        return None

    async def run_forever(self, initial_delay: float = 0.0) -> None:
        return None


class DelayRecordingTask(EndingTask):
    """Task that records the start delay it was given and ends."""

    initial_delay = None

    async def run_forever(self, initial_delay: float = 0.0) -> None:
        self.initial_delay = initial_delay
