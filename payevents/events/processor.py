"""Event processor: drives due consumer records to SUCCESS or a scheduled retry.

Each run:
1. Finds due consumer records (PENDING, or FAILED past their backoff)
2. Resolves the handler behind each record; a missing handler marks the
   record SKIPPED permanently
3. Runs the handlers concurrently, bounded by ``max_concurrency``
4. Writes the outcome with a conditional update, so a record claimed by a
   concurrent processor is left alone

One handler failing never touches the records of its siblings for the
same event.

Store calls are synchronous and run in worker threads, so a slow query
only holds up this pass and never the event loop the other periodic
tasks share.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any

from payevents.config import get_settings
from payevents.events.errors import EventStoreError, HandlerError, HandlerErrorKind
from payevents.events.handlers import HandlerRegistry
from payevents.events.store import EventStore
from payevents.models.event import Event, utc_now_ms
from payevents.models.event_consumer import (
    ConsumerOutcome,
    EventConsumer,
    MarkFailed,
    MarkSkipped,
    MarkSuccess,
    calculate_next_retry,
)
from payevents.workers.base import PeriodicTask

logger = logging.getLogger(__name__)


class ConsumerRunStatus(str, Enum):
    """What happened to one due consumer record during a run."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"
    CONFLICT = "conflict"  # another processor updated the record first
    STORE_ERROR = "store_error"


@dataclass
class ProcessorRunResult:
    """Counts for one processing pass."""

    found: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    conflicts: int = 0
    store_errors: int = 0

    def record(self, status: ConsumerRunStatus) -> None:
        if status == ConsumerRunStatus.SUCCEEDED:
            self.succeeded += 1
        elif status == ConsumerRunStatus.FAILED:
            self.failed += 1
        elif status == ConsumerRunStatus.SKIPPED:
            self.skipped += 1
        elif status == ConsumerRunStatus.CONFLICT:
            self.conflicts += 1
        else:
            self.store_errors += 1

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "found": self.found,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "conflicts": self.conflicts,
            "store_errors": self.store_errors,
        }


class EventProcessor(PeriodicTask):
    """Periodic task delivering stored events to their handlers."""

    def __init__(
        self,
        event_store: EventStore,
        handler_registry: HandlerRegistry,
        batch_size: int | None = None,
        poll_interval: float | None = None,
        max_concurrency: int | None = None,
        max_retries: int | None = None,
        startup_delay: float = 0.0,
    ) -> None:
        """Initialize the processor.

        Args:
            event_store: Store holding events and consumer records
            handler_registry: Registry used to resolve handlers
            batch_size: Maximum consumer records per run
            poll_interval: Seconds between runs
            max_concurrency: Maximum handlers running at once
            max_retries: Failed attempts after which a record is abandoned
            startup_delay: Seconds to wait before the first run
        """
        settings = get_settings()
        self.event_store = event_store
        self.handler_registry = handler_registry
        self.batch_size = (
            batch_size if batch_size is not None else settings.EVENT_PROCESSOR_BATCH_SIZE
        )
        self.poll_interval = (
            poll_interval
            if poll_interval is not None
            else settings.EVENT_PROCESSOR_POLL_INTERVAL_SECONDS
        )
        self.max_concurrency = (
            max_concurrency
            if max_concurrency is not None
            else settings.EVENT_PROCESSOR_MAX_CONCURRENCY
        )
        self.max_retries = (
            max_retries if max_retries is not None else settings.EVENT_PROCESSOR_MAX_RETRIES
        )
        if self.max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self._startup_delay = startup_delay

    @property
    def name(self) -> str:
        return "Event Processor"

    @property
    def interval(self) -> float:
        return self.poll_interval

    @property
    def startup_delay(self) -> float:
        return self._startup_delay

    async def execute(self) -> None:
        await self.process_pending()

    async def process_pending(self, now_ms: int | None = None) -> ProcessorRunResult:
        """Run one processing pass over the due consumer records.

        Args:
            now_ms: Current time in epoch millis (defaults to the clock)

        Raises:
            EventStoreError: the due records could not be loaded
        """
        now = now_ms if now_ms is not None else utc_now_ms()
        result = ProcessorRunResult()

        due = await asyncio.to_thread(
            self.event_store.find_due_consumer_records,
            now,
            self.max_retries,
            limit=self.batch_size,
        )
        if not due:
            logger.debug("No due consumer records")
            return result

        result.found = len(due)
        logger.info(f"Processing {len(due)} due consumers")

        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def run(event: Event, consumer: EventConsumer) -> ConsumerRunStatus:
            async with semaphore:
                return await self.process_consumer(event, consumer, now)

        statuses = await asyncio.gather(*(run(event, consumer) for event, consumer in due))
        for status in statuses:
            result.record(status)

        logger.info("Processing pass complete", extra=result.to_dict())
        return result

    async def process_consumer(
        self,
        event: Event,
        consumer: EventConsumer,
        now_ms: int,
    ) -> ConsumerRunStatus:
        """Deliver one event to one handler and record the outcome."""
        log_context = {
            "consumer_id": str(consumer.id),
            "event_id": str(event.id),
            "event_name": event.event_name,
            "endpoint": consumer.endpoint,
            "retry": consumer.retry,
        }

        handler = self.handler_registry.find_handler(event.event_name, consumer.endpoint)
        if handler is None:
            logger.warning("No handler found for consumer", extra=log_context)
            return await self._record(consumer, MarkSkipped("Handler not found"), now_ms,
                                      ConsumerRunStatus.SKIPPED)

        start = time.perf_counter()
        try:
            await handler.handle(event)
        except HandlerError as e:
            error = e
        except Exception as e:
            logger.error(
                "Handler raised an unexpected exception",
                extra={**log_context, "error": str(e)},
                exc_info=True,
            )
            error = HandlerError(HandlerErrorKind.HANDLER, str(e) or type(e).__name__)
        else:
            execution_time_ms = int((time.perf_counter() - start) * 1000)
            logger.info(
                "Consumer succeeded",
                extra={**log_context, "execution_time_ms": execution_time_ms},
            )
            return await self._record(consumer, MarkSuccess(execution_time_ms), now_ms,
                                      ConsumerRunStatus.SUCCEEDED)

        attempt = consumer.retry + 1
        if attempt < self.max_retries:
            next_retry_at = calculate_next_retry(attempt, now_ms)
            logger.warning(
                "Consumer failed - will retry",
                extra={**log_context, "attempt": attempt, "next_retry_at": next_retry_at,
                       "error_kind": error.kind.value, "error": str(error)},
            )
        else:
            next_retry_at = None
            logger.error(
                "Consumer failed - max retries exceeded",
                extra={**log_context, "attempt": attempt,
                       "error_kind": error.kind.value, "error": str(error)},
            )

        outcome = MarkFailed(str(error), next_retry_at=next_retry_at, error_kind=error.kind.value)
        return await self._record(consumer, outcome, now_ms, ConsumerRunStatus.FAILED)

    async def _record(
        self,
        consumer: EventConsumer,
        outcome: ConsumerOutcome,
        now_ms: int,
        status: ConsumerRunStatus,
    ) -> ConsumerRunStatus:
        try:
            updated = await asyncio.to_thread(
                self.event_store.update_consumer_status, consumer, outcome, now_ms=now_ms
            )
        except EventStoreError as e:
            logger.error(
                "Failed to update consumer status",
                extra={"consumer_id": str(consumer.id), "error": str(e)},
                exc_info=True,
            )
            return ConsumerRunStatus.STORE_ERROR

        if not updated:
            return ConsumerRunStatus.CONFLICT
        return status

    def get_processing_stats(self) -> dict[str, Any]:
        """Event and consumer counts plus the number of registered handlers."""
        return {
            "events": self.event_store.get_event_stats(),
            "consumers": self.event_store.get_consumer_stats(),
            "registered_handlers": len(self.handler_registry),
        }
