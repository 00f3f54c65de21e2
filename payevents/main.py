"""Process wiring for the event system.

The handler registry is created once here and passed explicitly to the
publisher and the processor; domain services receive the publisher.

Boot order:
1. Engine and tables
2. Store and empty registry
3. Publisher sharing the registry
4. Handler registration (built-in handlers, then domain handlers)
5. Processor and other periodic tasks started through a TaskRegistry
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from sqlalchemy.engine import Engine

from payevents.config import Settings, get_settings
from payevents.db.session import get_engine, init_db
from payevents.events.forwarder import CloudEventsForwardHandler
from payevents.events.handlers import AuditLogHandler, HandlerRegistry, MetricsHandler
from payevents.events.processor import EventProcessor, ProcessorRunResult
from payevents.events.publisher import EventPublisher
from payevents.events.store import EventStore
from payevents.workers.base import PeriodicTask
from payevents.workers.runner import TaskRegistry

logger = logging.getLogger(__name__)


@dataclass
class EventSystem:
    """The wired components sharing one store and one registry."""

    settings: Settings
    engine: Engine
    store: EventStore
    registry: HandlerRegistry
    publisher: EventPublisher
    processor: EventProcessor


def register_builtin_handlers(
    registry: HandlerRegistry, engine: Engine, settings: Settings
) -> None:
    """Register the handlers enabled in settings."""
    if settings.AUDIT_LOG_ENABLED:
        registry.register(AuditLogHandler(engine))
    if settings.METRICS_HANDLER_ENABLED:
        registry.register(MetricsHandler())
    if settings.DAPR_FORWARD_ENABLED:
        registry.register(
            CloudEventsForwardHandler(
                dapr_port=settings.DAPR_HTTP_PORT,
                pubsub_name=settings.DAPR_PUBSUB_NAME,
                topic_name=settings.DAPR_TOPIC_NAME,
            )
        )


def build_event_system(
    engine: Engine | None = None,
    settings: Settings | None = None,
    create_tables: bool = True,
) -> EventSystem:
    """Create store, registry, publisher and processor.

    Args:
        engine: Database engine (default: the configured engine)
        settings: Settings override (default: environment settings)
        create_tables: Create missing tables before returning
    """
    settings = settings or get_settings()
    engine = engine or get_engine()
    if create_tables:
        init_db(engine)

    store = EventStore(engine)
    registry = HandlerRegistry()
    publisher = EventPublisher(store, registry, application_name=settings.APPLICATION_NAME)
    register_builtin_handlers(registry, engine, settings)

    processor = EventProcessor(
        store,
        registry,
        batch_size=settings.EVENT_PROCESSOR_BATCH_SIZE,
        poll_interval=settings.EVENT_PROCESSOR_POLL_INTERVAL_SECONDS,
        max_concurrency=settings.EVENT_PROCESSOR_MAX_CONCURRENCY,
        max_retries=settings.EVENT_PROCESSOR_MAX_RETRIES,
    )

    logger.info(
        "Event system initialized",
        extra={"registered_handlers": len(registry)},
    )
    return EventSystem(
        settings=settings,
        engine=engine,
        store=store,
        registry=registry,
        publisher=publisher,
        processor=processor,
    )


async def run_processor_once(system: EventSystem) -> ProcessorRunResult:
    """Process the currently due consumer records once."""
    return await system.processor.process_pending()


async def run_event_system(
    system: EventSystem,
    extra_tasks: Iterable[PeriodicTask] = (),
) -> None:
    """Run the processor and other periodic tasks until one of them ends.

    A periodic task only ends by crashing or being cancelled; when that
    happens every other task is aborted and the function returns.
    """
    task_registry = TaskRegistry(stagger_delay=system.settings.TASK_STAGGER_DELAY_SECONDS)
    task_registry.register(system.processor)
    for task in extra_tasks:
        task_registry.register(task)

    logger.info(
        f"Registered {task_registry.task_count} periodic tasks with auto-staggering"
    )

    try:
        finished = await task_registry.wait_for_any()
        if finished is not None:
            logger.info(f"A background task finished: {finished.get_name()}")
    finally:
        task_registry.abort_all()
