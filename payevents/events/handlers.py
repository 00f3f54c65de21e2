"""Event handler contract and the in-process handler registry.

Handlers are the side-effect end of the pipeline:

    EventPublisher -> HandlerRegistry (lineup) -> EventStore
                                                      |
    EventProcessor <- due consumer records -----------+
         |
         +-> HandlerRegistry (resolve) -> handler.handle(event)

Handlers must be idempotent: a crash between a handler finishing and its
status being written causes the same event to be delivered again.
"""

import asyncio
import logging
import threading
from abc import ABC, abstractmethod
from collections import Counter

from sqlalchemy import exc as sa_exc
from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from payevents.events.errors import HandlerError
from payevents.models.audit_log import AuditLog
from payevents.models.event import Event

logger = logging.getLogger(__name__)


def endpoint_for(handler_name: str) -> str:
    """Display identity stored on consumer records ("Name::handle")."""
    return f"{handler_name}::handle"


# -----------------------------------------------------------------------------
# Handler Base Class
# -----------------------------------------------------------------------------


class EventHandler(ABC):
    """Abstract base class for event handlers.

    Each handler subscribes to one or more event names and performs a
    side effect for every matching event. Raise ``HandlerError`` to fail
    the delivery attempt; it will be retried with backoff.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Stable handler name, used to match consumer records."""

    @abstractmethod
    def can_handle(self, event_type: str) -> bool:
        """Check if this handler subscribes to the given event name."""

    @abstractmethod
    async def handle(self, event: Event) -> None:
        """Process a stored event.

        Raises:
            HandlerError: the attempt failed and should be retried
        """

    @property
    def endpoint(self) -> str:
        return endpoint_for(self.name)


# -----------------------------------------------------------------------------
# Handler Registry
# -----------------------------------------------------------------------------


class HandlerRegistry:
    """Ordered set of registered handlers.

    Registration happens once at boot; lookups happen on every publish and
    every processing pass. The lock only guards the backing list, lookups
    work on a snapshot.
    """

    def __init__(self) -> None:
        self._handlers: list[EventHandler] = []
        self._lock = threading.Lock()

    def register(self, handler: EventHandler) -> None:
        """Register a handler. Registering the same handler twice is not detected."""
        with self._lock:
            self._handlers.append(handler)
            total = len(self._handlers)

        logger.info(
            f"Registered event handler: {handler.name}",
            extra={"handler": handler.name, "total_handlers": total},
        )

    def get_handlers_for(self, event_type: str) -> list[EventHandler]:
        """All handlers whose predicate accepts ``event_type``, in registration order."""
        handlers = self.get_all_handlers()
        matching = [h for h in handlers if h.can_handle(event_type)]

        logger.debug(
            f"Found {len(matching)} matching handlers for event type '{event_type}'",
            extra={
                "event_type": event_type,
                "handlers": [h.name for h in matching],
                "total_handlers": len(handlers),
            },
        )
        return matching

    def find_handler(self, event_type: str, endpoint: str) -> EventHandler | None:
        """Resolve the handler behind a consumer record, or None if it is gone."""
        handler_name = endpoint.split("::", 1)[0]
        for handler in self.get_handlers_for(event_type):
            if handler.name == handler_name:
                return handler
        return None

    def get_all_handlers(self) -> list[EventHandler]:
        with self._lock:
            return list(self._handlers)

    def __len__(self) -> int:
        with self._lock:
            return len(self._handlers)


# -----------------------------------------------------------------------------
# Audit Handler - Records every event
# -----------------------------------------------------------------------------


class AuditLogHandler(EventHandler):
    """Wildcard handler that writes an AuditLog row per event.

    Idempotency: one row per event id; re-deliveries are no-ops.
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    @property
    def name(self) -> str:
        return "AuditLogHandler"

    def can_handle(self, event_type: str) -> bool:
        return True

    async def handle(self, event: Event) -> None:
        if await asyncio.to_thread(self._write_entry, event):
            logger.info(
                "Audit log recorded",
                extra={
                    "event_id": str(event.id),
                    "event_name": event.event_name,
                    "aggregate_type": event.aggregate_type,
                    "aggregate_id": event.aggregate_id,
                    "correlation_id": event.correlation_id,
                },
            )

    def _write_entry(self, event: Event) -> bool:
        """Insert the audit row; returns False if it already existed."""
        try:
            with Session(self._engine) as session:
                existing = session.exec(
                    select(AuditLog).where(AuditLog.event_id == event.id)
                ).first()
                if existing:
                    logger.debug(
                        "Audit entry already exists, skipping",
                        extra={"event_id": str(event.id)},
                    )
                    return False

                session.add(
                    AuditLog(
                        event_id=event.id,
                        event_name=event.event_name,
                        event_origin=event.event_origin,
                        aggregate_type=event.aggregate_type,
                        aggregate_id=event.aggregate_id,
                        correlation_id=event.correlation_id,
                        details={
                            "service_name": event.service_name,
                            "application_name": event.application_name,
                            "causation_id": event.causation_id,
                            "date": event.date,
                        },
                    )
                )
                session.commit()
        except sa_exc.IntegrityError:
            # A concurrent delivery wrote the same row first
            logger.debug(
                "Audit entry written concurrently, skipping",
                extra={"event_id": str(event.id)},
            )
            return False
        except sa_exc.SQLAlchemyError as e:
            raise HandlerError.handler(f"audit log write failed: {e}") from e
        return True


# -----------------------------------------------------------------------------
# Metrics Handler - Counts events per name
# -----------------------------------------------------------------------------


class MetricsHandler(EventHandler):
    """Wildcard handler keeping per-event-name counters for this process."""

    def __init__(self) -> None:
        self.counts: Counter[str] = Counter()

    @property
    def name(self) -> str:
        return "MetricsHandler"

    def can_handle(self, event_type: str) -> bool:
        return True

    async def handle(self, event: Event) -> None:
        self.counts[event.event_name] += 1
        logger.info(
            "Event processed for metrics",
            extra={
                "event_name": event.event_name,
                "count": self.counts[event.event_name],
            },
        )
