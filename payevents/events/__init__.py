"""Event store, publishing and delivery.

Components:
- store.py: Event and consumer record persistence
- handlers.py: Handler contract, registry and built-in wildcard handlers
- typed_handler.py: Typed domain events and the typed handler adapter
- publisher.py: Event emission with lineup snapshot
- processor.py: Periodic delivery of due consumer records
- forwarder.py: CloudEvents forwarding to Dapr
"""

from payevents.events.errors import (
    ConsumerNotFoundError,
    EventNotFoundError,
    EventStoreError,
    HandlerError,
    HandlerErrorKind,
    PublisherError,
    PublisherErrorKind,
    StoreConnectionError,
    StoreSerializationError,
)
from payevents.events.forwarder import CloudEventsForwardHandler
from payevents.events.handlers import (
    AuditLogHandler,
    EventHandler,
    HandlerRegistry,
    MetricsHandler,
)
from payevents.events.processor import EventProcessor, ProcessorRunResult
from payevents.events.publisher import EventPublisher
from payevents.events.store import EventStore
from payevents.events.typed_handler import (
    DomainEvent,
    TypedEventHandler,
    TypedHandlerAdapter,
)

__all__ = [
    # Errors
    "EventStoreError",
    "StoreConnectionError",
    "StoreSerializationError",
    "EventNotFoundError",
    "ConsumerNotFoundError",
    "HandlerError",
    "HandlerErrorKind",
    "PublisherError",
    "PublisherErrorKind",
    # Store
    "EventStore",
    # Handlers
    "EventHandler",
    "HandlerRegistry",
    "AuditLogHandler",
    "MetricsHandler",
    "CloudEventsForwardHandler",
    "DomainEvent",
    "TypedEventHandler",
    "TypedHandlerAdapter",
    # Publisher / processor
    "EventPublisher",
    "EventProcessor",
    "ProcessorRunResult",
]
