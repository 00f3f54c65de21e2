"""Error types for the event store, handlers and publisher."""

from enum import Enum


# -----------------------------------------------------------------------------
# Store errors
# -----------------------------------------------------------------------------


class EventStoreError(Exception):
    """Base class for event store failures."""


class StoreConnectionError(EventStoreError):
    """The database could not be reached or the connection dropped."""


class StoreSerializationError(EventStoreError):
    """A value could not be written to or read from the database."""


class EventNotFoundError(EventStoreError):
    def __init__(self, event_id: object) -> None:
        super().__init__(f"Event not found: {event_id}")
        self.event_id = event_id


class ConsumerNotFoundError(EventStoreError):
    def __init__(self, consumer_id: object) -> None:
        super().__init__(f"Consumer not found: {consumer_id}")
        self.consumer_id = consumer_id


# -----------------------------------------------------------------------------
# Handler errors
# -----------------------------------------------------------------------------


class HandlerErrorKind(str, Enum):
    """Why a handler failed. Every kind is retried by the processor."""

    HANDLER = "handler"
    DESERIALIZATION = "deserialization"
    EXTERNAL_SERVICE = "external_service"


_KIND_LABELS: dict[HandlerErrorKind, str] = {
    HandlerErrorKind.HANDLER: "Handler error",
    HandlerErrorKind.DESERIALIZATION: "Deserialization error",
    HandlerErrorKind.EXTERNAL_SERVICE: "External service error",
}


class HandlerError(Exception):
    """Failure raised by an event handler for one delivery attempt."""

    def __init__(self, kind: HandlerErrorKind, message: str) -> None:
        super().__init__(f"{_KIND_LABELS[kind]}: {message}")
        self.kind = kind
        self.detail = message

    @classmethod
    def handler(cls, message: str) -> "HandlerError":
        return cls(HandlerErrorKind.HANDLER, message)

    @classmethod
    def deserialization(cls, message: str) -> "HandlerError":
        return cls(HandlerErrorKind.DESERIALIZATION, message)

    @classmethod
    def external_service(cls, message: str) -> "HandlerError":
        return cls(HandlerErrorKind.EXTERNAL_SERVICE, message)


# -----------------------------------------------------------------------------
# Publisher errors
# -----------------------------------------------------------------------------


class PublisherErrorKind(str, Enum):
    STORE = "store"
    SERIALIZATION = "serialization"


class PublisherError(Exception):
    """The event could not be durably recorded.

    Callers must treat the fact as not published: neither the event nor
    any of its side effects are guaranteed to exist.
    """

    def __init__(self, kind: PublisherErrorKind, message: str) -> None:
        label = "Store error" if kind == PublisherErrorKind.STORE else "Serialization error"
        super().__init__(f"{label}: {message}")
        self.kind = kind
