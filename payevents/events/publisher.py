"""Event publisher: the single entry point for emitting business facts.

Publishing freezes the handler lineup. The registry is consulted once,
one consumer record is written per matching handler, and handlers
registered later never attach to events that already exist.

A successful return is a durability point. The event and its consumer
records are stored; handlers run later on the processor's schedule.
"""

import logging
from typing import Any
from uuid import UUID

from pydantic_core import PydanticSerializationError, to_jsonable_python

from payevents.config import get_settings
from payevents.events.errors import EventStoreError, PublisherError, PublisherErrorKind
from payevents.events.handlers import HandlerRegistry
from payevents.events.store import EventStore
from payevents.events.typed_handler import DomainEvent
from payevents.models.event import Event

logger = logging.getLogger(__name__)


class EventPublisher:
    """Records events together with their consumer lineup."""

    def __init__(
        self,
        event_store: EventStore,
        handler_registry: HandlerRegistry,
        application_name: str | None = None,
    ) -> None:
        self.event_store = event_store
        self.handler_registry = handler_registry
        self.application_name = application_name or get_settings().APPLICATION_NAME

    def publish(
        self,
        payload: Any,
        name: str,
        origin: str,
        aggregate_type: str | None = None,
        aggregate_id: str | None = None,
        correlation_id: str | None = None,
        causation_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> UUID:
        """Store an event and one consumer record per matching handler.

        Args:
            payload: JSON-compatible event data
            name: Event name, used to route to handlers (e.g. "InviteSent")
            origin: Emitting call site (e.g. "InviteService::send_invite")
            aggregate_type: Type of the domain entity the event is about
            aggregate_id: Id of that entity
            correlation_id: Optional id shared by a chain of events
            causation_id: Optional id of the event that caused this one
            metadata: Additional structured context

        Returns:
            UUID: The stored event's id

        Raises:
            PublisherError: the event was not recorded

        Exceptions raised by a handler's ``can_handle`` while the lineup is
        resolved are not wrapped; they propagate unchanged and nothing is
        stored.
        """
        try:
            event_data = to_jsonable_python(payload)
            event_metadata = to_jsonable_python(metadata) if metadata is not None else None
        except PydanticSerializationError as e:
            raise PublisherError(PublisherErrorKind.SERIALIZATION, str(e)) from e

        event = Event.new(
            event_name=name,
            event_origin=origin,
            event_data=event_data,
            application_name=self.application_name,
            aggregate_type=aggregate_type,
            aggregate_id=aggregate_id,
            correlation_id=correlation_id,
            causation_id=causation_id,
            metadata=event_metadata,
        )

        handlers = self.handler_registry.get_handlers_for(name)
        endpoints = [handler.endpoint for handler in handlers]

        if not endpoints:
            logger.warning(
                f"No handlers registered for event type '{name}'",
                extra={"event_name": name, "event_origin": origin},
            )

        try:
            event_id = self.event_store.store_event_with_consumers(event, endpoints)
        except EventStoreError as e:
            logger.error(
                "Failed to store event",
                extra={"event_name": name, "event_origin": origin, "error": str(e)},
            )
            raise PublisherError(PublisherErrorKind.STORE, str(e)) from e

        logger.info(
            "Event published with consumer tracking",
            extra={
                "event_id": str(event_id),
                "event_name": name,
                "handlers_count": len(endpoints),
                "handlers": endpoints,
            },
        )
        return event_id

    def publish_domain_event(
        self,
        event: DomainEvent,
        origin: str,
        correlation_id: str | None = None,
        causation_id: str | None = None,
    ) -> UUID:
        """Publish a typed event, taking envelope fields from its accessors.

        Explicit correlation/causation ids take precedence over the ones
        the event reports itself.
        """
        try:
            payload = event.model_dump(mode="json")
        except PydanticSerializationError as e:
            raise PublisherError(PublisherErrorKind.SERIALIZATION, str(e)) from e

        aggregate_type, aggregate_id = event.aggregate_info() or (None, None)

        return self.publish(
            payload,
            name=type(event).event_type,
            origin=origin,
            aggregate_type=aggregate_type,
            aggregate_id=aggregate_id,
            correlation_id=correlation_id or event.event_correlation_id(),
            causation_id=causation_id or event.event_causation_id(),
            metadata=event.event_metadata(),
        )
