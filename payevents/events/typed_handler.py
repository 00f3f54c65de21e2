"""Strongly-typed domain events and the adapter that registers typed handlers.

Payloads are stored as plain JSON plus an event name. A typed handler
declares the pydantic model it expects; the adapter validates the stored
payload into that model before delegating, so handler code never touches
raw dictionaries.

Usage:
    class InviteSentEvent(DomainEvent):
        event_type: ClassVar[str] = "InviteSent"
        invite_id: str
        email: str

        def aggregate_info(self) -> tuple[str, str] | None:
            return ("invite", self.invite_id)

    class InviteSentEmailHandler(TypedEventHandler[InviteSentEvent]):
        event_class = InviteSentEvent

        async def handle_typed(self, event: InviteSentEvent) -> None:
            ...

    registry.register(InviteSentEmailHandler().into_event_handler())
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, ClassVar, Generic, TypeVar

from pydantic import BaseModel, ValidationError

from payevents.events.errors import HandlerError
from payevents.events.handlers import EventHandler
from payevents.models.event import Event

logger = logging.getLogger(__name__)


class DomainEvent(BaseModel):
    """Base class for typed event payloads.

    Subclasses set ``event_type``, the name used to route the event, and
    may override the accessors below to fill in the event envelope.
    """

    event_type: ClassVar[str]

    def aggregate_info(self) -> tuple[str, str] | None:
        """(aggregate_type, aggregate_id) this event pertains to, if any."""
        return None

    def event_correlation_id(self) -> str | None:
        return None

    def event_causation_id(self) -> str | None:
        return None

    def event_metadata(self) -> dict[str, Any] | None:
        return None


E = TypeVar("E", bound=DomainEvent)


class TypedEventHandler(ABC, Generic[E]):
    """Handler that works on a decoded ``DomainEvent`` subclass."""

    event_class: ClassVar[type[DomainEvent]]

    @abstractmethod
    async def handle_typed(self, event: E) -> None:
        """Handle an already validated event.

        Raises:
            HandlerError: the attempt failed and should be retried
        """

    @property
    def handler_name(self) -> str:
        return self.__class__.__name__

    def into_event_handler(self) -> "TypedHandlerAdapter[E]":
        return TypedHandlerAdapter(self)


class TypedHandlerAdapter(EventHandler, Generic[E]):
    """Exposes a ``TypedEventHandler`` through the generic handler contract."""

    def __init__(self, handler: TypedEventHandler[E]) -> None:
        self._handler = handler

    @property
    def name(self) -> str:
        return self._handler.handler_name

    @property
    def event_class(self) -> type[DomainEvent]:
        return self._handler.event_class

    def can_handle(self, event_type: str) -> bool:
        return event_type == self.event_class.event_type

    async def handle(self, event: Event) -> None:
        try:
            typed_event = self.event_class.model_validate(event.event_data)
        except ValidationError as e:
            logger.error(
                "Failed to deserialize event data",
                extra={
                    "event_id": str(event.id),
                    "event_name": event.event_name,
                    "handler": self.name,
                    "error": str(e),
                },
            )
            raise HandlerError.deserialization(str(e)) from e

        return await self._handler.handle_typed(typed_event)
