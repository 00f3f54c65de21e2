"""Forward stored events to a Dapr pub/sub sidecar as CloudEvents.

The forwarder is an ordinary handler: delivery failures become FAILED
consumer records and are retried by the processor like any other
side effect.
"""

import logging
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any

import httpx

from payevents.events.errors import HandlerError
from payevents.events.handlers import EventHandler
from payevents.models.event import Event

logger = logging.getLogger(__name__)

DAPR_HTTP_PORT = 3500
DAPR_PUBSUB_NAME = "eventpubsub"
DAPR_TOPIC_NAME = "domain-events"


def to_cloudevents_dict(event: Event) -> dict[str, Any]:
    """Convert a stored event to CloudEvents 1.0 JSON format."""
    return {
        "specversion": "1.0",
        "type": event.event_name,
        "source": f"/{event.application_name}/{event.event_origin}",
        "id": str(event.id),
        "time": datetime.fromtimestamp(event.date / 1000, tz=timezone.utc).isoformat(),
        "datacontenttype": "application/json",
        "subject": (
            f"{event.aggregate_type}/{event.aggregate_id}"
            if event.aggregate_type and event.aggregate_id
            else None
        ),
        "correlationid": event.correlation_id,
        "causationid": event.causation_id,
        "data": event.event_data,
    }


class CloudEventsForwardHandler(EventHandler):
    """Publishes events to ``/v1.0/publish/<pubsub>/<topic>`` on the sidecar.

    Args:
        event_names: Event names to forward; None forwards every event
        dapr_port: Dapr sidecar HTTP port
        pubsub_name: Dapr pub/sub component name
        topic_name: Topic to publish to
        client: Optional preconfigured client (tests use a mock transport)
    """

    def __init__(
        self,
        event_names: Iterable[str] | None = None,
        dapr_port: int = DAPR_HTTP_PORT,
        pubsub_name: str = DAPR_PUBSUB_NAME,
        topic_name: str = DAPR_TOPIC_NAME,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.event_names = frozenset(event_names) if event_names is not None else None
        self.dapr_url = f"http://localhost:{dapr_port}/v1.0/publish/{pubsub_name}/{topic_name}"
        self._client = client

    @property
    def name(self) -> str:
        return "CloudEventsForwardHandler"

    @property
    def client(self) -> httpx.AsyncClient:
        """Lazy-initialize HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=5.0)
        return self._client

    def can_handle(self, event_type: str) -> bool:
        return self.event_names is None or event_type in self.event_names

    async def handle(self, event: Event) -> None:
        try:
            response = await self.client.post(
                self.dapr_url,
                json=to_cloudevents_dict(event),
                headers={"Content-Type": "application/cloudevents+json"},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                "Dapr publish failed with HTTP error",
                extra={
                    "event_id": str(event.id),
                    "event_name": event.event_name,
                    "status_code": e.response.status_code,
                    "response": e.response.text,
                },
            )
            raise HandlerError.external_service(
                f"Dapr returned {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            logger.warning(
                "Dapr not available, event will be retried",
                extra={"event_id": str(event.id), "event_name": event.event_name},
            )
            raise HandlerError.external_service(f"Dapr unreachable: {e}") from e

        logger.info(
            "Event forwarded to Dapr",
            extra={"event_id": str(event.id), "event_name": event.event_name},
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
