"""Tests for CloudEvents forwarding to the Dapr sidecar."""

import json

import httpx
import pytest

from payevents.events.errors import HandlerError, HandlerErrorKind
from payevents.events.forwarder import CloudEventsForwardHandler, to_cloudevents_dict
from payevents.models.event import Event


class TestCloudEventsFormat:
    """Tests for the CloudEvents envelope."""

    def test_envelope_fields(self, invite_event):
        data = to_cloudevents_dict(invite_event)

        assert data["specversion"] == "1.0"
        assert data["type"] == "InviteSent"
        assert data["source"] == "/test-app/InviteService::send_invite"
        assert data["id"] == str(invite_event.id)
        assert data["subject"] == "invite/invite-1"
        assert data["correlationid"] == "corr-1"
        assert data["data"] == {"email": "user@example.com"}
        assert data["time"].startswith("20")

    def test_subject_absent_without_aggregate(self):
        event = Event.new(
            event_name="Ping",
            event_origin="Test::run",
            event_data={},
            application_name="test-app",
        )

        assert to_cloudevents_dict(event)["subject"] is None


class TestCloudEventsForwardHandler:
    """Tests for the forwarding handler."""

    @pytest.mark.asyncio
    async def test_posts_to_dapr_publish_endpoint(self, invite_event):
        requests = []

        def respond(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(204)

        handler = _handler(respond, dapr_port=3600, pubsub_name="bus", topic_name="facts")

        await handler.handle(invite_event)

        assert len(requests) == 1
        request = requests[0]
        assert str(request.url) == "http://localhost:3600/v1.0/publish/bus/facts"
        assert request.headers["content-type"] == "application/cloudevents+json"
        assert json.loads(request.content)["id"] == str(invite_event.id)
        await handler.close()

    @pytest.mark.asyncio
    async def test_http_error_is_external_service_failure(self, invite_event):
        handler = _handler(lambda request: httpx.Response(500, text="sidecar broke"))

        with pytest.raises(HandlerError) as exc_info:
            await handler.handle(invite_event)

        assert exc_info.value.kind == HandlerErrorKind.EXTERNAL_SERVICE
        assert str(exc_info.value) == "External service error: Dapr returned 500"

    @pytest.mark.asyncio
    async def test_unreachable_sidecar_is_external_service_failure(self, invite_event):
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        handler = _handler(refuse)

        with pytest.raises(HandlerError) as exc_info:
            await handler.handle(invite_event)

        assert exc_info.value.kind == HandlerErrorKind.EXTERNAL_SERVICE
        assert "Dapr unreachable" in str(exc_info.value)

    def test_event_name_filter(self):
        forward_all = CloudEventsForwardHandler()
        forward_some = CloudEventsForwardHandler(event_names=["InviteSent"])

        assert forward_all.can_handle("Anything")
        assert forward_some.can_handle("InviteSent")
        assert not forward_some.can_handle("BuyCreated")
        assert forward_all.endpoint == "CloudEventsForwardHandler::handle"


# ============================================================================
# Helpers and fixtures
# ============================================================================

def _handler(respond, **kwargs) -> CloudEventsForwardHandler:
    client = httpx.AsyncClient(transport=httpx.MockTransport(respond))
    return CloudEventsForwardHandler(client=client, **kwargs)


@pytest.fixture
def invite_event():
    """Create an unsaved event with aggregate and correlation ids."""
    return Event.new(
        event_name="InviteSent",
        event_origin="InviteService::send_invite",
        event_data={"email": "user@example.com"},
        application_name="test-app",
        aggregate_type="invite",
        aggregate_id="invite-1",
        correlation_id="corr-1",
    )
