"""Tests for event and consumer record models."""

from uuid import uuid4

from payevents.models.event import Event, service_name_for
from payevents.models.event_consumer import (
    ConsumerStatus,
    EventConsumer,
    MarkFailed,
    calculate_next_retry,
    retry_delay_minutes,
)


class TestBackoffSchedule:
    """Tests for the retry delay table."""

    def test_delay_table(self):
        delays = [retry_delay_minutes(attempt) for attempt in range(1, 9)]
        assert delays == [1, 2, 4, 8, 16, 30, 30, 30]

    def test_next_retry_in_millis(self):
        assert calculate_next_retry(1, 1_000) == 1_000 + 60_000
        assert calculate_next_retry(6, 0) == 30 * 60_000


class TestEventConsumer:
    """Tests for consumer record helpers."""

    def test_new_record_is_pending(self):
        consumer = EventConsumer.new(uuid4(), "Email::handle", now_ms=123)

        assert consumer.status == ConsumerStatus.PENDING
        assert consumer.retry == 0
        assert consumer.date == 123
        assert consumer.handler_name == "Email"

    def test_retry_and_exhaustion_predicates(self):
        consumer = EventConsumer.new(uuid4(), "Email::handle")
        assert not consumer.should_retry(3)

        consumer.status = ConsumerStatus.FAILED
        consumer.retry = 2
        assert consumer.should_retry(3)
        assert not consumer.is_exhausted(3)

        consumer.retry = 3
        assert not consumer.should_retry(3)
        assert consumer.is_exhausted(3)

    def test_mark_failed_values(self):
        consumer = EventConsumer.new(uuid4(), "Email::handle")
        consumer.retry = 4

        values = MarkFailed("boom", next_retry_at=99, error_kind="handler").values(consumer, 7)

        assert values["retry"] == 5
        assert values["status"] == ConsumerStatus.FAILED
        assert values["next_retry_at"] == 99
        assert values["date"] == 7


class TestEvent:
    """Tests for the event entity."""

    def test_new_derives_service_name(self):
        event = Event.new(
            event_name="InviteSent",
            event_origin="InviteService::send_invite",
            event_data={},
            application_name="test-app",
        )

        assert event.service_name == service_name_for("InviteSent") == "EVTS:InviteSent"
        assert round(event.created_at.timestamp() * 1000) == event.date
