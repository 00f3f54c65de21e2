"""SQLModel entities for the event store."""

from payevents.models.audit_log import AuditLog
from payevents.models.event import Event, utc_now_ms
from payevents.models.event_consumer import (
    ConsumerOutcome,
    ConsumerStatus,
    EventConsumer,
    MarkFailed,
    MarkSkipped,
    MarkSuccess,
    calculate_next_retry,
    retry_delay_minutes,
)

__all__ = [
    "AuditLog",
    "Event",
    "EventConsumer",
    "ConsumerStatus",
    "ConsumerOutcome",
    "MarkSuccess",
    "MarkFailed",
    "MarkSkipped",
    "calculate_next_retry",
    "retry_delay_minutes",
    "utc_now_ms",
]
