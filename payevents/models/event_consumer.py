"""EventConsumer entity model: per-handler delivery state for one event."""

from dataclasses import dataclass
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import BigInteger, Column, Index
from sqlmodel import Field, SQLModel

from payevents.models.event import utc_now_ms

MAX_ERROR_MESSAGE_LENGTH = 1000

# Minutes to wait after the Nth failed attempt; attempts past the table use the last entry
RETRY_DELAY_MINUTES: dict[int, int] = {1: 1, 2: 2, 3: 4, 4: 8, 5: 16}
MAX_RETRY_DELAY_MINUTES = 30


class ConsumerStatus(str, Enum):
    """Processing status of a single handler for a single event."""

    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


def retry_delay_minutes(attempt: int) -> int:
    """Backoff delay for the given failed attempt number (1-based)."""
    return RETRY_DELAY_MINUTES.get(attempt, MAX_RETRY_DELAY_MINUTES)


def calculate_next_retry(attempt: int, now_ms: int) -> int:
    """Epoch millis at which a record that just failed ``attempt`` becomes due."""
    return now_ms + retry_delay_minutes(attempt) * 60 * 1000


class EventConsumer(SQLModel, table=True):
    """Consumer record tracking one handler's processing of one event.

    The lineup of consumer rows for an event is created together with the
    event and never grows afterwards.
    """

    __tablename__ = "event_consumers"
    __table_args__ = (
        Index("ix_event_consumers_status_next_retry_at", "status", "next_retry_at"),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    event_id: UUID = Field(foreign_key="events.id", index=True)
    endpoint: str = Field(max_length=200, index=True)
    status: ConsumerStatus = Field(default=ConsumerStatus.PENDING, index=True)
    retry: int = Field(default=0)
    date: int = Field(
        default_factory=utc_now_ms,
        sa_column=Column(BigInteger, nullable=False),
    )
    error_message: str | None = Field(default=None, max_length=MAX_ERROR_MESSAGE_LENGTH)
    error_kind: str | None = Field(default=None, max_length=50)
    execution_time_ms: int | None = Field(default=None, sa_column=Column(BigInteger))
    next_retry_at: int | None = Field(
        default=None, sa_column=Column(BigInteger, nullable=True, index=True)
    )

    @classmethod
    def new(cls, event_id: UUID, endpoint: str, now_ms: int | None = None) -> "EventConsumer":
        return cls(
            event_id=event_id,
            endpoint=endpoint,
            status=ConsumerStatus.PENDING,
            retry=0,
            date=now_ms if now_ms is not None else utc_now_ms(),
        )

    @property
    def handler_name(self) -> str:
        """Handler name part of the endpoint ("Name::handle" -> "Name")."""
        return self.endpoint.split("::", 1)[0]

    def should_retry(self, max_retries: int) -> bool:
        return self.status == ConsumerStatus.FAILED and self.retry < max_retries

    def is_exhausted(self, max_retries: int) -> bool:
        return self.status == ConsumerStatus.FAILED and self.retry >= max_retries


# -----------------------------------------------------------------------------
# Status outcomes applied by the event store
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class MarkSuccess:
    """Handler ran to completion."""

    execution_time_ms: int | None = None

    def values(self, record: EventConsumer, now_ms: int) -> dict[str, Any]:
        return {
            "status": ConsumerStatus.SUCCESS,
            "execution_time_ms": self.execution_time_ms,
            "next_retry_at": None,
            "error_message": None,
            "error_kind": None,
            "date": now_ms,
        }


@dataclass(frozen=True)
class MarkFailed:
    """Handler raised; ``next_retry_at`` is None once retries are exhausted."""

    error_message: str
    next_retry_at: int | None = None
    error_kind: str | None = None

    def values(self, record: EventConsumer, now_ms: int) -> dict[str, Any]:
        return {
            "status": ConsumerStatus.FAILED,
            "retry": record.retry + 1,
            "error_message": self.error_message[:MAX_ERROR_MESSAGE_LENGTH],
            "error_kind": self.error_kind,
            "next_retry_at": self.next_retry_at,
            "date": now_ms,
        }


@dataclass(frozen=True)
class MarkSkipped:
    """No handler matches the endpoint any more; never retried."""

    reason: str = "Handler not found"

    def values(self, record: EventConsumer, now_ms: int) -> dict[str, Any]:
        return {
            "status": ConsumerStatus.SKIPPED,
            "error_message": self.reason[:MAX_ERROR_MESSAGE_LENGTH],
            "next_retry_at": None,
            "date": now_ms,
        }


ConsumerOutcome = MarkSuccess | MarkFailed | MarkSkipped
