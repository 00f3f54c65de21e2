"""Event entity model: the immutable record of a business fact."""

from datetime import datetime, timezone
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, BigInteger, Column, Index
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Field, SQLModel

JSON_VARIANT = JSON().with_variant(JSONB(), "postgresql")

SERVICE_NAME_PREFIX = "EVTS:"


def utc_now_ms() -> int:
    """Current UTC time as epoch milliseconds."""
    return int(datetime.now(timezone.utc).timestamp() * 1000)


def service_name_for(event_name: str) -> str:
    return f"{SERVICE_NAME_PREFIX}{event_name}"


class Event(SQLModel, table=True):
    """Stored business event.

    Rows are append-only; nothing in the delivery pipeline updates an
    event after it has been written.
    """

    __tablename__ = "events"
    __table_args__ = (
        Index("ix_events_aggregate", "aggregate_type", "aggregate_id"),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    event_name: str = Field(max_length=100, index=True)
    event_origin: str = Field(max_length=200, index=True)
    application_name: str = Field(max_length=100)
    service_name: str = Field(max_length=120, index=True)
    event_data: dict[str, Any] = Field(
        default_factory=dict, sa_column=Column(JSON_VARIANT, nullable=False)
    )
    aggregate_type: str | None = Field(default=None, max_length=100)
    aggregate_id: str | None = Field(default=None, max_length=200)
    correlation_id: str | None = Field(default=None, max_length=200)
    causation_id: str | None = Field(default=None, max_length=200)
    # "metadata" is reserved on declarative models, so the attribute is renamed
    event_metadata: dict[str, Any] | None = Field(
        default=None, sa_column=Column("metadata", JSON_VARIANT, nullable=True)
    )
    date: int = Field(
        default_factory=utc_now_ms,
        sa_column=Column(BigInteger, nullable=False, index=True),
    )

    @classmethod
    def new(
        cls,
        event_name: str,
        event_origin: str,
        event_data: dict[str, Any],
        application_name: str,
        aggregate_type: str | None = None,
        aggregate_id: str | None = None,
        correlation_id: str | None = None,
        causation_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> "Event":
        """Build an unsaved event with derived service name and timestamp."""
        return cls(
            event_name=event_name,
            event_origin=event_origin,
            application_name=application_name,
            service_name=service_name_for(event_name),
            event_data=event_data,
            aggregate_type=aggregate_type,
            aggregate_id=aggregate_id,
            correlation_id=correlation_id,
            causation_id=causation_id,
            event_metadata=metadata,
            date=utc_now_ms(),
        )

    @property
    def created_at(self) -> datetime:
        return datetime.fromtimestamp(self.date / 1000, tz=timezone.utc)
