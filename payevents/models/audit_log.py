"""AuditLog entity model written by the audit handler."""

from datetime import datetime, timezone
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import Column
from sqlmodel import Field, SQLModel

from payevents.models.event import JSON_VARIANT


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditLog(SQLModel, table=True):
    """Audit log database model for immutable activity records."""

    __tablename__ = "audit_logs"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    event_id: UUID = Field(index=True, unique=True)
    event_name: str = Field(max_length=100, index=True)
    event_origin: str = Field(max_length=200)
    aggregate_type: str | None = Field(default=None, max_length=100, index=True)
    aggregate_id: str | None = Field(default=None, max_length=200, index=True)
    correlation_id: str | None = Field(default=None, max_length=200)
    details: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON_VARIANT))
    timestamp: datetime = Field(default_factory=_utcnow, index=True)
