"""Event store schema - events, per-handler consumer records and audit log.

Revision ID: 001
Revises: None
Create Date: 2026-10-19

This migration creates:
- events table (append-only business facts)
- event_consumers table (one delivery record per handler per event)
- audit_logs table written by the audit handler
- consumerstatus enum
"""
from typing import Sequence, Union

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Enum values match ConsumerStatus member names
    op.execute("CREATE TYPE consumerstatus AS ENUM ('PENDING', 'SUCCESS', 'FAILED', 'SKIPPED')")

    # Create events table
    op.execute("""
        CREATE TABLE IF NOT EXISTS events (
            id UUID PRIMARY KEY,
            event_name VARCHAR(100) NOT NULL,
            event_origin VARCHAR(200) NOT NULL,
            application_name VARCHAR(100) NOT NULL,
            service_name VARCHAR(120) NOT NULL,
            event_data JSONB NOT NULL,
            aggregate_type VARCHAR(100),
            aggregate_id VARCHAR(200),
            correlation_id VARCHAR(200),
            causation_id VARCHAR(200),
            metadata JSONB,
            date BIGINT NOT NULL
        );
        CREATE INDEX IF NOT EXISTS ix_events_event_name ON events(event_name);
        CREATE INDEX IF NOT EXISTS ix_events_event_origin ON events(event_origin);
        CREATE INDEX IF NOT EXISTS ix_events_service_name ON events(service_name);
        CREATE INDEX IF NOT EXISTS ix_events_date ON events(date);
        CREATE INDEX IF NOT EXISTS ix_events_aggregate ON events(aggregate_type, aggregate_id);
    """)

    # Create event_consumers table
    op.execute("""
        CREATE TABLE IF NOT EXISTS event_consumers (
            id UUID PRIMARY KEY,
            event_id UUID NOT NULL REFERENCES events(id),
            endpoint VARCHAR(200) NOT NULL,
            status consumerstatus NOT NULL DEFAULT 'PENDING',
            retry INTEGER NOT NULL DEFAULT 0,
            date BIGINT NOT NULL,
            error_message VARCHAR(1000),
            error_kind VARCHAR(50),
            execution_time_ms BIGINT,
            next_retry_at BIGINT
        );
        CREATE INDEX IF NOT EXISTS ix_event_consumers_event_id ON event_consumers(event_id);
        CREATE INDEX IF NOT EXISTS ix_event_consumers_endpoint ON event_consumers(endpoint);
        CREATE INDEX IF NOT EXISTS ix_event_consumers_status ON event_consumers(status);
        CREATE INDEX IF NOT EXISTS ix_event_consumers_next_retry_at ON event_consumers(next_retry_at);
        CREATE INDEX IF NOT EXISTS ix_event_consumers_status_next_retry_at
            ON event_consumers(status, next_retry_at);
    """)

    # Create audit_logs table
    op.execute("""
        CREATE TABLE IF NOT EXISTS audit_logs (
            id UUID PRIMARY KEY,
            event_id UUID NOT NULL,
            event_name VARCHAR(100) NOT NULL,
            event_origin VARCHAR(200) NOT NULL,
            aggregate_type VARCHAR(100),
            aggregate_id VARCHAR(200),
            correlation_id VARCHAR(200),
            details JSONB,
            timestamp TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT CURRENT_TIMESTAMP
        );
        CREATE UNIQUE INDEX IF NOT EXISTS ix_audit_logs_event_id ON audit_logs(event_id);
        CREATE INDEX IF NOT EXISTS ix_audit_logs_event_name ON audit_logs(event_name);
        CREATE INDEX IF NOT EXISTS ix_audit_logs_aggregate_type ON audit_logs(aggregate_type);
        CREATE INDEX IF NOT EXISTS ix_audit_logs_aggregate_id ON audit_logs(aggregate_id);
        CREATE INDEX IF NOT EXISTS ix_audit_logs_timestamp ON audit_logs(timestamp);
    """)


def downgrade() -> None:
    # Drop tables in reverse order
    op.execute("DROP TABLE IF EXISTS audit_logs CASCADE")
    op.execute("DROP TABLE IF EXISTS event_consumers CASCADE")
    op.execute("DROP TABLE IF EXISTS events CASCADE")

    # Drop enums
    op.execute("DROP TYPE IF EXISTS consumerstatus")
