"""Database engine and session management."""

from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine

from payevents.config import get_settings


def normalize_database_url(url: str) -> str:
    """Convert postgresql:// to postgresql+psycopg:// for the psycopg v3 driver."""
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+psycopg://", 1)
    return url


def build_engine(database_url: str | None = None) -> Engine:
    """Create an engine for the configured database."""
    url = normalize_database_url(database_url or get_settings().DATABASE_URL)
    if not url:
        raise ValueError("DATABASE_URL environment variable is required")

    connect_args = {"sslmode": "require"} if url.startswith("postgresql+psycopg://") else {}
    return create_engine(
        url,
        echo=False,
        pool_pre_ping=True,
        connect_args=connect_args,
    )


_engine: Engine | None = None


def get_engine() -> Engine:
    """Get or lazily create the process-wide engine."""
    global _engine
    if _engine is None:
        _engine = build_engine()
    return _engine


def init_db(engine: Engine) -> None:
    """Create the event tables if they are missing."""
    # Import models to register them with SQLModel
    from payevents.models import AuditLog, Event, EventConsumer  # noqa: F401

    SQLModel.metadata.create_all(engine)
