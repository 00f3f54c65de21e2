"""Shared fixtures: test database, store, registry and test handlers."""

import pytest
from sqlmodel import create_engine

from payevents.db.session import init_db
from payevents.events.errors import HandlerError
from payevents.events.handlers import EventHandler, HandlerRegistry
from payevents.events.publisher import EventPublisher
from payevents.events.store import EventStore
from payevents.models.event import Event

NOW_MS = 1_760_000_000_000


class RecordingHandler(EventHandler):
    """Handler double that records deliveries and can be told to fail."""

    def __init__(self, name, event_names=None, fail_times=0, error=None):
        self._name = name
        self.event_names = set(event_names) if event_names is not None else None
        self.fail_times = fail_times
        self.error = error or HandlerError.handler("boom")
        self.calls: list[Event] = []

    @property
    def name(self) -> str:
        return self._name

    def can_handle(self, event_type: str) -> bool:
        return self.event_names is None or event_type in self.event_names

    async def handle(self, event: Event) -> None:
        self.calls.append(event)
        if self.fail_times == -1 or len(self.calls) <= self.fail_times:
            raise self.error


@pytest.fixture
def engine(tmp_path):
    """Create a file-backed test database with the event tables.

    Store calls run in worker threads, so each thread needs its own pooled
    connection rather than one shared in-memory connection.
    """
    engine = create_engine(
        f"sqlite:///{tmp_path / 'events.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine):
    return EventStore(engine)


@pytest.fixture
def registry():
    return HandlerRegistry()


@pytest.fixture
def publisher(store, registry):
    return EventPublisher(store, registry, application_name="test-app")


@pytest.fixture
def make_handler():
    """Factory for RecordingHandler instances."""
    return RecordingHandler


@pytest.fixture
def now_ms():
    """Fixed clock value in epoch millis."""
    return NOW_MS
