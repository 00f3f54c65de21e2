"""Event store backed by the ``events`` and ``event_consumers`` tables.

The store is the only shared mutable state between processors. Every
status change goes through a conditional UPDATE keyed on the status and
retry count the caller last observed, so two processors racing on the
same consumer record cannot both win:

    UPDATE event_consumers SET ... WHERE id = :id
        AND status = :seen_status AND retry = :seen_retry
"""

import logging
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Any
from uuid import UUID

from sqlalchemy import and_, func, or_, update
from sqlalchemy import exc as sa_exc
from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from payevents.events.errors import (
    ConsumerNotFoundError,
    EventNotFoundError,
    EventStoreError,
    StoreConnectionError,
    StoreSerializationError,
)
from payevents.models.event import Event, utc_now_ms
from payevents.models.event_consumer import (
    ConsumerOutcome,
    ConsumerStatus,
    EventConsumer,
)

logger = logging.getLogger(__name__)


@contextmanager
def _translate_errors(operation: str) -> Iterator[None]:
    """Re-raise SQLAlchemy failures as typed store errors."""
    try:
        yield
    except EventStoreError:
        raise
    except (sa_exc.OperationalError, sa_exc.InterfaceError, sa_exc.DisconnectionError,
            sa_exc.TimeoutError) as e:
        logger.error(
            f"Event store connection failure during {operation}",
            extra={"operation": operation, "error": str(e)},
        )
        raise StoreConnectionError(f"{operation}: {e}") from e
    except sa_exc.DataError as e:
        raise StoreSerializationError(f"{operation}: {e}") from e
    except sa_exc.DBAPIError as e:
        raise EventStoreError(f"{operation}: {e}") from e
    except sa_exc.StatementError as e:
        # Raised when a bound parameter (e.g. a JSON payload) cannot be processed
        raise StoreSerializationError(f"{operation}: {e}") from e
    except sa_exc.SQLAlchemyError as e:
        raise EventStoreError(f"{operation}: {e}") from e


class EventStore:
    """Persistence for events and their per-handler consumer records."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def _session(self) -> Session:
        return Session(self._engine, expire_on_commit=False)

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def store_event_with_consumers(
        self,
        event: Event,
        handler_endpoints: Sequence[str],
    ) -> UUID:
        """Persist an event and one PENDING consumer row per endpoint.

        Both are written in a single transaction; on any error nothing is
        kept and an ``EventStoreError`` is raised. The event id is generated
        client-side by the model's ``uuid4`` default; the returned id is
        that same value.
        """
        event_id = event.id
        consumers = [
            EventConsumer.new(event_id, endpoint, now_ms=event.date)
            for endpoint in handler_endpoints
        ]

        with _translate_errors("store_event_with_consumers"), self._session() as session:
            try:
                session.add(event)
                session.add_all(consumers)
                session.commit()
            except Exception:
                session.rollback()
                raise

        if consumers:
            logger.info(
                "Event stored with consumer records",
                extra={
                    "event_id": str(event_id),
                    "event_name": event.event_name,
                    "consumer_count": len(consumers),
                },
            )
        else:
            logger.info(
                "Event stored without consumer records",
                extra={"event_id": str(event_id), "event_name": event.event_name},
            )
        return event_id

    def update_consumer_status(
        self,
        consumer: EventConsumer,
        outcome: ConsumerOutcome,
        now_ms: int | None = None,
    ) -> bool:
        """Apply an outcome if the record is still in the state we last saw.

        Returns False when another writer changed the record first; the
        stored row is left untouched in that case. On success the passed
        instance is updated to mirror the stored row.

        Raises:
            ConsumerNotFoundError: no record with this id exists.
        """
        now = now_ms if now_ms is not None else utc_now_ms()
        values = outcome.values(consumer, now)

        statement = (
            update(EventConsumer)
            .where(
                EventConsumer.id == consumer.id,
                EventConsumer.status == consumer.status,
                EventConsumer.retry == consumer.retry,
            )
            .values(**values)
        )

        with _translate_errors("update_consumer_status"), self._session() as session:
            result = session.execute(statement)
            session.commit()

            if result.rowcount == 0:
                if session.get(EventConsumer, consumer.id) is None:
                    raise ConsumerNotFoundError(consumer.id)
                logger.warning(
                    "Consumer record changed concurrently, update skipped",
                    extra={
                        "consumer_id": str(consumer.id),
                        "endpoint": consumer.endpoint,
                        "expected_status": consumer.status.value,
                        "expected_retry": consumer.retry,
                    },
                )
                return False

        for key, value in values.items():
            setattr(consumer, key, value)
        return True

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def find_due_consumer_records(
        self,
        now_ms: int,
        max_retries: int,
        limit: int | None = None,
    ) -> list[tuple[Event, EventConsumer]]:
        """Consumer records ready to run, paired with their event.

        Due means PENDING, or FAILED with ``next_retry_at <= now_ms`` and
        fewer than ``max_retries`` attempts. Oldest records come first.
        """
        statement = (
            select(EventConsumer, Event)
            .join(Event, EventConsumer.event_id == Event.id)
            .where(
                or_(
                    EventConsumer.status == ConsumerStatus.PENDING,
                    and_(
                        EventConsumer.status == ConsumerStatus.FAILED,
                        EventConsumer.next_retry_at.is_not(None),
                        EventConsumer.next_retry_at <= now_ms,
                        EventConsumer.retry < max_retries,
                    ),
                )
            )
            .order_by(EventConsumer.date, EventConsumer.id)
        )
        if limit is not None:
            statement = statement.limit(limit)

        with _translate_errors("find_due_consumer_records"), self._session() as session:
            rows = session.exec(statement).all()

        return [(event, consumer) for consumer, event in rows]

    def get_event_by_id(self, event_id: UUID) -> Event | None:
        with _translate_errors("get_event_by_id"), self._session() as session:
            return session.get(Event, event_id)

    def require_event(self, event_id: UUID) -> Event:
        event = self.get_event_by_id(event_id)
        if event is None:
            raise EventNotFoundError(event_id)
        return event

    def get_consumer_by_id(self, consumer_id: UUID) -> EventConsumer | None:
        with _translate_errors("get_consumer_by_id"), self._session() as session:
            return session.get(EventConsumer, consumer_id)

    def get_consumers_by_event_id(self, event_id: UUID) -> list[EventConsumer]:
        statement = select(EventConsumer).where(EventConsumer.event_id == event_id)
        with _translate_errors("get_consumers_by_event_id"), self._session() as session:
            return list(session.exec(statement).all())

    def get_events_by_aggregate(self, aggregate_type: str, aggregate_id: str) -> list[Event]:
        """Events for one aggregate in chronological order."""
        statement = (
            select(Event)
            .where(Event.aggregate_type == aggregate_type, Event.aggregate_id == aggregate_id)
            .order_by(Event.date)
        )
        with _translate_errors("get_events_by_aggregate"), self._session() as session:
            return list(session.exec(statement).all())

    def get_failed_consumers(
        self,
        endpoint: str | None = None,
        event_name: str | None = None,
        limit: int | None = None,
    ) -> list[EventConsumer]:
        """FAILED consumer records, optionally filtered by endpoint and event name."""
        statement = select(EventConsumer).where(EventConsumer.status == ConsumerStatus.FAILED)
        if endpoint is not None:
            statement = statement.where(EventConsumer.endpoint == endpoint)
        if event_name is not None:
            statement = statement.join(Event, EventConsumer.event_id == Event.id).where(
                Event.event_name == event_name
            )
        statement = statement.order_by(EventConsumer.date)
        if limit is not None:
            statement = statement.limit(limit)

        with _translate_errors("get_failed_consumers"), self._session() as session:
            return list(session.exec(statement).all())

    def get_exhausted_consumers(self, max_retries: int) -> list[EventConsumer]:
        """FAILED records that will never be picked up again."""
        statement = select(EventConsumer).where(
            EventConsumer.status == ConsumerStatus.FAILED,
            EventConsumer.retry >= max_retries,
        )
        with _translate_errors("get_exhausted_consumers"), self._session() as session:
            return list(session.exec(statement).all())

    def get_event_stats(self) -> dict[str, Any]:
        with _translate_errors("get_event_stats"), self._session() as session:
            total = session.exec(select(func.count()).select_from(Event)).one()
        return {"total_events": total}

    def get_consumer_stats(self) -> dict[str, Any]:
        statement = select(EventConsumer.status, func.count()).group_by(EventConsumer.status)
        with _translate_errors("get_consumer_stats"), self._session() as session:
            counts = {status: count for status, count in session.exec(statement).all()}

        total = sum(counts.values())
        succeeded = counts.get(ConsumerStatus.SUCCESS, 0)
        return {
            "total_consumers": total,
            "pending_count": counts.get(ConsumerStatus.PENDING, 0),
            "succeeded_count": succeeded,
            "failed_count": counts.get(ConsumerStatus.FAILED, 0),
            "skipped_count": counts.get(ConsumerStatus.SKIPPED, 0),
            "success_rate": succeeded / total if total else 0.0,
        }
