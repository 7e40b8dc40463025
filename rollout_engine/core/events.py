# rollout_engine/core/events.py
"""Audit event emitters."""

import logging
from abc import ABC, abstractmethod
from threading import Lock
from typing import Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from rollout_engine.core.events_model import AuditEvent

logger = logging.getLogger(__name__)


class EventEmitter(ABC):
    """Abstract event emitter."""

    @abstractmethod
    def emit(self, events: Iterable[AuditEvent]) -> None:
        """Emit one or more events."""
        pass


def _validate(event: AuditEvent) -> None:
    if not event.execution_id:
        raise ValueError("Event must have execution_id")
    if not event.status:
        raise ValueError("Event must have status")


class InMemoryEventEmitter(EventEmitter):
    """Keeps events in a list; used by tests and the API."""

    def __init__(self):
        self.events: List[AuditEvent] = []
        self._lock = Lock()

    def emit(self, events: Iterable[AuditEvent]) -> None:
        with self._lock:
            for event in events:
                _validate(event)
                self.events.append(event)

    def for_execution(self, execution_id: str) -> List[AuditEvent]:
        with self._lock:
            return [e for e in self.events if e.execution_id == execution_id]


class LoggingEventEmitter(EventEmitter):
    """Writes one log line per event."""

    def __init__(self, level: int = logging.INFO):
        self.level = level

    def emit(self, events: Iterable[AuditEvent]) -> None:
        for event in events:
            _validate(event)
            scope = event.phase or "execution"
            if event.capability:
                scope = f"{scope}:{event.capability}"
            logger.log(
                self.level,
                f"[EVENT] {scope} {event.status} | execution={event.execution_id} "
                f"({event.duration_ms}ms)",
            )


class SqlAuditEventEmitter(EventEmitter):
    """Persists events to the audit_events table."""

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        from rollout_engine.infrastructure.sql.database import SessionLocal

        self._session_factory = session_factory or SessionLocal

    def emit(self, events: Iterable[AuditEvent]) -> None:
        from rollout_engine.infrastructure.sql.database import session_scope
        from rollout_engine.infrastructure.sql.models import AuditEventORM

        rows = []
        for event in events:
            _validate(event)
            rows.append(AuditEventORM(
                execution_id=event.execution_id,
                phase=event.phase,
                capability=event.capability,
                status=event.status,
                timestamp_ms=event.timestamp_ms,
                duration_ms=event.duration_ms,
                event_metadata=event.metadata,
            ))

        try:
            with session_scope(self._session_factory) as session:
                session.add_all(rows)
        except SQLAlchemyError:
            # Persistence failures never reach the pipeline
            logger.exception(f"[audit] failed to persist {len(rows)} event(s)")


class MultiEventEmitter(EventEmitter):
    """Fan-out to multiple emitters."""

    def __init__(self, emitters: Iterable[EventEmitter]):
        self._emitters = list(emitters)

    def emit(self, events: Iterable[AuditEvent]) -> None:
        """Emit to all emitters."""
        events = list(events)
        for emitter in self._emitters:
            emitter.emit(events)


class NullEventEmitter(EventEmitter):
    """No-op emitter (used when events are not needed)."""

    def emit(self, events: Iterable[AuditEvent]) -> None:
        """Do nothing."""
        pass
