"""In-memory operational history of ingestion cycles, alerts and history lookups."""

import threading
import uuid
from collections import Counter, deque
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

# Event types recorded by the core services
CYCLE_START = "cycle_start"
CYCLE_COMPLETE = "cycle_complete"
ALERT_TRIGGERED = "alert_triggered"
BASELINE_SEEDED = "baseline_seeded"
HISTORY_BACKFILL = "history_backfill"
HISTORY_SYNTHETIC = "history_synthetic"


@dataclass(frozen=True)
class Event:
    """One recorded occurrence, optionally correlated to a cycle or request trace."""

    event_type: str
    component: str
    message: str
    timestamp: datetime
    trace_id: str | None = None
    context: dict[str, Any] = field(default_factory=dict)
    duration_ms: float | None = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> dict[str, Any]:
        """Wire form for the debug endpoint; unset optional fields are left out."""
        data = {
            "id": self.id,
            "timestamp": self.timestamp.isoformat().replace("+00:00", "Z"),
            "event_type": self.event_type,
            "component": self.component,
            "message": self.message,
            "context": self.context,
        }
        if self.trace_id is not None:
            data["trace_id"] = self.trace_id
        if self.duration_ms is not None:
            data["duration_ms"] = self.duration_ms
        return data


class EventStore:
    """
    Bounded event log shared by the scheduler thread and request threads.

    The oldest events fall off once max_size is reached; clear_old_events()
    additionally drops anything older than max_age_seconds.
    """

    def __init__(
        self,
        max_size: int = 10000,
        max_age_seconds: int = 3600,
        clock: Callable[[], datetime] | None = None,
    ):
        self.max_size = max_size
        self.max_age_seconds = max_age_seconds
        self._clock = clock or (lambda: datetime.now(UTC))
        self._events: deque[Event] = deque(maxlen=max_size)
        self._lock = threading.Lock()

    def add_event(
        self,
        trace_id: str | None,
        event_type: str,
        component: str,
        message: str,
        context: dict[str, Any] | None = None,
        duration_ms: float | None = None,
    ) -> Event:
        """
        Record an event stamped with the store's clock.

        Args:
            trace_id: Trace of the cycle or request, if any
            event_type: One of the module-level event type constants
            component: Name of the recording component
            message: Human-readable summary
            context: Structured details (status, asset_id, counts, ...)
            duration_ms: Elapsed time of the operation, if measured

        Returns:
            The recorded Event
        """
        event = Event(
            event_type=event_type,
            component=component,
            message=message,
            timestamp=self._clock(),
            trace_id=trace_id,
            context=dict(context or {}),
            duration_ms=duration_ms,
        )
        with self._lock:
            self._events.append(event)
        return event

    def get_recent_events(self, limit: int = 100) -> list[Event]:
        """The newest `limit` events, oldest first."""
        return self._select(None, limit)

    def get_events_by_trace(self, trace_id: str) -> list[Event]:
        return self._select(lambda e: e.trace_id == trace_id)

    def get_events_by_type(self, event_type: str, limit: int | None = 100) -> list[Event]:
        """Events of one type, oldest first; limit=None returns all of them."""
        return self._select(lambda e: e.event_type == event_type, limit)

    def count_by_type(self) -> Counter:
        with self._lock:
            return Counter(e.event_type for e in self._events)

    def clear_old_events(self, max_age_seconds: int | None = None) -> int:
        """
        Drop events older than max_age_seconds (the store default when None).

        Returns:
            Number of events removed
        """
        cutoff = self._clock() - timedelta(seconds=max_age_seconds or self.max_age_seconds)
        with self._lock:
            kept = [e for e in self._events if e.timestamp > cutoff]
            removed = len(self._events) - len(kept)
            self._events = deque(kept, maxlen=self.max_size)
        return removed

    def clear(self) -> None:
        with self._lock:
            self._events.clear()

    def size(self) -> int:
        with self._lock:
            return len(self._events)

    def get_all_events(self) -> list[Event]:
        return self._select(None)

    def _select(
        self, predicate: Callable[[Event], bool] | None, limit: int | None = None
    ) -> list[Event]:
        with self._lock:
            events = [e for e in self._events if predicate is None or predicate(e)]
        if limit is None:
            return events
        return events[-limit:] if limit > 0 else []
