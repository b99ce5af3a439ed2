"""Property-based tests for in-memory event store."""

import threading
import uuid
from datetime import UTC, datetime, timedelta

from hypothesis import given
from hypothesis import strategies as st

from src.utils.event_store import (
    ALERT_TRIGGERED,
    CYCLE_COMPLETE,
    CYCLE_START,
    HISTORY_SYNTHETIC,
    EventStore,
)


class TestEventStoreOrdering:
    """Tests for event store ordering and trace history."""

    @given(
        num_events=st.integers(min_value=1, max_value=50),
        num_traces=st.integers(min_value=1, max_value=5),
    )
    def test_trace_lookup_returns_complete_history(self, num_events, num_traces):
        """
        For any trace ID, every event recorded under it is returned in
        insertion order.
        """
        store = EventStore()
        traces = [str(uuid.uuid4()) for _ in range(num_traces)]
        events_by_trace = {trace: [] for trace in traces}

        for i in range(num_events):
            trace_id = traces[i % num_traces]
            event = store.add_event(
                trace_id=trace_id,
                event_type=CYCLE_START,
                component="IngestionScheduler",
                message=f"Cycle {i}",
                context={"index": i},
            )
            events_by_trace[trace_id].append(event)

        for trace_id in traces:
            retrieved = store.get_events_by_trace(trace_id)
            assert [e.id for e in retrieved] == [e.id for e in events_by_trace[trace_id]]

    @given(num_events=st.integers(min_value=1, max_value=30), limit=st.integers(min_value=1, max_value=40))
    def test_recent_events_are_newest_tail_oldest_first(self, num_events, limit):
        store = EventStore()
        for i in range(num_events):
            store.add_event(None, CYCLE_COMPLETE, "IngestionScheduler", f"Cycle {i}")

        recent = store.get_recent_events(limit=limit)

        expected = [f"Cycle {i}" for i in range(num_events)][-limit:]
        assert [e.message for e in recent] == expected


class TestEventStoreQueries:
    def test_events_by_type(self):
        store = EventStore()
        store.add_event("t1", CYCLE_COMPLETE, "IngestionScheduler", "applied", {"status": "applied"})
        store.add_event("t2", ALERT_TRIGGERED, "AlertEvaluator", "alert")
        store.add_event("t3", CYCLE_COMPLETE, "IngestionScheduler", "skipped", {"status": "skipped"})

        cycles = store.get_events_by_type(CYCLE_COMPLETE)

        assert [e.context["status"] for e in cycles] == ["applied", "skipped"]
        assert store.get_events_by_type(HISTORY_SYNTHETIC) == []

    def test_to_dict_omits_missing_values(self):
        event = EventStore().add_event(None, CYCLE_START, "IngestionScheduler", "start")

        data = event.to_dict()

        assert "trace_id" not in data
        assert "duration_ms" not in data
        assert data["context"] == {}
        assert data["timestamp"].endswith("Z")

    def test_timestamp_comes_from_clock(self):
        stamp = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)
        event = EventStore(clock=lambda: stamp).add_event(None, CYCLE_START, "IngestionScheduler", "start")

        assert event.timestamp == stamp
        assert event.to_dict()["timestamp"] == "2024-06-01T12:00:00Z"

    def test_count_by_type(self):
        store = EventStore()
        store.add_event(None, CYCLE_START, "IngestionScheduler", "start")
        store.add_event(None, CYCLE_COMPLETE, "IngestionScheduler", "done")
        store.add_event(None, CYCLE_START, "IngestionScheduler", "start")

        counts = store.count_by_type()

        assert counts[CYCLE_START] == 2
        assert counts[CYCLE_COMPLETE] == 1
        assert counts[ALERT_TRIGGERED] == 0


class TestEventStoreBounds:
    """Tests for size and age bounds."""

    def test_max_size_drops_oldest(self):
        store = EventStore(max_size=5)
        for i in range(8):
            store.add_event(None, CYCLE_START, "IngestionScheduler", f"Cycle {i}")

        assert store.size() == 5
        assert store.get_all_events()[0].message == "Cycle 3"

    def test_clear_old_events(self):
        now = [datetime(2024, 6, 1, 12, 0, tzinfo=UTC)]
        store = EventStore(clock=lambda: now[0])
        store.add_event(None, CYCLE_START, "IngestionScheduler", "old")
        now[0] += timedelta(hours=2)
        store.add_event(None, CYCLE_START, "IngestionScheduler", "new")

        removed = store.clear_old_events(max_age_seconds=3600)

        assert removed == 1
        assert [e.message for e in store.get_all_events()] == ["new"]

    def test_clear(self):
        store = EventStore()
        store.add_event(None, CYCLE_START, "IngestionScheduler", "start")
        store.clear()
        assert store.size() == 0

    def test_concurrent_writers(self):
        store = EventStore()

        def writer():
            for i in range(250):
                store.add_event(None, CYCLE_START, "IngestionScheduler", f"Cycle {i}")

        threads = [threading.Thread(target=writer) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert store.size() == 1000
