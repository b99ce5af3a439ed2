"""Metrics calculator for aggregating event store data."""

from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from src.utils.event_store import (
    ALERT_TRIGGERED,
    CYCLE_COMPLETE,
    HISTORY_BACKFILL,
    HISTORY_SYNTHETIC,
    EventStore,
)


@dataclass
class Metrics:
    """Represents aggregated ingestion and history metrics."""

    total_cycles: int
    applied_cycles: int
    skipped_cycles: int
    failed_cycles: int
    success_rate: float
    average_cycle_duration_ms: float
    snapshots_ingested: int
    alerts_triggered: int
    history_backfills: int
    synthetic_fallbacks: int
    uptime_seconds: int

    def to_dict(self) -> Dict[str, Any]:
        """Convert metrics to dictionary."""
        return asdict(self)


class MetricsCalculator:
    """Calculates metrics from event store data."""

    def __init__(self, event_store: EventStore, start_time: Optional[datetime] = None):
        """
        Initialize the metrics calculator.

        Args:
            event_store: The event store to calculate metrics from
            start_time: Optional start time for uptime calculation (defaults to now)
        """
        self.event_store = event_store
        self.start_time = start_time or datetime.now(timezone.utc)

    def calculate(self) -> Metrics:
        """
        Calculate metrics from the event store.

        Returns:
            Metrics object with aggregated statistics
        """
        cycles = self.event_store.get_events_by_type(CYCLE_COMPLETE, limit=None)
        counts = self.event_store.count_by_type()
        applied = [e for e in cycles if e.context.get("status") == "applied"]
        skipped = [e for e in cycles if e.context.get("status") == "skipped"]
        failed = [e for e in cycles if e.context.get("status") == "failed"]

        success_rate = (len(applied) / len(cycles) * 100) if cycles else 0.0

        durations = [e.duration_ms for e in cycles if e.duration_ms is not None]
        average_cycle_duration_ms = sum(durations) / len(durations) if durations else 0.0

        snapshots_ingested = sum(e.context.get("snapshot_count", 0) for e in applied)

        uptime_seconds = int((datetime.now(timezone.utc) - self.start_time).total_seconds())

        return Metrics(
            total_cycles=len(cycles),
            applied_cycles=len(applied),
            skipped_cycles=len(skipped),
            failed_cycles=len(failed),
            success_rate=success_rate,
            average_cycle_duration_ms=average_cycle_duration_ms,
            snapshots_ingested=snapshots_ingested,
            alerts_triggered=counts[ALERT_TRIGGERED],
            history_backfills=counts[HISTORY_BACKFILL],
            synthetic_fallbacks=counts[HISTORY_SYNTHETIC],
            uptime_seconds=uptime_seconds,
        )
