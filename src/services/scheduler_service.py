"""Scheduler service driving periodic snapshot ingestion."""

import enum
import threading
import time
from collections.abc import Callable
from datetime import UTC, datetime

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from src.database.store import TimeSeriesStore
from src.models.market_data import AssetSnapshot
from src.services.alert_evaluator import AlertEvaluator
from src.services.broadcaster import Broadcaster
from src.services.errors import StoreUnavailable, UpstreamUnavailable
from src.services.synthetic_generator import SyntheticGenerator
from src.services.upstream_client import CoinGeckoClient
from src.utils.config import IngestionConfig, config
from src.utils.event_store import BASELINE_SEEDED, CYCLE_COMPLETE, CYCLE_START, EventStore
from src.utils.logger import StructuredLogger
from src.utils.trace_context import get_current_trace, trace_scope

JOB_ID = "snapshot_ingestion"

structured_logger = StructuredLogger("IngestionScheduler")


class SchedulerState(str, enum.Enum):
    """Phases of one ingestion cycle."""

    IDLE = "idle"
    FETCHING = "fetching"
    APPLYING = "applying"
    SKIPPING = "skipping"


class IngestionScheduler:
    """
    Refreshes snapshots for the top assets on a fixed period.

    Each cycle runs Idle -> Fetching -> (Applying | Skipping) -> Idle. A failed
    or empty fetch never clears stored data; clients keep seeing the last good
    snapshot until the next successful cycle.
    """

    def __init__(
        self,
        store: TimeSeriesStore,
        upstream: CoinGeckoClient,
        evaluator: AlertEvaluator,
        broadcaster: Broadcaster,
        generator: SyntheticGenerator | None = None,
        ingestion_config: IngestionConfig | None = None,
        event_store: EventStore | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        """
        Initialize the ingestion scheduler.

        Args:
            store: Time-series store receiving snapshots and price points
            upstream: Client for the top-N snapshot batch
            evaluator: Alert evaluator run after every applied batch
            broadcaster: Subscriber fan-out for price updates
            generator: Source of baseline snapshots for an empty store
            ingestion_config: Interval, batch size and broadcast cap
            event_store: Optional event store for cycle events
            clock: Source of "now" (UTC)
        """
        self.store = store
        self.upstream = upstream
        self.evaluator = evaluator
        self.broadcaster = broadcaster
        self.generator = generator or SyntheticGenerator()
        self.config = ingestion_config or config.ingestion
        self.event_store = event_store
        self._clock = clock or (lambda: datetime.now(UTC))

        self.scheduler = BackgroundScheduler(timezone="UTC")
        self.is_running = False
        self.initialized = threading.Event()

        self._state = SchedulerState.IDLE
        self._cycle_lock = threading.Lock()
        self._batch_lock = threading.Lock()
        self._latest_batch: tuple[AssetSnapshot, ...] = ()
        self._last_success_at: datetime | None = None
        self._consecutive_failures = 0
        self._on_initialized: list[Callable[[], None]] = []

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def last_success_at(self) -> datetime | None:
        return self._last_success_at

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    def on_initialized(self, callback: Callable[[], None]) -> None:
        """Register a callback run once, after the first successfully applied batch."""
        self._on_initialized.append(callback)

    def latest_snapshots(self) -> list[AssetSnapshot]:
        """Return the most recently applied batch (empty before the first success)."""
        with self._batch_lock:
            return list(self._latest_batch)

    def start(self) -> None:
        """Seed an empty store if configured, then run a cycle now and every interval."""
        if self.is_running:
            return

        if self.config.seed_on_empty:
            self.seed_if_empty()

        self.scheduler.add_job(
            self.run_cycle,
            IntervalTrigger(seconds=self.config.interval_seconds),
            id=JOB_ID,
            name="Market Snapshot Ingestion",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            next_run_time=datetime.now(UTC),
        )
        self.scheduler.start()
        self.is_running = True
        structured_logger.info(
            "Ingestion scheduler started",
            context={"interval_seconds": self.config.interval_seconds, "top_n": self.config.top_n},
        )

    def stop(self) -> None:
        """Stop the scheduler, waiting for a running cycle to finish."""
        if self.is_running:
            self.scheduler.shutdown(wait=True)
            self.is_running = False
            structured_logger.info("Ingestion scheduler stopped")

    def next_run_time(self) -> datetime | None:
        job = self.scheduler.get_job(JOB_ID) if self.is_running else None
        return job.next_run_time if job else None

    def run_cycle(self) -> bool:
        """
        Run one ingestion cycle.

        A tick arriving while a previous cycle is still running is skipped so
        that two cycles never write the same rows concurrently. Failures are
        logged and swallowed here; the next tick retries.

        Returns:
            True if a batch was applied
        """
        if not self._cycle_lock.acquire(blocking=False):
            structured_logger.warning("Previous ingestion cycle still running, skipping tick")
            return False

        try:
            with trace_scope() as trace_id:
                return self._run_cycle(trace_id)
        except Exception as e:
            self._consecutive_failures += 1
            structured_logger.error("Unexpected error during ingestion cycle", exception=e)
            return False
        finally:
            self._state = SchedulerState.IDLE
            self._cycle_lock.release()

    def _run_cycle(self, trace_id: str) -> bool:
        start_time = time.time()
        self._record(trace_id, CYCLE_START, "Starting ingestion cycle", {"top_n": self.config.top_n})

        self._state = SchedulerState.FETCHING
        try:
            batch = self.upstream.fetch_top_snapshots(self.config.top_n)
        except UpstreamUnavailable as e:
            return self._skip(trace_id, start_time, reason=type(e).__name__, exception=e)
        except Exception as e:
            structured_logger.error("Unexpected error fetching snapshots", exception=e)
            return self._skip(trace_id, start_time, reason=type(e).__name__, exception=e)

        if not batch:
            return self._skip(trace_id, start_time, reason="empty_batch")

        self._state = SchedulerState.APPLYING
        try:
            triggered = self._apply(batch)
        except StoreUnavailable as e:
            self._consecutive_failures += 1
            duration_ms = (time.time() - start_time) * 1000
            structured_logger.error(
                "Store unavailable while applying batch",
                context={"snapshot_count": len(batch), "duration_ms": duration_ms},
                exception=e,
            )
            self._record(
                trace_id,
                CYCLE_COMPLETE,
                "Ingestion cycle failed",
                {"status": "failed", "reason": "store_unavailable"},
                duration_ms,
            )
            return False

        self._consecutive_failures = 0
        self._last_success_at = self._clock()
        with self._batch_lock:
            self._latest_batch = tuple(batch)

        delivered = self._publish(batch)

        duration_ms = (time.time() - start_time) * 1000
        structured_logger.info(
            "Ingestion cycle applied",
            context={
                "snapshot_count": len(batch),
                "alerts_triggered": len(triggered),
                "subscribers_notified": delivered,
                "duration_ms": duration_ms,
            },
        )
        self._record(
            trace_id,
            CYCLE_COMPLETE,
            "Ingestion cycle applied",
            {
                "status": "applied",
                "snapshot_count": len(batch),
                "alerts_triggered": len(triggered),
            },
            duration_ms,
        )

        if not self.initialized.is_set():
            self.initialized.set()
            structured_logger.info("Market data initialized")
            for callback in self._on_initialized:
                try:
                    callback()
                except Exception as e:
                    structured_logger.error("Initialization callback failed", exception=e)

        return True

    def _apply(self, batch: list[AssetSnapshot]) -> list[str]:
        timestamp = self._clock()
        for snapshot in batch:
            self.store.upsert_snapshot(snapshot)
            self.store.append_point(snapshot.id, snapshot.current_price, timestamp)

        try:
            rules = self.store.list_active_rules()
        except StoreUnavailable as e:
            structured_logger.error("Could not load alert rules, skipping evaluation", exception=e)
            return []
        return self.evaluator.evaluate(batch, rules)

    def _publish(self, batch: list[AssetSnapshot]) -> int:
        top = sorted(batch, key=AssetSnapshot.rank_key)[: self.config.broadcast_limit]
        return self.broadcaster.publish(
            {"type": "price_update", "data": [snapshot.to_dict() for snapshot in top]}
        )

    def _skip(
        self,
        trace_id: str,
        start_time: float,
        reason: str,
        exception: Exception | None = None,
    ) -> bool:
        self._state = SchedulerState.SKIPPING
        self._consecutive_failures += 1
        structured_logger.warning(
            "Upstream fetch failed, keeping existing data",
            context={"reason": reason, "consecutive_failures": self._consecutive_failures},
            exception=exception,
        )

        if self.config.seed_on_empty:
            self.seed_if_empty()

        self._record(
            trace_id,
            CYCLE_COMPLETE,
            "Ingestion cycle skipped",
            {"status": "skipped", "reason": reason},
            (time.time() - start_time) * 1000,
        )
        return False

    def seed_if_empty(self) -> int:
        """
        Write baseline snapshots for the fixed roster when the store has none.

        Returns:
            Number of snapshots seeded (0 if the store already had data or failed)
        """
        try:
            if self.store.count_snapshots() > 0:
                return 0
            timestamp = self._clock()
            baseline = self.generator.baseline_snapshots()
            for snapshot in baseline:
                self.store.upsert_snapshot(snapshot)
                self.store.append_point(snapshot.id, snapshot.current_price, timestamp)
        except StoreUnavailable as e:
            structured_logger.error("Could not seed baseline snapshots", exception=e)
            return 0

        structured_logger.info("Store empty, seeded baseline snapshots", context={"count": len(baseline)})
        self._record(
            get_current_trace(),
            BASELINE_SEEDED,
            "Seeded baseline snapshots",
            {"count": len(baseline)},
        )
        return len(baseline)

    def _record(
        self,
        trace_id: str | None,
        event_type: str,
        message: str,
        context: dict,
        duration_ms: float | None = None,
    ) -> None:
        if self.event_store:
            self.event_store.add_event(
                trace_id=trace_id,
                event_type=event_type,
                component="IngestionScheduler",
                message=message,
                context=context,
                duration_ms=duration_ms,
            )
