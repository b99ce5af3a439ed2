"""Process-scoped service object wiring the ingestion and history components."""

from collections.abc import Callable
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from src.database.store import SqlTimeSeriesStore, TimeSeriesStore
from src.models.market_data import AssetSnapshot, PricePoint
from src.services.alert_evaluator import AlertEvaluator
from src.services.broadcaster import Broadcaster, SubscriberChannel
from src.services.history_reconciler import HistoryReconciler
from src.services.rate_limiter import RateLimiter
from src.services.scheduler_service import IngestionScheduler
from src.services.synthetic_generator import SyntheticGenerator
from src.services.upstream_client import CoinGeckoClient
from src.utils.config import Config, config
from src.utils.event_store import EventStore
from src.utils.logger import StructuredLogger
from src.utils.metrics import MetricsCalculator


class MarketService:
    """
    Owns the store, upstream client, reconciler, evaluator, broadcaster and scheduler.

    One instance lives for the whole process; the API layer reaches it through
    app.state and never touches module-level state.
    """

    def __init__(
        self,
        store: TimeSeriesStore,
        upstream: CoinGeckoClient,
        app_config: Config | None = None,
        event_store: EventStore | None = None,
        generator: SyntheticGenerator | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.config = app_config or config
        self.store = store
        self.upstream = upstream
        self.event_store = event_store or EventStore(clock=clock)
        self.metrics = MetricsCalculator(self.event_store)
        self.generator = generator or SyntheticGenerator(clock=clock)
        self.broadcaster = Broadcaster()
        self.evaluator = AlertEvaluator(store, event_store=self.event_store, clock=clock)
        self.reconciler = HistoryReconciler(
            store,
            upstream,
            generator=self.generator,
            history_config=self.config.history,
            event_store=self.event_store,
            clock=clock,
        )
        self.scheduler = IngestionScheduler(
            store,
            upstream,
            self.evaluator,
            self.broadcaster,
            generator=self.generator,
            ingestion_config=self.config.ingestion,
            event_store=self.event_store,
            clock=clock,
        )
        self.logger = StructuredLogger("MarketService")

    @classmethod
    def from_session_factory(
        cls, session_factory: Callable[[], Session], app_config: Config | None = None
    ) -> "MarketService":
        """Build the production wiring over a SQLAlchemy session factory."""
        app_config = app_config or config
        upstream = CoinGeckoClient(app_config.upstream, rate_limiter=RateLimiter())
        return cls(SqlTimeSeriesStore(session_factory), upstream, app_config=app_config)

    def start(self) -> None:
        """Start periodic ingestion."""
        self.scheduler.start()
        self.logger.info("Market service started")

    def stop(self) -> None:
        """Stop ingestion and release the upstream connection pool."""
        self.scheduler.stop()
        self.upstream.close()
        self.logger.info("Market service stopped")

    def get_range(self, asset_id: str, hours: float) -> list[PricePoint]:
        return self.reconciler.get_range(asset_id, hours)

    def subscribe(self, channel: SubscriberChannel | None = None) -> SubscriberChannel:
        return self.broadcaster.subscribe(channel)

    def unsubscribe(self, channel: SubscriberChannel) -> None:
        self.broadcaster.unsubscribe(channel)

    def latest_snapshots(self) -> list[AssetSnapshot]:
        return self.scheduler.latest_snapshots()

    def list_snapshots(self, limit: int | None = None) -> list[AssetSnapshot]:
        return self.store.list_snapshots(limit)

    def search_snapshots(self, query: str, limit: int = 50) -> list[AssetSnapshot]:
        return self.store.search_snapshots(query, limit)

    def get_snapshot(self, asset_id: str) -> AssetSnapshot | None:
        return self.store.get_snapshot(asset_id)

    def global_summary(self) -> dict[str, Any]:
        """Market-wide totals straight from the upstream; raises UpstreamUnavailable."""
        return self.upstream.fetch_global_summary()

    def status(self) -> dict[str, Any]:
        """Scheduler and subscriber state for the debug endpoint."""
        next_run = self.scheduler.next_run_time()
        last_success = self.scheduler.last_success_at
        return {
            "is_running": self.scheduler.is_running,
            "state": self.scheduler.state.value,
            "initialized": self.scheduler.initialized.is_set(),
            "interval_seconds": self.config.ingestion.interval_seconds,
            "next_run_time": next_run.isoformat() if next_run else None,
            "last_success_at": last_success.isoformat() if last_success else None,
            "consecutive_failures": self.scheduler.consecutive_failures,
            "latest_batch_size": len(self.scheduler.latest_snapshots()),
            "subscribers": self.broadcaster.subscriber_count,
        }
