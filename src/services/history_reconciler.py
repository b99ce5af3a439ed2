"""History reconciliation: local store, then upstream backfill, then synthetic fallback."""

import math
import time
from collections.abc import Callable, Sequence
from datetime import UTC, datetime, timedelta

from src.database.store import TimeSeriesStore
from src.models.market_data import DurationTier, HistoryRequest, PricePoint, ReconciledSeries
from src.services.errors import StoreUnavailable, UpstreamUnavailable
from src.services.synthetic_generator import SyntheticGenerator
from src.services.upstream_client import CoinGeckoClient
from src.utils.config import HistoryConfig, config
from src.utils.event_store import HISTORY_BACKFILL, HISTORY_SYNTHETIC, EventStore
from src.utils.logger import StructuredLogger
from src.utils.trace_context import trace_scope

# Requests of zero or negative length are served as this many hours
MIN_HOURS = 1
# "All available data": upstream max range, returned without window filtering
MAX_RANGE_HOURS = 43800

# Anchors for synthetic series when the store has never seen the asset
DEFAULT_ANCHOR_PRICES = {
    "bitcoin": 50000.0,
    "ethereum": 3000.0,
    "binancecoin": 400.0,
    "solana": 100.0,
    "cardano": 0.5,
    "dogecoin": 0.1,
    "xrp": 0.6,
    "tether": 1.0,
    "usd-coin": 1.0,
}


def duration_tier(hours: float) -> DurationTier:
    """
    Map a requested duration to the upstream granularity bucket.

    Upstream cost follows granularity rather than duration and coarsens at
    these boundaries, so requests are rounded up to the enclosing bucket.
    """
    if hours <= 24:
        return DurationTier(days=1)
    if hours <= 168:
        return DurationTier(days=math.ceil(hours / 24))
    if hours <= 720:
        return DurationTier(days=30)
    if hours <= 2160:
        return DurationTier(days=90)
    if hours <= 8760:
        return DurationTier(days=365, interval="daily")
    return DurationTier(days="max", interval="daily")


def coverage_hours(points: Sequence[PricePoint]) -> float:
    """Hours spanned between the first and last point (0 for fewer than two)."""
    if len(points) < 2:
        return 0.0
    return (points[-1].timestamp - points[0].timestamp).total_seconds() / 3600


def downsample(points: Sequence[PricePoint], max_points: int) -> list[PricePoint]:
    """
    Reduce a series to at most max_points by deterministic stride.

    Keeps every ceil(n / max_points)-th point starting with the first, so the
    first point of each stride window survives and order is preserved.
    """
    if len(points) <= max_points:
        return list(points)
    stride = math.ceil(len(points) / max_points)
    return list(points[::stride])


class HistoryReconciler:
    """Serves trailing price history for an asset, never failing the caller."""

    def __init__(
        self,
        store: TimeSeriesStore,
        upstream: CoinGeckoClient,
        generator: SyntheticGenerator | None = None,
        history_config: HistoryConfig | None = None,
        event_store: EventStore | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        """
        Initialize the reconciler.

        Args:
            store: Time-series store read for local samples and anchor prices
            upstream: Client used for backfill
            generator: Synthetic fallback generator
            history_config: Coverage ratio, transport cap and default anchor
            event_store: Optional event store for backfill/fallback events
            clock: Source of "now" (UTC)
        """
        self.store = store
        self.upstream = upstream
        self.generator = generator or SyntheticGenerator()
        self.config = history_config or config.history
        self.event_store = event_store
        self._clock = clock or (lambda: datetime.now(UTC))
        self.logger = StructuredLogger("HistoryReconciler")

    def get_range(self, asset_id: str, hours: float) -> list[PricePoint]:
        """
        Return the trailing price history of an asset.

        Args:
            asset_id: Asset identifier (e.g. "bitcoin")
            hours: Trailing window in hours; values <= 0 are served as MIN_HOURS

        Returns:
            Points in non-decreasing timestamp order, at most max_points long.
            Real and synthetic series are not distinguished.
        """
        return list(self.get_series(HistoryRequest(asset_id=asset_id, requested_hours=hours)).points)

    def get_series(self, request: HistoryRequest) -> ReconciledSeries:
        """Reconcile a history request, keeping the provenance for diagnostics."""
        with trace_scope() as trace_id:
            start_time = time.time()
            asset_id = request.asset_id
            hours = self._normalize_hours(request.requested_hours)
            now = self._clock()
            cutoff = now - timedelta(hours=hours)

            points = self._query_store(asset_id, cutoff)
            source = "store"

            covered = coverage_hours(points)
            if covered < self.config.coverage_ratio * hours:
                self.logger.debug(
                    "Local coverage insufficient, backfilling from upstream",
                    context={
                        "asset_id": asset_id,
                        "hours": hours,
                        "coverage_hours": round(covered, 3),
                        "local_points": len(points),
                    },
                )
                try:
                    points = self._backfill(asset_id, hours, cutoff)
                    source = "upstream"
                    self._record(
                        trace_id,
                        HISTORY_BACKFILL,
                        f"Backfilled {asset_id} history from upstream",
                        {"asset_id": asset_id, "hours": hours, "points": len(points)},
                        start_time,
                    )
                except UpstreamUnavailable as e:
                    points = self._synthesize(asset_id, hours, trace_id, start_time, e)
                    source = "synthetic"
                except Exception as e:
                    self.logger.error(
                        "Unexpected error during backfill",
                        context={"asset_id": asset_id, "hours": hours},
                        exception=e,
                    )
                    points = self._synthesize(asset_id, hours, trace_id, start_time, e)
                    source = "synthetic"

            if len(points) > self.config.max_points:
                original_length = len(points)
                points = downsample(points, self.config.max_points)
                self.logger.debug(
                    "Downsampled history for transport",
                    context={"asset_id": asset_id, "from": original_length, "to": len(points)},
                )

            return ReconciledSeries(
                asset_id=asset_id,
                requested_hours=hours,
                points=tuple(points),
                source=source,
            )

    def _normalize_hours(self, hours: float) -> float:
        if hours is None or not math.isfinite(hours) or hours <= 0:
            self.logger.warning(
                "Requested hours out of range, serving minimum window",
                context={"requested_hours": hours, "served_hours": MIN_HOURS},
            )
            return MIN_HOURS
        # Anything past the sentinel is the same "max" request
        return min(hours, MAX_RANGE_HOURS)

    def _query_store(self, asset_id: str, since: datetime) -> list[PricePoint]:
        try:
            return self.store.query_points(asset_id, since)
        except StoreUnavailable as e:
            self.logger.warning(
                "Store unavailable, treating local history as empty",
                context={"asset_id": asset_id},
                exception=e,
            )
            return []

    def _backfill(self, asset_id: str, hours: float, cutoff: datetime) -> list[PricePoint]:
        points = self.upstream.fetch_range(asset_id, duration_tier(hours))
        if hours < MAX_RANGE_HOURS:
            # Upstream rounds up to its bucket and may over-return
            points = [p for p in points if p.timestamp >= cutoff]
        if not points:
            raise UpstreamUnavailable(f"Upstream returned no points for {asset_id} in window")
        return points

    def _synthesize(
        self,
        asset_id: str,
        hours: float,
        trace_id: str,
        start_time: float,
        cause: Exception,
    ) -> list[PricePoint]:
        anchor = self._anchor_price(asset_id)
        self.logger.warning(
            "Upstream history unavailable, serving synthetic series",
            context={"asset_id": asset_id, "hours": hours, "anchor_price": anchor},
            exception=cause,
        )
        points = self.generator.generate(asset_id, hours, anchor)
        self._record(
            trace_id,
            HISTORY_SYNTHETIC,
            f"Served synthetic history for {asset_id}",
            {
                "asset_id": asset_id,
                "hours": hours,
                "points": len(points),
                "anchor_price": anchor,
                "error_type": type(cause).__name__,
            },
            start_time,
        )
        return points

    def _anchor_price(self, asset_id: str) -> float:
        """Most recent known real price, else a well-known default, else the configured default."""
        try:
            snapshot = self.store.get_snapshot(asset_id)
        except StoreUnavailable as e:
            self.logger.warning(
                "Store unavailable while resolving anchor price",
                context={"asset_id": asset_id},
                exception=e,
            )
            snapshot = None
        if snapshot is not None and snapshot.current_price > 0:
            return snapshot.current_price
        return DEFAULT_ANCHOR_PRICES.get(asset_id, self.config.default_anchor_price)

    def _record(
        self,
        trace_id: str,
        event_type: str,
        message: str,
        context: dict,
        start_time: float,
    ) -> None:
        if self.event_store:
            self.event_store.add_event(
                trace_id=trace_id,
                event_type=event_type,
                component="HistoryReconciler",
                message=message,
                context=context,
                duration_ms=(time.time() - start_time) * 1000,
            )
