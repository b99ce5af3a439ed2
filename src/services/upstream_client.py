"""CoinGecko client for current snapshots and historical price ranges."""

from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any
from urllib.parse import quote

import requests
from pydantic import ValidationError

from src.models.market_data import AssetSnapshot, DurationTier, PricePoint
from src.models.upstream import CoinGeckoMarketChart, CoinGeckoMarketItem
from src.services.errors import MalformedUpstreamPayload, UpstreamUnavailable
from src.services.rate_limiter import RateLimiter
from src.utils.config import UpstreamConfig, config
from src.utils.logger import StructuredLogger

RATE_LIMIT_KEY = "coingecko"


class CoinGeckoClient:
    """Fetches market snapshots and price history from the CoinGecko REST API."""

    def __init__(
        self,
        upstream_config: UpstreamConfig | None = None,
        rate_limiter: RateLimiter | None = None,
        session: requests.Session | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        """
        Initialize the client.

        Args:
            upstream_config: Endpoint, key, timeout and budget settings
            rate_limiter: Shared limiter for the upstream request budget
            session: Optional requests session (one is created if omitted)
            clock: Source of the fetch timestamp stamped on snapshots
        """
        self.config = upstream_config or config.upstream
        self.base_url = self.config.base_url.rstrip("/")
        self.rate_limiter = rate_limiter or RateLimiter()
        self.session = session or requests.Session()
        self.session.headers.update({"Accept": "application/json"})
        if self.config.api_key:
            self.session.headers["x-cg-pro-api-key"] = self.config.api_key
        self._clock = clock or (lambda: datetime.now(UTC))
        self.logger = StructuredLogger("CoinGeckoClient")

    def fetch_top_snapshots(self, limit: int) -> list[AssetSnapshot]:
        """
        Fetch the top assets by market cap.

        Rows that fail validation are dropped individually; a body that is not
        a list, or one without a single valid row, is a malformed payload.

        Args:
            limit: Number of assets to request (CoinGecko allows up to 250)

        Returns:
            Snapshots in upstream order (market cap descending)

        Raises:
            UpstreamUnavailable: On network error, timeout, non-2xx or exhausted budget
            MalformedUpstreamPayload: On an unusable response body
        """
        data = self._get(
            "/coins/markets",
            {
                "vs_currency": "usd",
                "order": "market_cap_desc",
                "per_page": limit,
                "page": 1,
                "sparkline": "false",
                "price_change_percentage": "24h,7d",
            },
        )
        if not isinstance(data, list):
            raise MalformedUpstreamPayload("Expected a list from /coins/markets")

        fetched_at = self._clock()
        snapshots = []
        rejected = 0
        for item in data:
            try:
                snapshots.append(CoinGeckoMarketItem.model_validate(item).to_snapshot(fetched_at))
            except ValidationError as e:
                rejected += 1
                self.logger.warning(
                    "Dropping malformed market row",
                    context={
                        "source": "CoinGecko",
                        "asset_id": item.get("id") if isinstance(item, dict) else None,
                        "errors": e.error_count(),
                    },
                )

        if data and not snapshots:
            raise MalformedUpstreamPayload(f"All {rejected} market rows failed validation")

        self.logger.info(
            "Fetched market snapshots",
            context={
                "source": "CoinGecko",
                "requested": limit,
                "received": len(snapshots),
                "rejected": rejected,
            },
        )
        return snapshots

    def fetch_range(self, asset_id: str, tier: DurationTier) -> list[PricePoint]:
        """
        Fetch historical prices for one asset at the granularity of a duration tier.

        Args:
            asset_id: CoinGecko coin id (e.g. "bitcoin")
            tier: Day count (or "max") and optional interval

        Returns:
            Price points sorted by timestamp

        Raises:
            UpstreamUnavailable: On network error, timeout, non-2xx or exhausted budget
            MalformedUpstreamPayload: On an unusable response body
        """
        params: dict[str, Any] = {"vs_currency": "usd", "days": tier.days}
        if tier.interval:
            params["interval"] = tier.interval

        data = self._get(f"/coins/{quote(asset_id, safe='')}/market_chart", params)
        try:
            chart = CoinGeckoMarketChart.model_validate(data)
        except ValidationError as e:
            raise MalformedUpstreamPayload(f"Invalid market chart for {asset_id}: {e}") from e

        points = chart.to_points(asset_id)
        self.logger.debug(
            "Fetched price range",
            context={
                "source": "CoinGecko",
                "asset_id": asset_id,
                "days": tier.days,
                "interval": tier.interval,
                "points": len(points),
            },
        )
        return points

    def fetch_global_summary(self) -> dict[str, Any]:
        """Fetch global market figures (total market cap, volume, dominance)."""
        data = self._get("/global", {})
        if not isinstance(data, dict) or not isinstance(data.get("data"), dict):
            raise MalformedUpstreamPayload("Expected an object with 'data' from /global")
        return data["data"]

    def close(self) -> None:
        """Close the underlying HTTP session."""
        self.session.close()

    def _get(self, path: str, params: dict[str, Any]) -> Any:
        allowed, rate_info = self.rate_limiter.is_allowed(
            RATE_LIMIT_KEY, self.config.rate_limit, self.config.rate_window_seconds
        )
        if not allowed:
            self.logger.warning(
                "Local upstream request budget exhausted",
                context={"path": path, "retry_after": rate_info.get("retry_after")},
            )
            raise UpstreamUnavailable("Upstream request budget exhausted", status_code=429)

        url = f"{self.base_url}{path}"
        try:
            response = self.session.get(url, params=params, timeout=self.config.timeout_seconds)
            response.raise_for_status()
        except requests.HTTPError as e:
            status_code = e.response.status_code if e.response is not None else None
            self.logger.warning(
                "Upstream returned an error status",
                context={"path": path, "status_code": status_code},
            )
            raise UpstreamUnavailable(f"CoinGecko error {status_code} for {path}", status_code) from e
        except requests.RequestException as e:
            self.logger.warning(
                "Upstream request failed",
                context={"path": path, "error_type": type(e).__name__},
            )
            raise UpstreamUnavailable(f"CoinGecko request failed for {path}: {e}") from e

        try:
            return response.json()
        except ValueError as e:
            raise MalformedUpstreamPayload(f"Non-JSON response from {path}") from e
