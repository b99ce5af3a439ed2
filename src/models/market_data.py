"""Market data models for asset snapshots and price series."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


@dataclass(frozen=True)
class AssetSnapshot:
    """Latest known full record for one asset. Superseded, never mutated."""

    id: str
    symbol: str
    name: str
    current_price: float
    price_change_percentage_24h: float | None = None
    price_change_percentage_7d: float | None = None
    market_cap: float | None = None
    total_volume: float | None = None
    market_cap_rank: int | None = None
    high_24h: float | None = None
    low_24h: float | None = None
    ath: float | None = None
    ath_date: datetime | None = None
    atl: float | None = None
    atl_date: datetime | None = None
    image: str | None = None
    last_updated: datetime | None = None

    def rank_key(self) -> tuple[int, int]:
        """Sort key placing unranked assets last."""
        if self.market_cap_rank is None:
            return (1, 0)
        return (0, self.market_cap_rank)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the JSON wire form pushed to subscribers and API clients."""
        return {
            "id": self.id,
            "symbol": self.symbol,
            "name": self.name,
            "current_price": self.current_price,
            "price_change_percentage_24h": self.price_change_percentage_24h,
            "price_change_percentage_7d": self.price_change_percentage_7d,
            "market_cap": self.market_cap,
            "total_volume": self.total_volume,
            "market_cap_rank": self.market_cap_rank,
            "high_24h": self.high_24h,
            "low_24h": self.low_24h,
            "ath": self.ath,
            "ath_date": _iso(self.ath_date),
            "atl": self.atl,
            "atl_date": _iso(self.atl_date),
            "image": self.image,
            "last_updated": _iso(self.last_updated),
        }


@dataclass(frozen=True)
class PricePoint:
    """A single price sample for one asset."""

    asset_id: str
    price: float
    timestamp: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "asset_id": self.asset_id,
            "price": self.price,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class HistoryRequest:
    """A request for the trailing price history of one asset."""

    asset_id: str
    requested_hours: float


@dataclass(frozen=True)
class DurationTier:
    """Upstream history granularity bucket: a day count (or "max") and optional interval."""

    days: int | Literal["max"]
    interval: Literal["daily"] | None = None

    @property
    def is_max(self) -> bool:
        return self.days == "max"


SeriesSource = Literal["store", "upstream", "synthetic"]


@dataclass(frozen=True)
class ReconciledSeries:
    """
    An ordered, transport-capped price series.

    The source is kept for diagnostics only; API responses carry the points alone.
    """

    asset_id: str
    requested_hours: float
    points: tuple[PricePoint, ...]
    source: SeriesSource

    def __len__(self) -> int:
        return len(self.points)
