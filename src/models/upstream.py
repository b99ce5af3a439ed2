"""Pydantic DTOs validating CoinGecko payloads before they reach the core."""

import math
from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, field_validator

from src.models.market_data import AssetSnapshot, PricePoint


def _aware(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class CoinGeckoMarketItem(BaseModel):
    """One row of /coins/markets. Only id, symbol, name and current_price are required."""

    model_config = ConfigDict(extra="ignore")

    id: str
    symbol: str
    name: str
    current_price: float
    image: str | None = None
    market_cap: float | None = None
    market_cap_rank: int | None = None
    total_volume: float | None = None
    high_24h: float | None = None
    low_24h: float | None = None
    price_change_percentage_24h: float | None = None
    price_change_percentage_7d_in_currency: float | None = None
    ath: float | None = None
    ath_date: datetime | None = None
    atl: float | None = None
    atl_date: datetime | None = None
    last_updated: datetime | None = None

    @field_validator("id", "symbol", "name")
    @classmethod
    def validate_not_empty(cls, v: str) -> str:
        """Reject blank identifiers."""
        if not v or not v.strip():
            raise ValueError("must not be empty")
        return v.strip()

    @field_validator("current_price")
    @classmethod
    def validate_price(cls, v: float) -> float:
        """Reject negative or non-finite prices."""
        if not math.isfinite(v) or v < 0:
            raise ValueError("current_price must be a finite non-negative number")
        return v

    def to_snapshot(self, fetched_at: datetime) -> AssetSnapshot:
        """Convert to a domain snapshot stamped with the fetch time."""
        return AssetSnapshot(
            id=self.id,
            symbol=self.symbol,
            name=self.name,
            current_price=self.current_price,
            price_change_percentage_24h=self.price_change_percentage_24h,
            price_change_percentage_7d=self.price_change_percentage_7d_in_currency,
            market_cap=self.market_cap,
            total_volume=self.total_volume,
            market_cap_rank=self.market_cap_rank,
            high_24h=self.high_24h,
            low_24h=self.low_24h,
            ath=self.ath,
            ath_date=_aware(self.ath_date),
            atl=self.atl,
            atl_date=_aware(self.atl_date),
            image=self.image,
            last_updated=fetched_at,
        )


class CoinGeckoMarketChart(BaseModel):
    """Body of /coins/{id}/market_chart. Each price is a [epoch_ms, price] pair."""

    model_config = ConfigDict(extra="ignore")

    prices: list[tuple[float, float]]

    def to_points(self, asset_id: str) -> list[PricePoint]:
        """Convert to price points sorted by timestamp, dropping non-finite prices."""
        points = [
            PricePoint(
                asset_id=asset_id,
                price=price,
                timestamp=datetime.fromtimestamp(ts_ms / 1000, tz=UTC),
            )
            for ts_ms, price in self.prices
            if math.isfinite(price) and math.isfinite(ts_ms)
        ]
        points.sort(key=lambda p: p.timestamp)
        return points
