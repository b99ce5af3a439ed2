"""Placeholder price series and baseline snapshots for when real data is unavailable."""

import math
import random
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from src.models.market_data import AssetSnapshot, PricePoint

OSCILLATION_AMPLITUDE = 0.05
NOISE_AMPLITUDE = 0.02


@dataclass(frozen=True)
class RosterEntry:
    """A well-known asset used to seed an empty store on first boot."""

    id: str
    symbol: str
    name: str
    rank: int


BASELINE_ROSTER: tuple[RosterEntry, ...] = (
    RosterEntry("bitcoin", "btc", "Bitcoin", 1),
    RosterEntry("ethereum", "eth", "Ethereum", 2),
    RosterEntry("tether", "usdt", "Tether", 3),
    RosterEntry("binancecoin", "bnb", "BNB", 4),
    RosterEntry("solana", "sol", "Solana", 5),
    RosterEntry("usd-coin", "usdc", "USDC", 6),
    RosterEntry("xrp", "xrp", "XRP", 7),
    RosterEntry("cardano", "ada", "Cardano", 8),
    RosterEntry("dogecoin", "doge", "Dogecoin", 9),
    RosterEntry("tron", "trx", "TRON", 10),
)


def synthetic_point_count(hours: float) -> int:
    """Number of synthetic points for a requested duration."""
    if hours <= 24:
        return 48
    if hours <= 168:
        return 168
    return 365


class SyntheticGenerator:
    """
    Generates display-only placeholder data.

    The shape is deterministic (a slow sine wave around the anchor) and the
    noise is random and bounded. Nothing produced here is ever persisted as
    history; its only purpose is to keep a chart non-empty during outages.
    """

    def __init__(
        self,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self._rng = rng or random.Random()
        self._clock = clock or (lambda: datetime.now(UTC))

    def generate(self, asset_id: str, hours: float, anchor_price: float) -> list[PricePoint]:
        """
        Generate a series evenly spaced over [now - hours, now].

        Args:
            asset_id: Asset the series is labelled with
            hours: Trailing window length in hours (must be positive)
            anchor_price: Price the series oscillates around

        Returns:
            Points in ascending timestamp order
        """
        now = self._clock()
        count = synthetic_point_count(hours)
        start = now - timedelta(hours=hours)
        span = now - start

        points = []
        for i in range(count):
            wave = anchor_price * OSCILLATION_AMPLITUDE * math.sin(i / 10)
            noise = anchor_price * NOISE_AMPLITUDE * self._rng.uniform(-0.5, 0.5)
            timestamp = start + span * i / (count - 1)
            points.append(
                PricePoint(asset_id=asset_id, price=anchor_price + wave + noise, timestamp=timestamp)
            )
        return points

    def baseline_snapshots(
        self, roster: tuple[RosterEntry, ...] = BASELINE_ROSTER
    ) -> list[AssetSnapshot]:
        """Build plausible snapshots for a fixed roster so the first boot never shows an empty table."""
        now = self._clock()
        snapshots = []
        for entry in roster:
            if entry.rank == 1:
                base_price = 50000.0
            elif entry.rank == 2:
                base_price = 3000.0
            else:
                base_price = 500.0 / entry.rank
            price = round(base_price * self._rng.uniform(0.95, 1.05), 2)
            change_24h = round(self._rng.uniform(-5, 5), 2)

            snapshots.append(
                AssetSnapshot(
                    id=entry.id,
                    symbol=entry.symbol,
                    name=entry.name,
                    current_price=price,
                    price_change_percentage_24h=change_24h,
                    price_change_percentage_7d=round(change_24h * 1.5, 2),
                    market_cap=round(price * 1_000_000_000),
                    total_volume=round(price * 50_000_000),
                    market_cap_rank=entry.rank,
                    high_24h=round(price * 1.05, 2),
                    low_24h=round(price * 0.95, 2),
                    ath=round(price * 2, 2),
                    ath_date=now - timedelta(days=365),
                    atl=round(price * 0.1, 2),
                    atl_date=now - timedelta(days=730),
                    last_updated=now,
                )
            )
        return snapshots
