"""Keyed time-series store for snapshots, price points and alert triggers."""

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime

from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.database.models import CryptocurrencyRecord, PriceAlertRecord, PriceHistoryRecord
from src.models.market_data import AssetSnapshot, PricePoint
from src.models.price_alert import AlertRule
from src.services.errors import StoreUnavailable


def to_db_time(value: datetime | None) -> datetime | None:
    """Convert an aware datetime to the naive UTC form stored in the database."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def from_db_time(value: datetime | None) -> datetime | None:
    """Convert a naive UTC database datetime back to an aware one."""
    if value is None:
        return None
    return value.replace(tzinfo=UTC) if value.tzinfo is None else value


class TimeSeriesStore(ABC):
    """Contract the core relies on. Implementations raise StoreUnavailable on failure."""

    @abstractmethod
    def upsert_snapshot(self, snapshot: AssetSnapshot) -> None:
        """Replace the latest snapshot for snapshot.id."""

    @abstractmethod
    def append_point(self, asset_id: str, price: float, timestamp: datetime) -> None:
        """Append one price sample."""

    @abstractmethod
    def query_points(self, asset_id: str, since: datetime) -> list[PricePoint]:
        """Return samples with timestamp >= since, ascending by timestamp."""

    @abstractmethod
    def get_snapshot(self, asset_id: str) -> AssetSnapshot | None:
        """Return the latest snapshot for an asset, or None."""

    @abstractmethod
    def list_snapshots(self, limit: int | None = None) -> list[AssetSnapshot]:
        """Return stored snapshots ordered by market cap rank, unranked last."""

    @abstractmethod
    def search_snapshots(self, query: str, limit: int = 50) -> list[AssetSnapshot]:
        """Case-insensitive match on name, symbol or id."""

    @abstractmethod
    def list_active_rules(self) -> list[AlertRule]:
        """Return all alert rules that have not triggered yet."""

    @abstractmethod
    def mark_triggered(self, rule_id: str, timestamp: datetime) -> bool:
        """
        Transition a rule from untriggered to triggered.

        Returns:
            True if this call performed the transition, False if the rule was
            already triggered or no longer exists
        """

    @abstractmethod
    def count_snapshots(self) -> int:
        """Return the number of stored snapshots."""

    @abstractmethod
    def count_points(self) -> int:
        """Return the number of stored price samples."""


class SqlTimeSeriesStore(TimeSeriesStore):
    """SQLAlchemy-backed store. Every call uses its own short-lived session."""

    def __init__(self, session_factory: Callable[[], Session]):
        """
        Initialize the store.

        Args:
            session_factory: Callable returning a new SQLAlchemy session
        """
        self._session_factory = session_factory

    @contextmanager
    def _session(self, operation: str) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise StoreUnavailable(f"{operation} failed: {e}") from e
        finally:
            session.close()

    def upsert_snapshot(self, snapshot: AssetSnapshot) -> None:
        with self._session("upsert_snapshot") as session:
            session.merge(
                CryptocurrencyRecord(
                    id=snapshot.id,
                    symbol=snapshot.symbol,
                    name=snapshot.name,
                    image=snapshot.image,
                    current_price=snapshot.current_price,
                    market_cap=snapshot.market_cap,
                    market_cap_rank=snapshot.market_cap_rank,
                    total_volume=snapshot.total_volume,
                    high_24h=snapshot.high_24h,
                    low_24h=snapshot.low_24h,
                    price_change_percentage_24h=snapshot.price_change_percentage_24h,
                    price_change_percentage_7d=snapshot.price_change_percentage_7d,
                    ath=snapshot.ath,
                    ath_date=to_db_time(snapshot.ath_date),
                    atl=snapshot.atl,
                    atl_date=to_db_time(snapshot.atl_date),
                    last_updated=to_db_time(snapshot.last_updated) or datetime.utcnow(),
                )
            )

    def append_point(self, asset_id: str, price: float, timestamp: datetime) -> None:
        with self._session("append_point") as session:
            session.add(
                PriceHistoryRecord(crypto_id=asset_id, price=price, timestamp=to_db_time(timestamp))
            )

    def query_points(self, asset_id: str, since: datetime) -> list[PricePoint]:
        with self._session("query_points") as session:
            records = (
                session.query(PriceHistoryRecord)
                .filter(
                    PriceHistoryRecord.crypto_id == asset_id,
                    PriceHistoryRecord.timestamp >= to_db_time(since),
                )
                .order_by(PriceHistoryRecord.timestamp, PriceHistoryRecord.id)
                .all()
            )
            return [
                PricePoint(asset_id=r.crypto_id, price=r.price, timestamp=from_db_time(r.timestamp))
                for r in records
            ]

    def get_snapshot(self, asset_id: str) -> AssetSnapshot | None:
        with self._session("get_snapshot") as session:
            record = session.get(CryptocurrencyRecord, asset_id)
            return self._to_snapshot(record) if record else None

    def list_snapshots(self, limit: int | None = None) -> list[AssetSnapshot]:
        with self._session("list_snapshots") as session:
            query = session.query(CryptocurrencyRecord).order_by(
                CryptocurrencyRecord.market_cap_rank.is_(None),
                CryptocurrencyRecord.market_cap_rank,
                CryptocurrencyRecord.id,
            )
            if limit:
                query = query.limit(limit)
            return [self._to_snapshot(r) for r in query.all()]

    def search_snapshots(self, query: str, limit: int = 50) -> list[AssetSnapshot]:
        pattern = f"%{query.strip().lower()}%"
        with self._session("search_snapshots") as session:
            records = (
                session.query(CryptocurrencyRecord)
                .filter(
                    or_(
                        func.lower(CryptocurrencyRecord.name).like(pattern),
                        func.lower(CryptocurrencyRecord.symbol).like(pattern),
                        func.lower(CryptocurrencyRecord.id).like(pattern),
                    )
                )
                .order_by(
                    CryptocurrencyRecord.market_cap_rank.is_(None),
                    CryptocurrencyRecord.market_cap_rank,
                )
                .limit(limit)
                .all()
            )
            return [self._to_snapshot(r) for r in records]

    def list_active_rules(self) -> list[AlertRule]:
        with self._session("list_active_rules") as session:
            records = (
                session.query(PriceAlertRecord)
                .filter(PriceAlertRecord.is_triggered.is_(False))
                .order_by(PriceAlertRecord.created_at)
                .all()
            )
            return [
                AlertRule(
                    id=r.id,
                    owner_id=r.user_id,
                    asset_id=r.crypto_id,
                    kind=r.alert_type,
                    target_value=r.target_value,
                    is_triggered=bool(r.is_triggered),
                    triggered_at=from_db_time(r.triggered_at),
                    created_at=from_db_time(r.created_at),
                )
                for r in records
            ]

    def mark_triggered(self, rule_id: str, timestamp: datetime) -> bool:
        with self._session("mark_triggered") as session:
            updated = (
                session.query(PriceAlertRecord)
                .filter(PriceAlertRecord.id == rule_id, PriceAlertRecord.is_triggered.is_(False))
                .update(
                    {"is_triggered": True, "triggered_at": to_db_time(timestamp)},
                    synchronize_session=False,
                )
            )
            return updated == 1

    def count_snapshots(self) -> int:
        with self._session("count_snapshots") as session:
            return session.query(CryptocurrencyRecord).count()

    def count_points(self) -> int:
        with self._session("count_points") as session:
            return session.query(PriceHistoryRecord).count()

    @staticmethod
    def _to_snapshot(record: CryptocurrencyRecord) -> AssetSnapshot:
        return AssetSnapshot(
            id=record.id,
            symbol=record.symbol,
            name=record.name,
            current_price=record.current_price,
            price_change_percentage_24h=record.price_change_percentage_24h,
            price_change_percentage_7d=record.price_change_percentage_7d,
            market_cap=record.market_cap,
            total_volume=record.total_volume,
            market_cap_rank=record.market_cap_rank,
            high_24h=record.high_24h,
            low_24h=record.low_24h,
            ath=record.ath,
            ath_date=from_db_time(record.ath_date),
            atl=record.atl,
            atl_date=from_db_time(record.atl_date),
            image=record.image,
            last_updated=from_db_time(record.last_updated),
        )
