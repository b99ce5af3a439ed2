"""SQLAlchemy database models for persistent storage."""

from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class CryptocurrencyRecord(Base):
    """Latest snapshot per asset, replaced wholesale on every ingestion."""
    __tablename__ = "cryptocurrencies"

    id = Column(String, primary_key=True)
    symbol = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False, index=True)
    image = Column(String, nullable=True)
    current_price = Column(Float, nullable=False)
    market_cap = Column(Float, nullable=True)
    market_cap_rank = Column(Integer, nullable=True, index=True)
    total_volume = Column(Float, nullable=True)
    high_24h = Column(Float, nullable=True)
    low_24h = Column(Float, nullable=True)
    price_change_percentage_24h = Column(Float, nullable=True)
    price_change_percentage_7d = Column(Float, nullable=True)
    ath = Column(Float, nullable=True)
    ath_date = Column(DateTime, nullable=True)
    atl = Column(Float, nullable=True)
    atl_date = Column(DateTime, nullable=True)
    last_updated = Column(DateTime, nullable=False, default=datetime.utcnow)


class PriceHistoryRecord(Base):
    """Append-only price samples."""
    __tablename__ = "price_history"
    __table_args__ = (Index("ix_price_history_crypto_timestamp", "crypto_id", "timestamp"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    crypto_id = Column(String, nullable=False)
    price = Column(Float, nullable=False)
    timestamp = Column(DateTime, nullable=False, default=datetime.utcnow)


class PriceAlertRecord(Base):
    """User-defined one-shot price alert."""
    __tablename__ = "price_alerts"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    crypto_id = Column(String, nullable=False, index=True)
    alert_type = Column(String, nullable=False)  # "price_above", "price_below", "percentage_change"
    target_value = Column(Float, nullable=False)
    is_triggered = Column(Boolean, nullable=False, default=False, index=True)
    triggered_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class WatchlistRecord(Base):
    """Asset followed by a user."""
    __tablename__ = "watchlist"
    __table_args__ = (UniqueConstraint("user_id", "crypto_id", name="uq_watchlist_user_crypto"),)

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    crypto_id = Column(String, nullable=False)
    added_at = Column(DateTime, nullable=False, default=datetime.utcnow)
