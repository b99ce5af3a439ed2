"""Watchlist management service."""

import uuid
from datetime import datetime

from sqlalchemy.orm import Session

from src.database.models import WatchlistRecord


class WatchlistService:
    """Service for a user's followed assets."""

    def __init__(self, db_session: Session):
        self.db_session = db_session

    def get_watchlist(self, user_id: str) -> list[WatchlistRecord]:
        return (
            self.db_session.query(WatchlistRecord)
            .filter(WatchlistRecord.user_id == user_id)
            .order_by(WatchlistRecord.added_at)
            .all()
        )

    def add(self, user_id: str, crypto_id: str) -> WatchlistRecord:
        """Add an asset; adding one already present returns the existing entry."""
        existing = (
            self.db_session.query(WatchlistRecord)
            .filter(WatchlistRecord.user_id == user_id, WatchlistRecord.crypto_id == crypto_id)
            .first()
        )
        if existing:
            return existing

        item = WatchlistRecord(
            id=str(uuid.uuid4()),
            user_id=user_id,
            crypto_id=crypto_id,
            added_at=datetime.utcnow(),
        )
        self.db_session.add(item)
        self.db_session.commit()
        return item

    def remove(self, user_id: str, crypto_id: str) -> bool:
        deleted = (
            self.db_session.query(WatchlistRecord)
            .filter(WatchlistRecord.user_id == user_id, WatchlistRecord.crypto_id == crypto_id)
            .delete(synchronize_session=False)
        )
        self.db_session.commit()
        return deleted > 0
