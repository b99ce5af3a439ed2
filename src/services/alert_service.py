"""Price alert management service."""

import uuid
from datetime import datetime

from sqlalchemy.orm import Session

from src.database.models import PriceAlertRecord
from src.models.price_alert import AlertKind


class AlertService:
    """Service for creating, listing and deleting a user's price alerts."""

    def __init__(self, db_session: Session):
        """Initialize alert service with a database session."""
        self.db_session = db_session

    def create_alert(
        self, user_id: str, crypto_id: str, alert_type: str, target_value: float
    ) -> PriceAlertRecord:
        """
        Create a new, untriggered alert.

        Args:
            user_id: Owner of the alert
            crypto_id: Asset the alert watches
            alert_type: One of price_above, price_below, percentage_change
            target_value: Threshold price, or percentage for percentage_change

        Returns:
            Created PriceAlertRecord

        Raises:
            ValueError: If the alert type is unknown or the target is negative
        """
        kind = AlertKind(alert_type)
        if target_value < 0:
            raise ValueError("Target value must not be negative")

        alert = PriceAlertRecord(
            id=str(uuid.uuid4()),
            user_id=user_id,
            crypto_id=crypto_id,
            alert_type=kind.value,
            target_value=target_value,
            is_triggered=False,
            created_at=datetime.utcnow(),
        )
        self.db_session.add(alert)
        self.db_session.commit()
        return alert

    def get_alerts(self, user_id: str) -> list[PriceAlertRecord]:
        """Return a user's alerts, newest first."""
        return (
            self.db_session.query(PriceAlertRecord)
            .filter(PriceAlertRecord.user_id == user_id)
            .order_by(PriceAlertRecord.created_at.desc())
            .all()
        )

    def delete_alert(self, alert_id: str, user_id: str | None = None) -> bool:
        """
        Delete an alert.

        Returns:
            True if an alert was deleted
        """
        query = self.db_session.query(PriceAlertRecord).filter(PriceAlertRecord.id == alert_id)
        if user_id is not None:
            query = query.filter(PriceAlertRecord.user_id == user_id)
        deleted = query.delete(synchronize_session=False)
        self.db_session.commit()
        return deleted > 0
