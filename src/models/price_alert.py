"""Price alert rule models."""

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Any


class AlertKind(str, enum.Enum):
    """Supported alert trigger conditions."""

    PRICE_ABOVE = "price_above"
    PRICE_BELOW = "price_below"
    PERCENTAGE_CHANGE = "percentage_change"


@dataclass(frozen=True)
class AlertRule:
    """
    A one-shot alert rule.

    A rule moves from untriggered to triggered exactly once and is never reset;
    to alert again the owner must delete it and create a new one.
    """

    id: str
    owner_id: str
    asset_id: str
    kind: str
    target_value: float
    is_triggered: bool = False
    triggered_at: datetime | None = None
    created_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "asset_id": self.asset_id,
            "kind": self.kind,
            "target_value": self.target_value,
            "is_triggered": self.is_triggered,
            "triggered_at": self.triggered_at.isoformat() if self.triggered_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
