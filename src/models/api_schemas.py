"""Pydantic schemas for watchlist and alert request validation."""

import math
from datetime import datetime

from pydantic import BaseModel, ConfigDict, field_validator

from src.database.store import from_db_time
from src.models.price_alert import AlertKind


class WatchlistCreate(BaseModel):
    """Request model for adding an asset to the caller's watchlist."""

    crypto_id: str

    @field_validator("crypto_id")
    @classmethod
    def validate_crypto_id(cls, v: str) -> str:
        """Validate asset id is not empty."""
        if not v or not v.strip():
            raise ValueError("crypto_id cannot be empty")
        return v.strip().lower()


class WatchlistItemResponse(BaseModel):
    """Response model for a watchlist entry."""

    id: str
    user_id: str
    crypto_id: str
    added_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @field_validator("added_at")
    @classmethod
    def validate_added_at(cls, v: datetime) -> datetime:
        """Stored times are naive UTC."""
        return from_db_time(v)


class AlertCreate(BaseModel):
    """Request model for creating a price alert."""

    crypto_id: str
    alert_type: AlertKind
    target_value: float

    @field_validator("crypto_id")
    @classmethod
    def validate_crypto_id(cls, v: str) -> str:
        """Validate asset id is not empty."""
        if not v or not v.strip():
            raise ValueError("crypto_id cannot be empty")
        return v.strip().lower()

    @field_validator("target_value")
    @classmethod
    def validate_target_value(cls, v: float) -> float:
        """Validate target is a finite non-negative number."""
        if not math.isfinite(v) or v < 0:
            raise ValueError("target_value must be a finite non-negative number")
        return v


class AlertResponse(BaseModel):
    """Response model for a price alert."""

    id: str
    user_id: str
    crypto_id: str
    alert_type: str
    target_value: float
    is_triggered: bool
    triggered_at: datetime | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @field_validator("triggered_at", "created_at")
    @classmethod
    def validate_utc(cls, v: datetime | None) -> datetime | None:
        """Stored times are naive UTC."""
        return from_db_time(v)
