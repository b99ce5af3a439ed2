"""FastAPI dependencies for the market service and caller identity."""

from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from src.database.db import get_db
from src.services.alert_service import AlertService
from src.services.market_service import MarketService
from src.services.watchlist_service import WatchlistService

DEFAULT_USER_ID = "anonymous"


def get_market_service(request: Request) -> MarketService:
    """
    FastAPI dependency returning the process-wide market service.

    The service is created and started by the application lifespan and held
    on app.state.
    """
    return request.app.state.market_service


def get_user_id(x_user_id: str | None = Header(None)) -> str:
    """
    FastAPI dependency identifying the caller.

    Args:
        x_user_id: Value of the X-User-Id header

    Returns:
        The caller's id, or the shared anonymous id when the header is absent
    """
    if x_user_id and x_user_id.strip():
        return x_user_id.strip()
    return DEFAULT_USER_ID


def get_alert_service(db: Session = Depends(get_db)) -> AlertService:
    return AlertService(db_session=db)


def get_watchlist_service(db: Session = Depends(get_db)) -> WatchlistService:
    return WatchlistService(db_session=db)
