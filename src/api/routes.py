"""API routes for market data, watchlists, alerts and live updates."""

import asyncio
from contextlib import suppress

from fastapi import APIRouter, Depends, Query, WebSocket

from src.api.dependencies import (
    get_alert_service,
    get_market_service,
    get_user_id,
    get_watchlist_service,
)
from src.api.error_handlers import create_bad_request_error, create_not_found_error
from src.models.api_schemas import (
    AlertCreate,
    AlertResponse,
    WatchlistCreate,
    WatchlistItemResponse,
)
from src.services.alert_service import AlertService
from src.services.broadcaster import LoopChannel
from src.services.market_service import MarketService
from src.services.watchlist_service import WatchlistService
from src.utils.logger import StructuredLogger

router = APIRouter()
ws_router = APIRouter()

structured_logger = StructuredLogger("API")


@router.get("/cryptocurrencies")
def get_cryptocurrencies(
    limit: int | None = Query(None, ge=1, le=250),
    service: MarketService = Depends(get_market_service),
):
    """
    List stored snapshots ordered by market cap rank.

    Args:
        limit: Maximum number of assets to return
        service: Market service
    """
    return [snapshot.to_dict() for snapshot in service.list_snapshots(limit)]


@router.get("/cryptocurrencies/search")
def search_cryptocurrencies(
    q: str | None = Query(None, description="Name, symbol or id fragment"),
    service: MarketService = Depends(get_market_service),
):
    """Search stored snapshots by name, symbol or id."""
    if not q or not q.strip():
        raise create_bad_request_error("Search query is required", field="q").to_http_exception()
    return [snapshot.to_dict() for snapshot in service.search_snapshots(q)]


@router.get("/cryptocurrencies/{crypto_id}")
def get_cryptocurrency(crypto_id: str, service: MarketService = Depends(get_market_service)):
    snapshot = service.get_snapshot(crypto_id)
    if snapshot is None:
        raise create_not_found_error("cryptocurrency", crypto_id).to_http_exception()
    return snapshot.to_dict()


@router.get("/cryptocurrencies/{crypto_id}/history")
def get_price_history(
    crypto_id: str,
    hours: float = Query(24, description="Trailing window in hours"),
    service: MarketService = Depends(get_market_service),
):
    """
    Return the trailing price history of an asset.

    Always answers with a usable series: stored samples when they cover the
    window, otherwise upstream history, otherwise a synthetic series.

    Args:
        crypto_id: Asset identifier
        hours: Trailing window in hours
        service: Market service

    Returns:
        Points ordered by timestamp
    """
    return [point.to_dict() for point in service.get_range(crypto_id, hours)]


@router.get("/market/summary")
def get_market_summary(service: MarketService = Depends(get_market_service)):
    """Global market figures from the upstream provider (502 when unavailable)."""
    return service.global_summary()


# Watchlist Endpoints


@router.get("/watchlist", response_model=list[WatchlistItemResponse])
def get_watchlist(
    user_id: str = Depends(get_user_id),
    watchlist_service: WatchlistService = Depends(get_watchlist_service),
):
    return watchlist_service.get_watchlist(user_id)


@router.post("/watchlist", response_model=WatchlistItemResponse)
def add_to_watchlist(
    item: WatchlistCreate,
    user_id: str = Depends(get_user_id),
    watchlist_service: WatchlistService = Depends(get_watchlist_service),
):
    """Add an asset to the caller's watchlist."""
    return watchlist_service.add(user_id, item.crypto_id)


@router.delete("/watchlist/{crypto_id}")
def remove_from_watchlist(
    crypto_id: str,
    user_id: str = Depends(get_user_id),
    watchlist_service: WatchlistService = Depends(get_watchlist_service),
):
    if not watchlist_service.remove(user_id, crypto_id):
        raise create_not_found_error("watchlist item", crypto_id).to_http_exception()
    return {"message": "Removed from watchlist"}


# Price Alert Endpoints


@router.get("/alerts", response_model=list[AlertResponse])
def get_alerts(
    user_id: str = Depends(get_user_id),
    alert_service: AlertService = Depends(get_alert_service),
):
    return alert_service.get_alerts(user_id)


@router.post("/alerts", response_model=AlertResponse)
def create_alert(
    alert: AlertCreate,
    user_id: str = Depends(get_user_id),
    alert_service: AlertService = Depends(get_alert_service),
):
    """
    Create a price alert for the caller.

    Args:
        alert: Asset, alert type and target value
        user_id: Caller id
        alert_service: Alert service

    Returns:
        Created alert
    """
    try:
        return alert_service.create_alert(
            user_id=user_id,
            crypto_id=alert.crypto_id,
            alert_type=alert.alert_type.value,
            target_value=alert.target_value,
        )
    except ValueError as e:
        raise create_bad_request_error(str(e)).to_http_exception() from e


@router.delete("/alerts/{alert_id}")
def delete_alert(
    alert_id: str,
    user_id: str = Depends(get_user_id),
    alert_service: AlertService = Depends(get_alert_service),
):
    if not alert_service.delete_alert(alert_id, user_id=user_id):
        raise create_not_found_error("alert", alert_id).to_http_exception()
    return {"message": "Alert deleted"}


# Debug Endpoints


@router.get("/debug/status")
def get_debug_status(service: MarketService = Depends(get_market_service)):
    """Scheduler state, last success and subscriber count."""
    return service.status()


@router.get("/debug/metrics")
def get_debug_metrics(service: MarketService = Depends(get_market_service)):
    return service.metrics.calculate().to_dict()


@router.get("/debug/events")
def get_debug_events(
    limit: int = Query(100, ge=1, le=1000),
    event_type: str | None = Query(None),
    trace_id: str | None = Query(None),
    service: MarketService = Depends(get_market_service),
):
    """
    Recent events from the in-memory event store.

    Args:
        limit: Maximum number of events to return
        event_type: Only return events of this type
        trace_id: Only return events of this trace (limit is ignored)
        service: Market service
    """
    if trace_id:
        events = service.event_store.get_events_by_trace(trace_id)
    elif event_type:
        events = service.event_store.get_events_by_type(event_type, limit=limit)
    else:
        events = service.event_store.get_recent_events(limit=limit)
    return {"events": [event.to_dict() for event in events], "count": len(events)}


# Live Updates


@ws_router.websocket("/ws")
async def price_updates(websocket: WebSocket):
    """
    Stream price updates to a connected client.

    Each applied ingestion batch is forwarded as one JSON text message
    ({"type": "price_update", "data": [...]}).
    """
    service: MarketService = websocket.app.state.market_service
    await websocket.accept()
    channel = LoopChannel()
    service.subscribe(channel)

    async def forward() -> None:
        try:
            while True:
                message = await channel.receive()
                if message is None:
                    break
                await websocket.send_text(message)
        except Exception as e:
            structured_logger.warning("Could not forward price update", exception=e)
            channel.close()

    forwarder = asyncio.create_task(forward())
    try:
        while True:
            frame = await websocket.receive()
            if frame["type"] == "websocket.disconnect":
                break
    except Exception as e:
        structured_logger.warning("WebSocket connection failed", exception=e)
    finally:
        channel.close()
        service.unsubscribe(channel)
        forwarder.cancel()
        with suppress(asyncio.CancelledError):
            await forwarder
