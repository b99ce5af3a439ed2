"""Tests for the process-scoped market service."""

from unittest.mock import Mock

from conftest import make_snapshot
from src.database.store import SqlTimeSeriesStore
from src.services.broadcaster import QueueChannel
from src.services.market_service import MarketService
from src.services.upstream_client import CoinGeckoClient
from src.utils.config import Config


class TestMarketServiceWiring:
    def test_components_share_event_store(self, market_service):
        assert market_service.reconciler.event_store is market_service.event_store
        assert market_service.scheduler.event_store is market_service.event_store
        assert market_service.metrics.event_store is market_service.event_store

    def test_from_session_factory(self, session_factory):
        service = MarketService.from_session_factory(session_factory, app_config=Config())
        try:
            assert isinstance(service.store, SqlTimeSeriesStore)
            assert isinstance(service.upstream, CoinGeckoClient)
            assert service.upstream.rate_limiter is not None
        finally:
            service.upstream.close()


class TestMarketServiceQueries:
    """Tests for the read paths used by the API."""

    def test_snapshot_queries(self, market_service, store):
        store.upsert_snapshot(make_snapshot("ethereum", 3000.0, rank=2))
        store.upsert_snapshot(make_snapshot("bitcoin", 50000.0, rank=1))

        assert [s.id for s in market_service.list_snapshots()] == ["bitcoin", "ethereum"]
        assert [s.id for s in market_service.search_snapshots("ether")] == ["ethereum"]
        assert market_service.get_snapshot("bitcoin").current_price == 50000.0
        assert market_service.get_snapshot("dogecoin") is None

    def test_latest_snapshots_follow_applied_batch(self, market_service, upstream):
        upstream.fetch_top_snapshots.return_value = [make_snapshot("bitcoin")]

        assert market_service.latest_snapshots() == []
        market_service.scheduler.run_cycle()

        assert [s.id for s in market_service.latest_snapshots()] == ["bitcoin"]

    def test_global_summary_passthrough(self, market_service, upstream):
        upstream.fetch_global_summary.return_value = {"active_cryptocurrencies": 10000}

        assert market_service.global_summary() == {"active_cryptocurrencies": 10000}


class TestMarketServiceLifecycle:
    def test_status_before_start(self, market_service):
        channel = market_service.subscribe(QueueChannel())

        status = market_service.status()

        assert status["is_running"] is False
        assert status["state"] == "idle"
        assert status["next_run_time"] is None
        assert status["last_success_at"] is None
        assert status["consecutive_failures"] == 0
        assert status["latest_batch_size"] == 0
        assert status["subscribers"] == 1

        market_service.unsubscribe(channel)
        assert market_service.status()["subscribers"] == 0

    def test_status_after_successful_cycle(self, market_service, upstream, fixed_now):
        upstream.fetch_top_snapshots.return_value = [make_snapshot("bitcoin"), make_snapshot("ethereum", 3000.0, rank=2)]

        market_service.scheduler.run_cycle()
        status = market_service.status()

        assert status["initialized"] is True
        assert status["last_success_at"] == fixed_now.isoformat()
        assert status["latest_batch_size"] == 2

    def test_stop_closes_upstream(self, market_service, upstream):
        market_service.stop()

        upstream.close.assert_called_once()

    def test_start_and_stop(self, market_service, upstream):
        upstream.fetch_top_snapshots.return_value = [make_snapshot("bitcoin")]
        market_service.scheduler.seed_if_empty = Mock(return_value=0)

        market_service.start()
        try:
            assert market_service.status()["is_running"] is True
            assert market_service.status()["next_run_time"] is not None
        finally:
            market_service.stop()

        assert market_service.status()["is_running"] is False
        upstream.close.assert_called_once()
