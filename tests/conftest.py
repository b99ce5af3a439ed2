"""Pytest configuration and fixtures."""

import os
import random
import tempfile
from datetime import UTC, datetime
from unittest.mock import Mock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from src.database.db import get_db
from src.database.models import Base
from src.database.store import SqlTimeSeriesStore
from src.models.market_data import AssetSnapshot
from src.services.market_service import MarketService
from src.services.synthetic_generator import SyntheticGenerator
from src.services.upstream_client import CoinGeckoClient
from src.utils.config import Config
from src.utils.event_store import EventStore

FIXED_NOW = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)


def make_snapshot(asset_id: str = "bitcoin", price: float = 50000.0, rank: int | None = 1, **kwargs):
    """Build a snapshot with sensible defaults for tests."""
    fields = {
        "symbol": asset_id[:3],
        "name": asset_id.capitalize(),
        "price_change_percentage_24h": 2.5,
        "market_cap_rank": rank,
        "last_updated": FIXED_NOW,
    }
    fields.update(kwargs)
    return AssetSnapshot(id=asset_id, current_price=price, **fields)


@pytest.fixture
def fixed_now():
    return FIXED_NOW


@pytest.fixture
def clock():
    """Clock frozen at FIXED_NOW."""
    return lambda: FIXED_NOW


@pytest.fixture(scope="function")
def test_db():
    """Create a file-based test database."""
    fd, db_path = tempfile.mkstemp(suffix=".db")
    os.close(fd)

    engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)

    yield engine

    # Cleanup
    engine.dispose()
    try:
        os.unlink(db_path)
    except OSError:
        pass


@pytest.fixture
def session_factory(test_db):
    return sessionmaker(autocommit=False, autoflush=False, bind=test_db)


@pytest.fixture
def test_session(session_factory):
    """Create a test database session."""
    session = session_factory()

    yield session

    session.rollback()
    session.close()


@pytest.fixture
def store(session_factory):
    """SQL-backed time-series store over the test database."""
    return SqlTimeSeriesStore(session_factory)


@pytest.fixture
def upstream():
    """Upstream client mock; every test decides what it returns."""
    return Mock(spec=CoinGeckoClient)


@pytest.fixture
def generator(clock):
    return SyntheticGenerator(rng=random.Random(42), clock=clock)


@pytest.fixture
def market_service(store, upstream, generator, clock):
    """Market service wired to the test store and a mocked upstream. Never started."""
    return MarketService(
        store,
        upstream,
        app_config=Config(),
        event_store=EventStore(),
        generator=generator,
        clock=clock,
    )


@pytest.fixture
def test_client(market_service, session_factory):
    """Create a test client with test database and market service."""
    from fastapi.testclient import TestClient

    from main import app

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.state.market_service = market_service

    client = TestClient(app)
    yield client

    app.dependency_overrides.clear()
    del app.state.market_service
