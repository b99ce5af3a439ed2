"""Tests for configuration management."""

import os
from unittest.mock import patch

import pytest

from src.utils.config import Config, HistoryConfig, IngestionConfig, UpstreamConfig


def test_ingestion_config_defaults():
    """Test that ingestion config defaults to a five minute cycle over the top 100."""
    config = IngestionConfig()
    assert config.interval_seconds == 300
    assert config.top_n == 100
    assert config.broadcast_limit == 20
    assert config.seed_on_empty is True


def test_history_config_defaults():
    config = HistoryConfig()
    assert config.coverage_ratio == 0.9
    assert config.max_points == 2000


def test_upstream_config_defaults_to_public_api():
    config = UpstreamConfig()
    assert config.base_url == "https://api.coingecko.com/api/v3"
    assert config.api_key is None


def test_config_reads_environment():
    """Test that environment variables override defaults."""
    with patch.dict(
        os.environ,
        {
            "INGESTION_INTERVAL_SECONDS": "120",
            "INGESTION_TOP_N": "50",
            "BROADCAST_LIMIT": "10",
            "SEED_ON_EMPTY": "false",
            "COINGECKO_API_KEY": "key-123",
            "HISTORY_MAX_POINTS": "500",
            "LOG_LEVEL": "debug",
        },
    ):
        config = Config()

    assert config.ingestion.interval_seconds == 120
    assert config.ingestion.top_n == 50
    assert config.ingestion.broadcast_limit == 10
    assert config.ingestion.seed_on_empty is False
    assert config.upstream.api_key == "key-123"
    assert config.history.max_points == 500
    assert config.logging.level == "DEBUG"


def test_config_validation_defaults_pass():
    """Test that config validation passes with defaults."""
    with patch.dict(os.environ, {}, clear=True):
        config = Config()

        assert config.validate() is True


@pytest.mark.parametrize(
    "env,match",
    [
        ({"INGESTION_INTERVAL_SECONDS": "10"}, "INGESTION_INTERVAL_SECONDS"),
        ({"INGESTION_TOP_N": "0"}, "INGESTION_TOP_N"),
        ({"INGESTION_TOP_N": "500"}, "INGESTION_TOP_N"),
        ({"INGESTION_TOP_N": "10", "BROADCAST_LIMIT": "20"}, "BROADCAST_LIMIT"),
        ({"UPSTREAM_TIMEOUT_SECONDS": "0"}, "UPSTREAM_TIMEOUT_SECONDS"),
        ({"UPSTREAM_RATE_LIMIT": "0"}, "UPSTREAM_RATE_LIMIT"),
        ({"HISTORY_COVERAGE_RATIO": "1.5"}, "HISTORY_COVERAGE_RATIO"),
        ({"HISTORY_MAX_POINTS": "0"}, "HISTORY_MAX_POINTS"),
        ({"HISTORY_DEFAULT_ANCHOR_PRICE": "-1"}, "HISTORY_DEFAULT_ANCHOR_PRICE"),
        ({"LOG_LEVEL": "VERBOSE"}, "LOG_LEVEL"),
    ],
)
def test_config_validation_rejects_invalid_values(env, match):
    """Test that config validation names the offending variable."""
    with patch.dict(os.environ, env):
        config = Config()

        with pytest.raises(ValueError, match=match):
            config.validate()
