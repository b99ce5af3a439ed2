"""Configuration management for the application."""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass
class UpstreamConfig:
    """Upstream market data provider configuration."""

    base_url: str = "https://api.coingecko.com/api/v3"
    api_key: str | None = None
    timeout_seconds: float = 10.0
    rate_limit: int = 25  # Requests allowed per window
    rate_window_seconds: int = 60


@dataclass
class IngestionConfig:
    """Snapshot ingestion scheduler configuration."""

    interval_seconds: int = 300
    top_n: int = 100
    broadcast_limit: int = 20
    seed_on_empty: bool = True


@dataclass
class HistoryConfig:
    """History reconciliation configuration."""

    coverage_ratio: float = 0.9
    max_points: int = 2000
    default_anchor_price: float = 100.0


@dataclass
class DatabaseConfig:
    """Database configuration."""

    database_url: str
    echo: bool = False


@dataclass
class LoggingConfig:
    """Structured logging configuration."""

    level: str = "INFO"
    file_path: str | None = None


class Config:
    """Main application configuration."""

    def __init__(self):
        self.upstream = UpstreamConfig(
            base_url=os.getenv("UPSTREAM_BASE_URL", "https://api.coingecko.com/api/v3"),
            api_key=os.getenv("COINGECKO_API_KEY"),
            timeout_seconds=float(os.getenv("UPSTREAM_TIMEOUT_SECONDS", "10")),
            rate_limit=int(os.getenv("UPSTREAM_RATE_LIMIT", "25")),
            rate_window_seconds=int(os.getenv("UPSTREAM_RATE_WINDOW_SECONDS", "60")),
        )

        self.ingestion = IngestionConfig(
            interval_seconds=int(os.getenv("INGESTION_INTERVAL_SECONDS", "300")),
            top_n=int(os.getenv("INGESTION_TOP_N", "100")),
            broadcast_limit=int(os.getenv("BROADCAST_LIMIT", "20")),
            seed_on_empty=_env_bool("SEED_ON_EMPTY", "true"),
        )

        self.history = HistoryConfig(
            coverage_ratio=float(os.getenv("HISTORY_COVERAGE_RATIO", "0.9")),
            max_points=int(os.getenv("HISTORY_MAX_POINTS", "2000")),
            default_anchor_price=float(os.getenv("HISTORY_DEFAULT_ANCHOR_PRICE", "100")),
        )

        self.database = DatabaseConfig(
            database_url=os.getenv("DATABASE_URL", "sqlite:///./market_pulse.db"),
            echo=_env_bool("DATABASE_ECHO", "false"),
        )

        self.logging = LoggingConfig(
            level=os.getenv("LOG_LEVEL", "INFO").upper(),
            file_path=os.getenv("LOG_FILE"),
        )

    def validate(self) -> bool:
        """
        Validate configuration.

        Returns:
            True if configuration is valid

        Raises:
            ValueError if configuration is invalid
        """
        # Upstream enforces an undocumented request budget; never poll faster than this
        if self.ingestion.interval_seconds < 30:
            raise ValueError("INGESTION_INTERVAL_SECONDS must be at least 30")
        if not 1 <= self.ingestion.top_n <= 250:
            raise ValueError("INGESTION_TOP_N must be between 1 and 250")
        if not 1 <= self.ingestion.broadcast_limit <= self.ingestion.top_n:
            raise ValueError("BROADCAST_LIMIT must be between 1 and INGESTION_TOP_N")

        if self.upstream.timeout_seconds <= 0:
            raise ValueError("UPSTREAM_TIMEOUT_SECONDS must be positive")
        if self.upstream.rate_limit < 1 or self.upstream.rate_window_seconds < 1:
            raise ValueError("UPSTREAM_RATE_LIMIT and UPSTREAM_RATE_WINDOW_SECONDS must be positive")

        if not 0 < self.history.coverage_ratio <= 1:
            raise ValueError("HISTORY_COVERAGE_RATIO must be in (0, 1]")
        if self.history.max_points < 1:
            raise ValueError("HISTORY_MAX_POINTS must be positive")
        if self.history.default_anchor_price <= 0:
            raise ValueError("HISTORY_DEFAULT_ANCHOR_PRICE must be positive")

        if self.logging.level not in LOG_LEVELS:
            raise ValueError(f"Invalid LOG_LEVEL: {self.logging.level}")

        return True


# Global config instance
config = Config()
