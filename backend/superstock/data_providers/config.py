"""
Stock Data Configuration

Plain dataclass consumed by the data provider layer. Built from the
application Settings so the library itself never reads the environment.
"""
from dataclasses import dataclass
from typing import Optional

from superstock.config import Settings


@dataclass
class StockDataConfig:
    """Configuration for quote retrieval."""
    # Twelve Data
    twelve_data_api_key: str = ""
    twelve_data_base_url: str = "https://api.twelvedata.com"

    # Yahoo Finance
    yfinance_enabled: bool = True
    yfinance_requests_per_minute: int = 30

    market_suffix: str = ".NS"

    # Transport
    request_timeout_seconds: int = 30
    max_retry_attempts: int = 3

    # Orchestration
    enable_fallback: bool = True
    cache_duration_minutes: int = 5
    cache_max_entries: int = 10_000

    # Throttling
    max_requests_per_minute: int = 8
    enable_throttling: bool = True

    # Circuit breaker
    circuit_breaker_failure_threshold: int = 5
    circuit_breaker_timeout_seconds: int = 60

    @property
    def cache_ttl_seconds(self) -> int:
        return self.cache_duration_minutes * 60

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "StockDataConfig":
        if settings is None:
            from superstock.config import settings as default_settings
            settings = default_settings
        return cls(
            twelve_data_api_key=settings.TWELVE_DATA_API_KEY,
            twelve_data_base_url=settings.TWELVE_DATA_BASE_URL.rstrip("/"),
            yfinance_enabled=settings.YFINANCE_ENABLED,
            yfinance_requests_per_minute=settings.YFINANCE_REQUESTS_PER_MINUTE,
            market_suffix=settings.MARKET_SUFFIX,
            request_timeout_seconds=settings.REQUEST_TIMEOUT_SECONDS,
            max_retry_attempts=settings.MAX_RETRY_ATTEMPTS,
            enable_fallback=settings.ENABLE_FALLBACK,
            cache_duration_minutes=settings.CACHE_DURATION_MINUTES,
            cache_max_entries=settings.CACHE_MAX_ENTRIES,
            max_requests_per_minute=settings.MAX_REQUESTS_PER_MINUTE,
            enable_throttling=settings.ENABLE_THROTTLING,
            circuit_breaker_failure_threshold=settings.CIRCUIT_BREAKER_FAILURE_THRESHOLD,
            circuit_breaker_timeout_seconds=settings.CIRCUIT_BREAKER_TIMEOUT_SECONDS,
        )
