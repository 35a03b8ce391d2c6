"""
Data Providers Package

Quote providers and the infrastructure around them: throttling, HTTP
transport with retries, circuit breakers, caching and fallback orchestration.
"""
from superstock.data_providers.adapters import (
    BaseAdapter,
    Quote,
    StockDataError,
    AllProvidersFailedError,
    TwelveDataAdapter,
    YFinanceAdapter,
)
from superstock.data_providers.rate_limiter import RateLimiter, RateLimitConfig
from superstock.data_providers.http_client import HttpClient, RetryPolicy, ApiResponse
from superstock.data_providers.circuit_breaker import (
    CircuitBreakerRegistry,
    CircuitBreakerInfo,
    CircuitState,
)
from superstock.data_providers.cache_manager import QuoteCache
from superstock.data_providers.config import StockDataConfig
from superstock.data_providers.orchestrator import StockDataService, PROVIDER_PRIORITIES

__all__ = [
    # Adapters
    "BaseAdapter",
    "Quote",
    "StockDataError",
    "AllProvidersFailedError",
    "TwelveDataAdapter",
    "YFinanceAdapter",
    # Rate Limiter
    "RateLimiter",
    "RateLimitConfig",
    # HTTP
    "HttpClient",
    "RetryPolicy",
    "ApiResponse",
    # Circuit Breaker
    "CircuitBreakerRegistry",
    "CircuitBreakerInfo",
    "CircuitState",
    # Cache
    "QuoteCache",
    # Orchestrator
    "StockDataConfig",
    "StockDataService",
    "PROVIDER_PRIORITIES",
]
