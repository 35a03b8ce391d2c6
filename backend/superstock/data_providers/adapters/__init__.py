"""
Provider Adapters Package

Contains adapters for the supported quote providers.
Each adapter implements the BaseAdapter interface for consistent data access.
"""
from superstock.data_providers.adapters.base import (
    ApiErrorType,
    BaseAdapter,
    ProviderConfig,
    Quote,
    ProviderStatus,
    StockDataError,
    AuthenticationError,
    RateLimitError,
    InvalidSymbolError,
    ProviderUnavailableError,
    AllProvidersFailedError,
    DataParsingError,
    NetworkError,
    ProviderTimeoutError,
    CircuitBreakerOpenError,
)
# Primary provider
from superstock.data_providers.adapters.twelve_data import (
    TwelveDataAdapter,
    create_twelve_data_config,
)
# Fallback provider
from superstock.data_providers.adapters.yfinance_adapter import (
    YFinanceAdapter,
    create_yfinance_config,
)

__all__ = [
    # Base
    "ApiErrorType",
    "BaseAdapter",
    "ProviderConfig",
    "Quote",
    "ProviderStatus",
    # Errors
    "StockDataError",
    "AuthenticationError",
    "RateLimitError",
    "InvalidSymbolError",
    "ProviderUnavailableError",
    "AllProvidersFailedError",
    "DataParsingError",
    "NetworkError",
    "ProviderTimeoutError",
    "CircuitBreakerOpenError",
    # Adapters
    "TwelveDataAdapter",
    "create_twelve_data_config",
    "YFinanceAdapter",
    "create_yfinance_config",
]
