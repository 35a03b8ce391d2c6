"""
Base Provider Adapter Interface

Defines the abstract interface that all quote provider adapters must implement,
the normalized Quote structure, and the stock data error taxonomy.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional, Any
from loguru import logger


class ApiErrorType(str, Enum):
    """Classification of stock data errors."""
    NONE = "none"
    NETWORK_ERROR = "network_error"
    TIMEOUT = "timeout"
    AUTHENTICATION_ERROR = "authentication_error"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    INVALID_REQUEST = "invalid_request"
    NOT_FOUND = "not_found"
    SERVER_ERROR = "server_error"
    SERVICE_UNAVAILABLE = "service_unavailable"
    CLIENT_ERROR = "client_error"
    DATA_ERROR = "data_error"
    UNKNOWN_ERROR = "unknown_error"


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


@dataclass
class ProviderConfig:
    """Configuration for a quote provider."""
    name: str
    api_key: Optional[str] = None
    base_url: str = ""

    # Rate limiting
    requests_per_minute: int = 60
    enable_throttling: bool = True
    max_symbols_per_request: int = 100

    # Timeouts
    timeout_seconds: float = 30.0
    retry_attempts: int = 3

    # Exchange suffix appended to outbound symbols ("" for none)
    market_suffix: str = ""

    # Symbol used by health checks
    health_check_symbol: str = "AAPL"


@dataclass
class Quote:
    """Normalized quote data structure."""
    symbol: str
    price: Decimal
    day_high: Optional[Decimal] = None
    day_low: Optional[Decimal] = None
    day_open: Optional[Decimal] = None
    prev_close: Optional[Decimal] = None
    last_updated: datetime = field(default_factory=utc_now)
    provider: str = ""
    is_stale: bool = False

    # Optional vendor extras
    volume: Optional[int] = None
    change: Optional[Decimal] = None
    change_percent: Optional[Decimal] = None
    exchange: Optional[str] = None
    currency: Optional[str] = None

    def age(self, now: Optional[datetime] = None) -> timedelta:
        """Time elapsed since the quote was retrieved."""
        return (now or utc_now()) - self.last_updated

    def refresh_staleness(self, max_age: timedelta, now: Optional[datetime] = None) -> bool:
        """Recompute is_stale against the freshness window and return it."""
        self.is_stale = self.age(now) > max_age
        return self.is_stale

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        def _num(value: Optional[Decimal]) -> Optional[float]:
            return float(value) if value is not None else None

        return {
            "symbol": self.symbol,
            "price": float(self.price),
            "day_high": _num(self.day_high),
            "day_low": _num(self.day_low),
            "day_open": _num(self.day_open),
            "prev_close": _num(self.prev_close),
            "last_updated": self.last_updated.isoformat(),
            "provider": self.provider,
            "is_stale": self.is_stale,
            "volume": self.volume,
            "change": _num(self.change),
            "change_percent": _num(self.change_percent),
            "exchange": self.exchange,
            "currency": self.currency,
        }


@dataclass
class ProviderStatus:
    """Running counters for a provider."""
    name: str
    last_success: Optional[datetime] = None
    last_error: Optional[datetime] = None
    last_error_message: Optional[str] = None
    error_count: int = 0
    success_count: int = 0
    avg_latency_ms: float = 0.0


# ==================== Errors ====================

class StockDataError(Exception):
    """Base exception for stock data errors."""
    error_type: ApiErrorType = ApiErrorType.UNKNOWN_ERROR

    def __init__(
        self,
        provider: str,
        message: str,
        error_type: Optional[ApiErrorType] = None,
        error_code: Optional[str] = None,
        recoverable: bool = True,
    ):
        self.provider = provider
        self.message = message
        if error_type is not None:
            self.error_type = error_type
        self.error_code = error_code
        self.recoverable = recoverable
        super().__init__(f"[{provider}] {message}")


class AuthenticationError(StockDataError):
    """Vendor rejected the credentials."""
    error_type = ApiErrorType.AUTHENTICATION_ERROR

    def __init__(self, provider: str, message: str = "Authentication failed", error_code: Optional[str] = None):
        super().__init__(provider, message, error_code=error_code, recoverable=False)


class RateLimitError(StockDataError):
    """Vendor-side rate limit exceeded."""
    error_type = ApiErrorType.RATE_LIMIT_EXCEEDED

    def __init__(self, provider: str, retry_after: Optional[float] = None, error_code: Optional[str] = None):
        self.retry_after = retry_after
        super().__init__(
            provider,
            f"Rate limit exceeded. Retry after: {retry_after}s",
            error_code=error_code,
            recoverable=True,
        )


class InvalidSymbolError(StockDataError):
    """Malformed symbol or bad request parameters."""
    error_type = ApiErrorType.INVALID_REQUEST

    def __init__(self, provider: str, symbols: list[str], message: Optional[str] = None, error_code: Optional[str] = None):
        self.symbols = list(symbols)
        super().__init__(
            provider,
            message or f"Invalid symbols: {', '.join(self.symbols)}",
            error_code=error_code,
            recoverable=False,
        )


class ProviderUnavailableError(StockDataError):
    """Provider could not serve the request."""
    error_type = ApiErrorType.SERVICE_UNAVAILABLE


class AllProvidersFailedError(ProviderUnavailableError):
    """Every provider failed or was skipped."""

    def __init__(self, symbols: list[str], last_error: Optional[BaseException] = None):
        self.symbols = list(symbols)
        self.last_error = last_error
        message = f"All stock data providers failed to fetch data for symbols: {', '.join(self.symbols)}"
        if last_error is not None:
            message += f" (last error: {last_error})"
        super().__init__("all_providers", message, recoverable=False)


class DataParsingError(StockDataError):
    """Vendor payload could not be decoded into a Quote."""
    error_type = ApiErrorType.DATA_ERROR

    def __init__(self, provider: str, message: str, raw_data: Optional[Any] = None):
        self.raw_data = raw_data
        super().__init__(provider, message, recoverable=False)


class NetworkError(StockDataError):
    """Connectivity, DNS or TLS failure."""
    error_type = ApiErrorType.NETWORK_ERROR


class ProviderTimeoutError(StockDataError):
    """Request exceeded its deadline."""
    error_type = ApiErrorType.TIMEOUT

    def __init__(self, provider: str, message: str, timeout: Optional[float] = None):
        self.timeout = timeout
        super().__init__(provider, message)


class CircuitBreakerOpenError(StockDataError):
    """Provider is excluded by its circuit breaker."""
    error_type = ApiErrorType.SERVICE_UNAVAILABLE

    def __init__(self, provider: str, retry_after: float):
        self.retry_after = retry_after
        super().__init__(
            provider,
            f"Circuit breaker is open. Retry after {retry_after:.0f} seconds.",
        )


# ==================== Adapter Interface ====================

class BaseAdapter(ABC):
    """
    Abstract base class for all quote provider adapters.

    Each provider adapter must implement:
    - get_quotes(): Get quotes for multiple symbols (batch)
    - health_check(): Lightweight connectivity check, never raises

    get_quotes() omits symbols the vendor does not know. Any other failure
    (authentication, rate limit, transport errors after retries, or every
    symbol in the batch failing) raises a StockDataError for the whole call.
    """

    def __init__(self, config: ProviderConfig):
        self.config = config
        self.name = config.name
        self._status = ProviderStatus(name=config.name)

    @property
    def status(self) -> ProviderStatus:
        """Get current provider counters."""
        return self._status

    async def initialize(self) -> None:
        """Initialize the adapter (create sessions, executors)."""

    async def close(self) -> None:
        """Clean up resources."""

    @abstractmethod
    async def health_check(self) -> bool:
        """Check if the provider is healthy and accessible."""

    @abstractmethod
    async def get_quotes(self, symbols: list[str]) -> list[Quote]:
        """
        Get quotes for multiple symbols.

        Args:
            symbols: Canonical ticker symbols (e.g. "RELIANCE", "AAPL")

        Returns:
            List of Quote objects with display symbols; unknown symbols omitted

        Raises:
            StockDataError: If the request fails as a whole
        """

    # Helper methods
    def _record_success(self, latency_ms: float) -> None:
        """Record a successful request."""
        self._status.success_count += 1
        self._status.last_success = utc_now()

        # Update average latency (exponential moving average)
        alpha = 0.1
        self._status.avg_latency_ms = (
            alpha * latency_ms + (1 - alpha) * self._status.avg_latency_ms
        )
        self._status.error_count = 0

    def _record_error(self, error: Exception) -> None:
        """Record a failed request."""
        self._status.error_count += 1
        self._status.last_error = utc_now()
        self._status.last_error_message = str(error)
        logger.debug(f"Provider {self.name} error #{self._status.error_count}: {error}")

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(name={self.name})>"
