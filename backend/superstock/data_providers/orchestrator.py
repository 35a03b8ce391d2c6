"""
Stock Data Service

Central coordinator for quote retrieval. Serves fresh quotes from the cache,
then walks the providers in priority order, skipping those whose circuit
breaker is open and falling back to the next one on failure. The first
provider that succeeds wins; results are never merged across providers.
"""
import asyncio
import time
from datetime import datetime
from typing import Callable, Iterable, Optional
from loguru import logger

from superstock.data_providers.adapters.base import (
    BaseAdapter,
    Quote,
    StockDataError,
    AllProvidersFailedError,
    CircuitBreakerOpenError,
    utc_now,
)
from superstock.data_providers.cache_manager import QuoteCache
from superstock.data_providers.circuit_breaker import CircuitBreakerRegistry, CircuitState
from superstock.data_providers.config import StockDataConfig
from superstock.data_providers.data_normalizer import normalize_symbols
from superstock.data_providers.error_messages import is_retryable


# Lower number = tried first
PROVIDER_PRIORITIES: dict[str, int] = {
    "twelve_data": 1,
    "yfinance": 2,
}
UNKNOWN_PROVIDER_PRIORITY = 999


def get_provider_priority(name: str) -> int:
    return PROVIDER_PRIORITIES.get(name, UNKNOWN_PROVIDER_PRIORITY)


class StockDataService:
    """
    Multi-provider quote service.

    Usage:
        service = StockDataService([twelve_data, yfinance], StockDataConfig())
        await service.initialize()

        quotes = await service.get_quotes(["RELIANCE", "TCS"])
        health = await service.get_provider_health()
    """

    def __init__(
        self,
        providers: Iterable[BaseAdapter],
        config: Optional[StockDataConfig] = None,
        cache: Optional[QuoteCache] = None,
        circuit_breakers: Optional[CircuitBreakerRegistry] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.config = config or StockDataConfig()
        # Sorted once; stable for equal priorities
        self._providers: tuple[BaseAdapter, ...] = tuple(
            sorted(providers, key=lambda p: get_provider_priority(p.name))
        )
        self._clock = clock
        self.cache = cache if cache is not None else QuoteCache(
            ttl_seconds=self.config.cache_ttl_seconds,
            clock=clock,
            max_entries=self.config.cache_max_entries,
        )
        self.circuit_breakers = circuit_breakers or CircuitBreakerRegistry(
            failure_threshold=self.config.circuit_breaker_failure_threshold,
            timeout_seconds=self.config.circuit_breaker_timeout_seconds,
            clock=clock,
        )
        for provider in self._providers:
            self.circuit_breakers.register(provider.name)

        self._initialized = False
        logger.info(
            f"StockDataService initialized with {len(self._providers)} providers: "
            f"{', '.join(p.name for p in self._providers)}"
        )

    @property
    def providers(self) -> tuple[BaseAdapter, ...]:
        return self._providers

    async def initialize(self) -> None:
        """Initialize all providers."""
        if self._initialized:
            return
        for provider in self._providers:
            try:
                await provider.initialize()
                logger.info(f"Initialized provider: {provider.name}")
            except Exception as e:
                logger.error(f"Failed to initialize provider {provider.name}: {e}")
                self.circuit_breakers.record_failure(provider.name)
        self._initialized = True

    async def shutdown(self) -> None:
        """Shutdown all providers."""
        for provider in self._providers:
            try:
                await provider.close()
                logger.info(f"Closed provider: {provider.name}")
            except Exception as e:
                logger.error(f"Error closing provider {provider.name}: {e}")
        self._initialized = False

    # ==================== Quote Operations ====================

    async def get_quotes(self, symbols: Iterable[str]) -> list[Quote]:
        """
        Get quotes for multiple symbols.

        Args:
            symbols: Ticker symbols in display or vendor form

        Returns:
            Cached and freshly fetched quotes. Symbols no provider knows are
            absent; order is not guaranteed.

        Raises:
            AllProvidersFailedError: Every provider tried failed or was skipped
                (with fallback disabled, after the first failure)
        """
        requested = normalize_symbols(symbols, self.config.market_suffix)
        if not requested:
            logger.warning("No symbols provided for stock price retrieval")
            return []

        logger.info(f"Fetching stock prices for {len(requested)} symbols: {', '.join(requested)}")

        result: list[Quote] = []
        uncached: list[str] = []
        for symbol in requested:
            cached = self.cache.get(symbol)
            if cached is not None:
                logger.debug(f"Using cached data for symbol {symbol}")
                result.append(cached)
            else:
                uncached.append(symbol)

        if uncached:
            fetched = await self._fetch_from_providers(uncached)
            self.cache.set_many(fetched)
            result.extend(fetched)

        logger.info(f"Successfully retrieved stock data for {len(result)} out of {len(requested)} symbols")
        return result

    async def get_quote(self, symbol: str) -> Optional[Quote]:
        """Get a single quote, or None when no provider knows the symbol."""
        quotes = await self.get_quotes([symbol])
        return quotes[0] if quotes else None

    async def _fetch_from_providers(self, symbols: list[str]) -> list[Quote]:
        last_error: Optional[BaseException] = None

        for provider in self._providers:
            name = provider.name
            if not self.circuit_breakers.allow_request(name):
                logger.debug(f"Skipping provider {name} - circuit breaker is open")
                if last_error is None:
                    last_error = CircuitBreakerOpenError(name, self.circuit_breakers.retry_after(name))
                continue

            logger.debug(f"Attempting to fetch data from provider {name}")
            start_time = time.monotonic()
            try:
                quotes = await provider.get_quotes(symbols)
            except asyncio.CancelledError:
                self.circuit_breakers.release_trial(name)
                raise
            except Exception as e:
                last_error = e
                self.circuit_breakers.record_failure(name)
                if isinstance(e, StockDataError) and not is_retryable(e.error_type):
                    logger.error(f"Provider {name} failed with non-retryable error: {e}")
                else:
                    logger.warning(f"Provider {name} failed to fetch stock data: {e}")
                if not self.config.enable_fallback:
                    break
                continue

            self.circuit_breakers.record_success(name)
            now = self._clock()
            for quote in quotes:
                quote.provider = name
                quote.last_updated = now
                quote.is_stale = False
            duration_ms = (time.monotonic() - start_time) * 1000
            logger.info(f"Successfully fetched {len(quotes)} stock prices from {name} in {duration_ms:.0f}ms")
            return quotes

        error = AllProvidersFailedError(symbols, last_error)
        logger.error(error.message)
        raise error from last_error

    # ==================== Status Operations ====================

    async def get_provider_health(self) -> dict[str, bool]:
        """Run every provider's health check concurrently."""
        results = await asyncio.gather(
            *(provider.health_check() for provider in self._providers),
            return_exceptions=True,
        )
        health: dict[str, bool] = {}
        for provider, outcome in zip(self._providers, results):
            if isinstance(outcome, BaseException):
                logger.warning(f"Health check failed for provider {provider.name}: {outcome}")
                health[provider.name] = False
            else:
                health[provider.name] = bool(outcome)
        return health

    def get_circuit_breaker_status(self) -> dict[str, dict]:
        return {name: info.to_dict() for name, info in self.circuit_breakers.snapshot().items()}

    def reset_circuit_breaker(self, provider_name: str) -> bool:
        """Force a provider's breaker CLOSED. False if the provider is unknown."""
        return self.circuit_breakers.reset(provider_name)

    def clear_cache(self) -> int:
        return self.cache.clear()

    def get_stats(self) -> dict:
        """Service statistics for status endpoints."""
        snapshot = self.circuit_breakers.snapshot()
        return {
            "providers": [
                {
                    "name": p.name,
                    "priority": get_provider_priority(p.name),
                    "available": snapshot[p.name].state != CircuitState.OPEN,
                    "success_count": p.status.success_count,
                    "error_count": p.status.error_count,
                    "avg_latency_ms": round(p.status.avg_latency_ms, 1),
                }
                for p in self._providers
            ],
            "cache": self.cache.get_stats(),
            "fallback_enabled": self.config.enable_fallback,
        }
