"""
yfinance Adapter

Fallback quote provider backed by Yahoo Finance through the yfinance library.
No API key needed, but requests are throttled with a self-imposed limit.

Note: yfinance is a scraping wrapper, use responsibly.
"""
import asyncio
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Optional

import yfinance as yf
from loguru import logger

from superstock.data_providers.adapters.base import (
    BaseAdapter,
    ProviderConfig,
    Quote,
    StockDataError,
    ProviderUnavailableError,
    ProviderTimeoutError,
    utc_now,
)
from superstock.data_providers.data_normalizer import (
    clean_symbol,
    to_provider_symbol,
    parse_decimal,
    parse_int,
)
from superstock.data_providers.rate_limiter import RateLimiter, RateLimitConfig


PROVIDER_NAME = "yfinance"

# fast_info attribute -> Quote field
_FAST_INFO_FIELDS = {
    "last_price": "price",
    "day_high": "day_high",
    "day_low": "day_low",
    "open": "day_open",
    "previous_close": "prev_close",
    "last_volume": "volume",
    "currency": "currency",
    "exchange": "exchange",
}


def create_yfinance_config(
    requests_per_minute: int = 30,
    enable_throttling: bool = True,
    timeout_seconds: float = 30.0,
    market_suffix: str = ".NS",
) -> ProviderConfig:
    """Create configuration for yfinance adapter."""
    return ProviderConfig(
        name=PROVIDER_NAME,
        api_key="",  # No API key needed
        base_url="",
        requests_per_minute=requests_per_minute,  # Self-imposed limit
        enable_throttling=enable_throttling,
        max_symbols_per_request=50,
        timeout_seconds=timeout_seconds,
        retry_attempts=1,
        market_suffix=market_suffix,
    )


def _read_fast_info(info: Any) -> dict[str, Any]:
    """Pull the quote fields out of a fast_info object (network access happens here)."""
    values = {}
    for attribute, field_name in _FAST_INFO_FIELDS.items():
        try:
            values[field_name] = getattr(info, attribute, None)
        except KeyError:
            # fast_info raises KeyError for fields Yahoo did not return
            values[field_name] = None
    return values


class YFinanceAdapter(BaseAdapter):
    """
    yfinance data provider adapter.

    Limitations:
    - Scraping-based, may break
    - No official support
    - Rate limiting recommended

    Usage:
        config = create_yfinance_config()
        adapter = YFinanceAdapter(config)
        await adapter.initialize()

        quotes = await adapter.get_quotes(["RELIANCE", "TCS"])
    """

    def __init__(self, config: ProviderConfig, rate_limiter: Optional[RateLimiter] = None):
        super().__init__(config)
        self._executor = ThreadPoolExecutor(max_workers=5)
        self._rate_limiter = rate_limiter or RateLimiter(
            RateLimitConfig(
                requests_per_minute=config.requests_per_minute,
                enabled=config.enable_throttling,
            ),
            name=config.name,
        )

    @property
    def rate_limiter(self) -> RateLimiter:
        return self._rate_limiter

    async def initialize(self) -> None:
        logger.info("yfinance adapter initialized")

    async def close(self) -> None:
        """Close executor."""
        self._executor.shutdown(wait=False)
        logger.info("yfinance adapter closed")

    async def _run_sync(self, func: Callable[[], Any]) -> Any:
        """Run synchronous yfinance function in executor."""
        loop = asyncio.get_running_loop()
        try:
            return await asyncio.wait_for(
                loop.run_in_executor(self._executor, func),
                timeout=self.config.timeout_seconds,
            )
        except asyncio.TimeoutError:
            raise ProviderTimeoutError(
                PROVIDER_NAME,
                f"yfinance call exceeded {self.config.timeout_seconds:.0f}s",
                timeout=self.config.timeout_seconds,
            )

    async def health_check(self) -> bool:
        """Check yfinance availability."""
        symbol = self.config.health_check_symbol
        try:
            await self._rate_limiter.acquire()
            values = await self._run_sync(lambda: _read_fast_info(yf.Ticker(symbol).fast_info))
            is_healthy = parse_decimal(values.get("price")) is not None
            logger.info(f"{self.name} health check result: {is_healthy}")
            return is_healthy
        except Exception as e:
            logger.warning(f"yfinance health check failed: {e}")
            return False

    # ==================== Quote Methods ====================

    async def get_quotes(self, symbols: list[str]) -> list[Quote]:
        """Get quotes for multiple symbols."""
        if not symbols:
            return []

        provider_symbols = [to_provider_symbol(s, self.config.market_suffix) for s in symbols]

        def fetch_quotes() -> tuple[dict[str, dict], dict[str, Exception]]:
            tickers = yf.Tickers(" ".join(provider_symbols))
            results: dict[str, dict] = {}
            errors: dict[str, Exception] = {}
            for symbol in provider_symbols:
                try:
                    ticker = tickers.tickers.get(symbol)
                    if ticker is not None:
                        results[symbol] = _read_fast_info(ticker.fast_info)
                except Exception as e:
                    errors[symbol] = e
            return results, errors

        start_time = time.monotonic()
        try:
            await self._rate_limiter.acquire()
            results, errors = await self._run_sync(fetch_quotes)
        except StockDataError as e:
            self._record_error(e)
            raise
        except Exception as e:
            error = ProviderUnavailableError(PROVIDER_NAME, f"Error fetching quotes: {e}")
            self._record_error(error)
            raise error from e

        for symbol, e in errors.items():
            logger.warning(f"yfinance failed for {symbol}: {e}")

        if errors and len(errors) == len(provider_symbols):
            first = next(iter(errors.values()))
            error = ProviderUnavailableError(
                PROVIDER_NAME, f"Error fetching quotes for every symbol: {first}"
            )
            self._record_error(error)
            raise error from first

        quotes = []
        for symbol, values in results.items():
            quote = self._parse_fast_info(symbol, values)
            if quote is None:
                logger.warning(f"No price data for {symbol} on yfinance")
                continue
            quotes.append(quote)

        self._record_success((time.monotonic() - start_time) * 1000)
        logger.info(f"Fetched {len(quotes)}/{len(symbols)} quotes from yfinance")
        return quotes

    def _parse_fast_info(self, symbol: str, values: dict[str, Any]) -> Optional[Quote]:
        """Build a Quote from fast_info values; None when there is no usable price."""
        price = parse_decimal(values.get("price"))
        if price is None or price <= 0:
            return None

        prev_close = parse_decimal(values.get("prev_close"))
        change = price - prev_close if prev_close else None
        change_pct = (change / prev_close * 100) if change is not None and prev_close else None

        return Quote(
            symbol=clean_symbol(symbol, self.config.market_suffix),
            price=price,
            day_high=parse_decimal(values.get("day_high")),
            day_low=parse_decimal(values.get("day_low")),
            day_open=parse_decimal(values.get("day_open")),
            prev_close=prev_close,
            last_updated=utc_now(),
            provider=PROVIDER_NAME,
            volume=parse_int(values.get("volume")),
            change=change,
            change_percent=change_pct,
            exchange=values.get("exchange") or None,
            currency=values.get("currency") or None,
        )
