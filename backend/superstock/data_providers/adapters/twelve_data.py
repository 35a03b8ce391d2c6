"""
Twelve Data Adapter

Primary quote provider. Uses the Twelve Data REST /quote endpoint, which
accepts comma-separated symbols and answers with one object per symbol.

API Documentation: https://twelvedata.com/docs
Free tier: 800 API credits/day, 8 requests/minute
"""
import time
from typing import Optional, Any

from loguru import logger

from superstock.data_providers.adapters.base import (
    BaseAdapter,
    ProviderConfig,
    Quote,
    StockDataError,
    AuthenticationError,
    RateLimitError,
    InvalidSymbolError,
    ProviderUnavailableError,
    DataParsingError,
)
from superstock.data_providers.data_normalizer import (
    clean_symbol,
    to_provider_symbol,
    parse_decimal,
    parse_int,
    parse_timestamp,
)
from superstock.data_providers.error_messages import error_from_response
from superstock.data_providers.http_client import HttpClient, RetryPolicy
from superstock.data_providers.rate_limiter import RateLimiter, RateLimitConfig


TWELVE_DATA_BASE_URL = "https://api.twelvedata.com"
PROVIDER_NAME = "twelve_data"


def create_twelve_data_config(
    api_key: str,
    base_url: str = TWELVE_DATA_BASE_URL,
    requests_per_minute: int = 8,
    enable_throttling: bool = True,
    timeout_seconds: float = 30.0,
    retry_attempts: int = 3,
    market_suffix: str = ".NS",
) -> ProviderConfig:
    """Create configuration for Twelve Data adapter."""
    return ProviderConfig(
        name=PROVIDER_NAME,
        api_key=api_key,
        base_url=base_url.rstrip("/"),
        requests_per_minute=requests_per_minute,
        enable_throttling=enable_throttling,
        max_symbols_per_request=5,  # API allows 120; small batches keep credits predictable
        timeout_seconds=timeout_seconds,
        retry_attempts=retry_attempts,
        market_suffix=market_suffix,
    )


class TwelveDataAdapter(BaseAdapter):
    """
    Twelve Data provider adapter.

    Features:
    - Batch quotes (comma-separated symbols per request)
    - In-body error codes mapped to typed errors
    - Per-provider throttling and transport retries

    Usage:
        config = create_twelve_data_config("your_api_key")
        adapter = TwelveDataAdapter(config)
        await adapter.initialize()

        quotes = await adapter.get_quotes(["RELIANCE", "TCS"])
    """

    def __init__(
        self,
        config: ProviderConfig,
        http_client: Optional[HttpClient] = None,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        super().__init__(config)
        self._http = http_client or HttpClient(
            timeout_seconds=config.timeout_seconds,
            retry_policy=RetryPolicy(max_attempts=config.retry_attempts),
        )
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
        if not self.config.api_key:
            logger.warning("Twelve Data API key is not configured")
        logger.info("Twelve Data adapter initialized")

    async def close(self) -> None:
        """Close HTTP session."""
        await self._http.close()
        logger.info("Twelve Data adapter closed")

    async def health_check(self) -> bool:
        """Fetch one well-known symbol."""
        try:
            await self._rate_limiter.acquire()
            response = await self._http.get_json(
                f"{self.config.base_url}/quote",
                {"symbol": self.config.health_check_symbol, "apikey": self.config.api_key or ""},
            )
            data = response.data
            is_healthy = response.is_success and isinstance(data, dict) and "code" not in data
            logger.info(f"{self.name} health check result: {is_healthy} (status: {response.status_code})")
            return is_healthy
        except Exception as e:
            logger.warning(f"{self.name} health check failed: {e}")
            return False

    # ==================== Quotes ====================

    async def get_quotes(self, symbols: list[str]) -> list[Quote]:
        """Get quotes for multiple symbols in batches."""
        if not symbols:
            return []

        if not self.config.api_key:
            raise AuthenticationError(PROVIDER_NAME, "Twelve Data API key is not configured")

        provider_symbols = [to_provider_symbol(s, self.config.market_suffix) for s in symbols]
        batch_size = max(1, self.config.max_symbols_per_request)

        quotes: list[Quote] = []
        parse_failures: list[str] = []
        start_time = time.monotonic()

        try:
            for i in range(0, len(provider_symbols), batch_size):
                batch = provider_symbols[i:i + batch_size]
                batch_quotes, batch_failures = await self._get_batch_quotes(batch)
                quotes.extend(batch_quotes)
                parse_failures.extend(batch_failures)
        except StockDataError as e:
            self._record_error(e)
            raise

        if parse_failures and len(parse_failures) == len(provider_symbols):
            error = DataParsingError(
                PROVIDER_NAME,
                f"Could not parse any quote in the batch: {', '.join(parse_failures)}",
            )
            self._record_error(error)
            raise error

        self._record_success((time.monotonic() - start_time) * 1000)
        logger.info(f"Fetched {len(quotes)}/{len(symbols)} quotes from Twelve Data")
        return quotes

    async def _get_batch_quotes(self, batch: list[str]) -> tuple[list[Quote], list[str]]:
        """
        Fetch one batch.

        Returns:
            (quotes, symbols whose payload could not be parsed)
        """
        await self._rate_limiter.acquire()
        response = await self._http.get_json(
            f"{self.config.base_url}/quote",
            {"symbol": ",".join(batch), "apikey": self.config.api_key},
        )

        if not response.is_success:
            if response.status_code == 404:
                logger.warning(f"Symbols not found on Twelve Data: {', '.join(batch)}")
                return [], []
            raise error_from_response(PROVIDER_NAME, response, symbols=batch)

        data = response.data
        if not isinstance(data, dict):
            raise DataParsingError(PROVIDER_NAME, "Unexpected quote response shape", raw_data=data)

        # Single symbol returns the object itself; several return {symbol: object}
        if len(batch) == 1 or "symbol" in data or "code" in data:
            entries = {batch[0]: data} if len(batch) == 1 else {"": data}
        else:
            entries = data

        quotes: list[Quote] = []
        failures: list[str] = []
        for requested, entry in entries.items():
            if not isinstance(entry, dict):
                failures.append(requested)
                continue
            if "code" in entry or entry.get("status") == "error":
                if self._is_not_found(entry):
                    logger.warning(f"Symbol {requested or '?'} not found on Twelve Data")
                    continue
                raise self._error_from_body(entry, [requested] if requested else batch)
            try:
                quotes.append(self._parse_quote(entry, requested))
            except DataParsingError as e:
                logger.warning(f"Failed to parse quote for {requested}: {e}")
                failures.append(requested)
        return quotes, failures

    @staticmethod
    def _is_not_found(entry: dict[str, Any]) -> bool:
        code = parse_int(entry.get("code"))
        message = str(entry.get("message", "")).lower()
        return code == 404 or (code == 400 and "not found" in message)

    def _error_from_body(self, entry: dict[str, Any], symbols: list[str]) -> StockDataError:
        """Map a Twelve Data in-body error object onto the error taxonomy."""
        code = parse_int(entry.get("code"))
        message = str(entry.get("message") or "Unknown error")
        error_code = str(code) if code is not None else None

        if code in (401, 403):
            return AuthenticationError(PROVIDER_NAME, message, error_code=error_code)
        if code == 429:
            return RateLimitError(PROVIDER_NAME, retry_after=60, error_code=error_code)
        if code == 400:
            return InvalidSymbolError(PROVIDER_NAME, symbols, message, error_code=error_code)
        return ProviderUnavailableError(PROVIDER_NAME, message, error_code=error_code)

    def _parse_quote(self, data: dict[str, Any], requested: str = "") -> Quote:
        """Parse quote response."""
        price = parse_decimal(data.get("close"))
        if price is None:
            raise DataParsingError(PROVIDER_NAME, f"Missing close price for {requested or data.get('symbol')}", raw_data=data)

        symbol = clean_symbol(data.get("symbol") or requested, self.config.market_suffix)
        if not symbol:
            raise DataParsingError(PROVIDER_NAME, "Quote without symbol", raw_data=data)

        timestamp = data.get("timestamp") or data.get("datetime")

        return Quote(
            symbol=symbol,
            price=price,
            day_high=parse_decimal(data.get("high")),
            day_low=parse_decimal(data.get("low")),
            day_open=parse_decimal(data.get("open")),
            prev_close=parse_decimal(data.get("previous_close")),
            last_updated=parse_timestamp(parse_int(timestamp) if data.get("timestamp") else timestamp),
            provider=PROVIDER_NAME,
            volume=parse_int(data.get("volume")),
            change=parse_decimal(data.get("change")),
            change_percent=parse_decimal(data.get("percent_change")),
            exchange=data.get("exchange") or None,
            currency=data.get("currency") or None,
        )
