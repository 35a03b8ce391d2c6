"""
Provider Initialization Module

Builds the provider adapters and the StockDataService from application
settings. Each provider gets its own rate limiter; the REST adapters share
one HTTP client.
"""
from typing import Optional
from loguru import logger

from superstock.config import Settings
from superstock.data_providers.adapters.base import BaseAdapter
from superstock.data_providers.adapters.twelve_data import TwelveDataAdapter, create_twelve_data_config
from superstock.data_providers.adapters.yfinance_adapter import YFinanceAdapter, create_yfinance_config
from superstock.data_providers.api_key_manager import ApiKeyManager
from superstock.data_providers.config import StockDataConfig
from superstock.data_providers.http_client import HttpClient, RetryPolicy
from superstock.data_providers.orchestrator import StockDataService


def create_http_client(config: StockDataConfig) -> HttpClient:
    return HttpClient(
        timeout_seconds=config.request_timeout_seconds,
        retry_policy=RetryPolicy(max_attempts=config.max_retry_attempts),
    )


def create_providers(config: StockDataConfig, http_client: HttpClient) -> list[BaseAdapter]:
    """
    Create the enabled provider adapters.

    Twelve Data is always registered (a missing key surfaces as an
    authentication failure and fallback takes over); yfinance only when enabled.
    """
    providers: list[BaseAdapter] = [
        TwelveDataAdapter(
            create_twelve_data_config(
                api_key=config.twelve_data_api_key,
                base_url=config.twelve_data_base_url,
                requests_per_minute=config.max_requests_per_minute,
                enable_throttling=config.enable_throttling,
                timeout_seconds=config.request_timeout_seconds,
                retry_attempts=config.max_retry_attempts,
                market_suffix=config.market_suffix,
            ),
            http_client=http_client,
        )
    ]
    if not config.twelve_data_api_key:
        logger.warning("TWELVE_DATA_API_KEY not set - Twelve Data requests will fail over to fallback providers")

    if config.yfinance_enabled:
        providers.append(
            YFinanceAdapter(
                create_yfinance_config(
                    requests_per_minute=config.yfinance_requests_per_minute,
                    enable_throttling=config.enable_throttling,
                    timeout_seconds=config.request_timeout_seconds,
                    market_suffix=config.market_suffix,
                )
            )
        )

    logger.info(f"Created {len(providers)} providers: {', '.join(p.name for p in providers)}")
    return providers


async def create_stock_data_service(settings: Optional[Settings] = None) -> StockDataService:
    """Build and initialize the quote service."""
    config = StockDataConfig.from_settings(settings)
    http_client = create_http_client(config)
    service = StockDataService(create_providers(config, http_client), config)
    await service.initialize()
    return service


def create_api_key_manager(
    settings: Optional[Settings] = None,
    http_client: Optional[HttpClient] = None,
) -> ApiKeyManager:
    config = StockDataConfig.from_settings(settings)
    return ApiKeyManager(
        api_key=config.twelve_data_api_key,
        base_url=config.twelve_data_base_url,
        http_client=http_client or create_http_client(config),
    )
