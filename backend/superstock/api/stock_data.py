"""
SuperStock - Stock Data Endpoints
Quotes, provider health, circuit breaker status and cache control
"""
from datetime import datetime, timezone
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from loguru import logger

from superstock.data_providers.adapters.base import AllProvidersFailedError, StockDataError
from superstock.data_providers.api_key_manager import ApiKeyManager
from superstock.data_providers.error_messages import (
    get_retry_recommendation,
    get_user_friendly_message,
    is_retryable,
)
from superstock.data_providers.orchestrator import StockDataService

router = APIRouter()


def get_stock_data_service(request: Request) -> StockDataService:
    """Service built by the application lifespan."""
    service = getattr(request.app.state, "stock_data_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Stock data service is not initialized")
    return service


def get_api_key_manager(request: Request) -> ApiKeyManager:
    manager = getattr(request.app.state, "api_key_manager", None)
    if manager is None:
        raise HTTPException(status_code=503, detail="API key manager is not initialized")
    return manager


def _error_detail(error: StockDataError) -> dict:
    return {
        "message": get_user_friendly_message(error),
        "recommendation": get_retry_recommendation(error.error_type),
        "retryable": is_retryable(error.error_type),
    }


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get(
    "/quotes",
    summary="Get quotes",
    description="Get current quotes for a comma-separated list of symbols."
)
async def get_quotes(
    symbols: str = Query(..., description="Comma-separated symbols, e.g. RELIANCE,TCS"),
    service: StockDataService = Depends(get_stock_data_service),
):
    requested = [s for s in symbols.split(",") if s.strip()]
    try:
        quotes = await service.get_quotes(requested)
    except AllProvidersFailedError as e:
        logger.error(f"Quote request failed: {e}")
        raise HTTPException(status_code=503, detail=_error_detail(e))
    except StockDataError as e:
        raise HTTPException(status_code=400, detail=_error_detail(e))

    return {
        "quotes": [q.to_dict() for q in quotes],
        "count": len(quotes),
        "timestamp": _timestamp(),
    }


@router.get(
    "/providers/health",
    summary="Get health status of all providers",
    description="Run every provider's health check concurrently."
)
async def get_providers_health(service: StockDataService = Depends(get_stock_data_service)):
    health = await service.get_provider_health()
    healthy_count = sum(1 for ok in health.values() if ok)
    return {
        "providers": health,
        "summary": {
            "total": len(health),
            "healthy": healthy_count,
            "unhealthy": len(health) - healthy_count,
        },
        "timestamp": _timestamp(),
    }


@router.get(
    "/providers/circuit-breakers",
    summary="Get circuit breaker status",
)
async def get_circuit_breakers(service: StockDataService = Depends(get_stock_data_service)):
    return {
        "circuit_breakers": service.get_circuit_breaker_status(),
        "timestamp": _timestamp(),
    }


@router.post(
    "/providers/{provider}/reset",
    summary="Reset a provider's circuit breaker",
)
async def reset_circuit_breaker(provider: str, service: StockDataService = Depends(get_stock_data_service)):
    if not service.reset_circuit_breaker(provider):
        raise HTTPException(status_code=404, detail=f"Provider {provider} not configured")
    return {
        "provider": provider,
        "status": "reset",
        "timestamp": _timestamp(),
    }


@router.delete(
    "/cache",
    summary="Clear the quote cache",
)
async def clear_cache(service: StockDataService = Depends(get_stock_data_service)):
    removed = service.clear_cache()
    return {
        "cleared": removed,
        "timestamp": _timestamp(),
    }


@router.get(
    "/stats",
    summary="Get service statistics",
)
async def get_stats(service: StockDataService = Depends(get_stock_data_service)):
    return {
        **service.get_stats(),
        "timestamp": _timestamp(),
    }


@router.get(
    "/api-key/status",
    summary="Get Twelve Data API key status",
)
async def get_api_key_status(manager: ApiKeyManager = Depends(get_api_key_manager)):
    return {
        **manager.get_status(),
        "timestamp": _timestamp(),
    }


@router.post(
    "/api-key/validate",
    summary="Validate the Twelve Data API key",
    description="Check the configured key against the live API. A positive result is reused for an hour unless force is set."
)
async def validate_api_key(
    force: bool = Query(False, description="Ignore a cached positive result"),
    manager: ApiKeyManager = Depends(get_api_key_manager),
):
    result = await (manager.force_validate() if force else manager.validate())
    return {
        "is_valid": result.is_valid,
        "message": result.message,
        "validated_at": result.validated_at.isoformat(),
        "status": manager.get_status(),
        "timestamp": _timestamp(),
    }
