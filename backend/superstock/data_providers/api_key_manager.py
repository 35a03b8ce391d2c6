"""
API Key Manager

Holds the Twelve Data API key and validates it against the live API,
remembering a positive result for an hour.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional
from loguru import logger

from superstock.data_providers.adapters.base import AuthenticationError, utc_now
from superstock.data_providers.http_client import HttpClient


VALIDATION_SYMBOL = "AAPL"


@dataclass
class ApiKeyValidationResult:
    is_valid: bool
    message: str
    validated_at: datetime


def mask_api_key(api_key: Optional[str]) -> str:
    """Show only the last four characters of a key."""
    if not api_key:
        return ""
    if len(api_key) <= 4:
        return "*" * len(api_key)
    return "*" * (len(api_key) - 4) + api_key[-4:]


class ApiKeyManager:
    """
    Twelve Data API key holder and validator.

    Usage:
        manager = ApiKeyManager(settings.TWELVE_DATA_API_KEY, settings.TWELVE_DATA_BASE_URL, http_client)
        result = await manager.validate()
    """

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str,
        http_client: HttpClient,
        validation_ttl: timedelta = timedelta(hours=1),
        clock: Callable[[], datetime] = utc_now,
    ):
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._http = http_client
        self._validation_ttl = validation_ttl
        self._clock = clock
        self._last_validation: Optional[datetime] = None
        self._is_valid = False

    @property
    def has_api_key(self) -> bool:
        return bool(self._api_key and self._api_key.strip())

    def get_api_key(self) -> str:
        if not self.has_api_key:
            raise AuthenticationError("twelve_data", "Twelve Data API key is not configured")
        return self._api_key

    def _validation_fresh(self) -> bool:
        return (
            self._last_validation is not None
            and self._clock() - self._last_validation < self._validation_ttl
        )

    async def validate(self) -> ApiKeyValidationResult:
        """Validate the key, reusing a recent positive result."""
        if self._is_valid and self._validation_fresh():
            logger.debug("Using cached API key validation result")
            return ApiKeyValidationResult(True, "API key is valid (cached result)", self._last_validation)

        try:
            logger.info("Validating Twelve Data API key")
            response = await self._http.get_json(
                f"{self._base_url}/quote",
                {"symbol": VALIDATION_SYMBOL, "apikey": self.get_api_key()},
            )
        except AuthenticationError as e:
            self._is_valid = False
            logger.warning(f"API key validation failed: {e.message}")
            return ApiKeyValidationResult(False, f"API key validation failed: {e.message}", self._clock())

        data = response.data
        # Twelve Data reports bad keys in the body with HTTP 200
        body_error = isinstance(data, dict) and "code" in data
        now = self._clock()

        if response.is_success and data is not None and not body_error:
            self._is_valid = True
            self._last_validation = now
            logger.info("API key validation successful")
            return ApiKeyValidationResult(True, "API key is valid", now)

        self._is_valid = False
        error_message = data.get("message") if body_error else (response.message or "Unknown validation error")
        logger.warning(f"API key validation failed: {error_message}")
        return ApiKeyValidationResult(False, f"API key validation failed: {error_message}", now)

    async def force_validate(self) -> ApiKeyValidationResult:
        """Drop any cached result and validate again."""
        self._last_validation = None
        return await self.validate()

    def is_valid(self) -> bool:
        """Last validation outcome; False if never validated or expired."""
        return self._is_valid and self._validation_fresh()

    async def close(self) -> None:
        await self._http.close()

    def get_status(self) -> dict:
        return {
            "has_api_key": self.has_api_key,
            "masked_key": mask_api_key(self._api_key),
            "is_valid": self.is_valid(),
            "last_validated": self._last_validation.isoformat() if self._last_validation else None,
            "validation_expiry": (
                (self._last_validation + self._validation_ttl).isoformat() if self._last_validation else None
            ),
        }
