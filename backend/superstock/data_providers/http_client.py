"""
HTTP Client

aiohttp transport shared by the REST adapters. Every call returns an
ApiResponse instead of raising; retries, backoff and failure classification
are delegated to a RetryPolicy so the schedule can be tested without a
network.
"""
import asyncio
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Awaitable, Callable, Mapping, Optional
import aiohttp
from loguru import logger

from superstock.data_providers.adapters.base import ApiErrorType
from superstock.data_providers.error_messages import categorize_status


@dataclass
class ApiResponse:
    """Outcome of one logical GET (possibly several attempts)."""
    is_success: bool
    data: Any = None
    status_code: Optional[int] = None
    message: str = ""
    error_type: ApiErrorType = ApiErrorType.NONE
    retry_after: Optional[float] = None
    attempts: int = 0
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def success(cls, data: Any, status_code: int = 200, attempts: int = 1) -> "ApiResponse":
        return cls(
            is_success=True,
            data=data,
            status_code=status_code,
            message="Request successful",
            attempts=attempts,
        )

    @classmethod
    def failure(
        cls,
        message: str,
        error_type: ApiErrorType = ApiErrorType.UNKNOWN_ERROR,
        status_code: Optional[int] = None,
        retry_after: Optional[float] = None,
        attempts: int = 1,
    ) -> "ApiResponse":
        return cls(
            is_success=False,
            status_code=status_code,
            message=message,
            error_type=error_type,
            retry_after=retry_after,
            attempts=attempts,
        )


@dataclass
class RetryPolicy:
    """
    Bounded retry with pure exponential backoff.

    The delay before attempt k (k >= 2) is base_delay * 2 ** (k - 2):
    1s, 2s, 4s, ... with the default base. No jitter.
    """
    max_attempts: int = 3
    base_delay: float = 1.0

    def delay_for(self, attempt: int) -> float:
        if attempt < 2:
            return 0.0
        return self.base_delay * (2 ** (attempt - 2))

    def should_retry_status(self, status: int) -> bool:
        """5xx is transient; 4xx (and anything else) is terminal."""
        return status >= 500

    def should_retry_exception(self, error: BaseException) -> bool:
        return isinstance(error, (asyncio.TimeoutError, aiohttp.ClientError))

    def classify_exception(self, error: Optional[BaseException]) -> ApiErrorType:
        if isinstance(error, asyncio.TimeoutError):
            return ApiErrorType.TIMEOUT
        if isinstance(error, aiohttp.ClientError):
            return ApiErrorType.NETWORK_ERROR
        return ApiErrorType.UNKNOWN_ERROR


def parse_retry_after(headers: Optional[Mapping[str, str]]) -> Optional[float]:
    """Read a Retry-After header given in seconds or as an HTTP date."""
    if not headers:
        return None
    value = headers.get("Retry-After")
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        retry_at = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if retry_at.tzinfo is None:
        retry_at = retry_at.replace(tzinfo=timezone.utc)
    return max(0.0, (retry_at - datetime.now(timezone.utc)).total_seconds())


class HttpClient:
    """
    GET-only JSON client with retry, backoff and timeout handling.

    Usage:
        client = HttpClient(timeout_seconds=30, retry_policy=RetryPolicy(max_attempts=3))
        response = await client.get_json("https://api.twelvedata.com/quote", {"symbol": "AAPL"})
        if response.is_success:
            ...
        await client.close()
    """

    def __init__(
        self,
        timeout_seconds: float = 30.0,
        retry_policy: Optional[RetryPolicy] = None,
        session: Optional[aiohttp.ClientSession] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.timeout_seconds = timeout_seconds
        self.retry_policy = retry_policy or RetryPolicy()
        self._session = session
        self._owns_session = session is None
        self._sleep = sleep

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close the HTTP session if this client created it."""
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    async def get_json(
        self,
        url: str,
        params: Optional[Mapping[str, Any]] = None,
    ) -> ApiResponse:
        """
        Make an HTTP GET request with retry logic.

        Args:
            url: Absolute request URL
            params: Query string parameters

        Returns:
            ApiResponse; never raises for HTTP or transport failures.
            asyncio.CancelledError from the caller propagates.
        """
        if not url or not url.strip():
            raise ValueError("Request URL cannot be empty")

        policy = self.retry_policy
        session = await self._get_session()
        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)

        last_error: Optional[BaseException] = None
        last_status: Optional[int] = None
        last_message = ""
        attempt = 0

        while attempt < policy.max_attempts:
            attempt += 1
            if attempt > 1:
                delay = policy.delay_for(attempt)
                logger.debug(f"Waiting {delay:.0f}s before retry attempt {attempt} for {url}")
                await self._sleep(delay)

            try:
                logger.debug(f"GET {url} (attempt {attempt}/{policy.max_attempts})")
                async with session.get(url, params=params, timeout=timeout) as response:
                    status = response.status
                    content = await response.text()

                    if 200 <= status < 300:
                        try:
                            data = json.loads(content) if content else None
                        except ValueError:
                            logger.warning(f"Undecodable JSON from {url}")
                            return ApiResponse.failure(
                                f"Response from {url} is not valid JSON",
                                error_type=ApiErrorType.DATA_ERROR,
                                status_code=status,
                                attempts=attempt,
                            )
                        return ApiResponse.success(data, status_code=status, attempts=attempt)

                    message = f"HTTP {status}: {content[:200]}"

                    if not policy.should_retry_status(status):
                        logger.warning(f"GET {url} failed with non-retryable {message}")
                        return ApiResponse.failure(
                            message,
                            error_type=categorize_status(status),
                            status_code=status,
                            retry_after=parse_retry_after(response.headers),
                            attempts=attempt,
                        )

                    logger.warning(f"GET {url} failed (attempt {attempt}): {message}")
                    last_error = None
                    last_status = status
                    last_message = message

            except Exception as e:
                if not policy.should_retry_exception(e):
                    logger.exception(f"Unexpected error during GET {url} (attempt {attempt})")
                    return ApiResponse.failure(
                        f"Unexpected error: {e}",
                        error_type=policy.classify_exception(e),
                        attempts=attempt,
                    )
                kind = "timed out" if policy.classify_exception(e) == ApiErrorType.TIMEOUT else "failed"
                logger.warning(f"GET {url} {kind} (attempt {attempt}): {e!r}")
                last_error = e
                last_status = None
                last_message = str(e) or type(e).__name__

        if last_status is not None:
            error_type = categorize_status(last_status)
        else:
            error_type = policy.classify_exception(last_error)

        final_message = f"Request failed after {attempt} attempts. Last error: {last_message}"
        logger.error(f"GET {url} ultimately failed: {final_message}")
        return ApiResponse.failure(
            final_message,
            error_type=error_type,
            status_code=last_status,
            attempts=attempt,
        )
