"""
Error Messages

Maps HTTP statuses and exceptions onto ApiErrorType, decides retryability,
turns failed transport responses into typed exceptions, and produces the
user-facing messages the hosting layer shows.
"""
from typing import Optional, Union
from loguru import logger

from superstock.data_providers.adapters.base import (
    ApiErrorType,
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


ERROR_MESSAGES: dict[ApiErrorType, str] = {
    ApiErrorType.NONE: "Operation completed successfully.",
    ApiErrorType.NETWORK_ERROR: "Unable to connect to the stock data service.",
    ApiErrorType.TIMEOUT: "The request timed out.",
    ApiErrorType.AUTHENTICATION_ERROR: "Authentication failed.",
    ApiErrorType.RATE_LIMIT_EXCEEDED: "Too many requests have been made.",
    ApiErrorType.INVALID_REQUEST: "The request contains invalid data.",
    ApiErrorType.NOT_FOUND: "The requested stock symbol was not found.",
    ApiErrorType.SERVER_ERROR: "The stock data service is experiencing issues.",
    ApiErrorType.CLIENT_ERROR: "There was an error with your request.",
    ApiErrorType.DATA_ERROR: "There was an error processing the stock data.",
    ApiErrorType.SERVICE_UNAVAILABLE: "The stock data service is temporarily unavailable.",
    ApiErrorType.UNKNOWN_ERROR: "An unexpected error occurred.",
}

EXCEPTION_MESSAGES: dict[type, str] = {
    AuthenticationError: "Unable to authenticate with the stock data service.",
    RateLimitError: "Request limit exceeded.",
    InvalidSymbolError: "One or more stock symbols are invalid.",
    AllProvidersFailedError: "Stock data is currently unavailable from every provider.",
    ProviderUnavailableError: "Stock data provider is currently unavailable.",
    DataParsingError: "Unable to process the stock data received.",
    NetworkError: "Network connection error occurred.",
    ProviderTimeoutError: "Request timed out while fetching stock data.",
    CircuitBreakerOpenError: "Stock data service is temporarily disabled due to repeated failures.",
}

RETRY_RECOMMENDATIONS: dict[ApiErrorType, str] = {
    ApiErrorType.NETWORK_ERROR: "Please check your internet connection and try again.",
    ApiErrorType.TIMEOUT: "The service may be busy. Please wait a moment and try again.",
    ApiErrorType.RATE_LIMIT_EXCEEDED: "You've made too many requests. Please wait a few minutes before trying again.",
    ApiErrorType.AUTHENTICATION_ERROR: "Please check your API credentials or contact support.",
    ApiErrorType.INVALID_REQUEST: "Please verify your input and try again.",
    ApiErrorType.NOT_FOUND: "The requested stock symbol may not exist. Please verify the symbol.",
    ApiErrorType.SERVER_ERROR: "The service is experiencing issues. Please try again in a few minutes.",
    ApiErrorType.SERVICE_UNAVAILABLE: "The service is temporarily unavailable. Please try again later.",
    ApiErrorType.DATA_ERROR: "There was an issue processing the data. Please try again.",
}

RETRYABLE_ERROR_TYPES = frozenset({
    ApiErrorType.NETWORK_ERROR,
    ApiErrorType.TIMEOUT,
    ApiErrorType.SERVER_ERROR,
    ApiErrorType.SERVICE_UNAVAILABLE,
    ApiErrorType.RATE_LIMIT_EXCEEDED,
})


def categorize_status(status: int) -> ApiErrorType:
    """Categorize an HTTP status code into an API error type."""
    specific = {
        401: ApiErrorType.AUTHENTICATION_ERROR,
        403: ApiErrorType.AUTHENTICATION_ERROR,
        404: ApiErrorType.NOT_FOUND,
        400: ApiErrorType.INVALID_REQUEST,
        429: ApiErrorType.RATE_LIMIT_EXCEEDED,
        408: ApiErrorType.TIMEOUT,
        500: ApiErrorType.SERVER_ERROR,
        502: ApiErrorType.SERVICE_UNAVAILABLE,
        503: ApiErrorType.SERVICE_UNAVAILABLE,
        504: ApiErrorType.TIMEOUT,
    }
    if status in specific:
        return specific[status]
    if 200 <= status < 300:
        return ApiErrorType.NONE
    if 400 <= status < 500:
        return ApiErrorType.CLIENT_ERROR
    if status >= 500:
        return ApiErrorType.SERVER_ERROR
    return ApiErrorType.UNKNOWN_ERROR


def is_retryable(error_type: ApiErrorType) -> bool:
    """Whether an error of this kind is worth retrying at all."""
    return error_type in RETRYABLE_ERROR_TYPES


def get_retry_recommendation(error_type: ApiErrorType) -> str:
    return RETRY_RECOMMENDATIONS.get(
        error_type, "Please try again. If the problem persists, contact support."
    )


def _exception_context(exception: StockDataError) -> Optional[str]:
    if isinstance(exception, RateLimitError):
        if exception.retry_after:
            return f"Please wait {exception.retry_after:.0f} seconds before trying again."
        return "Please wait a few minutes before trying again."
    if isinstance(exception, InvalidSymbolError):
        return f"Invalid symbols: {', '.join(exception.symbols)}"
    if isinstance(exception, AllProvidersFailedError):
        return None
    if isinstance(exception, ProviderUnavailableError):
        return f"Provider '{exception.provider}' is currently unavailable."
    if isinstance(exception, ProviderTimeoutError) and exception.timeout:
        return f"Request timed out after {exception.timeout:.0f} seconds."
    if isinstance(exception, CircuitBreakerOpenError):
        return f"Service will retry automatically in {exception.retry_after / 60:.1f} minutes."
    return None


def get_user_friendly_message(
    error: Union[ApiErrorType, BaseException],
    additional_context: Optional[str] = None,
) -> str:
    """
    Get a user-facing message for an error type or exception.

    Args:
        error: An ApiErrorType or any exception
        additional_context: Extra text appended to the message
    """
    if isinstance(error, ApiErrorType):
        message = ERROR_MESSAGES.get(error, ERROR_MESSAGES[ApiErrorType.UNKNOWN_ERROR])
    elif isinstance(error, StockDataError):
        message = EXCEPTION_MESSAGES.get(type(error)) or ERROR_MESSAGES.get(
            error.error_type, ERROR_MESSAGES[ApiErrorType.UNKNOWN_ERROR]
        )
        context = _exception_context(error)
        if context:
            message = f"{message} {context}"
    elif isinstance(error, TimeoutError):
        message = "The request took too long to complete. Please try again."
    elif isinstance(error, ConnectionError):
        message = "Unable to connect to the stock data service. Please check your internet connection."
    elif isinstance(error, ValueError):
        message = "Invalid input provided. Please check your request and try again."
    else:
        message = "An unexpected error occurred. Please try again later."

    if additional_context:
        message = f"{message} {additional_context}"
    return message


def error_from_response(provider: str, response, symbols: Optional[list[str]] = None) -> StockDataError:
    """
    Build the typed exception for a failed transport response.

    Args:
        provider: Provider name for the exception
        response: Failed ApiResponse
        symbols: Symbols in the request, for InvalidSymbolError
    """
    error_type = response.error_type
    if response.status_code is not None and error_type in (
        ApiErrorType.CLIENT_ERROR, ApiErrorType.UNKNOWN_ERROR
    ):
        error_type = categorize_status(response.status_code)

    message = response.message or ERROR_MESSAGES.get(error_type, "Request failed")

    if error_type == ApiErrorType.AUTHENTICATION_ERROR:
        return AuthenticationError(provider, message)
    if error_type == ApiErrorType.RATE_LIMIT_EXCEEDED:
        return RateLimitError(provider, retry_after=response.retry_after)
    if error_type == ApiErrorType.INVALID_REQUEST:
        return InvalidSymbolError(provider, symbols or [], message)
    if error_type == ApiErrorType.TIMEOUT:
        return ProviderTimeoutError(provider, message)
    if error_type == ApiErrorType.NETWORK_ERROR:
        return NetworkError(provider, message)
    if error_type == ApiErrorType.DATA_ERROR:
        return DataParsingError(provider, message)

    logger.debug(f"Mapping {error_type.value} from {provider} to ProviderUnavailableError")
    return ProviderUnavailableError(provider, message, error_type=error_type)
