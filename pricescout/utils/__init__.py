"""Utils module for PriceScout."""

from pricescout.utils.logger import LogContext, get_logger, setup_logging
from pricescout.utils.retry import (
    async_retry,
    CircuitBreaker,
    ErrorHandler,
    AppError,
    SourceUnavailableError,
    NetworkError,
    RateLimitError,
    ExtractionFailure,
    ValidationCollaboratorError,
    InvalidRequestError,
    ConfigLoadError,
    APIKeyError,
    AppTimeoutError,
    ServiceUnavailableError,
)

__all__ = [
    "get_logger",
    "setup_logging",
    "LogContext",
    "async_retry",
    "CircuitBreaker",
    "ErrorHandler",
    "AppError",
    "SourceUnavailableError",
    "NetworkError",
    "RateLimitError",
    "ExtractionFailure",
    "ValidationCollaboratorError",
    "InvalidRequestError",
    "ConfigLoadError",
    "APIKeyError",
    "AppTimeoutError",
    "ServiceUnavailableError",
]
