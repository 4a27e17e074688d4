"""
Resilient error handling utilities.

Provides the application exception taxonomy, retry logic, a per-source
circuit breaker, and centralized error categorization. No single source or
validation failure is allowed to abort a search; these types tell each
layer how to degrade.
"""

import asyncio
from datetime import datetime
from functools import wraps
from typing import Callable, Optional, Type

from pricescout.utils.logger import get_logger

logger = get_logger(__name__)

# =============================================================================
# Custom Exceptions
# =============================================================================

class AppError(Exception):
    """Base application exception."""
    pass

class SourceUnavailableError(AppError):
    """A source could not be reached or answered with an error status."""

    def __init__(self, source_id: str, message: str):
        self.source_id = source_id
        super().__init__(f"{source_id}: {message}")

class NetworkError(SourceUnavailableError):
    pass

class RateLimitError(SourceUnavailableError):
    pass

class ExtractionFailure(AppError):
    """One result element could not be parsed; the element is skipped."""
    pass

class ValidationCollaboratorError(AppError):
    """The product-match validator failed or returned a malformed batch."""
    pass

class InvalidRequestError(AppError):
    """A search request is missing required parameters or is malformed."""

    def __init__(self, message: str, field: Optional[str] = None, example: Optional[str] = None):
        self.field = field
        self.example = example
        super().__init__(message)

class ConfigLoadError(AppError):
    """The external source catalog could not be read or parsed."""
    pass

class APIKeyError(AppError):
    """A configured collaborator has no credentials."""
    pass

class AppTimeoutError(SourceUnavailableError):
    pass

class ServiceUnavailableError(AppError):
    pass

# =============================================================================
# Retry Decorator
# =============================================================================

def async_retry(
    max_attempts: int = 3,
    backoff_factor: float = 2.0,
    exceptions: tuple[Type[Exception], ...] = (Exception,),
    on_retry: Optional[Callable[[int, Exception], None]] = None
):
    """
    Retry decorator with exponential backoff.
    """
    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            last_exception = None
            wait_time = 1.0

            for attempt in range(1, max_attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    last_exception = e

                    if attempt == max_attempts:
                        logger.warning(
                            "retry_exhausted",
                            function=func.__name__,
                            attempt=attempt,
                            error=str(e),
                        )
                        break

                    sleep_time = wait_time * (backoff_factor ** (attempt - 1))

                    if on_retry:
                        on_retry(attempt, e)

                    logger.warning(
                        "retry_scheduled",
                        function=func.__name__,
                        attempt=attempt,
                        error=str(e),
                        sleep_seconds=round(sleep_time, 2),
                    )

                    await asyncio.sleep(sleep_time)

            if last_exception:
                raise last_exception
        return wrapper
    return decorator

# =============================================================================
# Circuit Breaker
# =============================================================================

class CircuitBreaker:
    """
    Circuit breaker for one remote source.

    After ``failure_threshold`` consecutive failures the circuit opens and
    calls fail fast with ServiceUnavailableError until ``recovery_timeout``
    seconds have passed; the next call is then a half-open trial.
    """

    def __init__(self, failure_threshold: int = 5, recovery_timeout: float = 60, name: str = "CircuitBreaker"):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.name = name

        self.failures = 0
        self.last_failure_time: Optional[datetime] = None
        self.state = "closed"  # closed, open, half-open

    def _should_attempt_reset(self) -> bool:
        if self.state != "open" or not self.last_failure_time:
            return False
        elapsed = (datetime.now() - self.last_failure_time).total_seconds()
        return elapsed > self.recovery_timeout

    def _on_success(self):
        if self.state != "closed":
            logger.info("circuit_closed", circuit=self.name)
        self.failures = 0
        self.state = "closed"
        self.last_failure_time = None

    def _on_failure(self):
        self.failures += 1
        self.last_failure_time = datetime.now()

        if self.state == "half-open":
            self.state = "open"
            logger.warning("circuit_reopened", circuit=self.name)
        elif self.failures >= self.failure_threshold and self.state == "closed":
            self.state = "open"
            logger.error("circuit_opened", circuit=self.name, failures=self.failures)

    async def call(self, func: Callable, *args, **kwargs):
        if self.state == "open":
            if self._should_attempt_reset():
                self.state = "half-open"
                logger.info("circuit_half_open", circuit=self.name)
            else:
                remaining = self.recovery_timeout - (datetime.now() - self.last_failure_time).total_seconds()
                raise ServiceUnavailableError(f"Circuit {self.name} is OPEN. Retry in {remaining:.1f}s")

        try:
            result = await func(*args, **kwargs)
        except Exception:
            self._on_failure()
            raise
        self._on_success()
        return result

# =============================================================================
# Error Handler
# =============================================================================

class ErrorHandler:
    """Centralized error handling and categorization."""

    @staticmethod
    def categorize_error(error: Exception) -> str:
        """Categorize errors for log tagging and fallback selection."""
        if isinstance(error, RateLimitError):
            return "RATE_LIMIT_ERROR"
        # TimeoutError subclasses OSError
        if isinstance(error, (AppTimeoutError, asyncio.TimeoutError)):
            return "TIMEOUT_ERROR"
        if isinstance(error, (SourceUnavailableError, ConnectionError, OSError)):
            return "SOURCE_UNAVAILABLE"
        if isinstance(error, ServiceUnavailableError):
            return "CIRCUIT_OPEN"
        if isinstance(error, ExtractionFailure):
            return "EXTRACTION_FAILURE"
        if isinstance(error, ValidationCollaboratorError):
            return "VALIDATION_COLLABORATOR_ERROR"
        if isinstance(error, (InvalidRequestError, ValueError, TypeError)):
            return "INVALID_REQUEST"
        if isinstance(error, ConfigLoadError):
            return "CONFIG_LOAD_ERROR"
        if isinstance(error, APIKeyError):
            return "API_KEY_ERROR"

        err_str = str(error).lower()
        if "rate limit" in err_str: return "RATE_LIMIT_ERROR"
        if "timeout" in err_str: return "TIMEOUT_ERROR"
        if "api key" in err_str or "unauthorized" in err_str: return "API_KEY_ERROR"
        if "connection" in err_str: return "SOURCE_UNAVAILABLE"

        return "UNKNOWN_ERROR"

    @staticmethod
    def get_fallback_strategy(error_type: str) -> Callable:
        """Get fallback strategy for error type."""
        strategies = {
            "SOURCE_UNAVAILABLE": lambda: {"status": "degraded", "retryable": True, "action": "skip_source"},
            "RATE_LIMIT_ERROR": lambda: {"status": "degraded", "retryable": True, "action": "skip_source"},
            "CIRCUIT_OPEN": lambda: {"status": "degraded", "retryable": False, "action": "skip_source"},
            "TIMEOUT_ERROR": lambda: {"status": "degraded", "retryable": True, "action": "skip_source"},
            "EXTRACTION_FAILURE": lambda: {"status": "degraded", "retryable": False, "action": "skip_element"},
            "VALIDATION_COLLABORATOR_ERROR": lambda: {"status": "degraded", "retryable": False, "action": "keep_heuristic_scores"},
            "INVALID_REQUEST": lambda: {"status": "failed", "retryable": False, "action": "return_error"},
            "CONFIG_LOAD_ERROR": lambda: {"status": "degraded", "retryable": False, "action": "use_builtin_sources"},
            "API_KEY_ERROR": lambda: {"status": "failed", "retryable": False, "action": "fail_fast"},
        }
        return strategies.get(error_type, lambda: {"status": "failed", "action": "log_and_return_empty"})
