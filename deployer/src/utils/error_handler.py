"""
Error handling utilities with exponential backoff retry logic.

Provides a retry decorator and error classification for transient vs
permanent failures when talking to the docker daemon and to the
application under test.
"""

import functools
import random
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional, Tuple, Type

import requests
import structlog

from ..errors import DockerUnavailableError

logger = structlog.get_logger(__name__)


class ErrorCategory(Enum):
    """Error category classification"""
    RETRYABLE = "retryable"
    NON_RETRYABLE = "non_retryable"


@dataclass
class RetryConfig:
    """Configuration for retry behavior"""
    max_attempts: int = 3
    initial_delay: float = 0.5  # seconds
    max_delay: float = 30.0  # seconds
    exponential_base: float = 2.0
    jitter: bool = True
    jitter_range: float = 0.2  # +/- 20%


@dataclass
class RetryMetrics:
    """Counters for retry operations"""
    total_attempts: int = 0
    successful_attempts: int = 0
    failed_attempts: int = 0
    retry_count: int = 0
    total_retry_duration_ms: float = 0.0
    last_error: Optional[str] = None
    last_error_timestamp: Optional[datetime] = None


# Retryable exception types
RETRYABLE_EXCEPTIONS: Tuple[Type[BaseException], ...] = (
    DockerUnavailableError,
    ConnectionError,
    TimeoutError,
    requests.ConnectionError,
    requests.Timeout,
)


def classify_error(exception: BaseException) -> ErrorCategory:
    """
    Classify an exception as retryable or non-retryable.

    Args:
        exception: The exception to classify

    Returns:
        ErrorCategory indicating retry behavior
    """
    if isinstance(exception, RETRYABLE_EXCEPTIONS):
        return ErrorCategory.RETRYABLE
    return ErrorCategory.NON_RETRYABLE


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """
    Calculate delay for retry attempt with exponential backoff and jitter.

    Args:
        attempt: Current attempt number (0-indexed)
        config: Retry configuration

    Returns:
        Delay in seconds
    """
    delay = config.initial_delay * (config.exponential_base ** attempt)
    delay = min(delay, config.max_delay)

    if config.jitter:
        jitter = random.uniform(-config.jitter_range, config.jitter_range)
        delay = delay * (1 + jitter)

    return max(0, delay)


def retry_with_backoff(
    config: Optional[RetryConfig] = None,
    on_retry: Optional[Callable[[int, BaseException, float], None]] = None,
    metrics: Optional[RetryMetrics] = None,
    sleep: Callable[[float], None] = time.sleep,
):
    """
    Decorator for retrying operations with exponential backoff.

    Args:
        config: Retry configuration (uses defaults if None)
        on_retry: Optional callback called on each retry
        metrics: Optional metrics object to track retry stats
        sleep: Sleep function, replaceable in tests

    Returns:
        Decorated function with retry logic

    Example:
        @retry_with_backoff(RetryConfig(max_attempts=5))
        def docker_version():
            return cli.run(["version"])
    """
    if config is None:
        config = RetryConfig()

    if metrics is None:
        metrics = RetryMetrics()

    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            for attempt in range(config.max_attempts):
                try:
                    metrics.total_attempts += 1
                    result = func(*args, **kwargs)
                    metrics.successful_attempts += 1
                    return result

                except Exception as e:
                    error_category = classify_error(e)
                    metrics.last_error = str(e)
                    metrics.last_error_timestamp = datetime.now(timezone.utc)

                    if error_category == ErrorCategory.NON_RETRYABLE:
                        metrics.failed_attempts += 1
                        raise

                    if attempt == config.max_attempts - 1:
                        logger.error(
                            "retries_exhausted",
                            function=func.__name__,
                            max_attempts=config.max_attempts,
                            total_retry_duration_ms=metrics.total_retry_duration_ms,
                            error_type=type(e).__name__,
                        )
                        metrics.failed_attempts += 1
                        raise

                    delay = calculate_delay(attempt, config)
                    metrics.retry_count += 1
                    metrics.total_retry_duration_ms += delay * 1000

                    logger.warning(
                        "retrying_after_error",
                        function=func.__name__,
                        attempt=attempt + 1,
                        max_attempts=config.max_attempts,
                        delay_seconds=round(delay, 2),
                        error_type=type(e).__name__,
                        error=str(e),
                    )

                    if on_retry:
                        on_retry(attempt, e, delay)

                    sleep(delay)

        wrapper.retry_metrics = metrics
        return wrapper

    return decorator
