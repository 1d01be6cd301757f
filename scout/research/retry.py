"""Retry helper shared by every provider call."""

import logging
import time
from typing import Callable, Optional, TypeVar

from scout.config.settings import RetryPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ProviderError(Exception):
    """Exception raised when a provider call fails.

    ``retryable`` is False for failures another attempt cannot fix
    (authentication, bad request, malformed payload).
    """
    def __init__(self, provider: str, message: str, original_error: Optional[Exception] = None,
                 retryable: bool = True):
        self.provider = provider
        self.message = message
        self.original_error = original_error
        self.retryable = retryable
        super().__init__(f"{provider}: {message}")


def retry_call(
    fn: Callable[[], T],
    policy: Optional[RetryPolicy] = None,
    label: str = "call",
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Call fn with bounded retries and exponential backoff.

    Args:
        fn: Zero-argument callable
        policy: Attempt count and backoff schedule
        label: Name used in log messages
        sleep: Sleep function (injectable for tests)

    Returns:
        fn's return value

    Raises:
        The last exception once attempts are exhausted, or immediately for a
        non-retryable ProviderError
    """
    policy = policy or RetryPolicy()
    backoff = policy.initial_backoff_seconds

    for attempt in range(1, policy.max_retries + 1):
        try:
            return fn()
        except ProviderError as e:
            if not e.retryable or attempt >= policy.max_retries:
                logger.error(f"{label} failed after {attempt} attempt(s): {e}")
                raise
            logger.warning(f"Retry {attempt}/{policy.max_retries} for {label} in {backoff}s: {e}")
        except Exception as e:
            if attempt >= policy.max_retries:
                logger.error(f"{label} failed after {attempt} attempt(s): {e}")
                raise
            logger.warning(f"Retry {attempt}/{policy.max_retries} for {label} in {backoff}s: {e}")
        sleep(backoff)
        backoff *= policy.backoff_multiplier

    # max_retries is at least 1, so the loop always returns or raises
    raise RuntimeError(f"{label}: retry loop exited without a result")
