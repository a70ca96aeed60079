"""Retry with exponential backoff and jitter for async operations.

Retryable by default:
- connection resets, refused connections and DNS failures
- timeouts
- HTTP 429 / 502 / 503 / 504

Everything else, notably 401/403, is re-raised on the first failure.
"""
import asyncio
import random
from dataclasses import dataclass, field
from typing import Awaitable, Callable, TypeVar

import requests

from property_scraper.core.exceptions import HttpStatusError
from property_scraper.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

RETRYABLE_STATUS_CODES = frozenset({429, 502, 503, 504})


def default_should_retry(error: BaseException) -> bool:
    """Classify network failures and throttling/gateway statuses as transient."""
    if isinstance(error, (requests.ConnectionError, requests.Timeout)):
        return True
    if isinstance(error, (ConnectionError, TimeoutError)):
        return True
    if isinstance(error, HttpStatusError):
        return error.status_code in RETRYABLE_STATUS_CODES
    return False


@dataclass
class RetryOptions:
    max_retries: int = 3
    initial_delay: float = 1.0          # seconds
    max_delay: float = 30.0             # seconds
    backoff_multiplier: float = 2.0
    jitter: float = 1.0                 # upper bound of the random extra delay, seconds
    should_retry: Callable[[BaseException], bool] = field(default=default_should_retry)

    def __post_init__(self) -> None:
        if self.max_retries < 1:
            raise ValueError("max_retries must be at least 1")


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    options: RetryOptions | None = None,
) -> T:
    """Run ``operation`` until it succeeds, the error is fatal, or the budget is spent.

    ``max_retries`` counts total attempts. The original exception is re-raised
    unchanged when retrying stops.
    """
    opts = options or RetryOptions()
    delay = opts.initial_delay

    for attempt in range(1, opts.max_retries + 1):
        try:
            return await operation()
        except Exception as e:
            if not opts.should_retry(e) or attempt == opts.max_retries:
                raise

            logger.warning(
                "Attempt %d failed: %s. Retrying in %.2fs...",
                attempt,
                str(e),
                delay,
                extra={"attempt": attempt, "delay": delay},
            )
            await asyncio.sleep(delay)

            delay = min(
                delay * opts.backoff_multiplier + random.uniform(0, opts.jitter),
                opts.max_delay,
            )

    # Unreachable: the loop either returns or raises
    raise RuntimeError("retry loop exited without a result")
