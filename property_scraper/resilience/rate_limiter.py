"""Per-scraper request spacing."""
import asyncio
import time

from property_scraper.core.logging import get_logger

logger = get_logger(__name__)


class RateLimiter:
    """Keeps at least ``60 / requests_per_minute`` seconds between requests."""

    def __init__(self, requests_per_minute: float):
        if requests_per_minute <= 0:
            raise ValueError("requests_per_minute must be positive")
        self.requests_per_minute = requests_per_minute
        self.min_interval = 60.0 / requests_per_minute
        self._last_request: float | None = None

    async def wait(self) -> None:
        """Sleep for whatever is left of the interval, then stamp this request."""
        if self._last_request is not None:
            elapsed = time.monotonic() - self._last_request
            if elapsed < self.min_interval:
                remaining = self.min_interval - elapsed
                logger.debug("Rate limiting: sleeping %.2f seconds", remaining)
                await asyncio.sleep(remaining)
        self._last_request = time.monotonic()
