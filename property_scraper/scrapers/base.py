"""SourceScraper — one generic engine, parameterized per source.

A source is described by a SourceDefinition (locations to walk, how to build
page URLs, how to split a page into items and how to parse one item). The
engine supplies everything else:

1. Rate limiting before every fetch (per instance)
2. Circuit breaker around the fetch (per instance)
3. Retries with exponential backoff inside the breaker; 401/403/501 never retried
4. Bounded, in-order pagination per location, stopping on the first empty page
5. Per-item parse errors skipped and recorded, page-level errors abandon the location
6. One transactional bulk upsert per location
7. Guaranteed cleanup of the HTTP session and the database engine

NOTE: requests is synchronous, so each GET runs through asyncio.to_thread to
keep the event loop free.
"""
import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
from urllib.parse import urljoin

import requests

from property_scraper.config import settings
from property_scraper.core.exceptions import (
    AuthorizationError,
    HttpStatusError,
    RateLimitError,
)
from property_scraper.core.logging import get_logger
from property_scraper.resilience.circuit_breaker import CircuitBreaker
from property_scraper.resilience.rate_limiter import RateLimiter
from property_scraper.resilience.retry import RetryOptions, default_should_retry, with_retry
from property_scraper.schemas.property_schema import NormalizedProperty
from property_scraper.schemas.scraper_schema import ScraperConfig, ScraperResult
from property_scraper.services.mapper_service import build_property
from property_scraper.services.storage_service import PropertyStore

logger = get_logger(__name__)

AUTH_STATUS_CODES = (401, 403)
# Server errors that will not go away on their own
PERMANENT_SERVER_CODES = (501,)
MAX_CONSECUTIVE_AUTH_FAILURES = 3


@dataclass(frozen=True)
class Location:
    """One target of a source: a city/category pair walked page by page."""
    slug: str
    path: str
    transaction_type: str = "sale"
    property_type_hint: Optional[str] = None


@dataclass(frozen=True)
class SourceDefinition:
    """Everything that is specific to one source."""
    name: str
    base_url: str
    locations: Tuple[Location, ...]
    page_url: Callable[[Location, int], str]
    extract_items: Callable[[str], Sequence[Any]]
    parse_item: Callable[[Any, Location], Optional[Dict[str, Any]]]
    request_url: Callable[[str], str] = lambda url: url
    headers: Dict[str, str] = field(default_factory=dict)
    rate_limit: float = field(default_factory=lambda: settings.default_rate_limit)
    timeout: float = field(default_factory=lambda: settings.request_timeout)
    max_pages: int = field(default_factory=lambda: settings.default_max_pages)


class SourceScraper:
    """Resilient fetch + parse + persist engine for one source."""

    def __init__(
        self,
        definition: SourceDefinition,
        config: Optional[ScraperConfig] = None,
        store: Optional[PropertyStore] = None,
        session: Optional[requests.Session] = None,
        retry_options: Optional[RetryOptions] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        database_url: Optional[str] = None,
    ):
        self.definition = definition
        self.config = config or ScraperConfig(
            name=definition.name,
            base_url=definition.base_url,
            rate_limit=definition.rate_limit,
            headers=definition.headers,
            timeout=definition.timeout,
            max_pages=definition.max_pages,
        )
        self.name = self.config.name

        self.rate_limiter = RateLimiter(self.config.rate_limit)
        self.circuit_breaker = circuit_breaker or CircuitBreaker(
            threshold=settings.circuit_breaker_threshold,
            timeout=settings.circuit_breaker_timeout,
            name=self.name,
        )
        base_retry = retry_options or RetryOptions(
            max_retries=settings.retry_max_attempts,
            initial_delay=settings.retry_initial_delay,
            max_delay=settings.retry_max_delay,
            backoff_multiplier=settings.retry_backoff_multiplier,
        )
        self.retry_options = RetryOptions(
            max_retries=base_retry.max_retries,
            initial_delay=base_retry.initial_delay,
            max_delay=base_retry.max_delay,
            backoff_multiplier=base_retry.backoff_multiplier,
            jitter=base_retry.jitter,
            should_retry=self._should_retry,
        )

        self._session = session or requests.Session()
        self._session.headers.update({
            "User-Agent": self.config.user_agent or settings.default_user_agent,
            **self.config.headers,
        })

        self.store = store or PropertyStore(database_url)
        self.errors: List[str] = []
        self.total_saved = 0

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    async def rate_limit(self) -> None:
        await self.rate_limiter.wait()

    def _should_retry(self, error: BaseException) -> bool:
        if isinstance(error, HttpStatusError):
            if error.status_code in AUTH_STATUS_CODES:
                logger.error(
                    "Authentication/Authorization error - not retrying",
                    extra={"source": self.name, "status": error.status_code},
                )
                return False
            if error.status_code >= 500:
                return error.status_code not in PERMANENT_SERVER_CODES
        return default_should_retry(error)

    def _get(self, url: str) -> str:
        response = self._session.get(url, timeout=self.config.timeout)
        if response.status_code == 429:
            raise RateLimitError(429, url)
        if response.status_code >= 400:
            raise HttpStatusError(response.status_code, url)
        return response.text

    async def fetch_with_retry(self, url: str) -> str:
        """GET ``url`` (relative to the base URL) through limiter, breaker and retry."""
        target = urljoin(self.config.base_url.rstrip("/") + "/", url)
        request_url = self.definition.request_url(target)

        await self.rate_limit()

        async def attempt() -> str:
            return await asyncio.to_thread(self._get, request_url)

        return await self.circuit_breaker.execute(
            lambda: with_retry(attempt, self.retry_options)
        )

    # ------------------------------------------------------------------
    # Parsing
    # ------------------------------------------------------------------

    def parse_page(self, html: str, location: Location) -> List[NormalizedProperty]:
        """Parse every item on a page, skipping the ones that fail."""
        properties: List[NormalizedProperty] = []
        for item in self.definition.extract_items(html):
            try:
                raw = self.definition.parse_item(item, location)
                if raw is None:
                    continue
                properties.append(build_property(self.name, raw))
            except Exception as e:
                self.log_error(f"Failed to parse property: {e}")
        return properties

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def save_properties(self, properties: Sequence[NormalizedProperty]) -> int:
        """Persist a batch transactionally; returns the number of rows saved."""
        saved = await self.store.upsert_properties(properties, errors=self.errors)
        self.total_saved += saved
        return saved

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def log_error(self, error: str) -> None:
        self.errors.append(error)
        logger.error("[%s] %s", self.name, error, extra={"source": self.name})

    async def scrape_location(self, location: Location) -> List[NormalizedProperty]:
        """Walk pages 1..max_pages in order; stop at the first page with no records.

        A fetch or page-level parse error abandons the location. Authorization failures propagate so
        the caller can count them.
        """
        properties: List[NormalizedProperty] = []

        for page in range(1, self.config.max_pages + 1):
            url = self.definition.page_url(location, page)
            logger.info(
                "Fetching page %d: %s",
                page,
                url,
                extra={"source": self.name, "url": url, "page": page},
            )
            try:
                html = await self.fetch_with_retry(url)
            except HttpStatusError as e:
                if e.status_code in AUTH_STATUS_CODES:
                    raise AuthorizationError(str(e), {"status_code": e.status_code}) from e
                self.log_error(f"Failed to fetch page {page} of {location.slug}: {e}")
                break
            except Exception as e:
                self.log_error(f"Failed to fetch page {page} of {location.slug}: {e}")
                break

            try:
                page_properties = self.parse_page(html, location)
            except Exception as e:
                self.log_error(f"Failed to parse page {page} of {location.slug}: {e}")
                break

            if not page_properties:
                logger.info(
                    "No more properties found for %s at page %d",
                    location.slug,
                    page,
                    extra={"source": self.name, "page": page},
                )
                break
            properties.extend(page_properties)

        return properties

    async def perform_scraping(self) -> int:
        """Scrape every configured location and save each location's batch."""
        total = 0
        consecutive_auth_failures = 0

        for location in self.definition.locations:
            logger.info("Scraping %s...", location.slug, extra={"source": self.name})
            try:
                properties = await self.scrape_location(location)
            except AuthorizationError as e:
                consecutive_auth_failures += 1
                self.log_error(f"Authorization rejected for {location.slug}: {e}")
                if consecutive_auth_failures >= MAX_CONSECUTIVE_AUTH_FAILURES:
                    raise AuthorizationError(
                        f"{consecutive_auth_failures} consecutive authorization failures, aborting"
                    ) from e
                continue
            consecutive_auth_failures = 0

            saved = await self.save_properties(properties)
            total += saved
            logger.info(
                "Scraped %d properties, saved %d",
                len(properties),
                saved,
                extra={"source": self.name},
            )

        return total

    async def scrape(self) -> ScraperResult:
        """Run the scraper. Failures are contained in the result, never raised."""
        start_time = datetime.now(timezone.utc)
        logger.info("Starting %s scraper...", self.name, extra={"source": self.name})

        try:
            await self.perform_scraping()
            success = True
        except Exception as e:
            self.log_error(f"Scraper failed: {e}")
            success = False
        finally:
            await self.cleanup()

        end_time = datetime.now(timezone.utc)
        logger.info(
            "%s scraper finished: %d properties saved",
            self.name,
            self.total_saved,
            extra={"source": self.name, "duration": (end_time - start_time).total_seconds()},
        )
        return ScraperResult(
            success=success,
            total_scraped=self.total_saved,
            errors=list(self.errors),
            start_time=start_time,
            end_time=end_time,
        )

    async def cleanup(self) -> None:
        """Release the HTTP session and the storage engine."""
        try:
            self._session.close()
        finally:
            await self.store.close()
