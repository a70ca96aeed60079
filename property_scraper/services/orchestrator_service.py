"""Scraper orchestrator — runs registered sources and tracks their status.

This service:
1. Holds the registry of source name → scraper factory
2. Runs all sources sequentially or concurrently (settle-all), or one by name
3. Refuses to overlap cycles: a call while one is running is a logged no-op
4. Keeps per-source status (idle/running/failed, totals, last errors, last run)
5. Upserts every source's status after each cycle, whatever the outcome
"""
import asyncio
from datetime import datetime, timezone
from typing import Dict, List, Optional

from property_scraper.core.exceptions import UnknownSourceError
from property_scraper.core.logging import get_logger, set_correlation_id
from property_scraper.scrapers.registry import ScraperFactory
from property_scraper.schemas.scraper_schema import RunState, ScraperRunStatus
from property_scraper.services.storage_service import StatusStore

logger = get_logger(__name__)


class ScraperOrchestrator:

    def __init__(
        self,
        scrapers: Dict[str, ScraperFactory],
        status_store: Optional[StatusStore] = None,
        database_url: Optional[str] = None,
    ):
        self.scrapers = dict(scrapers)
        self.status_store = status_store or StatusStore(database_url)
        self.status: Dict[str, ScraperRunStatus] = {
            name: ScraperRunStatus(name=name) for name in self.scrapers
        }
        self.is_running = False

    async def run_all(self, parallel: bool = False) -> None:
        if self.is_running:
            logger.info("Scraping already in progress")
            return

        self.is_running = True
        set_correlation_id()
        logger.info(
            "Starting scraping orchestration (%s)...",
            "parallel" if parallel else "sequential",
        )

        try:
            if parallel:
                await self._run_parallel()
            else:
                await self._run_sequential()
        finally:
            self.is_running = False
            await self.save_status()

    async def run_specific(self, name: str) -> None:
        factory = self.scrapers.get(name)
        if factory is None:
            raise UnknownSourceError(f"Unknown scraper: {name}")

        if self.is_running:
            logger.info("Scraping already in progress")
            return

        self.is_running = True
        set_correlation_id()
        try:
            await self._run_scraper(name, factory)
        finally:
            self.is_running = False
            await self.save_status()

    async def _run_sequential(self) -> None:
        for name, factory in self.scrapers.items():
            await self._run_scraper(name, factory)

    async def _run_parallel(self) -> None:
        await asyncio.gather(
            *(self._run_scraper(name, factory) for name, factory in self.scrapers.items()),
            return_exceptions=True,
        )

    async def _run_scraper(self, name: str, factory: ScraperFactory) -> None:
        status = self.status[name]
        status.status = RunState.RUNNING
        status.errors = []

        logger.info("Starting %s scraper...", name, extra={"source": name})

        try:
            scraper = factory()
            result = await scraper.scrape()

            status.status = RunState.IDLE if result.success else RunState.FAILED
            status.last_run = datetime.now(timezone.utc)
            status.total_scraped += result.total_scraped
            status.errors = list(result.errors)

            logger.info(
                "%s scraper finished: %d properties scraped",
                name,
                result.total_scraped,
                extra={"source": name, "status": status.status.value},
            )
        except Exception as e:
            status.status = RunState.FAILED
            status.last_run = datetime.now(timezone.utc)
            status.errors.append(str(e))
            logger.error("%s scraper failed: %s", name, str(e), exc_info=True, extra={"source": name})

    def get_status(self) -> List[ScraperRunStatus]:
        """Point-in-time copy of every source's status."""
        return [status.model_copy(deep=True) for status in self.status.values()]

    async def save_status(self) -> None:
        try:
            for status in self.status.values():
                await self.status_store.upsert_scraper_status(status)
        except Exception as e:
            logger.error("Failed to save scraper status: %s", str(e), exc_info=True)

    async def close(self) -> None:
        await self.status_store.close()
