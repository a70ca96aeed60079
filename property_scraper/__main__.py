"""Command-line trigger: run one source, or all of them, once.

    python -m property_scraper mercadolibre
    python -m property_scraper all --parallel

Scheduling (cron, Cloud Scheduler, ...) is left to the caller.
"""
import argparse
import asyncio
import sys

from property_scraper.config import settings
from property_scraper.core.logging import get_logger, setup_logging
from property_scraper.database import create_engine, init_models
from property_scraper.schemas.scraper_schema import RunState
from property_scraper.scrapers.registry import build_registry
from property_scraper.services.orchestrator_service import ScraperOrchestrator

logger = get_logger(__name__)


async def run(source: str, parallel: bool, database_url: str, create_tables: bool) -> bool:
    """Run one cycle. Returns True when no source ended in failure."""
    if create_tables:
        engine = create_engine(database_url)
        try:
            await init_models(engine)
        finally:
            await engine.dispose()

    orchestrator = ScraperOrchestrator(build_registry(database_url=database_url), database_url=database_url)
    try:
        if source == "all":
            await orchestrator.run_all(parallel=parallel)
        else:
            await orchestrator.run_specific(source)
    finally:
        await orchestrator.close()

    statuses = orchestrator.get_status()
    for status in statuses:
        logger.info(
            "%s: %s, %d total, %d errors",
            status.name,
            status.status.value,
            status.total_scraped,
            len(status.errors),
            extra={"source": status.name, "status": status.status.value},
        )
    return all(status.status != RunState.FAILED for status in statuses)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Run property scrapers once")
    parser.add_argument(
        "source",
        nargs="?",
        default="all",
        help=f"Source name ({', '.join(settings.enabled_sources)}) or 'all'",
    )
    parser.add_argument("--parallel", action="store_true", help="Run all sources concurrently")
    parser.add_argument("--database-url", default=settings.database_url)
    parser.add_argument("--create-tables", action="store_true", help="Create missing tables first")
    args = parser.parse_args(argv)

    setup_logging()

    ok = asyncio.run(run(args.source, args.parallel, args.database_url, args.create_tables))
    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
