"""Source registry — name → definition builder.

Sources are plain data (SourceDefinition) dispatched through this map; the
SourceScraper engine is the same for all of them.
"""
from typing import Callable, Dict, Iterable, Optional

from property_scraper.config import settings
from property_scraper.core.exceptions import UnknownSourceError
from property_scraper.scrapers import mercadolibre, scrapedo
from property_scraper.scrapers.base import SourceDefinition, SourceScraper

SOURCES: Dict[str, Callable[[], SourceDefinition]] = {
    "mercadolibre": mercadolibre.build_definition,
    "scrapedo": scrapedo.build_definition,
}

ScraperFactory = Callable[[], SourceScraper]


def get_definition(name: str) -> SourceDefinition:
    builder = SOURCES.get(name)
    if builder is None:
        raise UnknownSourceError(f"Unknown scraper: {name}")
    return builder()


def scraper_factory(name: str, database_url: Optional[str] = None) -> ScraperFactory:
    """A factory building a fresh scraper (own session, limiter, breaker, engine) per run."""
    if name not in SOURCES:
        raise UnknownSourceError(f"Unknown scraper: {name}")

    def build() -> SourceScraper:
        return SourceScraper(get_definition(name), database_url=database_url)

    return build


def build_registry(
    names: Optional[Iterable[str]] = None,
    database_url: Optional[str] = None,
) -> Dict[str, ScraperFactory]:
    """Registry for the orchestrator, defaulting to the enabled sources."""
    selected = list(names) if names is not None else settings.enabled_sources
    return {name: scraper_factory(name, database_url) for name in selected}
