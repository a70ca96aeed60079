"""Test fixtures — SQLite test database, fake HTTP session, factories."""
import asyncio
import os
import time
from datetime import datetime, timezone

os.environ.setdefault("API_KEY", "test-api-key")

from typing import AsyncGenerator, Dict, List, Optional

import pytest
import pytest_asyncio
from bs4 import BeautifulSoup
from sqlalchemy.ext.asyncio import AsyncEngine

from property_scraper.database import create_engine, init_models
from property_scraper.resilience.retry import RetryOptions
from property_scraper.schemas.property_schema import NormalizedProperty
from property_scraper.schemas.scraper_schema import ScraperResult
from property_scraper.scrapers.base import Location, SourceDefinition, SourceScraper
from property_scraper.services.storage_service import PropertyStore, StatusStore


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"


@pytest_asyncio.fixture(scope="function")
async def engine(database_url: str) -> AsyncGenerator[AsyncEngine, None]:
    """Create tables in a fresh SQLite file and yield the engine."""
    test_engine = create_engine(database_url)
    await init_models(test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def property_store(engine: AsyncEngine) -> PropertyStore:
    return PropertyStore(engine=engine)


@pytest_asyncio.fixture(scope="function")
async def status_store(engine: AsyncEngine) -> StatusStore:
    return StatusStore(engine=engine)


def make_property(**overrides) -> NormalizedProperty:
    """Create a valid NormalizedProperty."""
    defaults = {
        "source": "test_source",
        "external_id": "EXT-1",
        "country": "Mexico",
        "state_province": "Jalisco",
        "city": "Guadalajara",
        "neighborhood": "Providencia",
        "address": "Av. Providencia 123",
        "transaction_type": "sale",
        "price": {"amount": 3_500_000, "currency": "MXN"},
        "property_type": "casa",
        "bedrooms": 3,
        "bathrooms": 2.5,
        "area_sqm": 180.0,
        "images": ["https://example.com/img1.jpg"],
        "description": "Casa en Providencia",
        "contact_info": "https://example.com/MLM-1",
    }
    defaults.update(overrides)
    return NormalizedProperty(**defaults)


FAST_RETRY = RetryOptions(max_retries=3, initial_delay=0, max_delay=0, jitter=0)


class FakeResponse:
    def __init__(self, text: str = "", status_code: int = 200):
        self.text = text
        self.status_code = status_code


class FakeSession:
    """Stands in for requests.Session.

    ``routes`` maps a full URL to a list of outcomes consumed in order (the
    last one repeats). An outcome is a FakeResponse, an HTML string, or an
    exception instance to raise. Unknown URLs answer an empty page.
    """

    def __init__(self, routes: Optional[Dict[str, list]] = None):
        self.routes = {url: list(outcomes) for url, outcomes in (routes or {}).items()}
        self.headers: Dict[str, str] = {}
        self.calls: List[str] = []
        self.stamps: List[float] = []
        self.closed = False

    def get(self, url: str, timeout: float = 30):
        self.calls.append(url)
        self.stamps.append(time.monotonic())
        outcomes = self.routes.get(url)
        if not outcomes:
            return FakeResponse("<html><body></body></html>")
        outcome = outcomes.pop(0) if len(outcomes) > 1 else outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        if isinstance(outcome, str):
            return FakeResponse(outcome)
        return outcome

    def close(self) -> None:
        self.closed = True


def listing_page(*items: dict) -> str:
    """HTML page of simple listing cards."""
    cards = "".join(
        '<div class="item" data-id="{id}" data-price="{price}" data-city="{city}">{title}</div>'.format(
            id=item.get("id", ""),
            price=item.get("price", "1,000,000"),
            city=item.get("city", "Monterrey"),
            title=item.get("title", "Casa"),
        )
        for item in items
    )
    return f"<html><body>{cards}</body></html>"


def _extract_items(html: str):
    return BeautifulSoup(html, "lxml").select("div.item")


def _parse_item(item, location: Location):
    if item.get("data-id") == "broken":
        raise ValueError("unexpected card layout")
    if item.get("data-id") == "keyless":
        raise KeyError("data-ref")
    return {
        "external_id": item.get("data-id"),
        "address": item.get_text(strip=True),
        "city": item.get("data-city"),
        "price": item.get("data-price"),
        "property_type": location.property_type_hint,
        "transaction_type": location.transaction_type,
    }


def make_definition(name: str = "test_source", slugs=("north", "south"), max_pages: int = 5) -> SourceDefinition:
    """A source over https://<name>.test/listings/<slug>?page=<n>."""
    return SourceDefinition(
        name=name,
        base_url=f"https://{name}.test",
        locations=tuple(Location(slug=slug, path=slug, property_type_hint="house") for slug in slugs),
        page_url=lambda location, page: f"/listings/{location.path}?page={page}",
        extract_items=_extract_items,
        parse_item=_parse_item,
        rate_limit=60_000,
        max_pages=max_pages,
    )


def page_url_for(name: str, slug: str, page: int) -> str:
    return f"https://{name}.test/listings/{slug}?page={page}"


def make_scraper(
    definition: SourceDefinition,
    session: FakeSession,
    store,
    **kwargs,
) -> SourceScraper:
    kwargs.setdefault("retry_options", FAST_RETRY)
    return SourceScraper(definition, store=store, session=session, **kwargs)


def make_result(success: bool = True, total: int = 0, errors=None) -> ScraperResult:
    now = datetime.now(timezone.utc)
    return ScraperResult(success=success, total_scraped=total, errors=errors or [], start_time=now, end_time=now)


class StubScraper:
    """Scraper double: optionally waits on ``gate``, then returns or raises ``outcome``."""

    def __init__(self, outcome, gate: Optional[asyncio.Event] = None, started: Optional[list] = None, name: str = ""):
        self.outcome = outcome
        self.gate = gate
        self.started = started
        self.name = name

    async def scrape(self):
        if self.started is not None:
            self.started.append(self.name)
        if self.gate is not None:
            await self.gate.wait()
        if isinstance(self.outcome, BaseException):
            raise self.outcome
        return self.outcome


class MemoryStatusStore:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.saved = {}

    async def upsert_scraper_status(self, status):
        if self.fail:
            raise OSError("database unreachable")
        self.saved[status.name] = status.model_copy(deep=True)

    async def close(self):
        pass
