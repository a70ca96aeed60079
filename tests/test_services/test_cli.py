"""Tests for the command-line trigger."""
import pytest

import property_scraper.__main__ as cli
from property_scraper.services.storage_service import StatusStore
from tests.conftest import StubScraper, make_result


@pytest.fixture
def stub_registry(monkeypatch):
    registry = {
        "mercadolibre": lambda: StubScraper(make_result(total=3)),
        "scrapedo": lambda: StubScraper(make_result(success=False, errors=["403"])),
    }
    monkeypatch.setattr(cli, "build_registry", lambda names=None, database_url=None: registry)
    return registry


@pytest.mark.asyncio
async def test_run_single_source(stub_registry, database_url):
    ok = await cli.run("mercadolibre", parallel=False, database_url=database_url, create_tables=True)
    assert ok is True

    store = StatusStore(database_url)
    try:
        saved = await store.get_scraper_status("mercadolibre")
        assert saved.total_scraped == 3
    finally:
        await store.close()


@pytest.mark.asyncio
async def test_run_all_reports_failure(stub_registry, database_url):
    ok = await cli.run("all", parallel=True, database_url=database_url, create_tables=True)
    assert ok is False


def test_main_exit_codes(monkeypatch):
    calls = []

    async def fake_run(source, parallel, database_url, create_tables):
        calls.append((source, parallel, create_tables))
        return source != "scrapedo"

    monkeypatch.setattr(cli, "run", fake_run)
    monkeypatch.setattr(cli, "setup_logging", lambda: None)

    assert cli.main(["mercadolibre"]) == 0
    assert cli.main(["scrapedo", "--create-tables"]) == 1
    assert cli.main(["--parallel"]) == 0
    assert calls == [
        ("mercadolibre", False, False),
        ("scrapedo", False, True),
        ("all", True, False),
    ]
