"""Tests for property and scraper status persistence."""
from datetime import datetime, timezone

import pytest
from sqlalchemy import event

from property_scraper.core.exceptions import PersistenceError
from property_scraper.schemas.property_schema import NormalizedProperty, Price
from property_scraper.schemas.scraper_schema import RunState, ScraperRunStatus
from property_scraper.services.storage_service import PropertyStore, StatusStore
from tests.conftest import make_property


def invalid_property(external_id: str) -> NormalizedProperty:
    """Bypasses validation so the row trips the database check constraint."""
    return NormalizedProperty.model_construct(
        source="test_source",
        external_id=external_id,
        price=Price.model_construct(amount=-1.0, currency="MXN"),
    )


@pytest.mark.asyncio
async def test_upsert_inserts(property_store: PropertyStore):
    batch = [make_property(external_id=f"EXT-{i}") for i in range(3)]
    saved = await property_store.upsert_properties(batch)
    assert saved == 3
    assert await property_store.count_properties() == 3


@pytest.mark.asyncio
async def test_empty_batch(property_store: PropertyStore):
    assert await property_store.upsert_properties([]) == 0


@pytest.mark.asyncio
async def test_upsert_is_idempotent(property_store: PropertyStore):
    batch = [make_property(external_id=f"EXT-{i}") for i in range(3)]
    await property_store.upsert_properties(batch)
    await property_store.upsert_properties(batch)
    assert await property_store.count_properties() == 3


@pytest.mark.asyncio
async def test_reingest_updates_price(property_store: PropertyStore):
    await property_store.upsert_properties([make_property(price={"amount": 1_000_000})])
    first = (await property_store.list_properties())[0]

    await property_store.upsert_properties([make_property(price={"amount": 950_000})])
    rows = await property_store.list_properties()
    assert len(rows) == 1
    assert float(rows[0].price_amount) == 950_000
    assert rows[0].id == first.id
    assert rows[0].last_updated >= first.last_updated


@pytest.mark.asyncio
async def test_same_external_id_different_source(property_store: PropertyStore):
    await property_store.upsert_properties([
        make_property(source="a", external_id="1"),
        make_property(source="b", external_id="1"),
    ])
    assert await property_store.count_properties() == 2
    assert await property_store.count_properties(source="a") == 1


@pytest.mark.asyncio
async def test_partial_batch_keeps_valid_rows(property_store: PropertyStore):
    batch = [make_property(external_id=f"EXT-{i}") for i in range(9)]
    batch.insert(4, invalid_property("BAD-1"))
    errors = []

    saved = await property_store.upsert_properties(batch, errors=errors)

    assert saved == 9
    assert await property_store.count_properties() == 9
    assert len(errors) == 1
    assert "BAD-1" in errors[0]


@pytest.mark.asyncio
async def test_transaction_failure_rolls_back_whole_batch(engine, property_store: PropertyStore):
    def drop_connection(conn, cursor, statement, parameters, context, executemany):
        if statement.lstrip().upper().startswith("INSERT") and "EXT-3" in str(parameters):
            raise OSError("connection lost")

    batch = [make_property(external_id=f"EXT-{i}") for i in range(5)]
    event.listen(engine.sync_engine, "before_cursor_execute", drop_connection)
    try:
        with pytest.raises(PersistenceError, match="connection lost"):
            await property_store.upsert_properties(batch)
    finally:
        event.remove(engine.sync_engine, "before_cursor_execute", drop_connection)

    assert await property_store.count_properties() == 0

    assert await property_store.upsert_properties(batch) == 5


@pytest.mark.asyncio
async def test_low_quality_rows_hidden_by_default(property_store: PropertyStore):
    await property_store.upsert_properties([
        make_property(external_id="priced"),
        make_property(external_id="unpriced", price={"amount": 0}),
    ])
    visible = await property_store.list_properties()
    assert [row.external_id for row in visible] == ["priced"]

    everything = await property_store.list_properties(include_low_quality=True)
    assert len(everything) == 2


@pytest.mark.asyncio
async def test_purge_low_quality(property_store: PropertyStore):
    await property_store.upsert_properties([
        make_property(external_id="priced"),
        make_property(external_id="unpriced-1", price={"amount": 0}),
        make_property(external_id="unpriced-2", price={"amount": None}),
    ])
    removed = await property_store.purge_low_quality()
    assert removed == 2
    assert await property_store.count_properties() == 1


@pytest.mark.asyncio
async def test_list_limit_and_source(property_store: PropertyStore):
    await property_store.upsert_properties(
        [make_property(source="a", external_id=str(i)) for i in range(5)]
        + [make_property(source="b", external_id="x")]
    )
    assert len(await property_store.list_properties(source="a", limit=2)) == 2
    assert len(await property_store.list_properties(source="b")) == 1


@pytest.mark.asyncio
async def test_status_upsert(status_store: StatusStore):
    await status_store.upsert_scraper_status(ScraperRunStatus(name="mercadolibre"))
    await status_store.upsert_scraper_status(
        ScraperRunStatus(
            name="mercadolibre",
            status=RunState.FAILED,
            total_scraped=42,
            errors=["boom"],
            last_run=datetime.now(timezone.utc),
        )
    )

    stored = await status_store.get_scraper_status("mercadolibre")
    assert stored.status == RunState.FAILED
    assert stored.total_scraped == 42
    assert stored.errors == ["boom"]
    assert stored.last_run is not None
    assert len(await status_store.list_scraper_status()) == 1


@pytest.mark.asyncio
async def test_status_missing(status_store: StatusStore):
    assert await status_store.get_scraper_status("nope") is None
