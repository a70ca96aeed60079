"""Storage service — transactional bulk upserts of properties and run status.

Upserts are keyed by (source, external_id) for properties and by name for
scraper status, so re-applying the same batch never duplicates rows.

Batch semantics:
- one transaction per batch
- each row runs inside its own SAVEPOINT; a failing row is rolled back to it,
  logged and reported, and the rest of the batch still commits
- a failure of the transaction itself rolls everything back and raises
  PersistenceError
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from property_scraper.core.exceptions import PersistenceError
from property_scraper.core.logging import get_logger
from property_scraper.database import create_engine, create_session_factory
from property_scraper.models import Property, ScraperStatus
from property_scraper.schemas.property_schema import NormalizedProperty
from property_scraper.schemas.scraper_schema import ScraperRunStatus

logger = get_logger(__name__)

# Columns refreshed when an already-known listing is ingested again
_MUTABLE_COLUMNS = (
    "price_amount",
    "price_currency",
    "listing_url",
    "images",
    "description",
    "contact_info",
    "last_updated",
)


def property_to_row(prop: NormalizedProperty) -> Dict[str, Any]:
    """Flatten a NormalizedProperty into column values."""
    return {
        "source": prop.source,
        "external_id": prop.external_id,
        "listing_url": prop.listing_url,
        "country": prop.country,
        "state_province": prop.state_province,
        "city": prop.city,
        "neighborhood": prop.neighborhood,
        "postal_code": prop.postal_code,
        "address": prop.address,
        "coordinates_lat": prop.coordinates.lat,
        "coordinates_lng": prop.coordinates.lng,
        "transaction_type": prop.transaction_type.value,
        "price_amount": prop.price.amount,
        "price_currency": prop.price.currency,
        "property_type": prop.property_type.value,
        "bedrooms": prop.bedrooms,
        "bathrooms": prop.bathrooms,
        "area_sqm": prop.area_sqm,
        "lot_size_sqm": prop.lot_size_sqm,
        "amenities": list(prop.amenities),
        "images": list(prop.images),
        "description": prop.description,
        "contact_info": prop.contact_info,
        "listing_date": prop.listing_date,
        "last_updated": datetime.now(timezone.utc),
    }


class _Store:
    """Owns one engine and session factory; close() disposes the pool."""

    def __init__(self, database_url: Optional[str] = None, engine: Optional[AsyncEngine] = None):
        self.engine = engine or create_engine(database_url)
        self._owns_engine = engine is None
        self.session_factory = create_session_factory(self.engine)

    def _insert(self, table):
        if self.engine.dialect.name == "postgresql":
            return postgresql.insert(table)
        return sqlite.insert(table)

    async def close(self) -> None:
        if self._owns_engine:
            await self.engine.dispose()


class PropertyStore(_Store):

    async def upsert_properties(
        self,
        properties: Sequence[NormalizedProperty],
        errors: Optional[List[str]] = None,
    ) -> int:
        """Upsert a batch in one transaction. Returns the number of rows saved.

        Per-row failures are appended to ``errors`` (when given) and skipped.
        """
        if not properties:
            return 0

        saved_count = 0
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    for prop in properties:
                        try:
                            async with session.begin_nested():
                                await session.execute(self._upsert_statement(prop))
                            saved_count += 1
                        except SQLAlchemyError as e:
                            message = f"Failed to save property {prop.source}/{prop.external_id}: {e}"
                            logger.error(message, extra={"source": prop.source})
                            if errors is not None:
                                errors.append(message)
        except (SQLAlchemyError, OSError) as e:
            logger.error("Transaction failed, batch rolled back: %s", str(e), exc_info=True)
            raise PersistenceError(f"Transaction failed: {e}") from e

        logger.info("Saved %d properties to database", saved_count)
        return saved_count

    def _upsert_statement(self, prop: NormalizedProperty):
        stmt = self._insert(Property).values(**property_to_row(prop))
        return stmt.on_conflict_do_update(
            index_elements=["source", "external_id"],
            set_={column: stmt.excluded[column] for column in _MUTABLE_COLUMNS},
        )

    async def list_properties(
        self,
        source: Optional[str] = None,
        include_low_quality: bool = False,
        limit: Optional[int] = None,
    ) -> List[Property]:
        """Read stored properties; zero-price rows are hidden unless asked for."""
        query = select(Property).order_by(Property.id)
        if source:
            query = query.where(Property.source == source)
        if not include_low_quality:
            query = query.where(Property.price_amount > 0)
        if limit:
            query = query.limit(limit)

        async with self.session_factory() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def count_properties(self, source: Optional[str] = None) -> int:
        query = select(func.count()).select_from(Property)
        if source:
            query = query.where(Property.source == source)
        async with self.session_factory() as session:
            result = await session.execute(query)
            return result.scalar_one()

    async def purge_low_quality(self, source: Optional[str] = None) -> int:
        """Delete rows without a usable price. Returns the number removed."""
        stmt = delete(Property).where(Property.price_amount <= 0)
        if source:
            stmt = stmt.where(Property.source == source)
        async with self.session_factory() as session:
            async with session.begin():
                result = await session.execute(stmt)
                removed = result.rowcount
        logger.info("Removed %d properties with zero price", removed)
        return removed


class StatusStore(_Store):

    async def upsert_scraper_status(self, status: ScraperRunStatus) -> None:
        values = {
            "name": status.name,
            "last_run": status.last_run,
            "status": status.status.value,
            "total_scraped": status.total_scraped,
            "errors": list(status.errors),
        }
        stmt = self._insert(ScraperStatus).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["name"],
            set_={key: stmt.excluded[key] for key in values if key != "name"},
        )
        async with self.session_factory() as session:
            async with session.begin():
                await session.execute(stmt)

    async def get_scraper_status(self, name: str) -> Optional[ScraperRunStatus]:
        async with self.session_factory() as session:
            row = await session.get(ScraperStatus, name)
            return ScraperRunStatus.model_validate(row) if row else None

    async def list_scraper_status(self) -> List[ScraperRunStatus]:
        async with self.session_factory() as session:
            result = await session.execute(select(ScraperStatus).order_by(ScraperStatus.name))
            return [ScraperRunStatus.model_validate(row) for row in result.scalars().all()]
