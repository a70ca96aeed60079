"""Database engine, session factory, and base model.

Every scraper and the orchestrator own their own engine, so nothing here is a
module-level singleton.
"""
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from property_scraper.config import settings


class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


def create_engine(database_url: str | None = None) -> AsyncEngine:
    """Create an async engine for ``database_url`` (defaults to settings)."""
    url = database_url or settings.database_url

    if url.startswith("sqlite"):
        engine = create_async_engine(url, echo=settings.debug)
        _enable_sqlite_savepoints(engine)
        return engine

    return create_async_engine(
        url,
        pool_size=5,
        max_overflow=10,
        pool_timeout=30,
        pool_recycle=1800,
        echo=settings.debug,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


def _enable_sqlite_savepoints(engine: AsyncEngine) -> None:
    """Let SQLAlchemy emit BEGIN itself so SAVEPOINTs nest inside the transaction."""

    @event.listens_for(engine.sync_engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")


async def init_models(engine: AsyncEngine) -> None:
    """Create all tables that do not exist yet."""
    # Registers the mapped classes on Base.metadata
    import property_scraper.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
