"""FastAPI application factory — admin surface over the scraper orchestrator.

/health stays public for container healthchecks; everything under /api/v1
requires the X-API-Key header.
"""
from contextlib import asynccontextmanager
from typing import Optional
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from property_scraper.api.deps import RequireApiKey
from property_scraper.api.responses import error, ok
from property_scraper.api.v1.scrapers import router as scrapers_router
from property_scraper.config import settings
from property_scraper.core.exceptions import (
    AppException,
    ConfigurationError,
    JobAlreadyRunningError,
    UnknownSourceError,
)
from property_scraper.core.logging import get_logger, setup_logging
from property_scraper.scrapers.registry import build_registry
from property_scraper.services.orchestrator_service import ScraperOrchestrator

logger = get_logger(__name__)


def create_app(orchestrator: Optional[ScraperOrchestrator] = None) -> FastAPI:
    """Create and configure the FastAPI application."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging()
        logger.info("Starting %s v%s", settings.app_name, settings.app_version)

        if not settings.api_key:
            logger.warning("API_KEY not configured, admin endpoints will answer 500.")

        owned = app.state.orchestrator is None
        if owned:
            app.state.orchestrator = ScraperOrchestrator(build_registry())

        yield

        if owned:
            await app.state.orchestrator.close()
        logger.info("Shutting down %s", settings.app_name)

    application = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Admin API for the property scraper: trigger runs and read scraper status.",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    application.state.orchestrator = orchestrator

    @application.middleware("http")
    async def add_trace_id(request: Request, call_next):
        request.state.trace_id = str(uuid4())
        response = await call_next(request)
        response.headers["X-Trace-Id"] = request.state.trace_id
        return response

    @application.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        trace_id = getattr(request.state, "trace_id", None)
        logger.exception("Unhandled exception [trace_id=%s]", trace_id, exc_info=exc)
        return JSONResponse(status_code=500, content=error("Internal server error", request))

    @application.exception_handler(UnknownSourceError)
    async def unknown_source_handler(request: Request, exc: UnknownSourceError):
        return JSONResponse(status_code=404, content=error(str(exc), request))

    @application.exception_handler(JobAlreadyRunningError)
    async def job_running_handler(request: Request, exc: JobAlreadyRunningError):
        return JSONResponse(status_code=409, content=error(str(exc), request))

    @application.exception_handler(ConfigurationError)
    async def configuration_handler(request: Request, exc: ConfigurationError):
        return JSONResponse(status_code=500, content=error(str(exc), request))

    @application.exception_handler(AppException)
    async def app_exception_handler(request: Request, exc: AppException):
        return JSONResponse(status_code=400, content=error(str(exc), request))

    application.include_router(
        scrapers_router,
        prefix="/api/v1/scrapers",
        tags=["scrapers"],
        dependencies=[RequireApiKey],
    )

    @application.get("/health", tags=["system"])
    async def health_check(request: Request):
        db_status = "ok"
        try:
            engine = request.app.state.orchestrator.status_store.engine
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except Exception as e:
            db_status = f"error: {str(e)}"

        return ok(
            {
                "status": "healthy" if db_status == "ok" else "unhealthy",
                "version": settings.app_version,
                "database": db_status,
                "scraping": request.app.state.orchestrator.is_running,
            },
            "Health check completed",
            request,
        )

    return application


app = create_app()
