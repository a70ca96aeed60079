"""Scrapers admin router — trigger runs and read run status.
/api/v1/scrapers
"""
from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends, Request

from property_scraper.api.deps import get_orchestrator
from property_scraper.api.responses import ok
from property_scraper.core.exceptions import JobAlreadyRunningError, UnknownSourceError
from property_scraper.schemas.base_schema import ApiResponse
from property_scraper.schemas.scraper_schema import RunRequest, ScraperRunStatus
from property_scraper.services.orchestrator_service import ScraperOrchestrator


router = APIRouter()


@router.get("/status", response_model=ApiResponse[List[ScraperRunStatus]])
async def get_status(
    request: Request,
    orchestrator: ScraperOrchestrator = Depends(get_orchestrator),
):
    """Current in-memory status of every registered source."""
    return ok(orchestrator.get_status(), "Scraper status retrieved", request)


@router.post("/run", response_model=ApiResponse[List[ScraperRunStatus]], status_code=202)
async def run_scrapers(
    request: Request,
    payload: RunRequest,
    background_tasks: BackgroundTasks,
    orchestrator: ScraperOrchestrator = Depends(get_orchestrator),
):
    """Start a cycle in the background (one cycle at a time)."""
    if payload.source != "all" and payload.source not in orchestrator.scrapers:
        raise UnknownSourceError(f"Unknown scraper: {payload.source}")
    if orchestrator.is_running:
        raise JobAlreadyRunningError("A scraping cycle is already running. Wait for it to finish.")

    if payload.source == "all":
        background_tasks.add_task(orchestrator.run_all, payload.parallel)
    else:
        background_tasks.add_task(orchestrator.run_specific, payload.source)

    return ok(orchestrator.get_status(), "Scraping cycle scheduled", request)
