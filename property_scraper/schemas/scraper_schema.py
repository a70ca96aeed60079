"""Pydantic schemas for scraper configuration, run results and run status."""
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ScraperConfig(BaseModel):
    """Fetch configuration owned by one SourceScraper."""
    name: str
    base_url: str
    rate_limit: float = Field(30, gt=0, description="Requests per minute")
    user_agent: Optional[str] = None
    headers: Dict[str, str] = Field(default_factory=dict)
    timeout: float = Field(30, gt=0, description="Per-request timeout (seconds)")
    max_pages: int = Field(5, ge=1, description="Page cap per location")


class ScraperResult(BaseModel):
    success: bool
    total_scraped: int = 0
    errors: List[str] = Field(default_factory=list)
    start_time: datetime
    end_time: datetime


class RunState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    FAILED = "failed"


class ScraperRunStatus(BaseModel):
    """Per-source bookkeeping kept by the orchestrator."""
    model_config = ConfigDict(from_attributes=True)

    name: str
    last_run: Optional[datetime] = None
    status: RunState = RunState.IDLE
    total_scraped: int = 0
    errors: List[str] = Field(default_factory=list)


class RunRequest(BaseModel):
    """Schema for triggering an orchestration cycle."""
    source: str = Field("all", description="Registered source name, or 'all'")
    parallel: bool = Field(False, description="Run all sources concurrently (only with 'all')")
