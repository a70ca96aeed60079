"""API dependencies — API key authentication and the shared orchestrator.

Every admin endpoint except /health requires the X-API-Key header, configured
via the API_KEY environment variable.
"""
import secrets
from typing import Annotated

from fastapi import Depends, HTTPException, Request, Security, status
from fastapi.security import APIKeyHeader

from property_scraper.config import settings
from property_scraper.services.orchestrator_service import ScraperOrchestrator


_api_key_header = APIKeyHeader(
    name="X-API-Key",
    auto_error=False,  # custom 401 instead of the default 403
    description="API key, configured via API_KEY in .env",
)


async def verify_api_key(
    api_key: Annotated[str | None, Security(_api_key_header)],
) -> str:
    """Validate the X-API-Key header with a constant-time comparison.

    Raises:
        HTTPException 401: key missing or wrong.
        HTTPException 500: API_KEY not configured on the server.
    """
    if not settings.api_key:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Server misconfigured (API_KEY missing).",
        )

    if not api_key or not secrets.compare_digest(api_key, settings.api_key):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key. Use the X-API-Key header.",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    return api_key


RequireApiKey = Depends(verify_api_key)


def get_orchestrator(request: Request) -> ScraperOrchestrator:
    """The orchestrator created in the application lifespan."""
    return request.app.state.orchestrator
