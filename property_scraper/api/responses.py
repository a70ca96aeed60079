"""ApiResponse envelope helpers for routes and exception handlers."""
from typing import Any, List, Optional

from fastapi import Request

from property_scraper.schemas.base_schema import ApiResponse


def _trace_id(request: Optional[Request]) -> str:
    if request is None:
        return ""
    return getattr(request.state, "trace_id", "")


def ok(data: Any, message: str, request: Optional[Request] = None) -> ApiResponse:
    return ApiResponse(success=True, data=data, message=message, trace_id=_trace_id(request))


def error(message: str, request: Optional[Request] = None, errors: Optional[List[str]] = None) -> dict:
    """Failure envelope, already serialized for JSONResponse."""
    return ApiResponse(
        success=False,
        data=None,
        message=message,
        errors=errors or [message],
        trace_id=_trace_id(request),
    ).model_dump()
