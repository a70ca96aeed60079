"""Response envelope shared by the admin API."""
from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    success: bool
    data: Optional[T]
    message: Optional[str] = None
    errors: Optional[List[str]] = None
    trace_id: str = ""
