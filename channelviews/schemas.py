"""
Pydantic response envelopes for the API layer.

The composition core returns only the ``data`` payload; route handlers
wrap it here. Payload shapes themselves are fixed by the view allowlists.
"""
from typing import Any, Optional

from pydantic import BaseModel


class ApiResponse(BaseModel):
    status: int
    message: str
    data: Any = None


class ErrorResponse(ApiResponse):
    # Pipeline stage that aborted the request, when there was one
    stage: Optional[str] = None


class HealthResponse(BaseModel):
    status: str
    service: str
