"""Common response schemas."""

from typing import Any, Optional

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    detail: Any
    code: Optional[str] = None


class HealthResponse(BaseModel):
    status: str
    service: str
    version: str
    checks: dict[str, bool]
