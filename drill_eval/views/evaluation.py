"""Response schemas for the evaluation endpoints."""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field


class EvaluationErrorBody(BaseModel):
    code: str
    message: str


class EvaluationSubmissionResponse(BaseModel):
    job_id: str = Field(alias="jobId")
    request_id: str = Field(alias="requestId")
    status: Literal["queued", "processing", "completed", "failed"]
    result: Optional[dict[str, Any]] = None
    poll_url: Optional[str] = None
    error: Optional[EvaluationErrorBody] = None

    model_config = {"populate_by_name": True}


class EvaluationStatusResponse(BaseModel):
    job_id: str = Field(alias="jobId")
    request_id: Optional[str] = Field(default=None, alias="requestId")
    status: Literal["queued", "processing", "completed", "failed"]
    result: Optional[dict[str, Any]] = None
    error: Optional[EvaluationErrorBody] = None
    poll_after_ms: int

    model_config = {"populate_by_name": True}


__all__ = [
    "EvaluationErrorBody",
    "EvaluationStatusResponse",
    "EvaluationSubmissionResponse",
]
