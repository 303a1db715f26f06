"""Pydantic schemas used as views in the MVC architecture."""

from .common import ErrorResponse, HealthResponse
from .evaluation import (
    EvaluationErrorBody,
    EvaluationStatusResponse,
    EvaluationSubmissionResponse,
)

__all__ = [
    "ErrorResponse",
    "HealthResponse",
    "EvaluationErrorBody",
    "EvaluationStatusResponse",
    "EvaluationSubmissionResponse",
]
