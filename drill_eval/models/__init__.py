"""SQLAlchemy models."""

from .base import Base
from .evaluation_result import EvaluationResultRecord  # noqa: F401

__all__ = [
    "Base",
    "EvaluationResultRecord",
]
