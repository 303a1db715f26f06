"""Utility helpers for the evaluation service."""

from .percentiles import percentile, summarize
from .security import (
    AuthenticationError,
    TokenPayload,
    create_access_token,
    decode_access_token,
)

__all__ = [
    "create_access_token",
    "decode_access_token",
    "AuthenticationError",
    "TokenPayload",
    "percentile",
    "summarize",
]
