"""Telemetry helpers and metrics."""

from .metrics import (
    ERROR_COUNTER,
    JOB_COUNTER,
    JOB_DURATION,
    REQUEST_COUNT,
    REQUEST_LATENCY,
    SUBMISSION_COUNTER,
    TOKENS_USED,
    observe_request,
    record_job,
    record_submission,
)

__all__ = [
    "ERROR_COUNTER",
    "JOB_COUNTER",
    "JOB_DURATION",
    "REQUEST_COUNT",
    "REQUEST_LATENCY",
    "SUBMISSION_COUNTER",
    "TOKENS_USED",
    "observe_request",
    "record_job",
    "record_submission",
]
