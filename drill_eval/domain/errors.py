"""Exception taxonomy shared by the API, the queue and the worker."""

from __future__ import annotations


class EvaluationError(RuntimeError):
    """Base class for evaluation pipeline failures."""


class QueueError(EvaluationError):
    """Raised when the job queue rejects an operation."""


class QueueUnavailableError(QueueError):
    """Raised when the queue backend cannot be reached."""


class JobWaitTimeoutError(QueueError):
    """Raised when a bounded wait elapses before the job finishes."""

    def __init__(self, job_id: str, timeout_ms: int) -> None:
        super().__init__(f"Job {job_id} timed out after {timeout_ms}ms")
        self.job_id = job_id
        self.timeout_ms = timeout_ms


class JobFailedError(QueueError):
    """Raised when a waited-on job reaches the terminal failed state."""

    def __init__(self, job_id: str, reason: str | None = None) -> None:
        super().__init__(f"Job {job_id} failed: {reason or 'unknown error'}")
        self.job_id = job_id
        self.reason = reason


class JobNotFoundError(QueueError):
    """Raised when a job record disappears while it is being observed."""

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job {job_id} not found")
        self.job_id = job_id


class StoreError(EvaluationError):
    """Raised when the evaluation result store cannot be read or written."""


class StorageError(EvaluationError):
    """Raised when audio blob persistence fails."""


class TranscriptionError(EvaluationError):
    """Raised when speech-to-text fails to produce a transcript."""


class ScoringError(EvaluationError):
    """Raised when the scoring provider call fails (transient, retried)."""


class UnrecoverableJobError(EvaluationError):
    """Failure that must end the job immediately instead of being retried."""


class ScoringValidationError(UnrecoverableJobError):
    """Raised when the scoring output violates the result schema."""


__all__ = [
    "EvaluationError",
    "QueueError",
    "QueueUnavailableError",
    "JobWaitTimeoutError",
    "JobFailedError",
    "JobNotFoundError",
    "StoreError",
    "StorageError",
    "TranscriptionError",
    "ScoringError",
    "UnrecoverableJobError",
    "ScoringValidationError",
]
