from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from drill_eval.domain.evaluation import EvaluationRequest, EvaluationResult, JobHandle


class EvaluationResultStoreInterface(ABC):
    """Durable persistence contract for completed evaluation results"""

    @abstractmethod
    async def get_by_request_id(self, request_id: str) -> Optional[EvaluationResult]:
        ...

    @abstractmethod
    async def get_by_job_id(self, job_id: str) -> Optional[EvaluationResult]:
        ...

    @abstractmethod
    async def upsert(
        self,
        result: EvaluationResult,
        user_id: Optional[str] = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> None:
        ...


class JobQueueInterface(ABC):
    """At-least-once work queue keyed by caller-supplied job ids"""

    @abstractmethod
    async def enqueue(self, request: EvaluationRequest) -> str:
        ...

    @abstractmethod
    async def get_job(self, job_id: str) -> Optional[JobHandle]:
        ...

    @abstractmethod
    async def wait_until_finished(
        self, job_id: str, timeout_ms: int
    ) -> Optional[dict[str, Any]]:
        ...

    @abstractmethod
    async def remove(self, job_id: str) -> bool:
        ...

    @abstractmethod
    async def reserve(self) -> Optional[JobHandle]:
        ...

    @abstractmethod
    async def complete(
        self,
        job_id: str,
        return_value: Mapping[str, Any],
        *,
        token: Optional[str] = None,
    ) -> None:
        ...

    @abstractmethod
    async def fail(
        self,
        job_id: str,
        reason: str,
        *,
        retryable: bool = True,
        token: Optional[str] = None,
    ) -> Optional[JobHandle]:
        ...

    async def promote_delayed(self) -> int:
        """Move retries whose backoff elapsed back to waiting."""
        return 0

    async def requeue_stalled(self) -> int:
        """Return jobs abandoned by a dead worker to waiting."""
        return 0

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None


@dataclass(frozen=True)
class TranscriptionResult:
    """Structured transcription outcome returned to the worker."""

    transcript: str
    duration_ms: int
    language_code: Optional[str] = None


class TranscriptionAdapterInterface(ABC):
    """Speech-to-text contract: audio URL in, transcript out"""

    @abstractmethod
    async def transcribe(self, audio_url: str) -> TranscriptionResult:
        ...


@dataclass(frozen=True)
class ScoringOutcome:
    """Validated scoring output plus provider accounting."""

    score: int
    feedback: str
    what_changed: str
    practice_rule: str
    tokens_used: Optional[int] = None


class ScoringAdapterInterface(ABC):
    """LLM scoring contract with a fixed structured-output schema"""

    @abstractmethod
    async def score(self, transcript: str) -> ScoringOutcome:
        ...


class AudioStorageInterface(ABC):
    """Blob storage for uploaded recordings"""

    @abstractmethod
    async def upload_audio(
        self,
        data: bytes,
        *,
        user_id: str,
        question_id: str,
        content_type: str,
        extension: str,
    ) -> str:
        ...


class RateLimiterInterface(ABC):
    """Per-caller request budget"""

    @abstractmethod
    async def hit(self, identifier: str) -> bool:
        """Record one request; return False when the budget is exhausted."""
        ...


class AnalyticsSinkInterface(ABC):
    """Best-effort product analytics and error tracking"""

    @abstractmethod
    def capture(self, event: str, properties: Mapping[str, Any]) -> None:
        ...

    @abstractmethod
    def report_exception(
        self, exc: BaseException, context: Mapping[str, Any]
    ) -> None:
        ...


__all__ = [
    "EvaluationResultStoreInterface",
    "JobQueueInterface",
    "TranscriptionResult",
    "TranscriptionAdapterInterface",
    "ScoringOutcome",
    "ScoringAdapterInterface",
    "AudioStorageInterface",
    "RateLimiterInterface",
    "AnalyticsSinkInterface",
]
