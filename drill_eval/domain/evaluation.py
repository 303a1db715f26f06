"""Domain models for the evaluation pipeline.

`EvaluationRequest` and `EvaluationResult` are the two payloads that cross
process boundaries (HTTP body, queue job data, database row). The outcome
dataclasses at the bottom form the tagged union returned by the submission
and status use cases; the HTTP layer matches on them exhaustively.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Optional, Union
from urllib.parse import urlparse
from uuid import UUID

from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator


class EvaluationRequest(BaseModel):
    """A single text-or-audio response submitted for scoring."""

    request_id: UUID = Field(alias="requestId")
    text: Optional[str] = None
    audio_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("audio_url", "audioUrl"),
    )
    user_id: Optional[str] = Field(default=None, alias="userId")
    metadata: Optional[dict[str, Any]] = None

    model_config = {"populate_by_name": True, "extra": "ignore"}

    @field_validator("text")
    @classmethod
    def blank_text_is_absent(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            return None
        return value

    @field_validator("audio_url")
    @classmethod
    def require_https_url(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        cleaned = value.strip()
        parsed = urlparse(cleaned)
        if parsed.scheme != "https" or not parsed.netloc:
            raise ValueError("audio_url must be an https:// URL")
        return cleaned

    @model_validator(mode="after")
    def exactly_one_modality(self) -> "EvaluationRequest":
        if not self.text and not self.audio_url:
            raise ValueError("Either 'text' or 'audio_url' must be provided")
        if self.text and self.audio_url:
            raise ValueError("Provide either 'text' or 'audio_url', not both")
        return self

    @property
    def job_id(self) -> str:
        """Queue job identifier; always equal to the request id."""

        return str(self.request_id)

    def to_job_payload(self) -> dict[str, Any]:
        """Serialize for storage inside a queue job record."""

        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class EvaluationResult(BaseModel):
    """Persisted outcome of a scored response. Immutable once written."""

    request_id: str = Field(alias="requestId")
    job_id: str = Field(alias="jobId")
    score: int = Field(ge=0, le=100)
    feedback: str = Field(min_length=1, max_length=5000)
    what_changed: str = Field(default="", max_length=2000, alias="whatChanged")
    practice_rule: str = Field(default="", max_length=1000, alias="practiceRule")
    transcription: Optional[str] = None
    duration_ms: int = Field(ge=0, alias="durationMs")
    tokens_used: Optional[int] = Field(default=None, ge=0, alias="tokensUsed")
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")

    model_config = {"populate_by_name": True, "frozen": True}

    def to_public(self) -> dict[str, Any]:
        """JSON body used by API responses and queue return values."""

        return self.model_dump(mode="json", by_alias=True)


class JobState(str, Enum):
    """Lifecycle of a queue job record."""

    WAITING = "waiting"
    DELAYED = "delayed"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class JobHandle:
    """Point-in-time snapshot of a job as seen by the queue."""

    id: str
    data: dict[str, Any]
    state: JobState
    attempts_made: int = 0
    max_attempts: int = 1
    failed_reason: Optional[str] = None
    return_value: Optional[dict[str, Any]] = None
    created_at_ms: Optional[int] = None
    processed_at_ms: Optional[int] = None
    finished_at_ms: Optional[int] = None
    token: Optional[str] = None

    @property
    def request(self) -> EvaluationRequest:
        return EvaluationRequest.model_validate(self.data)

    @property
    def request_id(self) -> str:
        return str(self.data.get("requestId") or self.id)

    @property
    def is_finished(self) -> bool:
        return self.state in (JobState.COMPLETED, JobState.FAILED)


class OutcomeStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class Queued:
    job_id: str
    request_id: str
    status: ClassVar[OutcomeStatus] = OutcomeStatus.QUEUED


@dataclass(frozen=True)
class Processing:
    job_id: str
    request_id: str
    status: ClassVar[OutcomeStatus] = OutcomeStatus.PROCESSING


@dataclass(frozen=True)
class Completed:
    job_id: str
    request_id: str
    result: EvaluationResult
    status: ClassVar[OutcomeStatus] = OutcomeStatus.COMPLETED


@dataclass(frozen=True)
class Failed:
    job_id: str
    request_id: str
    code: str = "evaluation_failed"
    message: str = "Evaluation job failed"
    status: ClassVar[OutcomeStatus] = OutcomeStatus.FAILED


@dataclass(frozen=True)
class NotFound:
    job_id: str
    detail: str = "Job not found"
    status: ClassVar[OutcomeStatus] = OutcomeStatus.NOT_FOUND


SubmissionOutcome = Union[Queued, Processing, Completed, Failed]
StatusOutcome = Union[Queued, Processing, Completed, Failed, NotFound]


__all__ = [
    "EvaluationRequest",
    "EvaluationResult",
    "JobState",
    "JobHandle",
    "OutcomeStatus",
    "Queued",
    "Processing",
    "Completed",
    "Failed",
    "NotFound",
    "SubmissionOutcome",
    "StatusOutcome",
]
