"""Shared fixtures: in-memory adapters wired into a real ``ServiceContainer``."""

from __future__ import annotations

from pathlib import Path
import sys
from typing import Any, Callable, Mapping, Optional
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from drill_eval.application.interfaces import (  # noqa: E402
    AnalyticsSinkInterface,
    AudioStorageInterface,
    EvaluationResultStoreInterface,
    JobQueueInterface,
    RateLimiterInterface,
    ScoringAdapterInterface,
    ScoringOutcome,
    TranscriptionAdapterInterface,
    TranscriptionResult,
)
from drill_eval.config.container import ServiceContainer  # noqa: E402
from drill_eval.config.settings import (  # noqa: E402
    EvaluationConfig,
    Settings,
)
from drill_eval.domain.errors import JobWaitTimeoutError  # noqa: E402
from drill_eval.domain.evaluation import (  # noqa: E402
    EvaluationRequest,
    EvaluationResult,
    JobHandle,
    JobState,
)
from drill_eval.main import create_app  # noqa: E402
from drill_eval.utils import create_access_token  # noqa: E402


class InMemoryResultStore(EvaluationResultStoreInterface):
    def __init__(self) -> None:
        self.results: dict[str, EvaluationResult] = {}
        self.upserts: list[tuple[EvaluationResult, Optional[str], Any]] = []

    async def get_by_request_id(self, request_id):
        return self.results.get(request_id)

    async def get_by_job_id(self, job_id):
        for result in self.results.values():
            if result.job_id == job_id:
                return result
        return None

    async def upsert(self, result, user_id=None, metadata=None):
        self.upserts.append((result, user_id, metadata))
        self.results.setdefault(result.request_id, result)


class ScriptedJobQueue(JobQueueInterface):
    """Queue double whose ``wait_until_finished`` behaviour is set per test.

    ``on_wait`` is called with the job id and may mutate other fakes (to
    simulate a worker) before returning a value or raising.
    """

    def __init__(self) -> None:
        self.jobs: dict[str, JobHandle] = {}
        self.enqueue_calls: list[str] = []
        self.removed: list[str] = []
        self.on_wait: Callable[[str], Any] = self._timeout
        self.hide_jobs = False

    @staticmethod
    def _timeout(job_id: str) -> Any:
        raise JobWaitTimeoutError(job_id, 0)

    async def enqueue(self, request: EvaluationRequest) -> str:
        job_id = request.job_id
        self.enqueue_calls.append(job_id)
        self.jobs.setdefault(
            job_id,
            JobHandle(id=job_id, data=request.to_job_payload(), state=JobState.WAITING),
        )
        return job_id

    async def get_job(self, job_id):
        if self.hide_jobs:
            return None
        return self.jobs.get(job_id)

    async def wait_until_finished(self, job_id, timeout_ms):
        return self.on_wait(job_id)

    async def remove(self, job_id):
        self.removed.append(job_id)
        return self.jobs.pop(job_id, None) is not None

    async def reserve(self):
        return None

    async def complete(self, job_id, return_value, *, token=None):
        return None

    async def fail(self, job_id, reason, *, retryable=True, token=None):
        return None


class CountingRateLimiter(RateLimiterInterface):
    def __init__(self, limit: int = 1000) -> None:
        self.limit = limit
        self.hits: dict[str, int] = {}

    async def hit(self, identifier):
        self.hits[identifier] = self.hits.get(identifier, 0) + 1
        return self.hits[identifier] <= self.limit


class RecordingAnalytics(AnalyticsSinkInterface):
    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []
        self.exceptions: list[tuple[BaseException, dict[str, Any]]] = []

    def capture(self, event, properties):
        self.events.append((event, dict(properties)))

    def report_exception(self, exc, context):
        self.exceptions.append((exc, dict(context)))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]


class MemoryAudioStorage(AudioStorageInterface):
    def __init__(self) -> None:
        self.uploads: list[dict[str, Any]] = []

    async def upload_audio(self, data, *, user_id, question_id, content_type, extension):
        self.uploads.append(
            {
                "size": len(data),
                "user_id": user_id,
                "question_id": question_id,
                "content_type": content_type,
                "extension": extension,
            }
        )
        return f"https://recordings.example.com/{user_id}/audio-{question_id}.{extension}"


class FakeTranscriber(TranscriptionAdapterInterface):
    def __init__(self, transcript: str = "I led the migration to Postgres.") -> None:
        self.transcript = transcript
        self.calls: list[str] = []

    async def transcribe(self, audio_url):
        self.calls.append(audio_url)
        return TranscriptionResult(transcript=self.transcript, duration_ms=120)


class FakeScorer(ScoringAdapterInterface):
    def __init__(self, outcome: Optional[ScoringOutcome] = None, error: Optional[Exception] = None):
        self.outcome = outcome or ScoringOutcome(
            score=78,
            feedback="Clear structure; quantify the impact.",
            what_changed="Added a metric to the result.",
            practice_rule="Lead with the outcome.",
            tokens_used=321,
        )
        self.error = error
        self.calls: list[str] = []

    async def score(self, transcript):
        self.calls.append(transcript)
        if self.error is not None:
            raise self.error
        return self.outcome


def make_result(request_id: str, **overrides: Any) -> EvaluationResult:
    values: dict[str, Any] = {
        "request_id": request_id,
        "job_id": request_id,
        "score": 82,
        "feedback": "Strong answer with a concrete example.",
        "what_changed": "",
        "practice_rule": "",
        "duration_ms": 1500,
        "tokens_used": 400,
    }
    values.update(overrides)
    return EvaluationResult(**values)


def text_payload(**overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "requestId": str(uuid4()),
        "text": "I have five years of backend experience with Python.",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def test_settings() -> Settings:
    return Settings(evaluation=EvaluationConfig(sync_timeout_ms=50, poll_after_ms=2500))


@pytest.fixture
def store() -> InMemoryResultStore:
    return InMemoryResultStore()


@pytest.fixture
def queue() -> ScriptedJobQueue:
    return ScriptedJobQueue()


@pytest.fixture
def analytics() -> RecordingAnalytics:
    return RecordingAnalytics()


@pytest.fixture
def rate_limiter() -> CountingRateLimiter:
    return CountingRateLimiter()


@pytest.fixture
def audio_storage() -> MemoryAudioStorage:
    return MemoryAudioStorage()


@pytest.fixture
def container(test_settings, store, queue, analytics, rate_limiter, audio_storage) -> ServiceContainer:
    return ServiceContainer(
        settings=test_settings,
        store=store,
        queue=queue,
        analytics=analytics,
        rate_limiter=rate_limiter,
        audio_storage=audio_storage,
    )


@pytest.fixture
def client(container: ServiceContainer):
    with TestClient(create_app(container=container)) as test_client:
        yield test_client


@pytest.fixture
def auth_headers(test_settings: Settings) -> Mapping[str, str]:
    token = create_access_token("user-123", test_settings.security, name="Test User")
    return {"Authorization": f"Bearer {token}"}
