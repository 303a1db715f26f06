"""Per-job state machine executed by the evaluation worker."""

from __future__ import annotations

import logging
import time
from typing import Any, Mapping

from pydantic import ValidationError

from drill_eval.application.interfaces import (
    AnalyticsSinkInterface,
    EvaluationResultStoreInterface,
    ScoringAdapterInterface,
    TranscriptionAdapterInterface,
)
from drill_eval.domain.errors import (
    ScoringValidationError,
    TranscriptionError,
    UnrecoverableJobError,
)
from drill_eval.domain.evaluation import EvaluationRequest, EvaluationResult, JobHandle
from drill_eval.telemetry import record_job

logger = logging.getLogger("drill_eval.pipeline")

PIPELINE_COMPONENT = "evaluation-worker"


class EvaluationJobProcessor:
    """Turn one queue job into a persisted ``EvaluationResult``.

    The stored result is the only success signal: ``process`` returns only
    after ``upsert`` has succeeded, and any exception leaves the store
    untouched so the queue can retry the job from scratch.
    """

    def __init__(
        self,
        store: EvaluationResultStoreInterface,
        transcriber: TranscriptionAdapterInterface,
        scorer: ScoringAdapterInterface,
        analytics: AnalyticsSinkInterface,
    ) -> None:
        self._store = store
        self._transcriber = transcriber
        self._scorer = scorer
        self._analytics = analytics

    async def process(self, job: JobHandle) -> EvaluationResult:
        started = time.perf_counter()
        logger.info("Processing job %s attempt=%s", job.id, job.attempts_made + 1)

        try:
            try:
                request = job.request
            except ValidationError as exc:
                raise UnrecoverableJobError(f"Job {job.id} carries an invalid request: {exc}") from exc

            existing = await self._store.get_by_request_id(job.request_id)
            if existing is not None:
                logger.info("Request %s already evaluated; skipping", job.request_id)
                self._emit(
                    "job_completed",
                    jobId=job.id,
                    requestId=job.request_id,
                    durationMs=existing.duration_ms,
                    tokensUsed=existing.tokens_used,
                    cached=True,
                )
                self._emit(
                    "score_returned",
                    requestId=job.request_id,
                    score=existing.score,
                    cached=True,
                )
                record_job("cached", time.perf_counter() - started)
                return existing

            return await self._evaluate(job, request, started)
        except Exception as exc:
            duration_ms = int((time.perf_counter() - started) * 1000)
            logger.exception("Job %s failed after %sms", job.id, duration_ms)
            context = {
                "jobId": job.id,
                "requestId": job.request_id,
                "durationMs": duration_ms,
                "hasAudio": bool(job.data.get("audio_url")),
                "hasText": bool(job.data.get("text")),
                "attempt": job.attempts_made + 1,
            }
            try:
                self._analytics.report_exception(exc, context)
            except Exception:
                logger.exception("Error reporting failed for job %s", job.id)
            self._emit(
                "job_failed",
                jobId=job.id,
                requestId=job.request_id,
                durationMs=duration_ms,
                error=str(exc),
            )
            record_job("failed", time.perf_counter() - started)
            raise

    async def _evaluate(
        self,
        job: JobHandle,
        request: EvaluationRequest,
        started: float,
    ) -> EvaluationResult:
        transcript = request.text or ""
        transcription_ms = 0
        if request.audio_url and not request.text:
            logger.info("Transcribing audio for request %s", job.request_id)
            transcription = await self._transcriber.transcribe(request.audio_url)
            transcript = transcription.transcript
            transcription_ms = transcription.duration_ms

        if not transcript.strip():
            raise TranscriptionError("No transcript available for evaluation")

        outcome = await self._scorer.score(transcript)
        duration_ms = int((time.perf_counter() - started) * 1000)

        try:
            result = EvaluationResult(
                request_id=job.request_id,
                job_id=job.id,
                score=outcome.score,
                feedback=outcome.feedback,
                what_changed=outcome.what_changed,
                practice_rule=outcome.practice_rule,
                transcription=transcript if request.audio_url else None,
                duration_ms=duration_ms,
                tokens_used=outcome.tokens_used,
            )
        except ValidationError as exc:
            raise ScoringValidationError(f"Evaluation result failed validation: {exc}") from exc

        await self._store.upsert(result, request.user_id, request.metadata)
        logger.info(
            "Persisted request=%s score=%s tokens=%s duration_ms=%s",
            job.request_id,
            result.score,
            result.tokens_used,
            duration_ms,
        )

        self._emit(
            "job_completed",
            jobId=job.id,
            requestId=job.request_id,
            durationMs=duration_ms,
            transcriptionDurationMs=transcription_ms,
            tokensUsed=result.tokens_used,
            hadAudio=bool(request.audio_url),
            cached=False,
        )
        self._emit(
            "score_returned",
            requestId=job.request_id,
            score=result.score,
            cached=False,
        )
        record_job("completed", time.perf_counter() - started, result.tokens_used)
        return result

    def _emit(self, event: str, **properties: Any) -> None:
        try:
            self._analytics.capture(event, _drop_none(properties))
        except Exception:
            logger.exception("Analytics event %s could not be emitted", event)


def _drop_none(properties: Mapping[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in properties.items() if value is not None}


__all__ = ["EvaluationJobProcessor", "PIPELINE_COMPONENT"]
