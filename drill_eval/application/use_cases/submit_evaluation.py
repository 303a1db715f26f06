"""Hybrid synchronous/asynchronous evaluation submission."""

from __future__ import annotations

import logging

from drill_eval.application.interfaces import (
    EvaluationResultStoreInterface,
    JobQueueInterface,
)
from drill_eval.config.settings import EvaluationConfig
from drill_eval.domain.errors import (
    JobFailedError,
    JobNotFoundError,
    JobWaitTimeoutError,
    QueueError,
)
from drill_eval.domain.evaluation import (
    Completed,
    EvaluationRequest,
    Failed,
    Processing,
    Queued,
    SubmissionOutcome,
)

logger = logging.getLogger(__name__)


class SubmitEvaluationUseCase:
    """Enqueue an evaluation and wait a bounded time for its stored result.

    The store is the only source of completed results: a job that finished
    in the queue but has no stored row yet is reported as ``Processing``.
    """

    def __init__(
        self,
        store: EvaluationResultStoreInterface,
        queue: JobQueueInterface,
        config: EvaluationConfig,
    ):
        self.store = store
        self.queue = queue
        self.config = config

    async def execute(self, request: EvaluationRequest) -> SubmissionOutcome:
        request_id = str(request.request_id)

        existing = await self.store.get_by_request_id(request_id)
        if existing is not None:
            logger.info("Request %s already evaluated; returning stored result", request_id)
            return Completed(existing.job_id, existing.request_id, existing)

        job_id = await self.queue.enqueue(request)

        handle = await self.queue.get_job(job_id)
        if handle is None:
            # Consumed and trimmed between enqueue and lookup, or never visible.
            return await self._stored_or(Queued(job_id, request_id), request_id)

        if handle.failed_reason:
            logger.warning("Job %s has recorded failure: %s", job_id, handle.failed_reason)
            try:
                await self.queue.remove(job_id)
                job_id = await self.queue.enqueue(request)
                logger.info("Re-enqueued job %s after removing failed record", job_id)
            except QueueError:
                logger.exception("Failed to requeue job %s", job_id)
            return Queued(job_id, request_id)

        try:
            await self.queue.wait_until_finished(job_id, self.config.sync_timeout_ms)
        except JobWaitTimeoutError:
            logger.info("Job %s still running after %sms", job_id, self.config.sync_timeout_ms)
            return Queued(job_id, request_id)
        except JobNotFoundError:
            return await self._stored_or(Queued(job_id, request_id), request_id)
        except JobFailedError as exc:
            logger.warning("Job %s failed during synchronous wait: %s", job_id, exc.reason)
            return await self._stored_or(Failed(job_id, request_id), request_id)

        return await self._stored_or(Processing(job_id, request_id), request_id)

    async def _stored_or(
        self, fallback: SubmissionOutcome, request_id: str
    ) -> SubmissionOutcome:
        stored = await self.store.get_by_request_id(request_id)
        if stored is not None:
            return Completed(stored.job_id, stored.request_id, stored)
        return fallback


__all__ = ["SubmitEvaluationUseCase"]
