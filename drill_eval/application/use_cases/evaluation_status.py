"""Polling contract for evaluation jobs."""

from __future__ import annotations

import logging

from drill_eval.application.interfaces import (
    EvaluationResultStoreInterface,
    JobQueueInterface,
)
from drill_eval.domain.errors import QueueError, StoreError
from drill_eval.domain.evaluation import (
    Completed,
    Failed,
    JobState,
    NotFound,
    Processing,
    Queued,
    StatusOutcome,
)

logger = logging.getLogger(__name__)


class EvaluationStatusUseCase:
    """Resolve a job id to its current status, store first, queue second"""

    def __init__(
        self,
        store: EvaluationResultStoreInterface,
        queue: JobQueueInterface,
    ):
        self.store = store
        self.queue = queue

    async def execute(self, job_id: str) -> StatusOutcome:
        try:
            stored = await self.store.get_by_job_id(job_id)
        except StoreError:
            logger.exception("Store lookup failed for job %s", job_id)
            stored = None

        if stored is not None:
            return Completed(job_id, stored.request_id, stored)

        try:
            handle = await self.queue.get_job(job_id)
        except QueueError:
            logger.exception("Queue lookup failed for job %s", job_id)
            return NotFound(job_id, detail="Unable to verify job status")

        if handle is None:
            return NotFound(job_id)

        request_id = handle.request_id
        if handle.state is JobState.FAILED:
            return Failed(job_id, request_id, code="job_failed")
        if handle.state in (JobState.ACTIVE, JobState.COMPLETED):
            # Completed in the queue but not yet visible in the store.
            return Processing(job_id, request_id)
        return Queued(job_id, request_id)


__all__ = ["EvaluationStatusUseCase"]
