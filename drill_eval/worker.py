"""Long-lived evaluation worker process.

Run with ``python -m drill_eval.worker`` (or ``python run_worker.py``).
"""

from __future__ import annotations

import asyncio
import logging
import signal
from typing import Optional

from drill_eval.application.interfaces import JobQueueInterface
from drill_eval.config.container import ServiceContainer
from drill_eval.config.log_setup import configure_logging
from drill_eval.config.settings import Settings, WorkerConfig, settings
from drill_eval.domain.errors import QueueError, UnrecoverableJobError
from drill_eval.pipelines.evaluation import (
    PIPELINE_COMPONENT,
    EvaluationJobProcessor,
    EvaluationPipeline,
)
from drill_eval.services.analytics import flush_sentry, init_sentry

logger = logging.getLogger(__name__)


class EvaluationWorker:
    """Consume evaluation jobs until asked to stop.

    Each consumer loop reserves one job at a time; ``concurrency`` loops run
    side by side. A job is marked completed only after the processor has
    persisted its result.
    """

    def __init__(
        self,
        queue: JobQueueInterface,
        processor: EvaluationJobProcessor,
        config: WorkerConfig,
        *,
        stalled_check_interval_s: float = 30.0,
    ) -> None:
        self._queue = queue
        self._processor = processor
        self._config = config
        self._stalled_check_interval_s = stalled_check_interval_s
        self._stop = asyncio.Event()

    def stop(self) -> None:
        if not self._stop.is_set():
            logger.info("Worker stop requested")
        self._stop.set()

    async def run_once(self) -> bool:
        """Process at most one job; return False when the queue was empty."""

        job = await self._queue.reserve()
        if job is None:
            return False

        try:
            result = await self._processor.process(job)
        except UnrecoverableJobError as exc:
            await self._queue.fail(job.id, str(exc), retryable=False, token=job.token)
        except Exception as exc:
            await self._queue.fail(job.id, str(exc) or type(exc).__name__, token=job.token)
        else:
            await self._queue.complete(job.id, result.to_public(), token=job.token)
            logger.info("Job %s completed", job.id)
        return True

    async def run(self) -> None:
        recovered = await self._queue.requeue_stalled()
        logger.info(
            "Evaluation worker started concurrency=%s recovered_stalled=%s",
            self._config.concurrency,
            recovered,
        )
        logger.debug(
            "Pipeline stages: %s",
            " -> ".join(stage.name for stage in EvaluationPipeline.describe()),
        )

        tasks = [
            asyncio.create_task(self._consume(index), name=f"evaluation-consumer-{index}")
            for index in range(self._config.concurrency)
        ]
        tasks.append(asyncio.create_task(self._maintain(), name="evaluation-maintenance"))
        try:
            await self._stop.wait()
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("Evaluation worker stopped")

    async def _consume(self, index: int) -> None:
        idle_s = self._config.idle_poll_interval_ms / 1000
        while not self._stop.is_set():
            try:
                processed = await self.run_once()
            except QueueError:
                logger.exception("Consumer %s: queue error; backing off", index)
                processed = False
            except Exception:
                # The loop must outlive any single bad job or record.
                logger.exception("Consumer %s: unexpected error; backing off", index)
                processed = False
            if not processed:
                await self._sleep(idle_s)

    async def _maintain(self) -> None:
        while not self._stop.is_set():
            await self._sleep(self._stalled_check_interval_s)
            try:
                await self._queue.requeue_stalled()
            except Exception:
                logger.exception("Stalled job check failed")

    async def _sleep(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass


async def serve(app_settings: Settings) -> None:
    sentry_enabled = init_sentry(app_settings.sentry, component=PIPELINE_COMPONENT)
    container = ServiceContainer.build_from_settings(
        app_settings,
        component=PIPELINE_COMPONENT,
        sentry_enabled=sentry_enabled,
        with_worker_services=True,
    )
    processor = EvaluationJobProcessor(
        container.store,
        container.transcriber,
        container.scorer,
        container.analytics,
    )
    worker = EvaluationWorker(
        container.queue,
        processor,
        app_settings.worker,
        stalled_check_interval_s=app_settings.queue.stalled_after_ms / 2000,
    )

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, worker.stop)
        except NotImplementedError:  # pragma: no cover - Windows
            signal.signal(sig, lambda *_: worker.stop())

    try:
        await worker.run()
    finally:
        flush_sentry()
        await container.aclose()


def main(app_settings: Optional[Settings] = None) -> None:
    app_settings = app_settings or settings
    configure_logging(app_settings)
    asyncio.run(serve(app_settings))


if __name__ == "__main__":
    main()
