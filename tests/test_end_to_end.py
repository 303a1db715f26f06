"""Submission, worker and status wired together over the real queue and store."""

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from uuid import uuid4

import fakeredis
from sqlalchemy import func, select

from conftest import FakeScorer, FakeTranscriber, RecordingAnalytics

from drill_eval.application.interfaces import ScoringOutcome
from drill_eval.application.use_cases.evaluation_status import EvaluationStatusUseCase
from drill_eval.application.use_cases.submit_evaluation import SubmitEvaluationUseCase
from drill_eval.config.settings import (
    DatabaseConfig,
    EvaluationConfig,
    QueueConfig,
    WorkerConfig,
)
from drill_eval.database import create_engine, create_session_factory, init_models
from drill_eval.domain.evaluation import Completed, EvaluationRequest, Failed, Queued
from drill_eval.infrastructure.external.redis_queue import RedisJobQueue
from drill_eval.infrastructure.persistence.evaluation_store import (
    SQLAlchemyEvaluationResultStore,
)
from drill_eval.models import EvaluationResultRecord
from drill_eval.pipelines.evaluation import EvaluationJobProcessor
from drill_eval.worker import EvaluationWorker


def _run(tmp_path, scenario, *, scorer=None, sync_timeout_ms=3000, attempts=3):
    scorer = scorer or FakeScorer()

    async def runner():
        engine = create_engine(DatabaseConfig(DB_URL=f"sqlite+aiosqlite:///{tmp_path / 'e2e.db'}"))
        await init_models(engine)
        session_factory = create_session_factory(engine)
        store = SQLAlchemyEvaluationResultStore(session_factory)
        redis_client = fakeredis.FakeAsyncRedis(decode_responses=True)
        queue = RedisJobQueue(
            redis_client,
            QueueConfig(attempts=attempts, backoff_ms=0, wait_poll_interval_ms=10),
            key_prefix="e2e",
        )
        processor = EvaluationJobProcessor(
            store, FakeTranscriber(), scorer, RecordingAnalytics()
        )
        worker = EvaluationWorker(queue, processor, WorkerConfig(idle_poll_interval_ms=10))
        env = SimpleNamespace(
            submit=SubmitEvaluationUseCase(
                store, queue, EvaluationConfig(sync_timeout_ms=sync_timeout_ms)
            ),
            status=EvaluationStatusUseCase(store, queue),
            worker=worker,
            processor=processor,
            queue=queue,
            redis=redis_client,
            scorer=scorer,
            session_factory=session_factory,
        )
        try:
            return await scenario(env)
        finally:
            worker.stop()
            await queue.close()
            await engine.dispose()

    return asyncio.run(runner())


async def _stored_rows(env) -> int:
    async with env.session_factory() as session:
        return await session.scalar(select(func.count()).select_from(EvaluationResultRecord))


def _request() -> EvaluationRequest:
    return EvaluationRequest(request_id=uuid4(), text="I cut our cloud bill by 40%.")


def test_sync_submission_returns_stored_result_and_is_idempotent(tmp_path):
    request = _request()

    async def scenario(env):
        runner = asyncio.create_task(env.worker.run())
        first = await env.submit.execute(request)
        second = await env.submit.execute(request)
        polled = await env.status.execute(request.job_id)
        env.worker.stop()
        await runner
        return first, second, polled

    first, second, polled = _run(tmp_path, scenario)

    assert isinstance(first, Completed)
    assert first.job_id == first.request_id == str(request.request_id)
    assert first.result.score == 78
    assert isinstance(second, Completed)
    assert second.result == first.result
    assert isinstance(polled, Completed)


def test_concurrent_submissions_share_one_job_and_one_result(tmp_path):
    request = _request()

    async def scenario(env):
        runner = asyncio.create_task(env.worker.run())
        outcomes = await asyncio.gather(
            env.submit.execute(request),
            env.submit.execute(request),
        )
        env.worker.stop()
        await runner
        return outcomes, await _stored_rows(env), len(env.scorer.calls)

    (first, second), rows, scorer_calls = _run(tmp_path, scenario)

    assert isinstance(first, Completed)
    assert isinstance(second, Completed)
    assert first.job_id == second.job_id == str(request.request_id)
    assert first.result == second.result
    assert rows == 1
    assert scorer_calls == 1


def test_redelivered_job_is_not_scored_twice(tmp_path):
    request = _request()

    async def scenario(env):
        queued = await env.submit.execute(request)

        # First delivery persists its result, then the worker dies before acking.
        first_delivery = await env.queue.reserve()
        await env.processor.process(first_delivery)
        await env.redis.hset(f"e2e:evaluationQueue:job:{first_delivery.id}", "processed_at", 0)
        recovered = await env.queue.requeue_stalled()

        redelivered = await env.worker.run_once()
        polled = await env.status.execute(request.job_id)
        rows = await _stored_rows(env)
        return queued, recovered, redelivered, polled, rows, len(env.scorer.calls)

    queued, recovered, redelivered, polled, rows, scorer_calls = _run(
        tmp_path, scenario, sync_timeout_ms=30
    )

    assert isinstance(queued, Queued)
    assert recovered == 1
    assert redelivered is True
    assert isinstance(polled, Completed)
    assert polled.result.score == 78
    assert rows == 1
    assert scorer_calls == 1


def test_slow_worker_yields_queued_then_completes_on_poll(tmp_path):
    request = _request()

    async def scenario(env):
        outcome = await env.submit.execute(request)
        before = await env.status.execute(outcome.job_id)
        await env.worker.run_once()
        after = await env.status.execute(outcome.job_id)
        return outcome, before, after

    outcome, before, after = _run(tmp_path, scenario, sync_timeout_ms=30)

    assert isinstance(outcome, Queued)
    assert isinstance(before, Queued)
    assert isinstance(after, Completed)
    assert after.result.request_id == str(request.request_id)


def test_invalid_score_fails_job_and_persists_nothing(tmp_path):
    request = _request()
    scorer = FakeScorer(ScoringOutcome(score=150, feedback="x", what_changed="", practice_rule=""))

    async def scenario(env):
        runner = asyncio.create_task(env.worker.run())
        outcome = await env.submit.execute(request)
        polled = await env.status.execute(request.job_id)
        env.worker.stop()
        await runner
        return outcome, polled, await _stored_rows(env)

    outcome, polled, rows = _run(tmp_path, scenario, scorer=scorer)

    assert isinstance(outcome, Failed)
    assert outcome.code == "evaluation_failed"
    assert isinstance(polled, Failed)
    assert polled.code == "job_failed"
    assert rows == 0


def test_resubmitting_a_failed_request_requeues_it(tmp_path):
    request = _request()
    scorer = FakeScorer(ScoringOutcome(score=150, feedback="x", what_changed="", practice_rule=""))

    async def scenario(env):
        runner = asyncio.create_task(env.worker.run())
        failed = await env.submit.execute(request)
        env.worker.stop()
        await runner
        scorer.outcome = ScoringOutcome(
            score=70, feedback="Better", what_changed="", practice_rule=""
        )
        retried = await env.submit.execute(request)
        await env.worker.run_once()
        polled = await env.status.execute(request.job_id)
        return failed, retried, polled

    failed, retried, polled = _run(tmp_path, scenario, scorer=scorer)

    assert isinstance(failed, Failed)
    assert isinstance(retried, Queued)
    assert isinstance(polled, Completed)
    assert polled.result.score == 70
