"""Redis-backed evaluation job queue.

Layout under ``{prefix}:{queue}``:

* ``job:{id}`` - hash holding the job record (data, state, attempts, ...)
* ``waiting`` - list of job ids ready to run (LPUSH / RPOPLPUSH, FIFO)
* ``active`` - list of job ids currently reserved by a worker
* ``delayed`` - sorted set of retries scored by due time (ms)
* ``completed`` / ``failed`` - sorted sets scored by finish time, trimmed to
  the configured retention counts

A job id can only exist once; enqueueing an id whose record is still present
returns the existing id without scheduling a second execution. Every state
change re-reads the record under WATCH and is skipped if the job was removed
in the meantime, so a removal never leaves a partial record behind.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Mapping, Optional
from uuid import uuid4

import redis.asyncio as redis
from redis.asyncio.client import Pipeline
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError, WatchError
from redis.exceptions import TimeoutError as RedisTimeoutError

from drill_eval.application.interfaces import JobQueueInterface
from drill_eval.config.settings import QueueConfig
from drill_eval.domain.errors import (
    JobFailedError,
    JobNotFoundError,
    JobWaitTimeoutError,
    QueueError,
    QueueUnavailableError,
)
from drill_eval.domain.evaluation import EvaluationRequest, JobHandle, JobState

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


def _optional_int(value: Optional[str]) -> Optional[int]:
    if value in (None, ""):
        return None
    return int(value)


def _held_by(token: Optional[str]) -> Callable[[Mapping[str, str]], bool]:
    """Guard for worker-side transitions; ``None`` skips the lock check."""

    return lambda current: token is None or current.get("token") == token


@asynccontextmanager
async def _translate_errors(operation: str) -> AsyncIterator[None]:
    try:
        yield
    except (RedisConnectionError, RedisTimeoutError) as exc:
        raise QueueUnavailableError(f"Redis unavailable during {operation}: {exc}") from exc
    except RedisError as exc:
        raise QueueError(f"Redis error during {operation}: {exc}") from exc


class RedisJobQueue(JobQueueInterface):
    """At-least-once job queue with retries, backoff and bounded retention."""

    def __init__(
        self,
        client: redis.Redis,
        config: QueueConfig,
        *,
        key_prefix: str = "drill_eval",
    ) -> None:
        self._redis = client
        self._config = config
        self._base = f"{key_prefix}:{config.name}"

    @property
    def name(self) -> str:
        return self._config.name

    def _key(self, suffix: str) -> str:
        return f"{self._base}:{suffix}"

    def _job_key(self, job_id: str) -> str:
        return self._key(f"job:{job_id}")

    # Producer side -----------------------------------------------------

    async def enqueue(self, request: EvaluationRequest) -> str:
        job_id = request.job_id
        job_key = self._job_key(job_id)
        record = {
            "id": job_id,
            "name": "evaluate",
            "data": json.dumps(request.to_job_payload()),
            "state": JobState.WAITING.value,
            "attempts_made": 0,
            "max_attempts": self._config.attempts,
            "created_at": _now_ms(),
        }

        async with _translate_errors("enqueue"):
            async with self._redis.pipeline(transaction=True) as pipe:
                try:
                    await pipe.watch(job_key)
                    if await pipe.hexists(job_key, "data"):
                        logger.info("Job %s already present; enqueue is a no-op", job_id)
                        return job_id
                    pipe.multi()
                    # A record without data is a leftover fragment, not a job.
                    pipe.delete(job_key)
                    pipe.hset(job_key, mapping=record)
                    pipe.lpush(self._key("waiting"), job_id)
                    await pipe.execute()
                except WatchError:
                    logger.info("Job %s created concurrently; enqueue is a no-op", job_id)
                    return job_id

        logger.info("Enqueued job %s on %s", job_id, self.name)
        return job_id

    async def get_job(self, job_id: str) -> Optional[JobHandle]:
        async with _translate_errors("get_job"):
            raw = await self._redis.hgetall(self._job_key(job_id))
        if not raw or "data" not in raw:
            return None
        return self._to_handle(job_id, raw)

    async def wait_until_finished(
        self, job_id: str, timeout_ms: int
    ) -> Optional[dict[str, Any]]:
        """Block until the job completes, fails terminally or the timeout elapses.

        Returns the job's recorded return value on completion. Raises
        ``JobFailedError`` on terminal failure, ``JobNotFoundError`` if the
        record disappears and ``JobWaitTimeoutError`` when ``timeout_ms``
        passes first. Retries in backoff are still pending and keep waiting.
        """

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_ms / 1000
        interval = self._config.wait_poll_interval_ms / 1000

        while True:
            handle = await self.get_job(job_id)
            if handle is None:
                raise JobNotFoundError(job_id)
            if handle.state is JobState.COMPLETED:
                return handle.return_value
            if handle.state is JobState.FAILED:
                raise JobFailedError(job_id, handle.failed_reason)

            remaining = deadline - loop.time()
            if remaining <= 0:
                raise JobWaitTimeoutError(job_id, timeout_ms)
            await asyncio.sleep(min(interval, remaining))

    async def remove(self, job_id: str) -> bool:
        async with _translate_errors("remove"):
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.delete(self._job_key(job_id))
                pipe.lrem(self._key("waiting"), 0, job_id)
                pipe.lrem(self._key("active"), 0, job_id)
                pipe.zrem(self._key("delayed"), job_id)
                pipe.zrem(self._key("completed"), job_id)
                pipe.zrem(self._key("failed"), job_id)
                deleted, *_ = await pipe.execute()
        if deleted:
            logger.info("Removed job %s", job_id)
        return bool(deleted)

    # Consumer side -----------------------------------------------------

    async def reserve(self) -> Optional[JobHandle]:
        """Move the oldest waiting job to active and return it, if any."""

        await self.promote_delayed()

        async with _translate_errors("reserve"):
            while True:
                job_id = await self._redis.rpoplpush(
                    self._key("waiting"), self._key("active")
                )
                if job_id is None:
                    return None

                record = await self._transition(
                    job_id,
                    lambda current: current.get("state") == JobState.WAITING.value,
                    lambda pipe, current: {
                        "state": JobState.ACTIVE.value,
                        "processed_at": _now_ms(),
                        "token": uuid4().hex,
                    },
                )
                if record is None:
                    # Removed or already claimed; drop the entry just pushed.
                    await self._redis.lrem(self._key("active"), 1, job_id)
                    continue
                return self._to_handle(job_id, record)

    async def complete(
        self,
        job_id: str,
        return_value: Mapping[str, Any],
        *,
        token: Optional[str] = None,
    ) -> None:
        def apply(pipe: Pipeline, current: Mapping[str, str]) -> dict[str, Any]:
            finished_at = _now_ms()
            pipe.lrem(self._key("active"), 0, job_id)
            pipe.zadd(self._key("completed"), {job_id: finished_at})
            return {
                "state": JobState.COMPLETED.value,
                "return_value": json.dumps(dict(return_value)),
                "finished_at": finished_at,
                "token": "",
            }

        async with _translate_errors("complete"):
            if await self._transition(job_id, _held_by(token), apply) is None:
                logger.warning("Ignoring completion of job %s: lock lost", job_id)
                return
            await self._trim("completed", self._config.remove_on_complete)

    async def fail(
        self,
        job_id: str,
        reason: str,
        *,
        retryable: bool = True,
        token: Optional[str] = None,
    ) -> Optional[JobHandle]:
        """Record a failed attempt and schedule a retry when the budget allows.

        Retries are delayed by ``backoff_ms * 2 ** (attempt - 1)``.
        """

        def apply(pipe: Pipeline, current: Mapping[str, str]) -> dict[str, Any]:
            attempts_made = int(current.get("attempts_made") or 0) + 1
            max_attempts = int(current.get("max_attempts") or self._config.attempts)
            now = _now_ms()
            fields: dict[str, Any] = {
                "attempts_made": attempts_made,
                "failed_reason": reason,
                "token": "",
            }
            pipe.lrem(self._key("active"), 0, job_id)
            if retryable and attempts_made < max_attempts:
                delay = self._config.backoff_ms * 2 ** (attempts_made - 1)
                pipe.zadd(self._key("delayed"), {job_id: now + delay})
                fields.update(state=JobState.DELAYED.value, retry_at=now + delay)
            else:
                pipe.zadd(self._key("failed"), {job_id: now})
                fields.update(state=JobState.FAILED.value, finished_at=now)
            return fields

        async with _translate_errors("fail"):
            record = await self._transition(job_id, _held_by(token), apply)
            if record is None:
                logger.warning("Ignoring failure of job %s: lock lost", job_id)
                return None
            await self._trim("failed", self._config.remove_on_fail)

        handle = self._to_handle(job_id, record)
        if handle.state is JobState.DELAYED:
            logger.info(
                "Job %s attempt %s/%s failed; retrying at %s",
                job_id,
                handle.attempts_made,
                handle.max_attempts,
                record["retry_at"],
            )
        else:
            logger.warning(
                "Job %s failed terminally after %s attempt(s): %s",
                job_id,
                handle.attempts_made,
                reason,
            )
        return handle

    async def promote_delayed(self) -> int:
        now = _now_ms()
        promoted = 0

        def apply(pipe: Pipeline, current: Mapping[str, str]) -> dict[str, Any]:
            pipe.lpush(self._key("waiting"), current["id"])
            return {"state": JobState.WAITING.value}

        async with _translate_errors("promote_delayed"):
            due = await self._redis.zrangebyscore(self._key("delayed"), "-inf", now)
            for job_id in due:
                # ZREM arbitrates between concurrent promoters.
                if not await self._redis.zrem(self._key("delayed"), job_id):
                    continue
                record = await self._transition(
                    job_id,
                    lambda current: current.get("state") == JobState.DELAYED.value,
                    apply,
                )
                if record is not None:
                    promoted += 1
        if promoted:
            logger.debug("Promoted %s delayed job(s)", promoted)
        return promoted

    async def requeue_stalled(self) -> int:
        threshold = _now_ms() - self._config.stalled_after_ms
        recovered = 0

        def stalled(current: Mapping[str, str]) -> bool:
            processed_at = _optional_int(current.get("processed_at"))
            return current.get("state") == JobState.ACTIVE.value and (
                processed_at is None or processed_at <= threshold
            )

        def apply(pipe: Pipeline, current: Mapping[str, str]) -> dict[str, Any]:
            pipe.lrem(self._key("active"), 0, current["id"])
            pipe.lpush(self._key("waiting"), current["id"])
            return {"state": JobState.WAITING.value, "token": ""}

        async with _translate_errors("requeue_stalled"):
            for job_id in await self._redis.lrange(self._key("active"), 0, -1):
                if await self._transition(job_id, stalled, apply) is not None:
                    recovered += 1
        if recovered:
            logger.warning("Recovered %s stalled job(s)", recovered)
        return recovered

    # Housekeeping ------------------------------------------------------

    async def counts(self) -> dict[str, int]:
        async with _translate_errors("counts"):
            async with self._redis.pipeline(transaction=False) as pipe:
                pipe.llen(self._key("waiting"))
                pipe.llen(self._key("active"))
                pipe.zcard(self._key("delayed"))
                pipe.zcard(self._key("completed"))
                pipe.zcard(self._key("failed"))
                waiting, active, delayed, completed, failed = await pipe.execute()
        return {
            "waiting": waiting,
            "active": active,
            "delayed": delayed,
            "completed": completed,
            "failed": failed,
        }

    async def ping(self) -> bool:
        try:
            return bool(await self._redis.ping())
        except RedisError:
            logger.warning("Redis ping failed", exc_info=True)
            return False

    async def close(self) -> None:
        await self._redis.aclose()

    async def _transition(
        self,
        job_id: str,
        guard: Callable[[Mapping[str, str]], bool],
        apply: Callable[[Pipeline, Mapping[str, str]], dict[str, Any]],
    ) -> Optional[dict[str, str]]:
        """Atomically rewrite a job record while it still exists and ``guard`` holds.

        The record is read under WATCH; ``apply`` queues any list/set moves on
        the MULTI pipeline and returns the hash fields to write. Returns the
        updated record, or None when the job is gone or the guard fails.
        """

        job_key = self._job_key(job_id)
        async with self._redis.pipeline(transaction=True) as pipe:
            while True:
                try:
                    await pipe.watch(job_key)
                    current = await pipe.hgetall(job_key)
                    if "data" not in current or not guard(current):
                        return None
                    pipe.multi()
                    fields = apply(pipe, current)
                    pipe.hset(job_key, mapping=fields)
                    await pipe.execute()
                except WatchError:
                    continue
                return {**current, **{name: str(value) for name, value in fields.items()}}

    async def _trim(self, bucket: str, keep: int) -> None:
        key = self._key(bucket)
        excess = await self._redis.zcard(key) - keep
        if excess <= 0:
            return
        stale = await self._redis.zrange(key, 0, excess - 1)
        if not stale:
            return
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.zrem(key, *stale)
            pipe.delete(*(self._job_key(job_id) for job_id in stale))
            await pipe.execute()

    @staticmethod
    def _to_handle(job_id: str, raw: Mapping[str, str]) -> JobHandle:
        return_value = raw.get("return_value")
        return JobHandle(
            id=job_id,
            data=json.loads(raw["data"]),
            state=JobState(raw.get("state") or JobState.WAITING.value),
            attempts_made=int(raw.get("attempts_made") or 0),
            max_attempts=int(raw.get("max_attempts") or 1),
            failed_reason=raw.get("failed_reason") or None,
            return_value=json.loads(return_value) if return_value else None,
            created_at_ms=_optional_int(raw.get("created_at")),
            processed_at_ms=_optional_int(raw.get("processed_at")),
            finished_at_ms=_optional_int(raw.get("finished_at")),
            token=raw.get("token") or None,
        )


__all__ = ["RedisJobQueue"]
