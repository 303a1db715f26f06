"""SQLAlchemy-backed evaluation result store."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from drill_eval.application.interfaces import EvaluationResultStoreInterface
from drill_eval.domain.errors import StoreError
from drill_eval.domain.evaluation import EvaluationResult
from drill_eval.models.evaluation_result import EvaluationResultRecord, utc_now

logger = logging.getLogger(__name__)

_UNKNOWN_QUESTION = "unknown"
_CONFLICT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def _metadata_text(metadata: Mapping[str, Any] | None, key: str) -> Optional[str]:
    if not metadata:
        return None
    value = metadata.get(key)
    return value if isinstance(value, str) else None


def _to_domain(record: EvaluationResultRecord) -> EvaluationResult:
    return EvaluationResult(
        request_id=record.request_id,
        job_id=record.job_id,
        score=record.score,
        feedback=record.feedback,
        what_changed=record.what_changed or "",
        practice_rule=record.practice_rule or "",
        transcription=record.transcription,
        duration_ms=record.duration_ms,
        tokens_used=record.tokens_used,
        created_at=record.created_at,
    )


class SQLAlchemyEvaluationResultStore(EvaluationResultStoreInterface):
    """Evaluation results keyed by request id (unique) and job id (indexed).

    Writes are insert-if-absent on ``request_id``: the first persisted result
    for a request wins and later upserts are no-ops, so redelivered jobs can
    never overwrite or duplicate a stored evaluation.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get_by_request_id(self, request_id: str) -> Optional[EvaluationResult]:
        return await self._fetch_one(EvaluationResultRecord.request_id == request_id)

    async def get_by_job_id(self, job_id: str) -> Optional[EvaluationResult]:
        return await self._fetch_one(EvaluationResultRecord.job_id == job_id)

    async def upsert(
        self,
        result: EvaluationResult,
        user_id: Optional[str] = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> None:
        values = {
            "request_id": result.request_id,
            "job_id": result.job_id,
            "user_id": user_id,
            "question_id": _metadata_text(metadata, "questionId") or _UNKNOWN_QUESTION,
            "content_pack_id": _metadata_text(metadata, "contentPackId"),
            "response_type": _metadata_text(metadata, "responseType"),
            "score": result.score,
            "feedback": result.feedback,
            "what_changed": result.what_changed,
            "practice_rule": result.practice_rule,
            "transcription": result.transcription,
            "duration_ms": result.duration_ms,
            "tokens_used": result.tokens_used,
            "metadata_json": dict(metadata) if metadata else None,
            "created_at": result.created_at or utc_now(),
        }

        try:
            async with self._session_factory() as session:
                inserted = await self._insert_if_absent(session, values)
                await session.commit()
        except SQLAlchemyError as exc:
            raise StoreError(
                f"Failed to upsert evaluation result {result.request_id}: {exc}"
            ) from exc

        if inserted:
            logger.info("Persisted evaluation result request=%s", result.request_id)
        else:
            logger.info(
                "Evaluation result already stored request=%s; upsert ignored",
                result.request_id,
            )

    async def _insert_if_absent(
        self, session: AsyncSession, values: dict[str, Any]
    ) -> bool:
        dialect = session.get_bind().dialect.name
        insert_factory = _CONFLICT_INSERTS.get(dialect)

        if insert_factory is not None:
            statement = (
                insert_factory(EvaluationResultRecord)
                .values(**values)
                .on_conflict_do_nothing(index_elements=["request_id"])
            )
            outcome = await session.execute(statement)
            return bool(outcome.rowcount)

        existing = await session.execute(
            select(EvaluationResultRecord.id).where(
                EvaluationResultRecord.request_id == values["request_id"]
            )
        )
        if existing.scalar_one_or_none() is not None:
            return False
        session.add(EvaluationResultRecord(**values))
        try:
            await session.flush()
        except IntegrityError:
            await session.rollback()
            return False
        return True

    async def _fetch_one(self, criterion) -> Optional[EvaluationResult]:
        try:
            async with self._session_factory() as session:
                outcome = await session.execute(
                    select(EvaluationResultRecord).where(criterion).limit(1)
                )
                record = outcome.scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to fetch evaluation result: {exc}") from exc

        return _to_domain(record) if record else None


__all__ = ["SQLAlchemyEvaluationResultStore"]
