"""Explicitly constructed service handles shared by the API and the worker.

Nothing here is created at import time. The API builds one container at
startup and stores it on ``app.state``; the worker builds its own. Tests
construct ``ServiceContainer`` directly with in-memory fakes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx
import redis.asyncio as redis
from openai import AsyncOpenAI
from sqlalchemy.ext.asyncio import AsyncEngine

from drill_eval.application.interfaces import (
    AnalyticsSinkInterface,
    AudioStorageInterface,
    EvaluationResultStoreInterface,
    JobQueueInterface,
    RateLimiterInterface,
    ScoringAdapterInterface,
    TranscriptionAdapterInterface,
)
from drill_eval.config.settings import Settings
from drill_eval.database import create_engine, create_session_factory, dispose_engine
from drill_eval.infrastructure.external.redis_queue import RedisJobQueue
from drill_eval.infrastructure.external.s3_adapter import S3AudioStorage
from drill_eval.infrastructure.persistence.evaluation_store import (
    SQLAlchemyEvaluationResultStore,
)
from drill_eval.services.analytics import AnalyticsSink
from drill_eval.services.rate_limit import RedisRateLimiter
from drill_eval.services.scoring import build_scoring_service
from drill_eval.services.transcribe import build_transcription_service

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    settings: Settings
    store: EvaluationResultStoreInterface
    queue: JobQueueInterface
    analytics: AnalyticsSinkInterface
    rate_limiter: Optional[RateLimiterInterface] = None
    audio_storage: Optional[AudioStorageInterface] = None
    transcriber: Optional[TranscriptionAdapterInterface] = None
    scorer: Optional[ScoringAdapterInterface] = None
    engine: Optional[AsyncEngine] = None
    _closeables: list[Any] = field(default_factory=list, repr=False)

    @classmethod
    def build_from_settings(
        cls,
        settings: Settings,
        *,
        component: str = "api",
        sentry_enabled: bool = False,
        with_worker_services: bool = False,
    ) -> "ServiceContainer":
        """Wire production adapters; worker services are opt-in."""

        engine = create_engine(settings.database, debug=settings.debug)
        redis_client = redis.from_url(settings.redis.url, decode_responses=True)

        container = cls(
            settings=settings,
            store=SQLAlchemyEvaluationResultStore(create_session_factory(engine)),
            queue=RedisJobQueue(
                redis_client,
                settings.queue,
                key_prefix=settings.redis.key_prefix,
            ),
            analytics=AnalyticsSink(sentry_enabled=sentry_enabled, component=component),
            rate_limiter=RedisRateLimiter(
                redis_client,
                limit=settings.evaluation.rate_limit_rpm,
                key_prefix=settings.redis.key_prefix,
            ),
            audio_storage=S3AudioStorage(settings.s3),
            engine=engine,
        )

        if with_worker_services:
            openai_client = None
            if settings.openai.api_key is not None:
                openai_client = AsyncOpenAI(
                    api_key=settings.openai.api_key.get_secret_value(),
                    timeout=settings.openai.timeout_s,
                )
                container._closeables.append(openai_client)
            http_client = httpx.AsyncClient(
                timeout=settings.transcription.download_timeout_s,
                follow_redirects=True,
            )
            container._closeables.append(http_client)
            container.transcriber = build_transcription_service(
                settings,
                http_client=http_client,
                openai_client=openai_client,
            )
            container.scorer = build_scoring_service(settings, openai_client=openai_client)

        return container

    async def aclose(self) -> None:
        for resource in reversed(self._closeables):
            close = getattr(resource, "aclose", None) or resource.close
            try:
                await close()
            except Exception:
                logger.warning("Failed to close %r", resource, exc_info=True)
        self._closeables.clear()
        await self.queue.close()
        if self.engine is not None:
            await dispose_engine(self.engine)


__all__ = ["ServiceContainer"]
