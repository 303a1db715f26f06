"""Service layer helpers for external integrations."""

from .analytics import AnalyticsSink, flush_sentry, init_sentry
from .rate_limit import RedisRateLimiter
from .scoring import BedrockScoringService, OpenAIScoringService, build_scoring_service
from .transcribe import (
    AwsTranscribeService,
    WhisperTranscriptionService,
    build_transcription_service,
)

__all__ = [
    "AnalyticsSink",
    "flush_sentry",
    "init_sentry",
    "RedisRateLimiter",
    "BedrockScoringService",
    "OpenAIScoringService",
    "build_scoring_service",
    "AwsTranscribeService",
    "WhisperTranscriptionService",
    "build_transcription_service",
]
