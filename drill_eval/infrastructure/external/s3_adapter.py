"""S3 storage for uploaded evaluation recordings."""

from __future__ import annotations

import logging
import time
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError
from fastapi.concurrency import run_in_threadpool

from drill_eval.application.interfaces import AudioStorageInterface
from drill_eval.config.settings import S3Config
from drill_eval.domain.errors import StorageError
from drill_eval.services.aws import create_boto3_client

logger = logging.getLogger(__name__)


def object_url(bucket: str, region: str, key: str) -> str:
    if region == "us-east-1":
        return f"https://{bucket}.s3.amazonaws.com/{key}"
    return f"https://{bucket}.s3.{region}.amazonaws.com/{key}"


class S3AudioStorage(AudioStorageInterface):
    """Upload recordings under ``{prefix}/{user}/audio-{question}-{ts}.{ext}``."""

    def __init__(self, config: S3Config, client: Any | None = None) -> None:
        self._config = config
        self._client = client or create_boto3_client("s3", config)

    async def upload_audio(
        self,
        data: bytes,
        *,
        user_id: str,
        question_id: str,
        content_type: str,
        extension: str,
    ) -> str:
        if not data:
            raise StorageError("Audio payload for upload was empty.")
        bucket = self._config.bucket_name
        if not bucket:
            raise StorageError("S3 bucket name is not configured.")

        timestamp_ms = int(time.time() * 1000)
        object_key = (
            f"{self._config.audio_prefix}/{user_id}/"
            f"audio-{question_id}-{timestamp_ms}.{extension.lstrip('.')}"
        )
        try:
            await run_in_threadpool(
                self._client.put_object,
                Bucket=bucket,
                Key=object_key,
                Body=data,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Failed to upload evaluation audio: {exc}") from exc

        logger.info("Uploaded evaluation audio key=%s bytes=%s", object_key, len(data))
        return object_url(bucket, self._config.region, object_key)


__all__ = ["S3AudioStorage", "object_url"]
