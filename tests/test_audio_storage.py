"""Tests for the S3 recording store."""

from __future__ import annotations

import asyncio

import pytest
from botocore.exceptions import ClientError

from drill_eval.config.settings import S3Config
from drill_eval.domain.errors import StorageError
from drill_eval.infrastructure.external.s3_adapter import S3AudioStorage, object_url


class _FakeS3:
    def __init__(self, error=None):
        self.objects = []
        self._error = error

    def put_object(self, **kwargs):
        if self._error is not None:
            raise self._error
        self.objects.append(kwargs)


def _config(**overrides) -> S3Config:
    values = {"bucket_name": "recordings", "region": "eu-west-1", "audio_prefix": "evaluations"}
    values.update(overrides)
    return S3Config(**values)


def test_upload_returns_public_object_url():
    s3 = _FakeS3()
    storage = S3AudioStorage(_config(), client=s3)

    url = asyncio.run(
        storage.upload_audio(
            b"RIFF",
            user_id="user-1",
            question_id="q-9",
            content_type="audio/wav",
            extension="wav",
        )
    )

    [put] = s3.objects
    assert put["Bucket"] == "recordings"
    assert put["Key"].startswith("evaluations/user-1/audio-q-9-")
    assert put["Key"].endswith(".wav")
    assert put["ContentType"] == "audio/wav"
    assert url == f"https://recordings.s3.eu-west-1.amazonaws.com/{put['Key']}"


def test_us_east_1_urls_omit_region():
    assert object_url("b", "us-east-1", "k.wav") == "https://b.s3.amazonaws.com/k.wav"


def test_upload_failure_is_storage_error():
    error = ClientError({"Error": {"Code": "AccessDenied", "Message": "denied"}}, "PutObject")
    storage = S3AudioStorage(_config(), client=_FakeS3(error))

    with pytest.raises(StorageError):
        asyncio.run(
            storage.upload_audio(
                b"RIFF",
                user_id="u",
                question_id="q",
                content_type="audio/wav",
                extension="wav",
            )
        )
