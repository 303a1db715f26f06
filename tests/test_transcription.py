"""Tests for audio download and the Whisper transcription adapter."""

from __future__ import annotations

import asyncio
from types import SimpleNamespace

import httpx
import pytest

from drill_eval.domain.errors import TranscriptionError
from drill_eval.services.transcribe import WhisperTranscriptionService, download_audio

AUDIO_URL = "https://cdn.example.com/answers/clip.webm"


def _http_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _download(handler, max_bytes=1024):
    async def scenario():
        async with _http_client(handler) as http_client:
            return await download_audio(http_client, AUDIO_URL, max_bytes=max_bytes)

    return asyncio.run(scenario())


def test_download_returns_bytes_and_content_type():
    def handler(request):
        return httpx.Response(200, content=b"webm-bytes", headers={"content-type": "audio/webm; codecs=opus"})

    assert _download(handler) == (b"webm-bytes", "audio/webm")


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(404, content=b"missing"),
        httpx.Response(200, content=b""),
        httpx.Response(200, content=b"x" * 2048),
    ],
)
def test_download_rejects_unusable_audio(response):
    with pytest.raises(TranscriptionError):
        _download(lambda request: response)


def test_whisper_transcribes_downloaded_audio():
    uploads = []

    async def create(**kwargs):
        uploads.append(kwargs)
        return SimpleNamespace(text="  I own the on-call rotation.  ", language="english")

    openai_client = SimpleNamespace(
        audio=SimpleNamespace(transcriptions=SimpleNamespace(create=create))
    )

    def handler(request):
        return httpx.Response(200, content=b"webm-bytes", headers={"content-type": "audio/webm"})

    async def scenario():
        async with _http_client(handler) as http_client:
            service = WhisperTranscriptionService(openai_client, http_client, model="whisper-1")
            return await service.transcribe(AUDIO_URL)

    result = asyncio.run(scenario())

    assert result.transcript == "I own the on-call rotation."
    assert result.language_code == "english"
    assert uploads[0]["file"] == ("clip.webm", b"webm-bytes", "audio/webm")
    assert uploads[0]["model"] == "whisper-1"
