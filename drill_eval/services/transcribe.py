"""Speech-to-text adapters: OpenAI Whisper and Amazon Transcribe streaming."""

from __future__ import annotations

import asyncio
import logging
import mimetypes
import os
import subprocess
import tempfile
import time
from pathlib import PurePosixPath
from urllib.parse import urlparse

import httpx
from amazon_transcribe.client import TranscribeStreamingClient
from amazon_transcribe.handlers import TranscriptResultStreamHandler
from amazon_transcribe.model import TranscriptEvent
from fastapi.concurrency import run_in_threadpool
from openai import APIError, AsyncOpenAI

from drill_eval.application.interfaces import (
    TranscriptionAdapterInterface,
    TranscriptionResult,
)
from drill_eval.config.settings import Settings, TranscriptionConfig
from drill_eval.domain.errors import TranscriptionError

logger = logging.getLogger(__name__)
pipeline_logger = logging.getLogger("drill_eval.pipeline")


async def download_audio(
    http_client: httpx.AsyncClient,
    audio_url: str,
    *,
    max_bytes: int,
) -> tuple[bytes, str]:
    """Fetch the recording and return ``(bytes, content_type)``."""

    try:
        response = await http_client.get(audio_url)
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        raise TranscriptionError(
            f"Failed to fetch audio from {audio_url}: {exc.response.status_code}"
        ) from exc
    except httpx.HTTPError as exc:
        raise TranscriptionError(f"Failed to fetch audio from {audio_url}: {exc}") from exc

    audio_bytes = response.content
    if not audio_bytes:
        raise TranscriptionError("The referenced audio file is empty.")
    if len(audio_bytes) > max_bytes:
        raise TranscriptionError(
            f"Audio file exceeds {max_bytes} bytes ({len(audio_bytes)} received)."
        )

    content_type = response.headers.get("content-type", "").split(";")[0].strip()
    return audio_bytes, content_type or "audio/mpeg"


def _filename_for(audio_url: str, content_type: str) -> str:
    name = PurePosixPath(urlparse(audio_url).path).name
    if name and "." in name:
        return name
    extension = mimetypes.guess_extension(content_type) or ".mp3"
    return f"audio{extension}"


class WhisperTranscriptionService(TranscriptionAdapterInterface):
    """Transcribe recordings with the OpenAI audio API."""

    def __init__(
        self,
        client: AsyncOpenAI,
        http_client: httpx.AsyncClient,
        *,
        model: str = "whisper-1",
        language: str = "en",
        max_audio_bytes: int = 25 * 1024 * 1024,
    ) -> None:
        self._client = client
        self._http = http_client
        self._model = model
        self._language = language
        self._max_audio_bytes = max_audio_bytes

    async def transcribe(self, audio_url: str) -> TranscriptionResult:
        started = time.perf_counter()
        audio_bytes, content_type = await download_audio(
            self._http, audio_url, max_bytes=self._max_audio_bytes
        )

        try:
            transcription = await self._client.audio.transcriptions.create(
                file=(_filename_for(audio_url, content_type), audio_bytes, content_type),
                model=self._model,
                language=self._language,
                response_format="verbose_json",
            )
        except APIError as exc:
            raise TranscriptionError(f"Whisper API error: {exc}") from exc

        transcript = (transcription.text or "").strip()
        duration_ms = int((time.perf_counter() - started) * 1000)
        pipeline_logger.info(
            "Whisper transcription chars=%s duration_ms=%s", len(transcript), duration_ms
        )
        return TranscriptionResult(
            transcript=transcript,
            duration_ms=duration_ms,
            language_code=getattr(transcription, "language", None) or self._language,
        )


class AwsTranscribeService(TranscriptionAdapterInterface):
    """Stream recordings to Amazon Transcribe after converting them to PCM."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        *,
        region: str,
        language_code: str = "en-US",
        media_sample_rate_hz: int = 16000,
        max_audio_bytes: int = 25 * 1024 * 1024,
        access_key: str | None = None,
        secret_key: str | None = None,
    ) -> None:
        self._http = http_client
        self._language_code = language_code
        self._media_sample_rate_hz = media_sample_rate_hz
        self._max_audio_bytes = max_audio_bytes

        # The streaming SDK only reads credentials from the environment chain.
        if access_key:
            os.environ["AWS_ACCESS_KEY_ID"] = access_key
        if secret_key:
            os.environ["AWS_SECRET_ACCESS_KEY"] = secret_key

        self._client = TranscribeStreamingClient(region=region)

    async def transcribe(self, audio_url: str) -> TranscriptionResult:
        started = time.perf_counter()
        audio_bytes, _ = await download_audio(
            self._http, audio_url, max_bytes=self._max_audio_bytes
        )

        try:
            pcm_data = await run_in_threadpool(self._convert_to_pcm, audio_bytes)
        except OSError as exc:
            raise TranscriptionError(f"Audio conversion failed: {exc}") from exc

        stream = await self._client.start_stream_transcription(
            language_code=self._language_code,
            media_sample_rate_hz=self._media_sample_rate_hz,
            media_encoding="pcm",
        )
        handler = _FinalTranscriptHandler(stream.output_stream)

        async def write_chunks() -> None:
            chunk_size = 8192
            # 16-bit mono: pace the upload at roughly real time.
            sleep_time = chunk_size / (self._media_sample_rate_hz * 2)
            for offset in range(0, len(pcm_data), chunk_size):
                await stream.input_stream.send_audio_event(
                    audio_chunk=pcm_data[offset : offset + chunk_size]
                )
                await asyncio.sleep(sleep_time)
            await stream.input_stream.end_stream()

        try:
            await asyncio.gather(write_chunks(), handler.handle_events())
        except Exception as exc:
            raise TranscriptionError(f"Streaming transcription failed: {exc}") from exc

        duration_ms = int((time.perf_counter() - started) * 1000)
        pipeline_logger.info(
            "Amazon Transcribe chars=%s duration_ms=%s",
            len(handler.transcript),
            duration_ms,
        )
        return TranscriptionResult(
            transcript=handler.transcript.strip(),
            duration_ms=duration_ms,
            language_code=self._language_code,
        )

    def _convert_to_pcm(self, audio_bytes: bytes) -> bytes:
        """Convert input audio to raw s16le PCM with ffmpeg via a seekable temp file."""

        with tempfile.NamedTemporaryFile(delete=False, suffix=".tmp") as tmp_file:
            tmp_file.write(audio_bytes)
            tmp_path = tmp_file.name

        try:
            process = subprocess.run(
                [
                    "ffmpeg",
                    "-y",
                    "-i", tmp_path,
                    "-f", "s16le",
                    "-ac", "1",
                    "-ar", str(self._media_sample_rate_hz),
                    "pipe:1",
                ],
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                check=True,
            )
        except subprocess.CalledProcessError as exc:
            error_msg = exc.stderr.decode("utf-8", errors="replace") if exc.stderr else "No stderr"
            logger.error("ffmpeg failed. stderr: %s", error_msg)
            raise TranscriptionError(f"ffmpeg failed to convert audio to PCM: {error_msg}") from exc
        finally:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)

        if not process.stdout:
            raise TranscriptionError("ffmpeg produced no audio samples.")
        return process.stdout


class _FinalTranscriptHandler(TranscriptResultStreamHandler):
    def __init__(self, transcript_result_stream):
        super().__init__(transcript_result_stream)
        self.transcript = ""

    async def handle_transcript_event(self, transcript_event: TranscriptEvent):
        for result in transcript_event.transcript.results:
            if result.is_partial:
                continue
            for alt in result.alternatives:
                self.transcript += alt.transcript + " "


def build_transcription_service(
    settings: Settings,
    *,
    http_client: httpx.AsyncClient,
    openai_client: AsyncOpenAI | None = None,
) -> TranscriptionAdapterInterface:
    """Return the adapter selected by ``TRANSCRIPTION_PROVIDER``."""

    config: TranscriptionConfig = settings.transcription
    if config.provider == "aws":
        return AwsTranscribeService(
            http_client,
            region=settings.s3.region,
            language_code=config.aws_language_code,
            media_sample_rate_hz=config.aws_sample_rate_hz,
            max_audio_bytes=config.max_audio_bytes,
            access_key=settings.s3.access_key,
            secret_key=settings.s3.secret_key,
        )

    if openai_client is None:
        raise TranscriptionError("OpenAI transcription selected but no client configured.")
    return WhisperTranscriptionService(
        openai_client,
        http_client,
        model=settings.openai.transcription_model,
        language=settings.openai.language,
        max_audio_bytes=config.max_audio_bytes,
    )


__all__ = [
    "AwsTranscribeService",
    "WhisperTranscriptionService",
    "build_transcription_service",
    "download_audio",
]
