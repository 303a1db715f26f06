"""Multipart audio upload helpers."""

from __future__ import annotations

import mimetypes
from typing import Final

from fastapi import HTTPException, status
from starlette.datastructures import UploadFile

_EXTENSIONS: Final[dict[str, str]] = {
    "audio/wav": "wav",
    "audio/x-wav": "wav",
    "audio/wave": "wav",
    "audio/webm": "webm",
    "audio/mpeg": "mp3",
    "audio/mp3": "mp3",
    "audio/mp4": "m4a",
    "audio/x-m4a": "m4a",
    "audio/m4a": "m4a",
    "audio/ogg": "ogg",
}


def resolve_content_type(audio_file: UploadFile) -> str:
    """Accept common recording formats, guessing from the filename if needed."""

    content_type = (audio_file.content_type or "").split(";")[0].strip().lower()
    if (not content_type or content_type == "application/octet-stream") and audio_file.filename:
        guessed_type, _ = mimetypes.guess_type(audio_file.filename)
        content_type = guessed_type or ""

    content_type = content_type or "audio/wav"

    if content_type not in _EXTENSIONS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only WAV, WebM, MP3, M4A or OGG audio files are supported",
        )
    return content_type


def extension_for(content_type: str) -> str:
    return _EXTENSIONS.get(content_type, "wav")


async def read_audio_bytes(audio_file: UploadFile, *, max_bytes: int) -> bytes:
    """Load the upload fully into memory, rejecting empty or oversized payloads."""

    audio_bytes = await audio_file.read()
    await audio_file.close()

    if not audio_bytes:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Uploaded audio file is empty",
        )
    if len(audio_bytes) > max_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail="Uploaded audio file is too large",
        )
    return audio_bytes


__all__ = ["extension_for", "read_audio_bytes", "resolve_content_type"]
