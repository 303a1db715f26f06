"""Evaluation submission and status endpoints.

``POST /evaluate`` accepts either a JSON body (text or an https audio URL)
or a multipart upload with an ``audioFile`` part. The stage map of the
worker that eventually scores the submission lives in
``drill_eval.pipelines.evaluation.flow``.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Mapping
from uuid import UUID, uuid4

from fastapi import APIRouter, HTTPException, Request, status
from fastapi.responses import JSONResponse
from pydantic import TypeAdapter, ValidationError
from starlette.datastructures import UploadFile

from drill_eval.application.use_cases.evaluation_status import EvaluationStatusUseCase
from drill_eval.application.use_cases.submit_evaluation import SubmitEvaluationUseCase
from drill_eval.config.container import ServiceContainer
from drill_eval.controllers.dependencies import (
    AuthenticatedUser,
    ContainerDep,
    CurrentUserDep,
)
from drill_eval.controllers.ingestion import (
    extension_for,
    read_audio_bytes,
    resolve_content_type,
)
from drill_eval.domain.errors import StorageError
from drill_eval.domain.evaluation import (
    Completed,
    EvaluationRequest,
    Failed,
    NotFound,
    Processing,
    Queued,
    StatusOutcome,
    SubmissionOutcome,
)
from drill_eval.telemetry import record_submission
from drill_eval.views import (
    ErrorResponse,
    EvaluationErrorBody,
    EvaluationStatusResponse,
    EvaluationSubmissionResponse,
)

router = APIRouter(prefix="/evaluate", tags=["evaluate"])

logger = logging.getLogger(__name__)

_REQUEST_ID = TypeAdapter(UUID)


@router.post(
    "",
    response_model=EvaluationSubmissionResponse,
    responses={
        202: {"model": EvaluationSubmissionResponse},
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
    },
)
async def submit_evaluation(
    request: Request,
    current_user: CurrentUserDep,
    container: ContainerDep,
) -> JSONResponse:
    """Score a response synchronously when fast enough, otherwise hand back a poll URL."""

    limiter = container.rate_limiter
    if limiter is not None and not await limiter.hit(current_user.id):
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Rate limit exceeded",
        )

    content_type = request.headers.get("content-type", "")
    if content_type.startswith("multipart/form-data"):
        body = await _multipart_body(request, current_user, container)
    else:
        body = await _json_body(request)

    try:
        evaluation_request = EvaluationRequest.model_validate(body)
    except ValidationError as exc:
        raise _invalid_request(exc) from None

    evaluation_request = _with_user(evaluation_request, current_user)

    use_case = SubmitEvaluationUseCase(
        container.store,
        container.queue,
        container.settings.evaluation,
    )
    outcome = await use_case.execute(evaluation_request)

    record_submission(outcome.status.value)
    container.analytics.capture(
        "evaluation_submitted",
        {
            "jobId": outcome.job_id,
            "requestId": outcome.request_id,
            "status": outcome.status.value,
            "hasAudio": evaluation_request.audio_url is not None,
        },
    )
    return _submission_response(outcome, container)


@router.get(
    "/{job_id}/status",
    response_model=EvaluationStatusResponse,
    responses={404: {"model": ErrorResponse, "description": "Job not found"}},
)
async def evaluation_status(
    job_id: str,
    _current_user: CurrentUserDep,
    container: ContainerDep,
) -> JSONResponse:
    """Report the job's state; stored results are authoritative."""

    outcome = await EvaluationStatusUseCase(container.store, container.queue).execute(job_id)
    return _status_response(outcome, container.settings.evaluation.poll_after_ms)


async def _json_body(request: Request) -> Any:
    try:
        return await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Request body must be valid JSON",
        ) from None


async def _multipart_body(
    request: Request,
    current_user: AuthenticatedUser,
    container: ServiceContainer,
) -> dict[str, Any]:
    form = await request.form()

    audio_file = form.get("audioFile")
    if not isinstance(audio_file, UploadFile):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Audio file is required for audio submissions",
        )

    metadata: dict[str, Any] = {}
    raw_metadata = form.get("metadata")
    if isinstance(raw_metadata, str) and raw_metadata.strip():
        try:
            metadata = json.loads(raw_metadata)
        except json.JSONDecodeError:
            metadata = None
        if not isinstance(metadata, dict):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="metadata must be a JSON object",
            )

    question_id = _form_text(form, "questionId") or str(metadata.get("questionId") or "unknown")
    metadata.setdefault("questionId", question_id)
    metadata.setdefault("responseType", "audio")
    user_id = _form_text(form, "userId") or current_user.id

    # Reject a bad id before anything is written to storage.
    request_id = _form_text(form, "requestId") or str(uuid4())
    try:
        _REQUEST_ID.validate_python(request_id)
    except ValidationError as exc:
        raise _invalid_request(exc, loc=("requestId",)) from None

    storage = container.audio_storage
    if storage is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Audio uploads are not configured",
        )

    audio_content_type = resolve_content_type(audio_file)
    audio_bytes = await read_audio_bytes(
        audio_file, max_bytes=container.settings.transcription.max_audio_bytes
    )
    try:
        audio_url = await storage.upload_audio(
            audio_bytes,
            user_id=user_id,
            question_id=question_id,
            content_type=audio_content_type,
            extension=extension_for(audio_content_type),
        )
    except StorageError as exc:
        logger.error("Failed to upload audio file: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to upload audio file",
        ) from exc

    return {
        "requestId": request_id,
        "audio_url": audio_url,
        "userId": user_id,
        "metadata": metadata,
    }


def _form_text(form: Mapping[str, Any], key: str) -> str | None:
    value = form.get(key)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _with_user(
    evaluation_request: EvaluationRequest, current_user: AuthenticatedUser
) -> EvaluationRequest:
    if evaluation_request.user_id:
        return evaluation_request
    metadata_user = (evaluation_request.metadata or {}).get("userId")
    user_id = metadata_user if isinstance(metadata_user, str) and metadata_user else current_user.id
    return evaluation_request.model_copy(update={"user_id": user_id})


def _invalid_request(exc: ValidationError, loc: tuple[str, ...] = ()) -> HTTPException:
    logger.info("Evaluation request validation failed: %s", exc)
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={"error": "Invalid request", "details": _validation_details(exc, loc)},
    )


def _validation_details(
    exc: ValidationError, loc: tuple[str, ...] = ()
) -> list[dict[str, Any]]:
    return [
        {
            "loc": [*loc, *(str(part) for part in error["loc"])],
            "msg": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]


def _submission_response(
    outcome: SubmissionOutcome, container: ServiceContainer
) -> JSONResponse:
    poll_url = container.settings.evaluation.poll_path_template.format(job_id=outcome.job_id)

    if isinstance(outcome, Completed):
        body = EvaluationSubmissionResponse(
            job_id=outcome.job_id,
            request_id=outcome.request_id,
            status=outcome.status.value,
            result=outcome.result.to_public(),
        )
        status_code = status.HTTP_200_OK
    elif isinstance(outcome, (Queued, Processing)):
        body = EvaluationSubmissionResponse(
            job_id=outcome.job_id,
            request_id=outcome.request_id,
            status=outcome.status.value,
            poll_url=poll_url,
        )
        status_code = status.HTTP_202_ACCEPTED
    elif isinstance(outcome, Failed):
        body = EvaluationSubmissionResponse(
            job_id=outcome.job_id,
            request_id=outcome.request_id,
            status=outcome.status.value,
            error=EvaluationErrorBody(code=outcome.code, message=outcome.message),
        )
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    else:
        raise TypeError(f"Unhandled submission outcome: {outcome!r}")

    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(mode="json", by_alias=True, exclude_none=True),
    )


def _status_response(outcome: StatusOutcome, poll_after_ms: int) -> JSONResponse:
    if isinstance(outcome, NotFound):
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"detail": outcome.detail},
        )

    if isinstance(outcome, Completed):
        body = EvaluationStatusResponse(
            job_id=outcome.job_id,
            request_id=outcome.request_id,
            status=outcome.status.value,
            result=outcome.result.to_public(),
            poll_after_ms=0,
        )
    elif isinstance(outcome, (Queued, Processing)):
        body = EvaluationStatusResponse(
            job_id=outcome.job_id,
            request_id=outcome.request_id,
            status=outcome.status.value,
            poll_after_ms=poll_after_ms,
        )
    elif isinstance(outcome, Failed):
        body = EvaluationStatusResponse(
            job_id=outcome.job_id,
            request_id=outcome.request_id,
            status=outcome.status.value,
            error=EvaluationErrorBody(code=outcome.code, message=outcome.message),
            poll_after_ms=0,
        )
    else:
        raise TypeError(f"Unhandled status outcome: {outcome!r}")

    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content=body.model_dump(mode="json", by_alias=True),
    )


__all__ = ["router"]
