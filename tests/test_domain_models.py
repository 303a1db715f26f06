"""Validation rules for requests and results."""

from __future__ import annotations

from uuid import uuid4

import pytest
from pydantic import ValidationError

from drill_eval.domain.evaluation import EvaluationRequest, EvaluationResult


def test_job_id_is_request_id():
    request_id = uuid4()
    request = EvaluationRequest.model_validate({"requestId": str(request_id), "text": "hi"})

    assert request.job_id == str(request_id)
    assert request.to_job_payload() == {"requestId": str(request_id), "text": "hi"}


def test_camel_case_audio_url_is_accepted():
    request = EvaluationRequest.model_validate(
        {"requestId": str(uuid4()), "audioUrl": " https://cdn.example.com/a.mp3 "}
    )

    assert request.audio_url == "https://cdn.example.com/a.mp3"
    assert request.text is None


@pytest.mark.parametrize(
    "body",
    [
        {"text": "hi"},
        {"requestId": "123", "text": "hi"},
        {"requestId": "UUID"},
        {"requestId": "UUID", "text": "", "audio_url": ""},
        {"requestId": "UUID", "text": "hi", "audio_url": "https://cdn.example.com/a.mp3"},
        {"requestId": "UUID", "audio_url": "ftp://cdn.example.com/a.mp3"},
        {"requestId": "UUID", "audio_url": "https://"},
    ],
)
def test_invalid_requests_are_rejected(body):
    if body.get("requestId") == "UUID":
        body = {**body, "requestId": str(uuid4())}

    with pytest.raises(ValidationError):
        EvaluationRequest.model_validate(body)


def test_result_public_shape_uses_camel_case():
    result = EvaluationResult(
        request_id="r",
        job_id="r",
        score=0,
        feedback="Needs a concrete example.",
        duration_ms=10,
    )

    assert result.to_public() == {
        "requestId": "r",
        "jobId": "r",
        "score": 0,
        "feedback": "Needs a concrete example.",
        "whatChanged": "",
        "practiceRule": "",
        "transcription": None,
        "durationMs": 10,
        "tokensUsed": None,
        "createdAt": None,
    }


@pytest.mark.parametrize("score", [-1, 101])
def test_result_score_bounds(score):
    with pytest.raises(ValidationError):
        EvaluationResult(request_id="r", job_id="r", score=score, feedback="ok", duration_ms=1)


def test_result_feedback_length_bounds():
    with pytest.raises(ValidationError):
        EvaluationResult(request_id="r", job_id="r", score=50, feedback="x" * 5001, duration_ms=1)
