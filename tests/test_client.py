"""Tests for the polling API client."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from drill_eval.client import EvaluationApiClient, EvaluationApiError, PollingExhaustedError
from drill_eval.config.settings import PollingConfig

COMPLETED_RESULT = {"score": 77, "feedback": "Good", "tokensUsed": 50}


def _client(handler, **polling) -> EvaluationApiClient:
    polling.setdefault("interval_ms", 0)
    return EvaluationApiClient(
        "http://api.test/",
        "token-abc",
        polling=PollingConfig(**polling),
        transport=httpx.MockTransport(handler),
    )


def _run(client: EvaluationApiClient, payload=None):
    async def scenario():
        async with client:
            return await client.evaluate(payload or {"requestId": "r-1", "text": "hi"})

    return asyncio.run(scenario())


def test_synchronous_completion_skips_polling():
    seen = []

    def handler(request):
        seen.append((request.method, request.url.path, request.headers["authorization"]))
        return httpx.Response(
            200,
            json={"jobId": "r-1", "requestId": "r-1", "status": "completed", "result": COMPLETED_RESULT},
        )

    body = _run(_client(handler))

    assert body["result"] == COMPLETED_RESULT
    assert seen == [("POST", "/evaluate", "Bearer token-abc")]


def test_deferred_job_is_polled_until_completed():
    polls = []

    def handler(request):
        if request.method == "POST":
            assert json.loads(request.content)["text"] == "hi"
            return httpx.Response(
                202,
                json={"jobId": "r-1", "requestId": "r-1", "status": "queued", "poll_url": "/evaluate/r-1/status"},
            )
        polls.append(request.url.path)
        if len(polls) < 3:
            return httpx.Response(
                200,
                json={"jobId": "r-1", "status": "processing", "result": None, "error": None, "poll_after_ms": 0},
            )
        return httpx.Response(
            200,
            json={"jobId": "r-1", "status": "completed", "result": COMPLETED_RESULT, "error": None, "poll_after_ms": 0},
        )

    body = _run(_client(handler))

    assert body["status"] == "completed"
    assert polls == ["/evaluate/r-1/status"] * 3


def test_failed_status_is_terminal():
    def handler(request):
        if request.method == "POST":
            return httpx.Response(202, json={"jobId": "r-1", "requestId": "r-1", "status": "queued"})
        return httpx.Response(
            200,
            json={
                "jobId": "r-1",
                "status": "failed",
                "result": None,
                "error": {"code": "job_failed", "message": "Evaluation job failed"},
                "poll_after_ms": 0,
            },
        )

    assert _run(_client(handler))["error"]["code"] == "job_failed"


def test_polling_gives_up_after_max_attempts():
    def handler(request):
        if request.method == "POST":
            return httpx.Response(202, json={"jobId": "r-1", "requestId": "r-1", "status": "queued"})
        return httpx.Response(200, json={"jobId": "r-1", "status": "queued", "poll_after_ms": 0})

    with pytest.raises(PollingExhaustedError) as excinfo:
        _run(_client(handler, max_attempts=2))
    assert excinfo.value.attempts == 2


def test_job_failure_body_is_returned_from_submit():
    def handler(request):
        return httpx.Response(
            500,
            json={
                "jobId": "r-1",
                "requestId": "r-1",
                "status": "failed",
                "error": {"code": "evaluation_failed", "message": "Evaluation job failed"},
            },
        )

    assert _run(_client(handler))["status"] == "failed"


@pytest.mark.parametrize("status_code", [400, 401, 429])
def test_client_errors_raise(status_code):
    def handler(request):
        return httpx.Response(status_code, json={"detail": "nope"})

    with pytest.raises(EvaluationApiError) as excinfo:
        _run(_client(handler))
    assert excinfo.value.status_code == status_code


def test_unexpected_server_error_raises():
    def handler(request):
        return httpx.Response(500, json={"detail": "Internal server error"})

    with pytest.raises(EvaluationApiError):
        _run(_client(handler))


def test_unknown_job_status_raises():
    def handler(request):
        return httpx.Response(404, json={"detail": "Job not found"})

    async def scenario():
        async with _client(handler) as client:
            await client.get_status("missing")

    with pytest.raises(EvaluationApiError) as excinfo:
        asyncio.run(scenario())
    assert excinfo.value.body == {"detail": "Job not found"}
