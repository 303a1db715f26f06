"""HTTP client for the evaluation API with an explicit polling loop."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import httpx

from drill_eval.config.settings import PollingConfig

logger = logging.getLogger(__name__)

_TERMINAL_STATUSES = frozenset({"completed", "failed"})


class EvaluationApiError(RuntimeError):
    """Raised when the API answers with an unexpected status code."""

    def __init__(self, status_code: int, body: Any) -> None:
        super().__init__(f"Evaluation API returned {status_code}: {body}")
        self.status_code = status_code
        self.body = body


class PollingExhaustedError(RuntimeError):
    """Raised when a job is still pending after ``max_attempts`` polls."""

    def __init__(self, job_id: str, attempts: int) -> None:
        super().__init__(f"Job {job_id} still pending after {attempts} polls")
        self.job_id = job_id
        self.attempts = attempts


class EvaluationApiClient:
    """Submit evaluations and poll their status.

    ``submit`` returns the decoded body for 200, 202 and 500 responses since
    all three carry ``jobId``/``requestId`` and a status. Other codes raise
    ``EvaluationApiError``.
    """

    def __init__(
        self,
        base_url: str,
        token: str,
        *,
        polling: Optional[PollingConfig] = None,
        timeout_s: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._polling = polling or PollingConfig()
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={"Authorization": f"Bearer {token}"},
            timeout=timeout_s,
            transport=transport,
        )

    async def __aenter__(self) -> "EvaluationApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def submit(self, payload: dict[str, Any]) -> dict[str, Any]:
        response = await self._client.post("/evaluate", json=payload)
        if response.status_code not in (200, 202, 500):
            raise EvaluationApiError(response.status_code, _body(response))
        body = response.json()
        if response.status_code == 500 and "jobId" not in body:
            raise EvaluationApiError(response.status_code, body)
        return body

    async def get_status(self, job_id: str) -> dict[str, Any]:
        response = await self._client.get(f"/evaluate/{job_id}/status")
        if response.status_code != 200:
            raise EvaluationApiError(response.status_code, _body(response))
        return response.json()

    async def wait_for_result(self, job_id: str) -> dict[str, Any]:
        """Poll until the job resolves, honouring the server's ``poll_after_ms`` hint."""

        interval_ms = self._polling.interval_ms
        for attempt in range(1, self._polling.max_attempts + 1):
            status_body = await self.get_status(job_id)
            if status_body.get("status") in _TERMINAL_STATUSES:
                return status_body
            logger.debug("Job %s pending (poll %s): %s", job_id, attempt, status_body.get("status"))
            if attempt < self._polling.max_attempts:
                delay_ms = status_body.get("poll_after_ms") or interval_ms
                await asyncio.sleep(delay_ms / 1000)
        raise PollingExhaustedError(job_id, self._polling.max_attempts)

    async def evaluate(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Submit and, if the server deferred, poll to a terminal status."""

        body = await self.submit(payload)
        if body.get("status") in _TERMINAL_STATUSES:
            return body
        return await self.wait_for_result(body["jobId"])


def _body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


__all__ = [
    "EvaluationApiClient",
    "EvaluationApiError",
    "PollingExhaustedError",
]
