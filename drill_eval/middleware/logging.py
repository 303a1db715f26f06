"""Per-request access logging with a correlation id."""

from __future__ import annotations

import logging
import time
from typing import Any, Optional
from uuid import uuid4

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from drill_eval.utils import AuthenticationError, decode_access_token

logger = logging.getLogger("drill_eval.middleware.structured")

REQUEST_ID_HEADER = "X-Request-ID"

COLOR_RESET = "\u001b[0m"
COLOR_GREEN = "\u001b[32m"
COLOR_CYAN = "\u001b[36m"
COLOR_YELLOW = "\u001b[33m"
COLOR_RED = "\u001b[31m"

_STATUS_COLORS = ((500, COLOR_RED), (400, COLOR_YELLOW), (200, COLOR_GREEN))


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    """Emit one colourised line per request and echo ``X-Request-ID``.

    The caller's request id is reused when present so API logs can be joined
    with client and worker logs.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        started = time.perf_counter()
        correlation_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
        request.state.correlation_id = correlation_id

        entry: dict[str, Any] = {
            "id": correlation_id,
            "method": request.method,
            "path": request.url.path,
            "client": request.client.host if request.client else None,
            "user": self._caller_id(request),
        }

        try:
            response = await call_next(request)
        except Exception as exc:
            entry.update(status=500, ms=_elapsed_ms(started), error=type(exc).__name__)
            logger.exception(_render(entry))
            raise

        entry.update(status=response.status_code, ms=_elapsed_ms(started))
        logger.info(_render(entry))
        response.headers[REQUEST_ID_HEADER] = correlation_id
        return response

    @staticmethod
    def _caller_id(request: Request) -> Optional[str]:
        scheme, _, token = request.headers.get("authorization", "").partition(" ")
        container = getattr(request.app.state, "container", None)
        if scheme.lower() != "bearer" or not token or container is None:
            return None
        try:
            return decode_access_token(token, container.settings.security).sub
        except AuthenticationError:
            return None


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


def _render(entry: dict[str, Any]) -> str:
    status = entry.get("status") or 0
    color = next((code for floor, code in _STATUS_COLORS if status >= floor), COLOR_CYAN)
    message = " ".join(
        f"{name}={value if value is not None else '-'}" for name, value in entry.items()
    )
    return f"{color}{message}{COLOR_RESET}"


__all__ = ["REQUEST_ID_HEADER", "StructuredLoggingMiddleware"]
