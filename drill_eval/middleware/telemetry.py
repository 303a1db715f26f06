"""Prometheus instrumentation for HTTP requests."""

from __future__ import annotations

import time
from typing import Any

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from drill_eval.telemetry import observe_request

_UNTRACKED_PATHS = frozenset({"/metrics", "/health"})


class TelemetryMiddleware(BaseHTTPMiddleware):
    """Record count and latency per route template and status code."""

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        if request.url.path in _UNTRACKED_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            observe_request(
                request.method,
                self._route_template(request),
                500,
                time.perf_counter() - start_time,
            )
            raise

        # The route is only resolved once routing ran inside call_next.
        observe_request(
            request.method,
            self._route_template(request),
            response.status_code,
            time.perf_counter() - start_time,
        )
        return response

    @staticmethod
    def _route_template(request: Request) -> str:
        """Prefer ``/evaluate/{job_id}/status`` over the concrete path."""

        scope_route: Any = request.scope.get("route")
        path = getattr(scope_route, "path", None)
        if path:
            return path
        return request.url.path
