"""Analytics events and error tracking.

Events go to the ``drill_eval.logs.analytics`` logger as compact JSON.
Exceptions go to Sentry when a DSN is configured. Everything here is
best-effort: a failing sink is logged and never propagates into the
evaluation flow.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Mapping

import sentry_sdk

from drill_eval.application.interfaces import AnalyticsSinkInterface
from drill_eval.config.settings import SentryConfig

logger = logging.getLogger(__name__)
analytics_logger = logging.getLogger("drill_eval.logs.analytics")

_SENTRY_READY = False


def init_sentry(config: SentryConfig, *, component: str) -> bool:
    """Initialise the Sentry SDK once per process; no-op without a DSN."""

    global _SENTRY_READY
    if not config.dsn:
        logger.warning("Sentry disabled: SENTRY_DSN not provided")
        return False
    if _SENTRY_READY:
        return True

    sentry_sdk.init(
        dsn=config.dsn,
        environment=config.environment,
        release=config.release,
        traces_sample_rate=config.traces_sample_rate,
        send_default_pii=False,
    )
    sentry_sdk.set_tag("component", component)
    _SENTRY_READY = True
    logger.info("Sentry initialised for %s", component)
    return True


def flush_sentry(timeout_s: float = 2.0) -> None:
    if _SENTRY_READY:
        sentry_sdk.flush(timeout=timeout_s)


class AnalyticsSink(AnalyticsSinkInterface):
    def __init__(self, *, sentry_enabled: bool = False, component: str = "api") -> None:
        self._sentry_enabled = sentry_enabled
        self._component = component

    def capture(self, event: str, properties: Mapping[str, Any]) -> None:
        payload = {
            "event": event,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "component": self._component,
            "properties": dict(properties),
        }
        try:
            analytics_logger.info(json.dumps(payload, default=str, separators=(",", ":")))
        except (TypeError, ValueError):
            logger.exception("Failed to emit analytics event %s", event)

    def report_exception(
        self, exc: BaseException, context: Mapping[str, Any]
    ) -> None:
        if not self._sentry_enabled:
            return
        try:
            with sentry_sdk.new_scope() as scope:
                scope.set_tag("component", self._component)
                job_id = context.get("jobId")
                if job_id:
                    scope.set_tag("jobId", str(job_id))
                scope.set_context("job", dict(context))
                sentry_sdk.capture_exception(exc)
        except Exception:
            logger.exception("Failed to report exception to Sentry")


__all__ = ["AnalyticsSink", "flush_sentry", "init_sentry"]
