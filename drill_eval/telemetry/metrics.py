"""Prometheus metrics definitions and helpers."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests processed",
    ("method", "route", "status"),
)

REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ("method", "route"),
    buckets=(
        0.005,
        0.01,
        0.025,
        0.05,
        0.1,
        0.25,
        0.5,
        1.0,
        2.5,
        5.0,
        10.0,
    ),
)

SUBMISSION_COUNTER = Counter(
    "evaluation_submissions_total",
    "Evaluation submissions by response outcome",
    ("outcome",),
)

JOB_COUNTER = Counter(
    "evaluation_jobs_total",
    "Evaluation jobs processed by the worker, by outcome",
    ("outcome",),
)

JOB_DURATION = Histogram(
    "evaluation_job_duration_seconds",
    "Wall-clock time spent processing one evaluation job",
    buckets=(0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 30.0, 60.0, 120.0),
)

TOKENS_USED = Counter(
    "evaluation_tokens_used_total",
    "LLM tokens consumed by evaluation scoring",
)

ERROR_COUNTER = Counter(
    "app_internal_errors_total",
    "Number of requests ending in internal server error responses",
    ("method", "route"),
)


def observe_request(
    method: str,
    route: str,
    status_code: int,
    duration_seconds: float,
) -> None:
    """Record metrics for a completed HTTP request."""

    safe_route = route or "unknown"
    safe_method = method or "UNKNOWN"
    status_label = str(status_code)
    observed_duration = duration_seconds if duration_seconds >= 0 else 0

    REQUEST_COUNT.labels(
        method=safe_method,
        route=safe_route,
        status=status_label,
    ).inc()
    REQUEST_LATENCY.labels(
        method=safe_method,
        route=safe_route,
    ).observe(observed_duration)

    if status_code >= 500:
        ERROR_COUNTER.labels(
            method=safe_method,
            route=safe_route,
        ).inc()


def record_submission(outcome: str) -> None:
    SUBMISSION_COUNTER.labels(outcome=outcome).inc()


def record_job(
    outcome: str,
    duration_seconds: float,
    tokens_used: int | None = None,
) -> None:
    """Record a processed job; cached short-circuits do not count tokens."""

    JOB_COUNTER.labels(outcome=outcome).inc()
    JOB_DURATION.observe(max(duration_seconds, 0))
    if tokens_used:
        TOKENS_USED.inc(tokens_used)
