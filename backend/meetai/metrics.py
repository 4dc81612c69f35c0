from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Any, Callable

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

HTTP_REQUESTS = Counter("http_requests_total", "HTTP requests", ["path", "method", "status"])

HTTP_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration",
    ["path", "method"],
)

WEBHOOK_EVENTS = Counter(
    "webhook_events_total",
    "Provider webhook events by kind and response status.",
    ["kind", "status"],
)

JOBS_ENQUEUED = Counter("jobs_enqueued_total", "Total jobs enqueued.", ["queue", "job_name"])

JOBS_COMPLETED = Counter("jobs_completed_total", "Total jobs completed successfully.", ["job_name"])

JOBS_FAILED = Counter("jobs_failed_total", "Total jobs that failed.", ["job_name"])

JOB_DURATION = Histogram(
    "job_duration_seconds",
    "Job durations (by name)",
    ["job_name"],
    buckets=(0.1, 0.5, 1, 2, 5, 10, 30, 60, 120, 300, 600),
)

LLM_REQUESTS = Counter("llm_requests_total", "LLM requests by outcome.", ["kind", "outcome"])

LLM_LATENCY = Histogram("llm_request_duration_seconds", "LLM request latency.", ["kind"])


@contextmanager
def track_http_request(
    path: str,
    method: str,
    status_getter: Callable[[], int],
) -> Any:
    start = time.perf_counter()
    try:
        yield
    finally:
        duration = time.perf_counter() - start
        HTTP_REQUESTS.labels(path=path, method=method, status=str(status_getter())).inc()
        HTTP_LATENCY.labels(path=path, method=method).observe(duration)


def render_all_metrics_prometheus() -> bytes:
    return generate_latest()


__all__ = [
    "CONTENT_TYPE_LATEST",
    "HTTP_LATENCY",
    "HTTP_REQUESTS",
    "JOBS_COMPLETED",
    "JOBS_ENQUEUED",
    "JOBS_FAILED",
    "JOB_DURATION",
    "LLM_LATENCY",
    "LLM_REQUESTS",
    "WEBHOOK_EVENTS",
    "render_all_metrics_prometheus",
    "track_http_request",
]
