from __future__ import annotations

"""Prometheus metrics for the review API.

Adds an HTTP middleware that records request latency per method/path/status,
and counters for each evaluation strategy attempt.
"""

import logging
import time
from typing import Callable, Awaitable

from prometheus_client import Counter, Histogram
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("review.metrics")

# Histogram buckets chosen for web latencies (seconds)
REQUEST_LATENCY = Histogram(
    "review_request_latency_seconds",
    "HTTP request latency in seconds",
    labelnames=("method", "path", "status"),
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0),
)

EVALUATION_ATTEMPTS = Counter(
    "review_evaluation_attempts_total",
    "Evaluation strategy attempts by outcome",
    labelnames=("strategy", "outcome"),
)

EVALUATION_LATENCY = Histogram(
    "review_evaluation_latency_seconds",
    "Time spent in a single evaluation strategy attempt",
    labelnames=("strategy",),
    buckets=(0.01, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 15.0, 30.0),
)


def observe_attempt(strategy: str, outcome: str, elapsed: float) -> None:
    EVALUATION_ATTEMPTS.labels(strategy=strategy, outcome=outcome).inc()
    EVALUATION_LATENCY.labels(strategy=strategy).observe(elapsed)


def sanitize_path(path: str) -> str:
    """Reduce high-cardinality paths (e.g., /projects/{id}) to a coarse label."""
    if not path:
        return "/"
    segs = path.split("?")[0].split("/")
    if len(segs) > 1:
        return "/" + segs[1]
    return path


def metrics_middleware_factory() -> Callable[[Request, Callable[[Request], Awaitable[Response]]], Awaitable[Response]]:
    async def middleware(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        if request.url.path.startswith("/metrics"):
            return await call_next(request)
        start = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - start
        try:
            REQUEST_LATENCY.labels(
                method=request.method,
                path=sanitize_path(request.url.path),
                status=str(response.status_code),
            ).observe(elapsed)
        except Exception:
            # Never block the request due to metrics
            logger.debug("request_latency_observe_failed", exc_info=True)
        return response

    return middleware
