"""Prometheus metrics for HTTP traffic and Google Sheets calls.

Provides:
- MetricsMiddleware: ASGI middleware for HTTP request metrics
- track_sheet_call(): Context manager for Sheets/Drive API call metrics
- record_sync_run(): Counter for sync-now outcomes
- get_metrics_response(): Response for the /metrics route
"""

from __future__ import annotations

import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from prometheus_client import (
    REGISTRY,
    Counter,
    Histogram,
    generate_latest,
)
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# ── HTTP Metrics ─────────────────────────────────────────────────────────────

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

# ── Sheets Metrics ───────────────────────────────────────────────────────────

sheet_operations_total = Counter(
    "sheet_operations_total",
    "Total Google Sheets/Drive operations",
    ["operation", "status"],
)

sheet_operation_duration_seconds = Histogram(
    "sheet_operation_duration_seconds",
    "Google Sheets/Drive operation duration in seconds",
    ["operation"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

sync_runs_total = Counter(
    "sync_runs_total",
    "Sync-now runs by outcome",
    ["outcome"],
)


# ── Metrics Middleware ───────────────────────────────────────────────────────


class MetricsMiddleware(BaseHTTPMiddleware):
    """ASGI middleware that records Prometheus metrics for every HTTP request.

    Skips the /metrics endpoint itself to avoid self-referential counting.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path == "/metrics":
            return await call_next(request)

        endpoint = request.url.path

        start_time = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start_time

        http_requests_total.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=str(response.status_code),
        ).inc()

        http_request_duration_seconds.labels(
            method=request.method,
            endpoint=endpoint,
        ).observe(duration)

        return response


# ── Sheets Metrics Helpers ───────────────────────────────────────────────────


@asynccontextmanager
async def track_sheet_call(operation: str) -> AsyncGenerator[None, None]:
    """Context manager that tracks a Google API operation.

    Usage:
        async with track_sheet_call("append_one"):
            await asyncio.to_thread(_append)

    Records duration in a histogram and a success/error count.
    """
    start_time = time.perf_counter()
    status = "success"

    try:
        yield
    except Exception:
        status = "error"
        raise
    finally:
        duration = time.perf_counter() - start_time
        sheet_operations_total.labels(operation=operation, status=status).inc()
        sheet_operation_duration_seconds.labels(operation=operation).observe(duration)


def record_sync_run(outcome: str) -> None:
    sync_runs_total.labels(outcome=outcome).inc()


# ── Metrics Endpoint ─────────────────────────────────────────────────────────


def get_metrics_response() -> Response:
    """Generate Prometheus exposition format response."""
    return Response(
        content=generate_latest(REGISTRY),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )
