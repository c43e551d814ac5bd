"""Request count and latency metrics for every HTTP request."""

from __future__ import annotations

import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from app.core.metrics import (
    http_request_duration_seconds,
    http_requests_in_progress,
    http_requests_total,
)

_SKIP_PATHS = frozenset({"/api/health", "/metrics"})
_HEX = frozenset("0123456789abcdef")


def _normalise_path(path: str) -> str:
    """Collapse id segments so the endpoint label stays low-cardinality.

    /api/v1/milestones/550e8400-e29b-41d4-a716-446655440000/complete
        -> /api/v1/milestones/{id}/complete
    """
    out: list[str] = []
    for part in path.rstrip("/").split("/"):
        stripped = part.replace("-", "").lower()
        if len(stripped) == 32 and set(stripped) <= _HEX:
            out.append("{id}")
        else:
            out.append(part)
    return "/".join(out) or "/"


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Records request count, duration and the in-progress gauge."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        path = request.url.path
        method = request.method
        if path in _SKIP_PATHS:
            return await call_next(request)

        http_requests_in_progress.labels(method=method).inc()
        start = time.perf_counter()
        status = "500"
        try:
            response = await call_next(request)
            status = str(response.status_code)
        finally:
            elapsed = time.perf_counter() - start
            endpoint = _normalise_path(path)
            http_requests_total.labels(method=method, endpoint=endpoint, status=status).inc()
            http_request_duration_seconds.labels(method=method, endpoint=endpoint).observe(elapsed)
            http_requests_in_progress.labels(method=method).dec()

        return response
