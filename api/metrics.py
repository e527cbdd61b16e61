from __future__ import annotations

import time

from fastapi import Request
from fastapi.responses import PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest


HTTP_REQUESTS_TOTAL = Counter(
    "srcv_http_requests_total",
    "HTTP requests total",
    ["path", "method", "status"],
)
HTTP_REQUEST_DURATION = Histogram(
    "srcv_http_request_duration_seconds",
    "HTTP request duration seconds",
    ["path", "method"],
)


def _label_path(request: Request) -> str:
    # route template keeps label cardinality bounded
    route = request.scope.get("route")
    return str(getattr(route, "path", "") or request.url.path)


class MetricsMiddleware:
    async def __call__(self, request: Request, call_next):
        t0 = time.time()
        status = "500"
        try:
            resp = await call_next(request)
            status = str(getattr(resp, "status_code", 200))
            return resp
        finally:
            dt = time.time() - t0
            path = _label_path(request)
            method = request.method.upper()
            HTTP_REQUESTS_TOTAL.labels(path=path, method=method, status=status).inc()
            HTTP_REQUEST_DURATION.labels(path=path, method=method).observe(dt)


def metrics_response() -> PlainTextResponse:
    return PlainTextResponse(generate_latest().decode("utf-8"), media_type=CONTENT_TYPE_LATEST)
