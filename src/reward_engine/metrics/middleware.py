"""Request metrics for the query API.

``http_request_total`` counts requests by method, route template and status;
``http_request_duration_seconds`` times them by method and route template.
Scrapes of ``/metrics`` are not counted, and paths that match no route share
one label value so probing clients cannot grow the series set.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from starlette.middleware.base import BaseHTTPMiddleware

from reward_engine.metrics.collector import MetricsCollector

if TYPE_CHECKING:
    from collections.abc import Callable

    from prometheus_client import CollectorRegistry
    from starlette.requests import Request
    from starlette.responses import Response

APP_LABEL = "reward-engine"
UNMATCHED = "<unmatched>"

_SKIP_PATHS = frozenset({"/metrics"})


def route_label(request: Request) -> str:
    route = request.scope.get("route")
    return getattr(route, "path", None) or UNMATCHED


class PrometheusMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: object, *, registry: CollectorRegistry) -> None:
        super().__init__(app)  # type: ignore[arg-type]
        collector = MetricsCollector(registry)
        self._requests = collector.counter(
            "http_request_total",
            "Query API requests",
            ("method", "path", "status_code", "app"),
        )
        self._latency = collector.histogram(
            "http_request_duration_seconds",
            "Query API request duration in seconds",
            ("method", "path", "app"),
        )

    async def dispatch(self, request: Request, call_next: Callable) -> Response:  # type: ignore[type-arg]
        if request.url.path in _SKIP_PATHS:
            return await call_next(request)

        status = 500
        started = time.perf_counter()
        try:
            response: Response = await call_next(request)
            status = response.status_code
            return response
        finally:
            path = route_label(request)
            self._requests.labels(request.method, path, str(status), APP_LABEL).inc()
            self._latency.labels(request.method, path, APP_LABEL).observe(
                time.perf_counter() - started
            )
