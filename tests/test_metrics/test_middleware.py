"""Tests for the Prometheus request middleware."""

from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from prometheus_client import CollectorRegistry

from reward_engine.metrics.middleware import PrometheusMiddleware


@pytest.fixture
def _app_with_metrics() -> tuple[FastAPI, CollectorRegistry]:
    registry = CollectorRegistry()
    app = FastAPI()
    app.add_middleware(PrometheusMiddleware, registry=registry)

    @app.get("/test")
    async def test_endpoint() -> dict[str, str]:
        return {"ok": "yes"}

    @app.get("/boom")
    async def boom_endpoint() -> dict[str, str]:
        msg = "boom"
        raise RuntimeError(msg)

    @app.get("/epochs/{epoch_id}")
    async def epoch_endpoint(epoch_id: str) -> dict[str, str]:
        return {"epoch_id": epoch_id}

    return app, registry


def _count(registry: CollectorRegistry, path: str, status: str = "200") -> float | None:
    return registry.get_sample_value(
        "http_request_total",
        {"method": "GET", "path": path, "status_code": status, "app": "reward-engine"},
    )


class TestPrometheusMiddleware:
    """Tests for PrometheusMiddleware."""

    def test_increments_request_count(self, _app_with_metrics: tuple) -> None:
        """Each request is counted."""
        app, registry = _app_with_metrics
        TestClient(app).get("/test")
        metric_names = [m.name for m in registry.collect()]
        assert "http_request" in metric_names
        assert _count(registry, "/test") == 1.0

    def test_records_duration(self, _app_with_metrics: tuple) -> None:
        """Each request is timed."""
        app, registry = _app_with_metrics
        TestClient(app).get("/test")
        observed = registry.get_sample_value(
            "http_request_duration_seconds_count",
            {"method": "GET", "path": "/test", "app": "reward-engine"},
        )
        assert observed == 1.0

    def test_multiple_requests(self, _app_with_metrics: tuple) -> None:
        """Repeated requests add up."""
        app, registry = _app_with_metrics
        client = TestClient(app)
        for _ in range(3):
            client.get("/test")
        assert _count(registry, "/test") == 3.0

    def test_route_template_label(self, _app_with_metrics: tuple) -> None:
        """Paths are labelled by route template."""
        app, registry = _app_with_metrics
        client = TestClient(app)
        client.get("/epochs/2024-03-14")
        client.get("/epochs/2024-03-15")
        assert _count(registry, "/epochs/{epoch_id}") == 2.0

    def test_unmatched_paths_share_a_label(self, _app_with_metrics: tuple) -> None:
        """Unknown paths share one label."""
        app, registry = _app_with_metrics
        client = TestClient(app)
        client.get("/missing")
        client.get("/wp-admin")
        assert _count(registry, "<unmatched>", status="404") == 2.0
        assert _count(registry, "/missing", status="404") is None

    def test_metrics_scrape_not_counted(self, _app_with_metrics: tuple) -> None:
        """Scrapes of /metrics are not counted."""
        app, registry = _app_with_metrics
        TestClient(app).get("/metrics")
        assert _count(registry, "<unmatched>", status="404") is None

    def test_handler_error_counted_as_500(self, _app_with_metrics: tuple) -> None:
        """An unhandled error is counted as 500."""
        app, registry = _app_with_metrics
        resp = TestClient(app, raise_server_exceptions=False).get("/boom")
        assert resp.status_code == 500
        assert _count(registry, "/boom", status="500") == 1.0
