"""Tests for the metrics endpoint and middleware integration in the app."""

from __future__ import annotations

from conftest import make_config
from fastapi.testclient import TestClient

from reward_engine.api.app import create_app
from reward_engine.config.settings import MetricsConfig


class TestMetricsEndpoint:
    """Tests for the /metrics endpoint."""

    def test_metrics_endpoint_returns_prometheus_format(self) -> None:
        """The endpoint serves the engine registry in text format."""
        client = TestClient(create_app(config=make_config()))
        resp = client.get("/metrics")
        assert resp.status_code == 200
        # Prometheus text format
        assert "text/plain" in resp.headers.get("content-type", "")
        assert "reward_cycles_total" in resp.text

    def test_requests_are_counted(self) -> None:
        """HTTP requests are counted by path and status."""
        client = TestClient(create_app(config=make_config()))
        client.get("/health")
        resp = client.get("/metrics")
        assert 'method="GET",path="/health",status_code="503"' in resp.text

    def test_metrics_disabled(self) -> None:
        """With metrics off only the default registry is served."""
        app = create_app(config=make_config(metrics=MetricsConfig(enabled=False)))
        assert not hasattr(app.state, "metrics")
        resp = TestClient(app).get("/metrics")
        assert resp.status_code == 200
        assert "reward_cycles_total" not in resp.text
