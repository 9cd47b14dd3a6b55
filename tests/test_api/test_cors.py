"""Tests for CORS middleware configuration."""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.testclient import TestClient

from reward_engine.api.middleware.cors import setup_cors


def _client() -> TestClient:
    app = FastAPI()
    setup_cors(app)

    @app.get("/test")
    async def test_route():
        return {"ok": True}

    return TestClient(app)


class TestCORSMiddleware:
    def test_cors_headers_present(self):
        """Preflight for GET succeeds with a wildcard origin."""
        resp = _client().options(
            "/test",
            headers={
                "Origin": "http://localhost:3000",
                "Access-Control-Request-Method": "GET",
            },
        )
        # CORS preflight should return 200
        assert resp.status_code == 200
        assert resp.headers["access-control-allow-origin"] == "*"

    def test_simple_get(self):
        """Simple requests get the allow-origin header."""
        resp = _client().get("/test", headers={"Origin": "http://dashboard.example"})
        assert resp.status_code == 200
        assert resp.headers["access-control-allow-origin"] == "*"

    def test_write_methods_not_allowed(self):
        """The API is read-only, so POST preflights fail."""
        resp = _client().options(
            "/test",
            headers={
                "Origin": "http://localhost:3000",
                "Access-Control-Request-Method": "POST",
            },
        )
        assert resp.status_code == 400

    def test_restricted_origins(self):
        """Only configured origins are echoed back."""
        app = FastAPI()
        setup_cors(app, ["https://dash.example"])

        @app.get("/test")
        async def test_route():
            return {"ok": True}

        client = TestClient(app)
        allowed = client.get("/test", headers={"Origin": "https://dash.example"})
        assert allowed.headers["access-control-allow-origin"] == "https://dash.example"
        other = client.get("/test", headers={"Origin": "https://elsewhere.example"})
        assert "access-control-allow-origin" not in other.headers

    def test_preflight_cached(self):
        """Preflight responses may be cached for an hour."""
        resp = _client().options(
            "/test",
            headers={
                "Origin": "http://localhost:3000",
                "Access-Control-Request-Method": "GET",
            },
        )
        assert resp.headers["access-control-max-age"] == "3600"
