"""
Tests for the CORS and rate-limit middleware.

Uses a minimal FastAPI test app to avoid importing the full backend.
"""

from fastapi import FastAPI
from fastapi.testclient import TestClient

from bob_python_backend.middleware import configure_middleware
from bob_python_backend.services.rate_limiter import RateLimiter

ORIGINS = ["https://bob.example", "http://localhost:3000"]


def _make_app(limit: int = 3, clock=None):
    """Create a fresh test app with middleware and its own limiter."""
    app = FastAPI()

    @app.get("/")
    async def root():
        return "API is operational"

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.post("/process")
    async def process():
        return {"ok": True}

    kwargs = {"clock": clock} if clock is not None else {}
    limiter = RateLimiter(limit=limit, window_seconds=900, **kwargs)
    configure_middleware(app, limiter=limiter, allowed_origins=ORIGINS)
    return app


# ---------------------------------------------------------------------------
# CORS tests
# ---------------------------------------------------------------------------


class TestCorsMiddleware:
    def test_allowed_origin_is_echoed(self):
        client = TestClient(_make_app())
        resp = client.post("/process", headers={"Origin": "http://localhost:3000"})
        assert resp.status_code == 200
        assert resp.headers["access-control-allow-origin"] == "http://localhost:3000"
        assert resp.headers["access-control-allow-credentials"] == "true"

    def test_unknown_origin_gets_first_allowed_origin(self):
        client = TestClient(_make_app())
        resp = client.post("/process", headers={"Origin": "https://evil.example"})
        assert resp.headers["access-control-allow-origin"] == "https://bob.example"

    def test_preflight_short_circuits_with_204(self):
        client = TestClient(_make_app())
        resp = client.options(
            "/process",
            headers={"Origin": "https://bob.example", "Access-Control-Request-Method": "POST"},
        )
        assert resp.status_code == 204
        assert resp.headers["access-control-max-age"] == "86400"
        assert "POST" in resp.headers["access-control-allow-methods"]
        assert "Authorization" in resp.headers["access-control-allow-headers"]

    def test_preflight_for_unknown_route_still_answered(self):
        client = TestClient(_make_app())
        resp = client.options("/does-not-exist", headers={"Origin": "https://bob.example"})
        assert resp.status_code == 204


# ---------------------------------------------------------------------------
# Rate limit tests
# ---------------------------------------------------------------------------


class TestRateLimitMiddleware:
    def test_requests_over_limit_get_429(self):
        client = TestClient(_make_app(limit=3))
        for _ in range(3):
            assert client.post("/process").status_code == 200
        resp = client.post("/process")
        assert resp.status_code == 429
        assert resp.json()["error"] == "Too many requests"
        assert int(resp.headers["retry-after"]) > 0
        assert resp.headers["x-ratelimit-remaining"] == "0"

    def test_rate_limited_response_carries_cors_headers(self):
        client = TestClient(_make_app(limit=1))
        client.post("/process")
        resp = client.post("/process", headers={"Origin": "https://bob.example"})
        assert resp.status_code == 429
        assert resp.headers["access-control-allow-origin"] == "https://bob.example"

    def test_limit_headers_on_success(self):
        client = TestClient(_make_app(limit=3))
        resp = client.post("/process")
        assert resp.headers["x-ratelimit-limit"] == "3"
        assert resp.headers["x-ratelimit-remaining"] == "2"
        assert "x-ratelimit-reset" in resp.headers

    def test_health_paths_are_not_counted(self):
        client = TestClient(_make_app(limit=1))
        for _ in range(5):
            assert client.get("/health").status_code == 200
            assert client.get("/").status_code == 200
        assert client.post("/process").status_code == 200

    def test_preflight_is_not_counted(self):
        client = TestClient(_make_app(limit=1))
        for _ in range(3):
            client.options("/process")
        assert client.post("/process").status_code == 200

    def test_clients_are_keyed_by_forwarded_for(self):
        client = TestClient(_make_app(limit=1))
        assert client.post("/process", headers={"X-Forwarded-For": "10.0.0.1, 172.16.0.1"}).status_code == 200
        assert client.post("/process", headers={"X-Forwarded-For": "10.0.0.2"}).status_code == 200
        assert client.post("/process", headers={"X-Forwarded-For": "10.0.0.1"}).status_code == 429

    def test_window_expiry_restores_access(self, clock):
        client = TestClient(_make_app(limit=1, clock=clock))
        client.post("/process")
        assert client.post("/process").status_code == 429
        clock.advance(900)
        assert client.post("/process").status_code == 200
