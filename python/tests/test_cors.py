"""Tests for the /api/* CORS middleware.

Tests cover:
- Preflight answered with 200, empty body, full header set
- Allowed origins are echoed; others get the first allow-list entry
- Headers are added to real responses, including errors
- Paths outside /api/ are untouched
"""

import pytest

from casefile.middleware.cors import ApiCORSMiddleware

ALLOWED = "https://casefile.example.com"
DEFAULT = "http://localhost:3000"


class TestPreflight:
    def test_options_short_circuits(self, client):
        response = client.options(
            "/api/payments/verify",
            headers={"Origin": ALLOWED, "Access-Control-Request-Method": "POST"},
        )

        assert response.status_code == 200
        assert response.content == b""
        assert response.headers["access-control-allow-origin"] == ALLOWED
        assert response.headers["access-control-allow-credentials"] == "true"
        assert response.headers["access-control-allow-methods"] == (
            "GET, POST, PUT, DELETE, OPTIONS"
        )
        assert response.headers["access-control-allow-headers"] == (
            "Content-Type, Authorization, stripe-signature, x-client-info"
        )
        assert response.headers["access-control-max-age"] == "86400"

    def test_options_on_unknown_api_path(self, client):
        response = client.options("/api/does-not-exist", headers={"Origin": ALLOWED})

        assert response.status_code == 200


class TestOrigins:
    def test_allowed_origin_echoed(self, client):
        response = client.get("/api/payments/verify", headers={"Origin": ALLOWED})

        assert response.headers["access-control-allow-origin"] == ALLOWED
        assert "Origin" in response.headers["vary"]

    def test_unknown_origin_gets_default(self, client):
        response = client.get("/api/payments/verify", headers={"Origin": "https://evil.example"})

        assert response.headers["access-control-allow-origin"] == DEFAULT

    def test_no_origin_gets_default(self, client):
        response = client.get("/api/payments/verify")

        assert response.headers["access-control-allow-origin"] == DEFAULT

    def test_error_responses_carry_headers(self, client):
        response = client.post("/api/payments/verify", json={}, headers={"Origin": ALLOWED})

        assert response.status_code == 400
        assert response.headers["access-control-allow-origin"] == ALLOWED


class TestScope:
    def test_non_api_paths_untouched(self, client):
        response = client.get("/health", headers={"Origin": ALLOWED})

        assert "access-control-allow-origin" not in response.headers

    def test_empty_allow_list_rejected(self):
        with pytest.raises(ValueError):
            ApiCORSMiddleware(app=None, allowed_origins=[])
