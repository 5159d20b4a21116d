"""Tests for FastAPI application and exception handlers."""

import pytest
from httpx import ASGITransport, AsyncClient

from app.core.config import settings
from app.core.errors import (
    ConflictError,
    InsufficientTokensError,
    LedgerWriteError,
    NotFoundError,
)
from app.main import create_app


@pytest.fixture
def app():
    """Create test application instance."""
    return create_app()


@pytest.fixture
async def client(app):
    """Create async HTTP client for testing."""
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


class TestHealthEndpoint:
    """Tests for health check endpoint."""

    async def test_health_returns_healthy_status(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestExceptionHandlers:
    """APIErrors and unexpected exceptions use the error envelope."""

    async def test_not_found_error_returns_404(self, app, client):
        @app.get("/test/not-found-error")
        async def raise_not_found_error():
            raise NotFoundError("Render job", "abc")

        response = await client.get("/test/not-found-error")
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"

    async def test_conflict_error_returns_409(self, app, client):
        @app.get("/test/conflict-error")
        async def raise_conflict_error():
            raise ConflictError("JOB_COMPLETED", "Job already completed")

        response = await client.get("/test/conflict-error")
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "JOB_COMPLETED"

    async def test_insufficient_tokens_returns_402_with_details(self, app, client):
        @app.get("/test/insufficient")
        async def raise_insufficient():
            raise InsufficientTokensError(tokens_needed=130, available_tokens=20)

        response = await client.get("/test/insufficient")
        assert response.status_code == 402
        assert response.json()["error"]["details"] == [
            {"tokens_needed": 130, "available_tokens": 20}
        ]

    async def test_ledger_reconcile_returns_503(self, app, client):
        @app.get("/test/reconcile")
        async def raise_reconcile():
            raise LedgerWriteError("Failed to hold tokens", reconcile=True)

        response = await client.get("/test/reconcile")
        assert response.status_code == 503
        assert response.json()["error"]["code"] == "LEDGER_RECONCILE_REQUIRED"

    async def test_unhandled_exception_returns_generic_500(self, app, client):
        @app.get("/test/crash")
        async def crash():
            raise RuntimeError("connection to ledger-db-01 refused")

        response = await client.get("/test/crash")
        assert response.status_code == 500
        error = response.json()["error"]
        assert error["code"] == "INTERNAL_ERROR"
        assert "ledger-db-01" not in error["message"]

    async def test_error_response_has_correct_envelope(self, app, client):
        @app.get("/test/envelope-check")
        async def raise_error():
            raise NotFoundError("Item")

        data = (await client.get("/test/envelope-check")).json()
        assert set(data["error"]) == {"code", "message", "details"}
        assert "data" not in data


class TestLedgerHeaders:
    """Tests for LedgerHeadersMiddleware."""

    async def test_nosniff_on_every_response(self, client):
        response = await client.get("/health")
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert "Content-Security-Policy" not in response.headers

    async def test_cache_control_only_on_api(self, client):
        health = await client.get("/health")
        api = await client.get("/api/v1/nonexistent")
        assert "Cache-Control" not in health.headers
        assert api.headers["Cache-Control"] == "no-store, max-age=0"

    async def test_hsts_only_in_production(self, client, monkeypatch):
        response = await client.get("/health")
        assert "Strict-Transport-Security" not in response.headers

        monkeypatch.setattr(settings, "environment", "production")
        response = await client.get("/health")
        assert "max-age=31536000" in response.headers["Strict-Transport-Security"]


class TestCORSMiddleware:
    """Tests for CORS middleware configuration."""

    async def test_cors_allows_configured_origin(self, client):
        origin = settings.allowed_origins[0]
        response = await client.options(
            "/api/v1/tokens/balance",
            headers={"Origin": origin, "Access-Control-Request-Method": "GET"},
        )
        assert response.headers["access-control-allow-origin"] == origin
        assert response.headers["access-control-allow-credentials"] == "true"

    async def test_cors_denies_unconfigured_origin(self, client):
        response = await client.options(
            "/api/v1/tokens/balance",
            headers={
                "Origin": "https://evil.example",
                "Access-Control-Request-Method": "GET",
            },
        )
        assert "access-control-allow-origin" not in response.headers
