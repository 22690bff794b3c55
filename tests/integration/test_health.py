"""Integration tests for health check endpoints."""

from unittest.mock import patch

from fastapi.testclient import TestClient

from src.api.deps import get_current_app_user
from src.main import app
from src.models.profile import UserRole


class TestHealthEndpoint:
    """Tests for /health endpoint."""

    def test_health_returns_200(self, client: TestClient) -> None:
        """Test that /health endpoint returns 200 status."""
        response = client.get("/health")
        assert response.status_code == 200

    def test_health_returns_healthy_status(self, client: TestClient) -> None:
        """Test that /health endpoint returns healthy status and version."""
        data = client.get("/health").json()

        assert data["status"] == "healthy"
        assert data["version"] == "0.1.0"
        assert data["timestamp"] is not None

    def test_health_reports_active_sessions(self, client: TestClient) -> None:
        """Test that /health reports the number of open chat sessions."""
        data = client.get("/health").json()

        assert data["active_sessions"] == 0


class TestReadinessEndpoint:
    """Tests for /health/ready endpoint."""

    def test_readiness_returns_200_when_healthy(self, client: TestClient) -> None:
        """Test that /health/ready returns 200 when the database is reachable."""
        response = client.get("/health/ready")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_readiness_database_check_includes_latency(self, client: TestClient) -> None:
        """Test that the database check includes latency measurement."""
        data = client.get("/health/ready").json()

        db_check = next(c for c in data["checks"] if c["name"] == "database")
        assert db_check["healthy"] is True
        assert db_check["latency_ms"] is not None

    def test_readiness_returns_503_when_database_unhealthy(self) -> None:
        """Test that /health/ready returns 503 and the error when the database is down."""
        with patch(
            "src.api.routes.health.check_database_connection",
            return_value={"healthy": False, "error": "Connection timeout"},
        ):
            with TestClient(app) as test_client:
                response = test_client.get("/health/ready")

        assert response.status_code == 503
        data = response.json()
        assert data["status"] == "unhealthy"
        db_check = next(c for c in data["checks"] if c["name"] == "database")
        assert db_check["error"] == "Connection timeout"


class TestAuthenticatedHealth:
    """Tests for /health/auth endpoint."""

    def test_requires_token(self, client: TestClient) -> None:
        """Test that /health/auth rejects anonymous calls."""
        response = client.get("/health/auth")

        assert response.status_code == 401

    def test_returns_profile(self, client: TestClient, make_user) -> None:
        """Test that /health/auth echoes the caller's chat identity."""
        user = make_user(role=UserRole.ADMIN)
        app.dependency_overrides[get_current_app_user] = lambda: user
        try:
            response = client.get("/health/auth")
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 200
        data = response.json()
        assert data["authenticated"] is True
        assert data["user_id"] == user.id
        assert data["role"] == "admin"
        assert data["school_id"] == "school-1"


class TestErrorResponseSchema:
    """Tests for error response schema compliance."""

    def test_404_returns_error_response_format(self, client: TestClient) -> None:
        """Test that 404 errors follow ErrorResponse schema."""
        response = client.get("/nonexistent-endpoint")

        assert response.status_code == 404
        data = response.json()
        assert "error" in data or "detail" in data

    def test_unhandled_error_returns_500(self) -> None:
        """Test that unexpected failures are wrapped by the middleware."""
        with patch(
            "src.api.routes.health.check_database_connection",
            side_effect=Exception("Test error"),
        ):
            with TestClient(app, raise_server_exceptions=False) as test_client:
                response = test_client.get("/health/ready")

        assert response.status_code == 500
        assert response.json()["error"] == "internal_error"
