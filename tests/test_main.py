"""
Tests for application wiring: root, metrics, error handlers.
"""

from unittest.mock import AsyncMock, patch

from fastapi.testclient import TestClient

from app.config import settings
from app.exceptions import ConflictError, TransportError


class TestRootEndpoints:
    def test_root(self, client: TestClient) -> None:
        response = client.get("/")

        assert response.status_code == 200
        assert response.json() == {
            "service": settings.api_title,
            "version": settings.api_version,
            "status": "running",
        }

    def test_metrics_exposed(self, client: TestClient) -> None:
        client.get("/")

        response = client.get("/metrics")

        assert response.status_code == 200
        assert "http_requests_total" in response.text

    def test_metrics_disabled(self, client: TestClient) -> None:
        with patch.object(settings, "metrics_enabled", False):
            response = client.get("/metrics")

        assert response.status_code == 404


class TestErrorHandlers:
    def test_scan_conflict_is_retryable(self, client, seed_ticket, admin_headers) -> None:
        seed_ticket("t-1", "u1")

        with patch(
            "app.api.admin_routes.TicketService.scan",
            new=AsyncMock(side_effect=ConflictError("tickets/u1/k1")),
        ):
            response = client.post(
                "/admin/tickets/scan", json={"ticket": "t-1"}, headers=admin_headers
            )

        assert response.status_code == 409
        assert response.headers["Retry-After"] == "0"
        assert response.json()["detail"] == "Concurrent update, please retry"

    def test_store_outage_is_503(self, client, admin_headers) -> None:
        with patch(
            "app.api.admin_routes.AnalyticsService.get_analytics",
            new=AsyncMock(side_effect=TransportError("list_descendants", "connection reset")),
        ):
            response = client.get("/admin/analytics", headers=admin_headers)

        assert response.status_code == 503
        assert response.json()["detail"] == "Storage temporarily unavailable"

    def test_validation_errors_are_reported(self, client, admin_headers) -> None:
        response = client.post("/admin/tickets/scan", json={}, headers=admin_headers)

        assert response.status_code == 422
        assert response.json()["detail"][0]["loc"] == ["body", "ticket"]

    def test_cors_allows_public_origin(self, client: TestClient) -> None:
        response = client.options(
            "/v1/event",
            headers={
                "Origin": "https://tickets.example.edu",
                "Access-Control-Request-Method": "GET",
            },
        )

        assert response.headers["access-control-allow-origin"] == "https://tickets.example.edu"
