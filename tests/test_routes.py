"""
Tests for user and public API routes.

Runs the real services against the in-memory store through the TestClient.
"""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, patch

from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from app.db.session import get_read_db


class TestAuthentication:
    def test_missing_token(self, client: TestClient) -> None:
        response = client.get("/v1/users/me/tickets")

        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"

    def test_invalid_token(self, client: TestClient) -> None:
        response = client.get(
            "/v1/users/me/tickets", headers={"Authorization": "Bearer not-a-token"}
        )

        assert response.status_code == 401


class TestRedeemEndpoint:
    def test_redeem_issues_ticket(self, client, store, seed_key, user_headers) -> None:
        seed_key("ABC12345")

        response = client.post(
            "/v1/tickets/redeem", json={"code": "abc12345"}, headers=user_headers
        )

        assert response.status_code == 201
        data = response.json()
        ticket = data["ticket"]
        assert data["remaining_uses"] == 0
        assert ticket["user_id"] == "u1"
        assert ticket["user_name"] == "Test Student"
        assert ticket["event_name"] == "Freshers Welcome 2025"
        assert ticket["is_scanned"] is False
        assert ticket["verification_url"] == (
            f"https://tickets.example.edu/verify-ticket/{ticket['ticket_id']}"
        )
        assert ticket["qr_payload"] == ticket["verification_url"]

    def test_second_user_gets_exhausted(self, client, seed_key, token_service) -> None:
        seed_key("ABC12345")
        first = {"Authorization": f"Bearer {token_service.create_token('u1')}"}
        second = {"Authorization": f"Bearer {token_service.create_token('u2')}"}

        assert client.post("/v1/tickets/redeem", json={"code": "ABC12345"}, headers=first).status_code == 201
        response = client.post("/v1/tickets/redeem", json={"code": "ABC12345"}, headers=second)

        assert response.status_code == 409
        assert response.json()["detail"] == "Access key has already been used"

    def test_duplicate_ticket_reports_existing_id(
        self, client, seed_key, seed_ticket, user_headers
    ) -> None:
        seed_ticket("t-existing", "u1")
        seed_key("ABC12345")

        response = client.post(
            "/v1/tickets/redeem", json={"code": "ABC12345"}, headers=user_headers
        )

        assert response.status_code == 409
        assert response.json()["detail"] == "You already have a ticket"
        assert response.headers["X-Existing-Ticket-ID"] == "t-existing"

    def test_already_used(self, client, seed_key, user_headers) -> None:
        seed_key("ABC12345", max_uses=3, used_by=["u1"])

        response = client.post(
            "/v1/tickets/redeem", json={"code": "ABC12345"}, headers=user_headers
        )

        assert response.status_code == 409
        assert response.json()["detail"] == "You have already used this access key"

    def test_unknown_code(self, client, user_headers) -> None:
        response = client.post(
            "/v1/tickets/redeem", json={"code": "NOSUCHKEY"}, headers=user_headers
        )

        assert response.status_code == 404

    def test_inactive_code(self, client, seed_key, user_headers) -> None:
        seed_key("ABC12345", is_active=False)

        response = client.post(
            "/v1/tickets/redeem", json={"code": "ABC12345"}, headers=user_headers
        )

        assert response.status_code == 404

    def test_expired_code(self, client, seed_key, user_headers) -> None:
        seed_key("ABC12345", expires_at=datetime.now(UTC) - timedelta(days=1))

        response = client.post(
            "/v1/tickets/redeem", json={"code": "ABC12345"}, headers=user_headers
        )

        assert response.status_code == 410

    def test_blank_code_is_rejected(self, client, user_headers) -> None:
        response = client.post("/v1/tickets/redeem", json={"code": "   "}, headers=user_headers)

        assert response.status_code == 422

    def test_conflict_maps_to_retryable_409(self, client, seed_key, user_headers) -> None:
        from app.exceptions import ConflictError

        seed_key("ABC12345")
        with patch(
            "app.api.routes.RedemptionService.redeem",
            new=AsyncMock(side_effect=ConflictError("accessKeys/k1")),
        ):
            response = client.post(
                "/v1/tickets/redeem", json={"code": "ABC12345"}, headers=user_headers
            )

        assert response.status_code == 409
        assert response.headers["Retry-After"] == "0"

    def test_transport_error_maps_to_503(self, client, user_headers) -> None:
        from app.exceptions import TransportError

        with patch(
            "app.api.routes.RedemptionService.redeem",
            new=AsyncMock(side_effect=TransportError("get", "connection refused")),
        ):
            response = client.post(
                "/v1/tickets/redeem", json={"code": "ABC12345"}, headers=user_headers
            )

        assert response.status_code == 503


class TestMyTickets:
    def test_lists_only_own_tickets(self, client, seed_ticket, user_headers) -> None:
        seed_ticket("t-mine", "u1")
        seed_ticket("t-other", "u2")

        response = client.get("/v1/users/me/tickets", headers=user_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["tickets"][0]["ticket_id"] == "t-mine"

    def test_empty(self, client, user_headers) -> None:
        response = client.get("/v1/users/me/tickets", headers=user_headers)

        assert response.json() == {"tickets": [], "total": 0}


class TestProfileEndpoint:
    def test_sync_creates_profile(self, client, store, user_headers) -> None:
        response = client.post("/v1/users/me/profile", headers=user_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["uid"] == "u1"
        assert data["email"] == "student@example.edu"
        assert data["display_name"] == "Test Student"
        assert store.value("userProfiles/u1")["email"] == "student@example.edu"

    def test_get_profile_after_sync(self, client, user_headers) -> None:
        client.post("/v1/users/me/profile", headers=user_headers)

        response = client.get("/v1/users/me/profile", headers=user_headers)

        assert response.status_code == 200
        assert response.json()["uid"] == "u1"
        assert response.json()["display_name"] == "Test Student"

    def test_get_profile_before_sync(self, client, user_headers) -> None:
        response = client.get("/v1/users/me/profile", headers=user_headers)

        assert response.status_code == 404


class TestVerifyEndpoint:
    def test_valid_ticket(self, client, seed_ticket) -> None:
        seed_ticket("t-1", "u1")

        response = client.get("/v1/tickets/t-1/verify")

        assert response.status_code == 200
        assert response.json()["status"] == "valid"

    def test_scanned_ticket(self, client, seed_ticket) -> None:
        seed_ticket("t-1", "u1", is_scanned=True)

        response = client.get("/v1/tickets/t-1/verify")

        assert response.json()["status"] == "scanned"
        assert response.json()["ticket"]["scanned_by"] == "door-staff"

    def test_verify_does_not_mutate(self, client, store, seed_ticket) -> None:
        path = seed_ticket("t-1", "u1")

        client.get("/v1/tickets/t-1/verify")

        assert store.version(path) == 1
        assert store.value(path)["isScanned"] is False

    def test_unknown_ticket(self, client) -> None:
        response = client.get("/v1/tickets/nope/verify")

        assert response.status_code == 404


class TestEventEndpoint:
    def test_first_read_returns_defaults(self, client) -> None:
        response = client.get("/v1/event")

        assert response.status_code == 200
        data = response.json()
        assert data["event_name"] == "Freshers Welcome 2025"
        assert data["event_time"] == "12:00 - 18:00"
        assert data["currency"] == "INR"


class TestHealthEndpoint:
    def test_healthy(self, app: FastAPI, client: TestClient, db_session: AsyncMock) -> None:
        async def override_db():
            yield db_session

        app.dependency_overrides[get_read_db] = override_db

        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["database"] == "connected"

    def test_unhealthy(self, app: FastAPI, client: TestClient, db_session: AsyncMock) -> None:
        db_session.execute = AsyncMock(
            side_effect=OperationalError("SELECT 1", {}, Exception("connection refused"))
        )

        async def override_db():
            yield db_session

        app.dependency_overrides[get_read_db] = override_db

        response = client.get("/health")

        assert response.status_code == 503
        assert response.json()["detail"]["database"] == "disconnected"
