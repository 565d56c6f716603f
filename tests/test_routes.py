"""Tests for the HTTP surface."""

from unittest.mock import AsyncMock

import httpx
import pytest
from fastapi.testclient import TestClient

from property_ingest.main import create_app


def apify_transport(auth_status: int = 200) -> httpx.MockTransport:
    """Apify stand-in that only answers the credential check."""

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/users/me"):
            if auth_status != 200:
                return httpx.Response(auth_status, json={"error": {"message": "User was not found"}})
            return httpx.Response(200, json={"data": {"username": "tester"}})
        return httpx.Response(404)

    return httpx.MockTransport(handler)


@pytest.fixture
def make_client(settings):
    """Build a TestClient; use it in a ``with`` block so startup runs."""

    def _make(auth_status: int = 200, **overrides) -> TestClient:
        overrides.setdefault("use_mock_data", True)
        app = create_app(settings.model_copy(update=overrides), transport=apify_transport(auth_status))
        return TestClient(app)

    return _make


# ============================================================
# /api/scrape-properties
# ============================================================


class TestScrapeProperties:
    """Search endpoint."""

    def test_returns_camel_case_page(self, make_client):
        with make_client() as client:
            response = client.post("/api/scrape-properties", json={"location": "Bristol"})

        assert response.status_code == 200
        body = response.json()
        assert body["isSynthetic"] is True
        assert body["currentPage"] == 1
        assert body["totalResults"] >= len(body["properties"]) > 0
        first = body["properties"][0]
        assert first["id"].startswith("synthetic-bristol-")
        assert "propertyType" in first
        assert "imageUrls" in first

    def test_accepts_filters(self, make_client):
        with make_client() as client:
            response = client.post(
                "/api/scrape-properties",
                json={"location": "London", "page": 1, "maxPrice": 600000, "minBeds": 2},
            )

        assert response.status_code == 200
        for prop in response.json()["properties"]:
            assert prop["price"] <= 600000
            assert prop["bedrooms"] >= 2

    @pytest.mark.parametrize("payload", [{}, {"location": ""}, {"location": "   "}])
    def test_location_required(self, make_client, payload):
        with make_client() as client:
            response = client.post("/api/scrape-properties", json=payload)

        assert response.status_code == 400
        assert response.json() == {"message": "Location is required."}

    def test_rate_limited(self, make_client):
        with make_client(rate_limit_requests=2) as client:
            codes = [
                client.post("/api/scrape-properties", json={"location": "Bath"}).status_code
                for _ in range(3)
            ]
            other = client.get("/health")

        assert codes == [200, 200, 429]
        assert other.status_code == 200

    def test_rate_limit_message(self, make_client):
        with make_client(rate_limit_requests=0) as client:
            response = client.post("/api/scrape-properties", json={"location": "Bath"})

        assert response.status_code == 429
        assert response.json() == {"message": "Too many requests from this IP, please try again later."}

    def test_rejected_credentials(self, make_client):
        """A live fetch with a bad token is a gateway error, not a fallback."""
        with make_client(auth_status=401, use_mock_data=False) as client:
            response = client.post("/api/scrape-properties", json={"location": "Bristol"})

        assert response.status_code == 502
        assert "message" in response.json()


# ============================================================
# /api/properties
# ============================================================


class TestPropertyDetails:
    """Details endpoint."""

    def test_synthetic_listing(self, make_client):
        with make_client() as client:
            response = client.get("/api/properties/synthetic-bristol-1")

        assert response.status_code == 200
        body = response.json()
        assert body["id"] == "synthetic-bristol-1"
        assert body["isSynthetic"] is True

    def test_not_found(self, make_client):
        with make_client() as client:
            response = client.get("/api/properties/12345")

        assert response.status_code == 404
        assert response.json() == {"message": "Property not found: 12345"}


class TestImport:
    """Import endpoint."""

    def test_imports(self, make_client):
        payload = {
            "ownerId": "user-1",
            "properties": [{"id": "1", "address": "1 High Street, Bristol BS1 4DJ", "price": 250000}],
        }

        with make_client() as client:
            response = client.post("/api/properties/import", json=payload)

        assert response.status_code == 201
        assert response.json() == {"imported": 1}

    def test_blank_owner(self, make_client):
        with make_client() as client:
            response = client.post("/api/properties/import", json={"ownerId": " ", "properties": [{"id": "1"}]})

        assert response.status_code == 400
        assert response.json() == {"message": "Owner id is required."}


# ============================================================
# Operations
# ============================================================


class TestOperations:
    """Diagnostics, health and CORS."""

    def test_adapter_diagnostics(self, make_client):
        with make_client() as client:
            response = client.get("/api/diagnostics/adapter")

        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "Valid Apify token for user: tester"}

    def test_adapter_diagnostics_failure(self, make_client):
        with make_client(auth_status=401) as client:
            response = client.get("/api/diagnostics/adapter")

        assert response.status_code == 200
        assert response.json()["success"] is False

    def test_health(self, make_client):
        with make_client() as client:
            response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["cache"] == "ok"

    def test_root(self, make_client):
        with make_client() as client:
            response = client.get("/")

        assert response.json()["docs"] == "/docs"

    def test_unknown_route(self, make_client):
        with make_client() as client:
            response = client.get("/nope")

        assert response.status_code == 404
        assert response.json() == {"message": "Not Found"}

    def test_cors(self, make_client):
        with make_client() as client:
            allowed = client.get("/health", headers={"Origin": "http://localhost:5173"})
            denied = client.get("/health", headers={"Origin": "https://evil.example"})

        assert allowed.headers["access-control-allow-origin"] == "http://localhost:5173"
        assert "access-control-allow-origin" not in denied.headers


# ============================================================
# Error bodies
# ============================================================


class TestErrorBodies:
    """Every failure renders as a ``{"message": ...}`` body."""

    def test_unexpected_error_is_not_leaked(self, make_client):
        with make_client() as client:
            client.app.state.property_service.search_properties = AsyncMock(
                side_effect=RuntimeError("postgres://admin:hunter2@db")
            )
            response = client.post("/api/scrape-properties", json={"location": "Bristol"})

        assert response.status_code == 500
        assert response.json() == {"message": "Failed to scrape properties", "error": "Internal server error"}
        assert "hunter2" not in response.text

    def test_invalid_page(self, make_client):
        with make_client() as client:
            response = client.post("/api/scrape-properties", json={"location": "Bath", "page": 0})

        assert response.status_code == 422
        body = response.json()
        assert list(body) == ["message"]
        assert body["message"].startswith("page:")

    def test_missing_import_owner(self, make_client):
        with make_client() as client:
            response = client.post("/api/properties/import", json={"properties": []})

        assert response.status_code == 422
        assert "ownerId" in response.json()["message"]
