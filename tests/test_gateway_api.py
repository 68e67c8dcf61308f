# tests/test_gateway_api.py
"""
Tests for the gateway management endpoints.
"""
from decimal import Decimal
from unittest.mock import patch

from fastapi.testclient import TestClient

from app.main import app
from app.gateway.usage import UsageEvent

client = TestClient(app)

REGISTER_BODY = {
    "slug": "weather",
    "originalBaseUrl": "https://example.test",
    "pricePerCall": 50,
    "owner": "P1",
    "apiId": "api-weather",
}


class TestRegisterEndpoint:
    """Test POST /gateway/register."""

    def test_register_success(self, gateway_state):
        """Registration stores the entry and returns the gateway URL."""
        response = client.post("/gateway/register", json=REGISTER_BODY)

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["gatewayUrl"].endswith("/weather")
        assert data["message"] == "API registered with gateway"

        entry = gateway_state.registry.get("weather")
        assert entry.origin_base_url == "https://example.test"
        assert entry.price_per_call == Decimal(50)
        assert entry.owner == "P1"
        assert entry.listing_id == "api-weather"

    @patch("app.api.endpoints.gateway.settings")
    def test_gateway_url_uses_public_url(self, mock_settings):
        """The gateway URL is built from GATEWAY_PUBLIC_URL."""
        mock_settings.GATEWAY_PUBLIC_URL = "https://gw.example.com/"
        response = client.post("/gateway/register", json=REGISTER_BODY)
        assert response.json()["gatewayUrl"] == "https://gw.example.com/weather"

    def test_register_string_price(self, gateway_state):
        """Prices may be sent as strings."""
        body = dict(REGISTER_BODY, pricePerCall="0.25")
        response = client.post("/gateway/register", json=body)
        assert response.status_code == 200
        assert gateway_state.registry.get("weather").price_per_call == Decimal("0.25")

    def test_register_missing_field(self, gateway_state):
        """Every field is required."""
        for field in REGISTER_BODY:
            body = {k: v for k, v in REGISTER_BODY.items() if k != field}
            response = client.post("/gateway/register", json=body)
            assert response.status_code == 400, field
            assert "error" in response.json()
        assert len(gateway_state.registry) == 0

    def test_register_blank_field(self):
        """Blank strings count as missing."""
        response = client.post("/gateway/register", json=dict(REGISTER_BODY, owner="  "))
        assert response.status_code == 400

    def test_register_invalid_price(self):
        """Non-numeric prices are rejected."""
        response = client.post("/gateway/register", json=dict(REGISTER_BODY, pricePerCall="lots"))
        assert response.status_code == 400
        assert "pricePerCall" in response.json()["error"]

    def test_register_boolean_price(self, gateway_state):
        """A JSON boolean is not a price."""
        response = client.post("/gateway/register", json=dict(REGISTER_BODY, pricePerCall=True))
        assert response.status_code == 400
        assert len(gateway_state.registry) == 0

    def test_register_negative_price(self):
        """Negative prices are rejected."""
        response = client.post("/gateway/register", json=dict(REGISTER_BODY, pricePerCall=-1))
        assert response.status_code == 400

    def test_register_invalid_origin(self):
        """Origin must be an absolute URL."""
        response = client.post("/gateway/register", json=dict(REGISTER_BODY, originalBaseUrl="example"))
        assert response.status_code == 400
        assert "Invalid origin URL" in response.json()["error"]

    def test_register_reserved_slug(self):
        """The management prefix cannot be used as a slug."""
        response = client.post("/gateway/register", json=dict(REGISTER_BODY, slug="gateway"))
        assert response.status_code == 400

    def test_reregister_replaces(self, gateway_state):
        """Registering the same slug replaces the entry."""
        client.post("/gateway/register", json=REGISTER_BODY)
        client.post("/gateway/register", json=dict(REGISTER_BODY, pricePerCall=75))
        assert len(gateway_state.registry) == 1
        assert gateway_state.registry.get("weather").price_per_call == Decimal(75)


class TestHealthAndApis:
    """Test GET /gateway/health and GET /gateway/apis."""

    def test_health(self):
        """Health reports status and the number of APIs."""
        client.post("/gateway/register", json=REGISTER_BODY)
        response = client.get("/gateway/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["registeredApis"] == 1
        assert data["timestamp"]

    def test_apis_empty(self):
        """No registrations means an empty list."""
        response = client.get("/gateway/apis")
        assert response.json() == {"apis": [], "count": 0}

    def test_apis_snapshot(self):
        """Registered APIs are listed with their wire fields."""
        client.post("/gateway/register", json=REGISTER_BODY)
        client.post("/gateway/register", json=dict(REGISTER_BODY, slug="news", pricePerCall="0.5"))

        data = client.get("/gateway/apis").json()
        assert data["count"] == 2
        assert data["apis"][0]["slug"] == "news"
        assert data["apis"][0]["pricePerCall"] == 0.5
        assert data["apis"][1] == REGISTER_BODY


class TestBalanceAndTopUp:
    """Test GET /gateway/balance/{wallet} and POST /gateway/topup."""

    def test_unknown_wallet_balance(self):
        """Unknown wallets report 0."""
        response = client.get("/gateway/balance/C1")
        assert response.status_code == 200
        assert response.json() == {"wallet": "C1", "balance": 0}

    def test_topup_then_balance(self):
        """Top-ups accumulate."""
        response = client.post("/gateway/topup", json={"wallet": "C1", "amount": 1000})
        assert response.status_code == 200
        assert response.json() == {"success": True, "wallet": "C1", "newBalance": 1000}

        response = client.post("/gateway/topup", json={"wallet": "C1", "amount": "0.5"})
        assert response.json()["newBalance"] == 1000.5

        assert client.get("/gateway/balance/C1").json()["balance"] == 1000.5

    def test_topup_invalid_amount(self, gateway_state):
        """Zero, negative and non-numeric amounts are rejected."""
        for amount in [0, -10, "abc"]:
            response = client.post("/gateway/topup", json={"wallet": "C1", "amount": amount})
            assert response.status_code == 400, amount
            assert "error" in response.json()
        assert gateway_state.ledger.get_balance("C1") == Decimal(0)

    def test_topup_rejects_boolean_amount(self, gateway_state):
        """JSON booleans are not amounts."""
        for amount in [True, False]:
            response = client.post("/gateway/topup", json={"wallet": "C1", "amount": amount})
            assert response.status_code == 400, amount
        assert gateway_state.ledger.get_balance("C1") == Decimal(0)

    def test_topup_missing_fields(self):
        """Wallet and amount are required."""
        assert client.post("/gateway/topup", json={"wallet": "C1"}).status_code == 400
        assert client.post("/gateway/topup", json={"amount": 5}).status_code == 400


class TestUsageEndpoint:
    """Test GET /gateway/usage/{api_id}."""

    def test_usage_stats(self, gateway_state):
        """Usage is aggregated from the usage log."""
        recorder = gateway_state.usage_recorder
        recorder.record(UsageEvent("api-weather", "C1", True, Decimal(50)))
        recorder.record(UsageEvent("api-weather", "C1", False, Decimal(0), error="Connection refused"))

        response = client.get("/gateway/usage/api-weather")

        assert response.status_code == 200
        assert response.json() == {
            "apiId": "api-weather",
            "totalCalls": 2,
            "successfulCalls": 1,
            "revenue": 50,
        }
