"""
Tests for the executor HTTP endpoints.
"""

import pytest
from fastapi.testclient import TestClient

from conftest import NOW_MS
from dca_keeper.api.executor import get_context
from dca_keeper.core.recovery.errors import LedgerRpcError
from dca_keeper.main import app


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def client(context):
    app.dependency_overrides[get_context] = lambda: context
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def due_orders(ledger):
    ledger.add_order("0x01", last_time_ms=NOW_MS - 600_000)
    ledger.add_order("0x02", last_time_ms=NOW_MS)
    ledger.add_order("0x03", last_time_ms=NOW_MS - 900_000, owner="0xalice")
    return ledger


# ============================================================================
# Endpoint Tests
# ============================================================================

class TestHealth:
    def test_healthz(self, client, signer):
        response = client.get("/healthz")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["executor"] == signer.address
        assert data["executorBalance"] == "10000000000"
        assert set(data["providers"]) == {"ledger", "aggregator"}

    def test_healthz_without_signer(self, client, context):
        context.signer = None
        data = client.get("/healthz").json()

        assert data["executor"] is None
        assert data["executorBalance"] is None

    def test_healthz_balance_failure(self, client, ledger):
        async def unavailable(address, coin_type="0x2::sui::SUI"):
            raise LedgerRpcError("Network error: connection refused", method="suix_getBalance")

        ledger.get_balance = unavailable
        response = client.get("/healthz")

        assert response.status_code == 200
        assert response.json()["executorBalance"] is None

    def test_request_id_echoed(self, client):
        response = client.get("/healthz", headers={"x-request-id": "run-42"})
        assert response.headers["x-request-id"] == "run-42"


class TestDiscover:
    """Tests for GET /discover."""

    def test_lists_due_orders(self, client, due_orders):
        response = client.get("/discover")

        assert response.status_code == 200
        data = response.json()["data"]
        assert [d["id"] for d in data["dcas"]] == ["0x03", "0x01"]
        assert data["totalDiscovered"] == 3
        assert data["totalEligible"] == 2
        assert data["hasMore"] is False
        assert data["dcas"][0]["inputType"] == "0x2::sui::SUI"

    def test_owner_filter(self, client, due_orders):
        data = client.get("/discover", params={"owner": "0xalice"}).json()["data"]
        assert [d["id"] for d in data["dcas"]] == ["0x03"]

    def test_bad_cursor(self, client, due_orders):
        assert client.get("/discover", params={"cursor": "garbage"}).status_code == 400

    def test_api_key_enforced(self, client, context, due_orders):
        context.settings = context.settings.model_copy(update={"api_key": "secret"})

        assert client.get("/discover").status_code == 401
        assert client.get("/discover", headers={"X-API-Key": "secret"}).status_code == 200
        assert client.get("/discover", params={"api_key": "secret"}).status_code == 200


class TestExecute:
    """Tests for POST /execute and POST /execute/{order_id}."""

    def test_nothing_due(self, client):
        response = client.post("/execute")

        assert response.status_code == 200
        body = response.json()
        assert body["data"]["total"] == 0
        assert body["message"] == "No eligible DCAs found"

    def test_executes_batch(self, client, due_orders):
        response = client.post("/execute", json={"limit": 5, "timeoutMs": 60_000})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["total"] == 2
        assert data["succeeded"] == 2
        assert [r["orderId"] for r in data["results"]] == ["0x03", "0x01"]
        assert len(due_orders.submitted) == 2

    def test_rejects_tiny_timeout(self, client):
        assert client.post("/execute", json={"timeoutMs": 10}).status_code == 422

    def test_execute_single(self, client, due_orders):
        response = client.post("/execute/0x01")

        assert response.status_code == 200
        assert response.json()["data"]["orderId"] == "0x01"
        assert response.json()["success"] is True

    def test_execute_single_not_due(self, client, due_orders):
        response = client.post("/execute/0x02")

        assert response.status_code == 404
        assert "Not yet eligible" in response.json()["detail"]

    def test_execute_single_unknown(self, client, due_orders):
        assert client.post("/execute/0xnope").status_code == 404
