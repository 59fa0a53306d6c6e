"""
Tests for the sync request handler and the FastAPI router.

============================================================
PURPOSE
============================================================
Verify the request/response contract of the sync endpoint.

TEST CATEGORIES:
1. Request validation
2. Status mapping for controller failures
3. Success payload
4. HTTP routing
============================================================
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from broker_sync.adapters.mock import MockBrokerAdapter, MockConfig
from broker_sync.handler import SyncRequestHandler
from broker_sync.router import get_identity, get_sync_controller, router
from broker_sync.store import InMemoryStoreConfig, InMemorySyncStore
from broker_sync.sync_controller import SyncController
from broker_sync.types import (
    BrokerApiError,
    ConnectionStatus,
    SyncTimeoutError,
)


CONNECTION_ID = "conn-1"
USER_ID = "user-1"


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def store(make_connection):
    store = InMemorySyncStore()
    store.add_connection(make_connection(CONNECTION_ID, USER_ID))
    return store


@pytest.fixture
def adapter(make_execution):
    return MockBrokerAdapter(MockConfig(executions=[
        make_execution("buy", 10, 150.0, minutes=0),
        make_execution("sell", 10, 156.0, minutes=5),
    ]), broker="alpaca")


@pytest.fixture
def controller(store, adapter):
    return SyncController(
        store=store,
        decrypt=lambda stored: {},
        adapter_factory=lambda connection, credentials: adapter,
    )


@pytest.fixture
def handler(controller):
    return SyncRequestHandler(controller)


def failing_handler(error: Exception) -> SyncRequestHandler:
    controller = MagicMock()
    controller.sync = AsyncMock(side_effect=error)
    return SyncRequestHandler(controller)


# ============================================================
# REQUEST VALIDATION TESTS
# ============================================================

class TestRequestValidation:
    """Tests for malformed sync requests."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [None, {}, {"connectionId": ""}, {"other": "x"}])
    async def test_missing_connection_id(self, handler, body):
        status, payload = await handler.handle(body, USER_ID)
        assert status == 400
        assert payload == {
            "success": False,
            "error": "connectionId is required",
            "code": "BAD_REQUEST",
        }

    @pytest.mark.asyncio
    async def test_snake_case_accepted(self, handler):
        status, _ = await handler.handle({"connection_id": CONNECTION_ID}, USER_ID)
        assert status == 200


# ============================================================
# FAILURE MAPPING TESTS
# ============================================================

class TestFailureMapping:
    """Tests for status codes of controller failures."""

    @pytest.mark.asyncio
    async def test_not_authenticated(self, handler):
        status, payload = await handler.handle({"connectionId": CONNECTION_ID}, None)
        assert status == 401
        assert payload["code"] == "NOT_AUTHENTICATED"

    @pytest.mark.asyncio
    async def test_not_found(self, handler):
        status, payload = await handler.handle({"connectionId": "missing"}, USER_ID)
        assert status == 404
        assert payload["success"] is False
        assert payload["code"] == "CONNECTION_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_sync_in_progress(self, handler, store):
        await store.acquire_sync_lock(CONNECTION_ID, "other", 900)
        status, payload = await handler.handle({"connectionId": CONNECTION_ID}, USER_ID)
        assert status == 409
        assert payload["code"] == "SYNC_IN_PROGRESS"

    @pytest.mark.asyncio
    async def test_invalid_credentials(self, handler, store, make_connection):
        store.add_connection(make_connection(CONNECTION_ID, USER_ID, credentials=3.14))
        status, payload = await handler.handle({"connectionId": CONNECTION_ID}, USER_ID)
        assert status == 400
        assert payload["code"] == "INVALID_CREDENTIALS"

    @pytest.mark.asyncio
    async def test_broker_4xx_preserved(self, handler, adapter):
        adapter.config.fetch_error = BrokerApiError(
            "Rate limit exceeded. Please wait a moment and try again.", 429, code="RATE_LIMIT"
        )
        status, payload = await handler.handle({"connectionId": CONNECTION_ID}, USER_ID)
        assert status == 429
        assert payload["code"] == "RATE_LIMIT"
        assert payload["error"].startswith("Rate limit exceeded")

    @pytest.mark.asyncio
    async def test_broker_5xx_becomes_500(self):
        handler = failing_handler(BrokerApiError("Alpaca API error: 503 Service Unavailable", 503))
        status, payload = await handler.handle({"connectionId": CONNECTION_ID}, USER_ID)
        assert status == 500
        assert payload["code"] == "BROKER_ERROR"

    @pytest.mark.asyncio
    async def test_timeout_becomes_500(self):
        handler = failing_handler(SyncTimeoutError("Sync timed out", broker="alpaca"))
        status, payload = await handler.handle({"connectionId": CONNECTION_ID}, USER_ID)
        assert status == 500
        assert payload["code"] == "SYNC_TIMEOUT"

    @pytest.mark.asyncio
    async def test_unexpected_error_hidden(self):
        handler = failing_handler(RuntimeError("internal detail"))
        status, payload = await handler.handle({"connectionId": CONNECTION_ID}, USER_ID)
        assert status == 500
        assert payload["success"] is False
        assert "internal detail" not in payload["error"]


# ============================================================
# SUCCESS TESTS
# ============================================================

class TestSuccess:
    """Tests for the success payload."""

    @pytest.mark.asyncio
    async def test_success_payload(self, handler):
        status, payload = await handler.handle({"connectionId": CONNECTION_ID}, USER_ID)
        assert status == 200
        assert payload == {
            "success": True,
            "tradesImported": 1,
            "tradesSkipped": 0,
            "message": "Successfully imported 1 trade from Alpaca",
        }

    @pytest.mark.asyncio
    async def test_link_failure_still_succeeds(self, adapter, make_connection):
        store = InMemorySyncStore(InMemoryStoreConfig(fail_link_insert=True))
        store.add_connection(make_connection(CONNECTION_ID, USER_ID))
        handler = SyncRequestHandler(SyncController(
            store=store,
            decrypt=lambda stored: {},
            adapter_factory=lambda connection, credentials: adapter,
        ))

        status, payload = await handler.handle({"connectionId": CONNECTION_ID}, USER_ID)

        assert status == 200
        assert payload["success"] is True
        assert payload["tradesImported"] == 1
        assert len(store.trades) == 1
        assert store.links == {}

    @pytest.mark.asyncio
    async def test_reset_payload(self, handler, store):
        store.connections[CONNECTION_ID].status = ConnectionStatus.ERROR
        status, payload = await handler.handle_reset(CONNECTION_ID, USER_ID)
        assert status == 200
        assert payload == {
            "success": True,
            "connectionId": CONNECTION_ID,
            "status": "idle",
            "lastSyncAt": None,
        }

    @pytest.mark.asyncio
    async def test_reset_not_found(self, handler):
        status, payload = await handler.handle_reset("missing", USER_ID)
        assert status == 404


# ============================================================
# ROUTER TESTS
# ============================================================

class TestRouter:
    """Tests for the FastAPI endpoints."""

    @pytest.fixture
    def app(self, controller):
        app = FastAPI()
        app.include_router(router)
        app.dependency_overrides[get_identity] = lambda: USER_ID
        app.dependency_overrides[get_sync_controller] = lambda: controller
        return app

    @pytest.fixture
    def client(self, app):
        return TestClient(app)

    def test_sync_endpoint(self, client, store):
        response = client.post("/brokers/sync", json={"connectionId": CONNECTION_ID})
        assert response.status_code == 200
        assert response.json()["tradesImported"] == 1
        assert store.connections[CONNECTION_ID].status == ConnectionStatus.CONNECTED

    def test_second_sync_imports_nothing(self, client):
        client.post("/brokers/sync", json={"connectionId": CONNECTION_ID})
        response = client.post("/brokers/sync", json={"connectionId": CONNECTION_ID})
        assert response.status_code == 200
        assert response.json()["tradesImported"] == 0

    def test_missing_body(self, client):
        response = client.post("/brokers/sync")
        assert response.status_code == 400
        assert response.json()["code"] == "BAD_REQUEST"

    def test_non_object_body(self, client):
        response = client.post("/brokers/sync", json=["conn-1"])
        assert response.status_code == 400

    def test_unauthenticated(self, app, client):
        app.dependency_overrides[get_identity] = lambda: None
        response = client.post("/brokers/sync", json={"connectionId": CONNECTION_ID})
        assert response.status_code == 401
        assert response.json()["success"] is False

    def test_unknown_connection(self, client):
        response = client.post("/brokers/sync", json={"connectionId": "missing"})
        assert response.status_code == 404

    def test_not_configured(self, app, client):
        del app.dependency_overrides[get_sync_controller]
        response = client.post("/brokers/sync", json={"connectionId": CONNECTION_ID})
        assert response.status_code == 503

    def test_reset_endpoint(self, client, store):
        store.connections[CONNECTION_ID].status = ConnectionStatus.ERROR
        response = client.post(f"/brokers/{CONNECTION_ID}/reset")
        assert response.status_code == 200
        assert response.json()["status"] == "idle"
