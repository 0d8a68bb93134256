"""
API Tests for the phone rental routers

Runs the routers in-process with the phone store and provider registry
replaced by in-memory fakes; no database or provider is contacted.

Tests:
- Rent: 201 on a new row, 200 on an existing number, error envelope
- Status/cancel/extend by identifier
- Message sync keeps answering 200 when numbers fail
- Webhooks always answer 200

Run with: pytest tests/test_phone_router.py -v
"""

import pytest
from fastapi import APIRouter, FastAPI
from fastapi.testclient import TestClient

from sms_rental.errors import ProviderError, ProviderErrorCode
from sms_rental.registry import ProviderRegistry, get_provider_registry
from sms_rental.schema import RentalResult
from routers import phone_router, phone_webhooks_router, phone_debug_router
from routers.phone import get_phone_store
from routers.phone_webhooks import get_webhook_service
from conftest import FakeAdapter, FakePhoneStore, sms


def build_client(store, *adapters):
    registry = ProviderRegistry({a.name: a for a in adapters})
    app = FastAPI()
    api_router = APIRouter(prefix="/api")
    api_router.include_router(phone_webhooks_router)
    api_router.include_router(phone_debug_router)
    api_router.include_router(phone_router)
    app.include_router(api_router)
    app.dependency_overrides[get_phone_store] = lambda: store
    app.dependency_overrides[get_provider_registry] = lambda: registry
    return TestClient(app), app


def leased(phone="79959707564"):
    return RentalResult(phone_number=phone, rent_id="1049", service="wa", country="0")


@pytest.fixture
def phone_store():
    return FakePhoneStore()


class TestRentEndpoint:
    """POST /api/phone/rent"""

    def test_new_rental_returns_201(self, phone_store):
        client, _ = build_client(phone_store, FakeAdapter(rental=leased()))

        response = client.post("/api/phone/rent", json={"service": "wa", "time": 4})

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "success"
        assert body["data"]["phone_number"] == "79959707564"

    def test_existing_number_returns_200(self, phone_store):
        phone_store.add_phone(phone_number="79959707564", rent_id="1049")
        client, _ = build_client(phone_store, FakeAdapter(rental=leased()))

        response = client.post("/api/phone/rent", json={"service": "wa"})

        assert response.status_code == 200
        assert response.json()["message"] == "Phone number already exists in database"
        assert len(phone_store.phones) == 1

    def test_no_numbers_maps_to_404(self, phone_store):
        adapter = FakeAdapter(rental=ProviderError(ProviderErrorCode.NO_NUMBERS, "No numbers available"))
        client, _ = build_client(phone_store, adapter)

        response = client.post("/api/phone/rent", json={"service": "wa"})

        assert response.status_code == 404
        assert response.json()["detail"] == {
            "status": "error",
            "message": "No numbers available",
            "code": "NO_NUMBERS",
        }

    def test_unsupported_provider_is_400(self, phone_store):
        client, _ = build_client(phone_store, FakeAdapter())

        response = client.post("/api/phone/rent", json={"service": "wa", "provider": "nope"})

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "UNSUPPORTED_PROVIDER"

    def test_missing_service_is_rejected(self, phone_store):
        client, _ = build_client(phone_store, FakeAdapter())

        response = client.post("/api/phone/rent", json={"time": 4})

        assert response.status_code == 422


class TestLeaseEndpoints:
    """Status, cancel and extend by identifier."""

    def test_status_unknown_is_404(self, phone_store):
        client, _ = build_client(phone_store, FakeAdapter())

        response = client.get("/api/phone/status/missing")

        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "NOT_FOUND"

    def test_status_returns_messages(self, phone_store):
        phone_store.add_phone(phone_number="111", rent_id="1049")
        client, _ = build_client(phone_store, FakeAdapter(messages={"1049": [sms("x", "code 1234")]}))

        response = client.get("/api/phone/status/1049")

        assert response.status_code == 200
        assert response.json()["data"]["quantity"] == 1

    def test_module_status_route_not_shadowed(self, phone_store):
        client, _ = build_client(phone_store, FakeAdapter())

        response = client.get("/api/phone/status")

        assert response.status_code == 200
        assert response.json()["module"] == "phone_rental"

    def test_cancel_removes_row(self, phone_store):
        phone_store.add_phone(phone_number="111", rent_id="1049")
        client, _ = build_client(phone_store, FakeAdapter())

        response = client.post("/api/phone/cancel/1049")

        assert response.status_code == 200
        assert response.json()["details"]["databaseRemoval"] == "success"
        assert phone_store.phones == {}

    def test_extend_requires_positive_hours(self, phone_store):
        phone_store.add_phone(phone_number="111", rent_id="1049")
        client, _ = build_client(phone_store, FakeAdapter())

        assert client.post("/api/phone/extend/1049", json={"rentTime": 0}).status_code == 422
        assert client.post("/api/phone/extend/1049", json={"rentTime": 24}).status_code == 200


class TestSyncEndpoints:

    def test_sync_messages_reports_errors_with_200(self, phone_store):
        phone_store.add_phone(phone_number="111", provider="sms_activate", rent_id="A")
        phone_store.add_phone(phone_number="222", provider="sms_activate", rent_id="B")
        adapter = FakeAdapter(messages={
            "A": ProviderError(ProviderErrorCode.SERVER_ERROR, "upstream 500"),
            "B": [sms("bank", "4411")],
        })
        client, _ = build_client(phone_store, adapter)

        response = client.post("/api/phone/sync/messages", params={"provider": "sms_activate"})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["newMessages"] == 1
        assert len(data["errors"]) == 1

    def test_sync_one_unknown_row_is_404(self, phone_store):
        client, _ = build_client(phone_store, FakeAdapter())

        response = client.post("/api/phone/sync/messages/sms_activate/missing")

        assert response.status_code == 404


class TestWebhookEndpoints:
    """Webhooks acknowledge every request."""

    def test_generic_webhook_stores_message(self, phone_store):
        row = phone_store.add_phone(phone_number="111")
        client, _ = build_client(phone_store, FakeAdapter())

        response = client.post("/api/phone/webhook", json={"phone": "111", "message": "code 4242"})

        assert response.status_code == 200
        assert len(phone_store.messages_for(row["id"])) == 1

    def test_form_encoded_gogetsms_webhook(self, phone_store):
        row = phone_store.add_phone(phone_number="447700900123", provider="gogetsms")
        client, _ = build_client(phone_store, FakeAdapter())

        response = client.post(
            "/api/phone/webhook/gogetsms",
            data={"id": "A1", "phone": "447700900123", "text": "code 5566", "sender": "S"},
        )

        assert response.status_code == 200
        assert response.json()["message"] == "Webhook processed successfully"
        assert len(phone_store.messages_for(row["id"])) == 1

    def test_missing_fields_still_200(self, phone_store):
        client, _ = build_client(phone_store, FakeAdapter())

        response = client.post("/api/phone/webhook/gogetsms", json={"phone": "1"})

        assert response.status_code == 200
        assert response.json()["status"] == "ignored"

    def test_internal_failure_still_200(self, phone_store):
        client, app = build_client(phone_store, FakeAdapter())

        class BrokenService:
            async def ingest_generic(self, payload):
                raise RuntimeError("db down")

        app.dependency_overrides[get_webhook_service] = lambda: BrokenService()

        response = client.post("/api/phone/webhook", json={"phone": "111", "message": "x"})

        assert response.status_code == 200
        assert response.json() == {"status": "error", "message": "Error processing webhook, but acknowledged"}

    def test_gogetsms_health(self, phone_store):
        client, _ = build_client(phone_store, FakeAdapter())

        assert client.get("/api/phone/webhook/gogetsms/health").json()["status"] == "success"


class TestDiagnosticsEndpoints:

    def test_auth_reports_each_provider(self, phone_store):
        client, _ = build_client(
            phone_store,
            FakeAdapter("sms_activate"),
            FakeAdapter("smspva", api_key=""),
            FakeAdapter("anosim", api_key=""),
            FakeAdapter("gogetsms", api_key=""),
        )

        data = client.get("/api/phone/test/auth").json()["data"]

        assert data["sms_activate"]["valid"] is True
        assert data["sms_activate"]["balance"]["balance"] == 12.5
        assert data["smspva"] == {"configured": False, "valid": False}
