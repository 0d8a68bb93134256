"""
Unit Tests for the rental service

Tests:
- Rental creation stages: new row, idempotent existing row, partial success
- Status, cancel (already-inactive handling), extend
- Merged active list with failing providers skipped

Run with: pytest tests/test_rental_service.py -v
"""

import pytest
from datetime import datetime, timezone, timedelta
from unittest.mock import patch

from sms_rental.errors import ProviderError, ProviderErrorCode
from sms_rental.registry import ProviderRegistry
from sms_rental.schema import ActiveRental, ExtensionResult, RentalResult
from services.phone_store import PhoneNotFoundError
from services.rental_service import (
    RentalOutcomeStatus,
    RentalService,
    RentalStage,
    phone_record,
)
from conftest import FakeAdapter, FakePhoneStore, sms


def rental(phone="79959707564", rent_id="1049", **kwargs):
    return RentalResult(phone_number=phone, rent_id=rent_id, service="wa", country="0", **kwargs)


def service_with(store, *adapters):
    return RentalService(store, ProviderRegistry({a.name: a for a in adapters}))


class TestRent:
    """Test the rental creation flow."""

    @pytest.mark.asyncio
    async def test_new_rental_is_persisted(self):
        store = FakePhoneStore()
        service = service_with(store, FakeAdapter(rental=rental()))

        outcome = await service.rent("wa", provider="sms_activate", rent_time=4)

        assert outcome.http_status == 201
        assert outcome.created is True
        assert outcome.stage == RentalStage.PERSISTED
        assert outcome.status == RentalOutcomeStatus.SUCCESS
        assert outcome.data["phone_number"] == "79959707564"
        assert len(store.phones) == 1

    @pytest.mark.asyncio
    async def test_existing_number_returns_existing_row(self):
        """Renting a number already stored returns that row without a duplicate."""
        store = FakePhoneStore()
        existing = store.add_phone(phone_number="79959707564", rent_id="1049")
        service = service_with(store, FakeAdapter(rental=rental()))

        outcome = await service.rent("wa")

        assert outcome.http_status == 200
        assert outcome.created is False
        assert outcome.data["id"] == existing["id"]
        assert outcome.to_dict()["message"] == "Phone number already exists in database"
        assert len(store.phones) == 1

    @pytest.mark.asyncio
    async def test_insert_failure_is_partial_success(self):
        store = FakePhoneStore()
        store.fail_insert = RuntimeError("connection reset")
        service = service_with(store, FakeAdapter(rental=rental()))

        with patch("services.rental_service.capture_exception") as captured:
            outcome = await service.rent("wa")

        body = outcome.to_dict()
        assert outcome.http_status == 201
        assert body["status"] == "partial_success"
        assert body["data"]["phone_number"] == "79959707564"
        assert body["error"] == "connection reset"
        assert outcome.stage == RentalStage.PHONE_EXTRACTED
        captured.assert_called_once()
        assert store.phones == {}

    @pytest.mark.asyncio
    async def test_provider_failure_writes_nothing(self):
        store = FakePhoneStore()
        service = service_with(store, FakeAdapter(rental=ProviderError(ProviderErrorCode.NO_NUMBERS, "none")))

        with pytest.raises(ProviderError):
            await service.rent("wa")

        assert store.phones == {}

    @pytest.mark.asyncio
    async def test_unsupported_provider(self):
        service = RentalService(FakePhoneStore(), ProviderRegistry())

        with pytest.raises(ProviderError) as exc:
            await service.rent("wa", provider="nope")

        assert exc.value.code == "UNSUPPORTED_PROVIDER"


class TestPhoneRecord:
    """Test per-provider identifier fields on new rows."""

    def test_anosim_fields(self):
        result = rental(rent_id="4892693", order_id="900", order_booking_id="4892693", provider_id="2")
        record = phone_record(result, "anosim", 24)
        assert record["order_booking_id"] == "4892693"
        assert record["order_id"] == "900"
        assert record["external_url"] == "4892693"

    def test_smspva_external_url(self):
        record = phone_record(rental(rent_id="55", external_id="55"), "smspva", 168)
        assert record["external_url"] == "55"

    def test_default_end_date(self):
        before = datetime.now(timezone.utc)
        record = phone_record(rental(), "sms_activate", 4)
        assert record["end_date"] >= before + timedelta(hours=4) - timedelta(seconds=5)


class TestStatus:

    @pytest.mark.asyncio
    async def test_status_by_rent_id(self):
        store = FakePhoneStore()
        row = store.add_phone(phone_number="111", rent_id="1049")
        service = service_with(store, FakeAdapter(messages={"1049": [sms("x", "1234")]}))

        data = await service.status("1049")

        assert data["phoneNumberId"] == row["id"]
        assert data["quantity"] == 1
        assert data["messages"][0]["message"] == "1234"

    @pytest.mark.asyncio
    async def test_status_by_row_id(self):
        store = FakePhoneStore()
        row = store.add_phone(phone_number="111", rent_id="1049")
        service = service_with(store, FakeAdapter())

        data = await service.status(row["id"])

        assert data["externalId"] == "1049"

    @pytest.mark.asyncio
    async def test_unknown_identifier(self):
        service = service_with(FakePhoneStore(), FakeAdapter())

        with pytest.raises(PhoneNotFoundError):
            await service.status("missing")


class TestCancel:
    """Test cancellation."""

    @pytest.mark.asyncio
    async def test_cancel_removes_row(self):
        store = FakePhoneStore()
        store.add_phone(phone_number="111", rent_id="1049")
        adapter = FakeAdapter()
        service = service_with(store, adapter)

        body = (await service.cancel("1049")).to_dict()

        assert body["details"]["apiCancellation"] == "success"
        assert body["details"]["databaseRemoval"] == "success"
        assert ("cancel", "1049") in adapter.calls
        assert store.phones == {}

    @pytest.mark.asyncio
    async def test_already_inactive_counts_as_cancelled(self):
        store = FakePhoneStore()
        store.add_phone(phone_number="111", rent_id="1049")
        service = service_with(store, FakeAdapter(cancel_error=ProviderError(ProviderErrorCode.NOT_AUTHORIZED, "expired")))

        outcome = await service.cancel("1049")

        assert outcome.api_cancellation == "already_inactive"
        assert outcome.database_removal == "success"
        assert "already cancelled" in outcome.message

    @pytest.mark.asyncio
    async def test_failed_api_still_removes_row(self):
        store = FakePhoneStore()
        store.add_phone(phone_number="111", rent_id="1049")
        service = service_with(store, FakeAdapter(cancel_error=ProviderError(ProviderErrorCode.SERVER_ERROR, "boom")))

        outcome = await service.cancel("1049")

        assert outcome.api_cancellation == "failed"
        assert outcome.api_error == "boom"
        assert store.phones == {}

    @pytest.mark.asyncio
    async def test_without_api_key(self):
        store = FakePhoneStore()
        store.add_phone(phone_number="111", rent_id="1049")
        adapter = FakeAdapter(api_key="")
        service = service_with(store, adapter)

        outcome = await service.cancel("1049")

        assert outcome.api_cancellation == "api_key_not_available"
        assert adapter.calls == []
        assert store.phones == {}

    @pytest.mark.asyncio
    async def test_unknown_row_still_cancels_upstream(self):
        adapter = FakeAdapter()
        service = service_with(FakePhoneStore(), adapter)

        outcome = await service.cancel("999")

        assert outcome.database_removal == "not_found"
        assert ("cancel", "999") in adapter.calls

    @pytest.mark.asyncio
    async def test_activation_row_uses_activation_cancel(self):
        store = FakePhoneStore()
        store.add_phone(phone_number="111", rent_id="A1", provider="gogetsms", mode="activation")
        adapter = FakeAdapter("gogetsms")
        cancelled = []

        async def cancel_activation(activation_id):
            cancelled.append(activation_id)

        adapter.cancel_activation = cancel_activation
        service = service_with(store, adapter)

        await service.cancel("A1")

        assert cancelled == ["A1"]
        assert ("cancel", "A1") not in adapter.calls


class TestExtend:

    @pytest.mark.asyncio
    async def test_extend_moves_end_date(self):
        store = FakePhoneStore()
        end = datetime(2024, 1, 1, tzinfo=timezone.utc)
        row = store.add_phone(phone_number="111", rent_id="1049", end_date=end)
        adapter = FakeAdapter()
        service = service_with(store, adapter)

        data = await service.extend("1049", 24)

        assert store.phones[row["id"]]["end_date"] == end + timedelta(hours=24)
        assert data["phoneNumberId"] == row["id"]
        assert ("extend", "1049", 24) in adapter.calls

    @pytest.mark.asyncio
    async def test_provider_end_date_wins(self):
        store = FakePhoneStore()
        row = store.add_phone(phone_number="111", rent_id="1049")
        adapter = FakeAdapter()
        provider_end = datetime(2030, 1, 1, tzinfo=timezone.utc)

        async def extend(external_id, rent_time):
            return ExtensionResult(external_id=external_id, end_date=provider_end)

        adapter.extend = extend
        await service_with(store, adapter).extend("1049", 24)

        assert store.phones[row["id"]]["end_date"] == provider_end

    @pytest.mark.asyncio
    async def test_unknown_row(self):
        with pytest.raises(PhoneNotFoundError):
            await service_with(FakePhoneStore(), FakeAdapter()).extend("nope", 4)


class TestListActive:

    @pytest.mark.asyncio
    async def test_failing_provider_is_skipped(self):
        registry = ProviderRegistry({
            "sms_activate": FakeAdapter(active=[ActiveRental(external_id="1", phone_number="111", provider="sms_activate")]),
            "smspva": FakeAdapter("smspva", active=ProviderError(ProviderErrorCode.SERVER_ERROR, "down")),
            "anosim": FakeAdapter("anosim", api_key=""),
            "gogetsms": FakeAdapter("gogetsms", api_key=""),
        })

        data = await RentalService(FakePhoneStore(), registry).list_active()

        assert [r["phone_number"] for r in data["rentals"]] == ["111"]
        assert data["skipped"] == [{"provider": "smspva", "reason": "SERVER_ERROR"}]

    @pytest.mark.asyncio
    async def test_balance(self):
        data = await service_with(FakePhoneStore(), FakeAdapter()).balance("sms_activate")
        assert data == {"provider": "sms_activate", "balance": 12.5, "currency": "USD"}
