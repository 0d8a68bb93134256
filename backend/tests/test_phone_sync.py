"""
Unit Tests for message reconciliation

Tests:
- Booking 4892693: one Anosim message becomes one stored row
- Dedup on (phone_number_id, sender, message) across repeated syncs
- Booking resolution when the stored id stops answering
- Per-number failure isolation in a batch sync
- Rental import of provider-side leases

Run with: pytest tests/test_phone_sync.py -v
"""

import json
import pytest
import httpx
from datetime import datetime, timezone
from unittest.mock import AsyncMock

from sms_rental.anosim import AnosimAdapter
from sms_rental.errors import ProviderError, ProviderErrorCode
from sms_rental.registry import ProviderRegistry
from sms_rental.schema import ActiveRental, BookingResolution
from services.booking_resolver import BookingResolver
from services.phone_sync import PhoneSyncService, SyncReport, filter_new_messages
from conftest import FakeAdapter, FakePhoneStore, sms


def anosim_with(routes):
    def handler(request):
        path = request.url.path.split("/api/v1", 1)[-1]
        body = routes[f"{request.method} {path}"]
        return httpx.Response(200, content=json.dumps(body).encode(), headers={"content-type": "application/json"})

    return AnosimAdapter(api_key="test-key", transport=httpx.MockTransport(handler), retry_delays=[0])


class TestBooking4892693:
    """Anosim booking sync scenario."""

    @pytest.mark.asyncio
    async def test_single_message_is_stored(self):
        store = FakePhoneStore()
        row = store.add_phone(
            phone_number="4915112345678",
            provider="anosim",
            rent_id="4892693",
            order_booking_id="4892693",
        )
        adapter = anosim_with({
            "GET /Sms/4892693": {"messages": [
                {"messageSender": "1234", "messageText": "code 555", "messageDate": "2024-01-01T00:00:00Z"},
            ]},
        })
        sync = PhoneSyncService(store, ProviderRegistry({"anosim": adapter}))

        result = await sync.sync_one("anosim", row["id"])

        assert result["newMessages"] == 1
        assert result["totalMessages"] == 1
        assert result["bookingId"] == "4892693"
        stored = store.messages_for(row["id"])
        assert stored[0]["sender"] == "1234"
        assert stored[0]["message"] == "code 555"
        assert stored[0]["received_at"] == datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert stored[0]["message_source"] == "api"

    @pytest.mark.asyncio
    async def test_second_sync_adds_nothing(self):
        """Syncing the same provider reply twice stores exactly one row."""
        store = FakePhoneStore()
        row = store.add_phone(phone_number="4915112345678", provider="anosim", order_booking_id="4892693")
        adapter = anosim_with({
            "GET /Sms/4892693": {"messages": [
                {"messageSender": "1234", "messageText": "code 555", "messageDate": "2024-01-01T00:00:00Z"},
            ]},
        })
        sync = PhoneSyncService(store, ProviderRegistry({"anosim": adapter}))

        await sync.sync_one("anosim", row["id"])
        second = await sync.sync_one("anosim", row["id"])

        assert second["newMessages"] == 0
        assert len(store.messages_for(row["id"])) == 1


class TestFilterNewMessages:
    """Test the dedup rule."""

    def test_drops_stored_pairs(self):
        fresh = filter_new_messages([sms("a", "1111"), sms("b", "2222")], {("a", "1111")})
        assert [(m.sender, m.message) for m in fresh] == [("b", "2222")]

    def test_timestamp_is_not_part_of_key(self):
        fresh = filter_new_messages(
            [sms("a", "1111", "2024-01-01T00:00:00+00:00")],
            {("a", "1111")},
        )
        assert fresh == []

    def test_drops_repeats_within_batch(self):
        fresh = filter_new_messages([sms("a", "1111"), sms("a", "1111", "2024-02-01T00:00:00+00:00")], set())
        assert len(fresh) == 1


class TestBookingResolution:
    """Test repair of stale identifiers."""

    @pytest.mark.asyncio
    async def test_empty_fetch_resolves_and_refetches(self):
        store = FakePhoneStore()
        row = store.add_phone(phone_number="+4915112345678", provider="anosim", rent_id="900", order_booking_id="900")
        adapter = FakeAdapter(
            "anosim",
            messages={"4892693": [sms("1234", "code 555")]},
            resolution=BookingResolution(phone_number="4915112345678", booking_id="4892693", order_id="900"),
        )
        adapter.external_id_for = lambda r: r.get("order_booking_id") or r.get("rent_id")
        sync = PhoneSyncService(store, ProviderRegistry({"anosim": adapter}))

        report = await sync.sync_messages("anosim")

        assert report.new_messages == 1
        assert report.results[0]["resolved"] is True
        assert report.results[0]["bookingId"] == "4892693"
        assert store.phones[row["id"]]["order_booking_id"] == "4892693"
        assert store.phones[row["id"]]["rent_id"] == "4892693"

    @pytest.mark.asyncio
    async def test_not_found_error_triggers_resolution(self):
        store = FakePhoneStore()
        store.add_phone(phone_number="111", provider="sms_activate", rent_id="old")
        adapter = FakeAdapter(
            messages={
                "old": ProviderError(ProviderErrorCode.NOT_FOUND, "gone"),
                "new": [sms("x", "9999")],
            },
            resolution=BookingResolution(phone_number="111", booking_id="new"),
        )
        sync = PhoneSyncService(store, ProviderRegistry({"sms_activate": adapter}))

        report = await sync.sync_messages("sms_activate")

        assert report.new_messages == 1
        assert report.errors == []

    @pytest.mark.asyncio
    async def test_inactive_booking_is_marked_expired_without_refetch(self):
        store = FakePhoneStore()
        row = store.add_phone(phone_number="111", provider="sms_activate", rent_id="old")
        adapter = FakeAdapter(resolution=BookingResolution(phone_number="111", booking_id="new", is_active=False))
        sync = PhoneSyncService(store, ProviderRegistry({"sms_activate": adapter}))

        await sync.sync_messages("sms_activate")

        assert store.phones[row["id"]]["status"] == "expired"
        assert ("status", "new") not in adapter.calls

    @pytest.mark.asyncio
    async def test_resolver_swallows_provider_errors(self):
        store = FakePhoneStore()
        row = store.add_phone(phone_number="111", provider="sms_activate", rent_id="old")
        adapter = FakeAdapter()
        adapter.resolve_booking = AsyncMock(side_effect=ProviderError(ProviderErrorCode.SERVER_ERROR, "down"))

        assert await BookingResolver(store).resolve(adapter, row) is None

    @pytest.mark.asyncio
    async def test_unchanged_booking_is_not_written(self):
        store = FakePhoneStore()
        row = store.add_phone(phone_number="111", provider="sms_activate", rent_id="same")
        store.update_booking = AsyncMock()
        adapter = FakeAdapter(resolution=BookingResolution(phone_number="111", booking_id="same"))

        resolution = await BookingResolver(store).resolve(adapter, row)

        assert resolution.booking_id == "same"
        store.update_booking.assert_not_awaited()


class TestPartialFailureIsolation:
    """A failing number never stops the rest of the batch."""

    @pytest.mark.asyncio
    async def test_failure_on_a_keeps_b(self):
        store = FakePhoneStore()
        a = store.add_phone(phone_number="111", provider="sms_activate", rent_id="A")
        b = store.add_phone(phone_number="222", provider="sms_activate", rent_id="B")
        adapter = FakeAdapter(messages={
            "A": ProviderError(ProviderErrorCode.SERVER_ERROR, "upstream 500"),
            "B": [sms("bank", "4411")],
        })
        sync = PhoneSyncService(store, ProviderRegistry({"sms_activate": adapter}))

        report = await sync.sync_messages("sms_activate")

        assert report.checked == 2
        assert report.new_messages == 1
        assert len(report.errors) == 1
        assert report.errors[0]["phoneNumberId"] == a["id"]
        assert report.errors[0]["code"] == "SERVER_ERROR"
        by_id = {r["phoneNumberId"]: r for r in report.results}
        assert by_id[b["id"]]["status"] == "success"
        assert by_id[a["id"]]["status"] == "error"

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_isolated(self):
        store = FakePhoneStore()
        store.add_phone(phone_number="111", provider="sms_activate", rent_id="A")
        adapter = FakeAdapter(messages={"A": [sms("x", "1234")]})

        async def broken(*args, **kwargs):
            raise RuntimeError("boom")

        store.insert_messages = broken
        sync = PhoneSyncService(store, ProviderRegistry({"sms_activate": adapter}))

        report = await sync.sync_messages("sms_activate")

        assert report.errors[0]["code"] == "INTERNAL_ERROR"

    @pytest.mark.asyncio
    async def test_last_check_stamped_without_new_messages(self):
        store = FakePhoneStore()
        row = store.add_phone(phone_number="111", provider="sms_activate", rent_id="A")
        adapter = FakeAdapter(messages={"A": []})
        sync = PhoneSyncService(store, ProviderRegistry({"sms_activate": adapter}))

        await sync.sync_messages("sms_activate")

        assert store.touched == [row["id"]]

    @pytest.mark.asyncio
    async def test_expired_rows_are_skipped(self):
        store = FakePhoneStore()
        store.add_phone(phone_number="111", provider="sms_activate", rent_id="A", status="expired")
        sync = PhoneSyncService(store, ProviderRegistry({"sms_activate": FakeAdapter()}))

        report = await sync.sync_messages("sms_activate")

        assert report.checked == 0

    @pytest.mark.asyncio
    async def test_all_providers_merge(self):
        store = FakePhoneStore()
        store.add_phone(phone_number="111", provider="sms_activate", rent_id="A")
        store.add_phone(phone_number="222", provider="smspva", rent_id="B")
        registry = ProviderRegistry({
            "sms_activate": FakeAdapter("sms_activate", messages={"A": [sms("x", "1111")]}),
            "smspva": FakeAdapter("smspva", messages={"B": [sms("y", "2222")]}),
            "anosim": FakeAdapter("anosim", api_key=""),
            "gogetsms": FakeAdapter("gogetsms", api_key=""),
        })

        report = await PhoneSyncService(store, registry).sync_messages()

        assert report.provider == "all"
        assert report.checked == 2
        assert report.new_messages == 2


class TestSyncReport:

    def test_to_dict(self):
        report = SyncReport(provider="smspva", checked=3, new_messages=2)
        assert report.to_dict() == {
            "provider": "smspva", "checked": 3, "newMessages": 2, "errors": [], "results": [],
        }


class TestRentalImport:
    """Test import of provider-side leases."""

    @pytest.mark.asyncio
    async def test_imports_missing_numbers_only(self):
        store = FakePhoneStore()
        store.add_phone(phone_number="111", provider="sms_activate", rent_id="A")
        registry = ProviderRegistry({
            "sms_activate": FakeAdapter(active=[
                ActiveRental(external_id="A", phone_number="111", provider="sms_activate"),
                ActiveRental(external_id="C", phone_number="333", provider="sms_activate"),
            ]),
            "smspva": FakeAdapter("smspva", active=ProviderError(ProviderErrorCode.BAD_KEY, "bad key")),
            "anosim": FakeAdapter("anosim", api_key=""),
            "gogetsms": FakeAdapter("gogetsms", api_key=""),
        })

        result = await PhoneSyncService(store, registry).import_rentals()

        assert result["status"] == "success"
        assert result["message"] == "Synchronization complete. Total synced: 1"
        assert result["data"]["totalSynced"] == 1
        imported = await store.get_by_phone_number("333")
        assert imported["service"] == "unknown"
        assert imported["country"] == "0"
        assert imported["rent_id"] == "C"
        failed = [r for r in result["data"]["results"] if r["provider"] == "smspva"][0]
        assert failed["code"] == "BAD_KEY"
