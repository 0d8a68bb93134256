"""
Phone Sync Service

Reconciles stored phone rows against live provider state.

Message sync (per provider):
1. Load every active row of the provider.
2. Fetch the row's messages using the stored external identifier.
3. On an empty or not-found reply, resolve the booking by phone number
   and, if the provider now knows it under another id, repair the row and
   fetch again.
4. Keep only messages whose (sender, message) is not stored yet.
5. Batch insert them and stamp last_message_check.

A failure on one row is recorded in the report and never stops the
others.

Rental import: pulls each provider's active lease list and stores rows for
numbers not yet in the database.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone, timedelta
from typing import Optional, Dict, Any, List

from logging_config import mask_phone
from sms_rental.base import BaseProviderAdapter
from sms_rental.errors import ProviderError, ProviderErrorCode
from sms_rental.registry import ProviderRegistry
from sms_rental.schema import MessageSource, PhoneStatus, RentalMode, SmsMessage
from services.booking_resolver import BookingResolver
from services.phone_store import PhoneNotFoundError

logger = logging.getLogger(__name__)

# Codes that mean "the stored id is no longer known upstream"
NOT_FOUND_CODES = frozenset([
    ProviderErrorCode.NOT_FOUND.value,
    ProviderErrorCode.NOT_AUTHORIZED.value,
    "HTTP_400",
    "HTTP_404",
])

IMPORTED_SERVICE = "unknown"
IMPORTED_COUNTRY = "0"
IMPORTED_DEFAULT_HOURS = 4


@dataclass
class SyncReport:
    """Aggregate result of a message sync."""
    provider: str
    checked: int = 0
    new_messages: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)
    results: List[Dict[str, Any]] = field(default_factory=list)

    def merge(self, other: "SyncReport"):
        self.checked += other.checked
        self.new_messages += other.new_messages
        self.errors.extend(other.errors)
        self.results.extend(other.results)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider,
            "checked": self.checked,
            "newMessages": self.new_messages,
            "errors": self.errors,
            "results": self.results,
        }


def filter_new_messages(messages: List[SmsMessage], existing_keys) -> List[SmsMessage]:
    """Drop messages already stored, and repeats within the batch."""
    seen = set(existing_keys)
    fresh = []
    for message in messages:
        key = message.dedup_key()
        if key in seen:
            continue
        seen.add(key)
        fresh.append(message)
    return fresh


class PhoneSyncService:
    """Message reconciliation and rental import."""

    def __init__(self, store, registry: ProviderRegistry):
        self.store = store
        self.registry = registry
        self.resolver = BookingResolver(store)

    # ==================== MESSAGE SYNC ====================

    async def sync_messages(self, provider: Optional[str] = None) -> SyncReport:
        """Sync one provider, or every available provider when provider is None."""
        if provider:
            return await self.sync_provider(self.registry.get(provider))

        report = SyncReport(provider="all")
        for adapter in self.registry.available():
            report.merge(await self.sync_provider(adapter))
        return report

    async def sync_provider(self, adapter: BaseProviderAdapter) -> SyncReport:
        report = SyncReport(provider=adapter.name)
        rows = await self.store.get_active_by_provider(adapter.name)
        logger.info(f"Syncing messages for {len(rows)} active {adapter.name} number(s)")

        for row in rows:
            report.checked += 1
            try:
                outcome = await self._sync_row(adapter, row)
            except ProviderError as e:
                logger.warning(f"Sync failed for {mask_phone(row.get('phone_number'))} on {adapter.name}: {e}")
                entry = {
                    "phoneNumberId": row["id"],
                    "phoneNumber": row.get("phone_number"),
                    "status": "error",
                    "error": e.message,
                    "code": e.code,
                }
                report.errors.append(entry)
                report.results.append(entry)
                continue
            except Exception as e:
                logger.error(f"Unexpected sync error for row {row.get('id')}: {e}", exc_info=True)
                entry = {
                    "phoneNumberId": row["id"],
                    "phoneNumber": row.get("phone_number"),
                    "status": "error",
                    "error": str(e),
                    "code": "INTERNAL_ERROR",
                }
                report.errors.append(entry)
                report.results.append(entry)
                continue

            report.new_messages += outcome["newMessages"]
            report.results.append(outcome)

        logger.info(
            f"{adapter.name} sync done: {report.checked} checked, "
            f"{report.new_messages} new message(s), {len(report.errors)} error(s)"
        )
        return report

    async def sync_one(self, provider: str, phone_id: str) -> Dict[str, Any]:
        """Sync one stored number; returns newMessages/totalMessages/bookingId."""
        adapter = self.registry.get(provider)
        row = await self.store.get_by_id(phone_id)
        if not row:
            raise PhoneNotFoundError(phone_id)

        outcome = await self._sync_row(adapter, row)
        return {
            "newMessages": outcome["newMessages"],
            "totalMessages": await self.store.count_messages(row["id"]),
            "bookingId": outcome["bookingId"],
            "phoneNumberId": row["id"],
        }

    async def _sync_row(self, adapter: BaseProviderAdapter, row: Dict[str, Any]) -> Dict[str, Any]:
        external_id = adapter.external_id_for(row)
        mode = row.get("mode") or RentalMode.RENTAL.value
        resolved = False

        messages: List[SmsMessage] = []
        needs_resolution = not external_id
        if external_id:
            try:
                messages = await adapter.fetch_messages(external_id, mode=mode)
            except ProviderError as e:
                if e.code not in NOT_FOUND_CODES:
                    raise
                logger.info(f"{adapter.name} does not know id {external_id}: {e.code}")
            needs_resolution = not messages

        if needs_resolution:
            resolution = await self.resolver.resolve(adapter, row)
            if resolution and resolution.booking_id != external_id:
                resolved = True
                external_id = resolution.booking_id
                if resolution.is_active:
                    messages = await adapter.fetch_messages(external_id, mode=mode)

        existing = await self.store.existing_message_keys(row["id"])
        fresh = filter_new_messages(messages, existing)
        inserted = await self.store.insert_messages(row["id"], fresh, source=MessageSource.API.value)
        await self.store.touch_last_message_check(row["id"])

        if inserted:
            logger.info(f"Stored {inserted} new message(s) for {mask_phone(row.get('phone_number'))}")
        return {
            "phoneNumberId": row["id"],
            "phoneNumber": row.get("phone_number"),
            "bookingId": external_id,
            "status": "success",
            "fetched": len(messages),
            "newMessages": inserted,
            "resolved": resolved,
        }

    # ==================== RENTAL IMPORT ====================

    async def import_rentals(self) -> Dict[str, Any]:
        """Store provider-side active leases missing from the database."""
        results = []
        total = 0
        for adapter in self.registry.available():
            try:
                rentals = await adapter.list_active()
            except ProviderError as e:
                logger.warning(f"Rental import failed for {adapter.name}: {e}")
                results.append({"provider": adapter.name, "synced": 0, "error": e.message, "code": e.code})
                continue

            synced = 0
            for rental in rentals:
                if await self.store.get_by_phone_number(rental.phone_number):
                    continue
                end_date = rental.end_date or datetime.now(timezone.utc) + timedelta(hours=IMPORTED_DEFAULT_HOURS)
                await self.store.insert_phone_number({
                    "phone_number": rental.phone_number,
                    "rent_id": rental.external_id,
                    "external_url": rental.external_id,
                    "service": IMPORTED_SERVICE,
                    "country": IMPORTED_COUNTRY,
                    "end_date": end_date,
                    "status": PhoneStatus.ACTIVE.value,
                    "provider": adapter.name,
                    "auto_renewal": rental.auto_renewal,
                })
                synced += 1

            logger.info(f"Imported {synced} {adapter.name} rental(s)")
            results.append({"provider": adapter.name, "synced": synced, "found": len(rentals)})
            total += synced

        return {
            "status": "success",
            "message": f"Synchronization complete. Total synced: {total}",
            "data": {"totalSynced": total, "results": results},
        }
