"""
Rental Service

Orchestrates the phone REST surface: catalog, rent, status, cancel,
extend, active list and balance. Adapters do the provider calls; this
layer decides what gets persisted and how failures degrade.

Rental creation walks REQUESTED -> PROVIDER_ORDER_CREATED ->
PHONE_EXTRACTED -> PERSISTED:
- A provider or extraction failure fails the whole request; nothing is
  written.
- A number already stored is returned as-is (idempotent).
- A failed insert is rolled back and reported as partial_success with
  the provider payload, since the number is already paid for upstream.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone, timedelta
from enum import Enum
from typing import Optional, Dict, Any, List

from logging_config import mask_phone
from sentry_integration import capture_exception
from sms_rental.errors import ProviderError
from sms_rental.registry import ProviderRegistry
from sms_rental.schema import PhoneStatus, ProviderName, RentalMode, RentalResult
from services.phone_store import PhoneNotFoundError

logger = logging.getLogger(__name__)


class RentalStage(str, Enum):
    """Progress of one rental request."""
    REQUESTED = "requested"
    PROVIDER_ORDER_CREATED = "provider_order_created"
    PHONE_EXTRACTED = "phone_extracted"
    PERSISTED = "persisted"


class RentalOutcomeStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL_SUCCESS = "partial_success"


@dataclass
class RentalOutcome:
    """What the rent endpoint reports back."""
    status: RentalOutcomeStatus
    message: str
    data: Dict[str, Any]
    http_status: int
    stage: RentalStage
    created: bool = False
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        body = {
            "status": self.status.value,
            "message": self.message,
            "data": self.data,
        }
        if self.error:
            body["error"] = self.error
        return body


@dataclass
class CancelOutcome:
    provider: str
    api_cancellation: str
    database_removal: str
    message: str
    api_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": "success",
            "message": self.message,
            "details": {
                "apiCancellation": self.api_cancellation,
                "databaseRemoval": self.database_removal,
                "provider": self.provider,
                "apiError": self.api_error,
            },
        }


def _jsonable(row: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if row is None:
        return None
    return {k: (v.isoformat() if isinstance(v, datetime) else v) for k, v in row.items()}


def phone_record(result: RentalResult, provider: str, rent_time: int) -> Dict[str, Any]:
    """phone_numbers row for a freshly leased number."""
    end_date = result.end_date or datetime.now(timezone.utc) + timedelta(hours=int(rent_time or 4))
    record = {
        "phone_number": result.phone_number,
        "rent_id": result.rent_id,
        "service": result.service,
        "country": result.country or "0",
        "end_date": end_date,
        "status": PhoneStatus.ACTIVE.value,
        "provider": provider,
        "external_url": None,
        "mode": result.mode,
        "cost": result.cost,
    }
    if provider == ProviderName.SMSPVA.value:
        record["external_url"] = result.external_id or result.rent_id
    elif provider == ProviderName.ANOSIM.value:
        record["order_id"] = result.order_id
        record["order_booking_id"] = result.order_booking_id or result.rent_id
        record["provider_id"] = result.provider_id
        record["auto_renewal"] = result.auto_renewal
        record["external_url"] = result.order_booking_id or result.order_id
    elif provider == ProviderName.GOGETSMS.value:
        record["external_url"] = result.external_id or result.rent_id
    return record


class RentalService:
    """Phone rental operations over the provider registry and phone store."""

    def __init__(self, store, registry: ProviderRegistry):
        self.store = store
        self.registry = registry

    # ==================== CATALOG ====================

    async def services(
        self,
        provider: Optional[str] = None,
        country: str = "0",
        rent_time: int = 4,
        operator: str = "any",
        incoming_call: bool = False,
        mode: str = RentalMode.RENTAL.value,
    ) -> Dict[str, Any]:
        adapter = self.registry.get(provider)
        adapter._require_key()
        data = await adapter.get_services_and_countries(
            country=country,
            rent_time=rent_time,
            operator=operator,
            incoming_call=incoming_call,
            mode=mode,
        )
        return {"provider": adapter.name, "mode": mode, **data}

    def providers(self) -> Dict[str, Any]:
        return self.registry.providers_info()

    # ==================== RENT ====================

    async def rent(
        self,
        service: str,
        provider: Optional[str] = None,
        rent_time: int = 4,
        country: str = "0",
        operator: str = "any",
        webhook_url: Optional[str] = None,
        incoming_call: bool = False,
        mode: str = RentalMode.RENTAL.value,
    ) -> RentalOutcome:
        adapter = self.registry.get(provider)
        logger.info(f"Rental requested: {adapter.name} service={service} country={country} hours={rent_time} mode={mode}")

        # Provider and extraction failures propagate; nothing is written
        result = await adapter.rent_number(
            service,
            rent_time=rent_time,
            country=country,
            operator=operator,
            webhook_url=webhook_url,
            incoming_call=incoming_call,
            mode=mode,
        )
        stage = RentalStage.PHONE_EXTRACTED

        existing = await self.store.get_by_phone_number(result.phone_number)
        if existing:
            logger.info(f"{mask_phone(result.phone_number)} already stored, returning existing row")
            return RentalOutcome(
                status=RentalOutcomeStatus.SUCCESS,
                message="Phone number already exists in database",
                data=_jsonable(existing),
                http_status=200,
                stage=stage,
            )

        record = phone_record(result, adapter.name, rent_time)
        try:
            row = await self.store.insert_phone_number(record)
        except Exception as e:
            logger.error(f"Rented {mask_phone(result.phone_number)} on {adapter.name} but the insert failed: {e}")
            capture_exception(e, provider=adapter.name, rent_id=result.rent_id, stage=stage.value)
            return RentalOutcome(
                status=RentalOutcomeStatus.PARTIAL_SUCCESS,
                message="Phone number rented but failed to save to database",
                data=result.to_dict(),
                http_status=201,
                stage=stage,
                error=str(e),
            )

        logger.info(f"Rental persisted: {mask_phone(result.phone_number)} ({adapter.name}, rent id {result.rent_id})")
        return RentalOutcome(
            status=RentalOutcomeStatus.SUCCESS,
            message="Phone number successfully rented and saved",
            data=_jsonable(row),
            http_status=201,
            stage=RentalStage.PERSISTED,
            created=True,
        )

    # ==================== STATUS ====================

    async def status(self, identifier: str) -> Dict[str, Any]:
        row = await self.store.get_by_rent_id_or_id(identifier)
        if not row:
            raise PhoneNotFoundError(identifier)

        adapter = self.registry.get(row.get("provider"))
        external_id = adapter.external_id_for(row) or identifier
        mode = row.get("mode") or RentalMode.RENTAL.value
        messages = await adapter.fetch_messages(external_id, mode=mode)
        return {
            "phoneNumberId": row["id"],
            "phoneNumber": row["phone_number"],
            "provider": adapter.name,
            "externalId": external_id,
            "messages": [m.to_dict() for m in messages],
            "quantity": len(messages),
        }

    # ==================== CANCEL ====================

    async def cancel(self, identifier: str) -> CancelOutcome:
        """
        Cancel upstream, then remove the row regardless of the API result.

        A provider error saying the lease is already inactive counts as a
        successful cancellation.
        """
        row = await self.store.get_by_rent_id_or_id(identifier)
        provider = (row or {}).get("provider") or ProviderName.SMS_ACTIVATE.value
        adapter = self.registry.get(provider)
        external_id = (adapter.external_id_for(row) if row else None) or identifier

        api_cancellation = "api_key_not_available"
        api_error = None
        already_inactive = False
        if adapter.is_available():
            try:
                if row and row.get("mode") == RentalMode.ACTIVATION.value and hasattr(adapter, "cancel_activation"):
                    await adapter.cancel_activation(external_id)
                else:
                    await adapter.cancel(external_id)
                api_cancellation = "success"
            except ProviderError as e:
                api_error = e.message
                already_inactive = e.is_already_inactive
                api_cancellation = "already_inactive" if already_inactive else "failed"
                logger.warning(f"{adapter.name} cancel of {external_id} failed ({e.code}); removing row anyway")

        removed = await self.store.delete_phone_number(row["id"]) if row else False

        if api_cancellation == "success":
            message = "Phone number rental cancelled via API and removed from database"
        elif already_inactive:
            message = "Phone number was already cancelled/expired/inactive - removed from database"
        elif api_error:
            message = "Phone number removed from database (API cancellation failed but cleanup completed)"
        else:
            message = "Phone number removed from database (API key not available - could not cancel via provider)"

        return CancelOutcome(
            provider=adapter.name,
            api_cancellation=api_cancellation,
            database_removal="success" if removed else "not_found",
            message=message,
            api_error=api_error,
        )

    # ==================== EXTEND ====================

    async def extend(self, identifier: str, rent_time: int) -> Dict[str, Any]:
        row = await self.store.get_by_rent_id_or_id(identifier)
        if not row:
            raise PhoneNotFoundError(identifier)

        adapter = self.registry.get(row.get("provider"))
        adapter._require_key()
        external_id = adapter.external_id_for(row) or identifier
        result = await adapter.extend(external_id, int(rent_time))

        end_date = result.end_date
        if end_date is None:
            base = row.get("end_date") or datetime.now(timezone.utc)
            end_date = base + timedelta(hours=int(rent_time))
        await self.store.update_end_date(row["id"], end_date)

        logger.info(f"Extended {mask_phone(row['phone_number'])} on {adapter.name} by {rent_time}h")
        return {**result.to_dict(), "end_date": end_date.isoformat(), "phoneNumberId": row["id"]}

    # ==================== LISTS ====================

    async def list_active(self, provider: Optional[str] = None) -> Dict[str, Any]:
        """Merged active leases; a failing provider is skipped."""
        adapters = [self.registry.get(provider)] if provider else self.registry.available()
        rentals: List[Dict[str, Any]] = []
        skipped: List[Dict[str, Any]] = []
        for adapter in adapters:
            if not adapter.is_available():
                skipped.append({"provider": adapter.name, "reason": "api_key_not_available"})
                continue
            try:
                rentals.extend(r.to_dict() for r in await adapter.list_active())
            except ProviderError as e:
                logger.warning(f"Skipping {adapter.name} in active list: {e}")
                skipped.append({"provider": adapter.name, "reason": e.code})
        return {"rentals": rentals, "skipped": skipped}

    async def balance(self, provider: Optional[str] = None) -> Dict[str, Any]:
        adapter = self.registry.get(provider)
        return {"provider": adapter.name, **(await adapter.get_balance())}
