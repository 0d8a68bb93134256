"""
Phone Rental Router

REST surface over the SMS rental providers (SMS-Activate, SMSPVA, Anosim,
GoGetSMS) and the stored phone_numbers / phone_messages tables.

Endpoints:
- GET /api/phone/status - Module status (MUST be before /status/{id})
- GET /api/phone/providers - Provider availability
- GET /api/phone/services - Services and countries of a provider
- POST /api/phone/rent - Rent a number and store it
- GET /api/phone/status/{id} - Messages of a stored number (rent_id or row id)
- POST /api/phone/cancel/{id} - Cancel upstream and remove the row
- POST /api/phone/extend/{id} - Extend a lease
- GET /api/phone/list - Active leases across providers
- GET /api/phone/balance - Provider balance
- POST /api/phone/sync - Import provider leases missing from the database
- POST /api/phone/sync/messages - Reconcile messages of active numbers
- POST /api/phone/sync/messages/{provider}/{phone_id} - Reconcile one number

Provider errors are answered with {"status": "error", "message", "code"}
and the HTTP status from sms_rental.errors.http_status_for.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, HTTPException, status, Depends, Query, Path
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from sms_rental.errors import ProviderError, http_status_for
from sms_rental.registry import ProviderRegistry, get_provider_registry
from sms_rental.schema import ProviderName, RentalMode
from services.phone_store import PhoneStore, PhoneNotFoundError
from services.phone_sync import PhoneSyncService
from services.rental_service import RentalService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/phone", tags=["Phone Rental"])


# ==================== REQUEST MODELS ====================

class RentRequest(BaseModel):
    """Request to rent a number."""
    service: str = Field(..., min_length=1, description="Internal service code, e.g. 'wa' or 'full_germany'")
    time: int = Field(4, ge=1, description="Lease length in hours")
    operator: str = Field("any", description="Mobile operator (SMS-Activate only)")
    country: str = Field("0", description="Internal country code")
    url: Optional[str] = Field(None, description="Webhook URL passed to the provider")
    incomingCall: bool = Field(False, description="Request numbers that accept calls")
    provider: str = Field(ProviderName.SMS_ACTIVATE.value, description="Provider name")
    mode: str = Field(RentalMode.RENTAL.value, description="rental or activation")

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "service": "full_germany",
            "time": 24,
            "country": "DE",
            "provider": "anosim",
            "mode": "rental"
        }
    })


class ExtendRequest(BaseModel):
    """Request to extend a lease."""
    rentTime: int = Field(..., ge=1, description="Additional hours")

    model_config = ConfigDict(json_schema_extra={"example": {"rentTime": 24}})


# ==================== DEPENDENCIES ====================

def get_phone_store(db: AsyncSession = Depends(get_db)) -> PhoneStore:
    return PhoneStore(db)


def get_rental_service(
    store: PhoneStore = Depends(get_phone_store),
    registry: ProviderRegistry = Depends(get_provider_registry)
) -> RentalService:
    return RentalService(store, registry)


def get_sync_service(
    store: PhoneStore = Depends(get_phone_store),
    registry: ProviderRegistry = Depends(get_provider_registry)
) -> PhoneSyncService:
    return PhoneSyncService(store, registry)


def provider_http_error(e: ProviderError) -> HTTPException:
    """HTTPException carrying the error envelope for a provider failure."""
    return HTTPException(
        status_code=http_status_for(e),
        detail={"status": "error", "message": e.message, "code": e.code}
    )


def not_found_error(e: PhoneNotFoundError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail={"status": "error", "message": str(e), "code": "NOT_FOUND"}
    )


def internal_error(action: str, e: Exception) -> HTTPException:
    logger.error(f"Error {action}: {e}", exc_info=True)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={"status": "error", "message": f"Error {action}", "code": "INTERNAL_ERROR"}
    )


# ==================== MODULE STATUS ====================

@router.get("/status")
async def module_status(registry: ProviderRegistry = Depends(get_provider_registry)):
    """Module status with provider availability."""
    info = registry.providers_info()
    return {
        "module": "phone_rental",
        "status": "operational" if info["availableCount"] else "degraded",
        "providers": info["providers"],
        "availableCount": info["availableCount"],
        "totalCount": info["totalCount"],
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/providers")
async def list_providers(service: RentalService = Depends(get_rental_service)):
    """Configured providers and whether each has an API key."""
    return {"status": "success", "data": service.providers()}


# ==================== CATALOG ====================

@router.get("/services")
async def get_services(
    provider: str = Query(ProviderName.SMS_ACTIVATE.value, description="Provider name"),
    mode: str = Query(RentalMode.RENTAL.value, description="rental or activation"),
    rent_time: int = Query(4, alias="rentTime", ge=1),
    country: str = Query("0"),
    operator: str = Query("any"),
    incoming_call: bool = Query(False, alias="incomingCall"),
    service: RentalService = Depends(get_rental_service)
):
    """
    Services and countries offered by a provider.

    Anosim and GoGetSMS serve the activation catalog when mode=activation.
    """
    try:
        data = await service.services(
            provider=provider,
            country=country,
            rent_time=rent_time,
            operator=operator,
            incoming_call=incoming_call,
            mode=mode,
        )
        return {"status": "success", "data": data}
    except ProviderError as e:
        logger.warning(f"Catalog request failed for {provider}: {e}")
        raise provider_http_error(e)
    except Exception as e:
        raise internal_error("fetching services", e)


# ==================== RENT ====================

@router.post("/rent", status_code=status.HTTP_201_CREATED)
async def rent_number(
    request: RentRequest,
    service: RentalService = Depends(get_rental_service)
):
    """
    Rent a number and store it.

    - 201 with the stored row on a new rental
    - 200 with the existing row when the number is already stored
    - 201 with status partial_success when the provider leased the number
      but the database write failed
    """
    try:
        outcome = await service.rent(
            request.service,
            provider=request.provider,
            rent_time=request.time,
            country=request.country,
            operator=request.operator,
            webhook_url=request.url,
            incoming_call=request.incomingCall,
            mode=request.mode,
        )
    except ProviderError as e:
        logger.warning(f"Rental failed on {request.provider}: {e}")
        raise provider_http_error(e)
    except Exception as e:
        raise internal_error("renting phone number", e)

    return JSONResponse(status_code=outcome.http_status, content=outcome.to_dict())


# ==================== LEASE OPERATIONS ====================

@router.get("/status/{identifier}")
async def get_rental_status(
    identifier: str = Path(..., description="rent_id or phone_numbers.id"),
    service: RentalService = Depends(get_rental_service)
):
    """Live messages of a stored number."""
    try:
        return {"status": "success", "data": await service.status(identifier)}
    except PhoneNotFoundError as e:
        raise not_found_error(e)
    except ProviderError as e:
        raise provider_http_error(e)
    except Exception as e:
        raise internal_error("fetching rental status", e)


@router.post("/cancel/{identifier}")
async def cancel_rental(
    identifier: str = Path(..., description="rent_id or phone_numbers.id"),
    service: RentalService = Depends(get_rental_service)
):
    """
    Cancel a lease upstream and remove its row.

    The row is removed even when the provider call fails; an "already
    inactive" reply counts as a successful cancellation.
    """
    try:
        outcome = await service.cancel(identifier)
        return outcome.to_dict()
    except ProviderError as e:
        raise provider_http_error(e)
    except Exception as e:
        raise internal_error("cancelling rental", e)


@router.post("/extend/{identifier}")
async def extend_rental(
    request: ExtendRequest,
    identifier: str = Path(..., description="rent_id or phone_numbers.id"),
    service: RentalService = Depends(get_rental_service)
):
    """Extend a lease by rentTime hours."""
    try:
        data = await service.extend(identifier, request.rentTime)
        return {"status": "success", "message": "Rental extended successfully", "data": data}
    except PhoneNotFoundError as e:
        raise not_found_error(e)
    except ProviderError as e:
        raise provider_http_error(e)
    except Exception as e:
        raise internal_error("extending rental", e)


@router.get("/list")
async def list_active_rentals(
    provider: Optional[str] = Query(None, description="Limit to one provider"),
    service: RentalService = Depends(get_rental_service)
):
    """Active leases, merged across available providers."""
    try:
        data = await service.list_active(provider)
        return {"status": "success", "data": data["rentals"], "skipped": data["skipped"]}
    except ProviderError as e:
        raise provider_http_error(e)
    except Exception as e:
        raise internal_error("listing rentals", e)


@router.get("/balance")
async def get_balance(
    provider: str = Query(ProviderName.SMS_ACTIVATE.value),
    service: RentalService = Depends(get_rental_service)
):
    try:
        return {"status": "success", "data": await service.balance(provider)}
    except ProviderError as e:
        raise provider_http_error(e)
    except Exception as e:
        raise internal_error("fetching balance", e)


# ==================== SYNC ====================

@router.post("/sync")
async def sync_rentals(sync: PhoneSyncService = Depends(get_sync_service)):
    """Import provider leases not yet stored."""
    try:
        return await sync.import_rentals()
    except Exception as e:
        raise internal_error("synchronizing rentals", e)


@router.post("/sync/messages")
async def sync_messages(
    provider: Optional[str] = Query(None, description="Provider to sync; all available when omitted"),
    sync: PhoneSyncService = Depends(get_sync_service)
):
    """
    Reconcile messages of every active number.

    Per-number failures are reported in errors[] and never fail the
    request.
    """
    try:
        report = await sync.sync_messages(provider)
        return {"status": "success", "data": report.to_dict()}
    except ProviderError as e:
        raise provider_http_error(e)
    except Exception as e:
        raise internal_error("synchronizing messages", e)


@router.post("/sync/messages/{provider}/{phone_id}")
async def sync_phone_messages(
    provider: str = Path(..., description="Provider name"),
    phone_id: str = Path(..., description="phone_numbers.id"),
    sync: PhoneSyncService = Depends(get_sync_service)
):
    """Reconcile messages of one stored number."""
    try:
        data = await sync.sync_one(provider, phone_id)
        return {"status": "success", "message": "Messages synchronized", "data": data}
    except PhoneNotFoundError as e:
        raise not_found_error(e)
    except ProviderError as e:
        raise provider_http_error(e)
    except Exception as e:
        raise internal_error("synchronizing phone messages", e)
