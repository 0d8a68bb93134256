"""
SMS-Activate adapter.

Query-string API on handler_api.php ("action" parameter). Errors arrive
either as bare string sentinels ("BAD_KEY", "NO_NUMBERS", ...) or as a
JSON {"status": "error", "message": ...} envelope. Internal service and
country codes are SMS-Activate's own, so no translation table is needed;
an empty country falls back to "0".
"""

import logging
from typing import Any, Dict, List, Optional

from logging_config import mask_phone
from .base import BaseProviderAdapter
from .catalog import catalog
from .errors import ProviderErrorCode
from .normalizer import as_float, decode_messages, decode_values_map, parse_timestamp, pick
from .schema import (
    ActiveRental,
    ExtensionResult,
    ProviderName,
    RentalMode,
    RentalResult,
    RentalStatus,
)

logger = logging.getLogger(__name__)

DEFAULT_COUNTRY = "0"

ERROR_MESSAGES = {
    "BAD_KEY": "Invalid API key",
    "NOT_AUTHORIZED": "API key not authorized or insufficient permissions",
    "NO_NUMBERS": "No phone numbers available for this service/country",
    "NO_BALANCE": "Insufficient balance",
    "BAD_ACTION": "Invalid action parameter",
    "BAD_SERVICE": "Invalid service parameter",
    "EARLY_CANCEL_DENIED": "Cannot cancel rental yet",
    "BANNED": "Account is banned",
}

# getRentStatus reports "no SMS yet" through the error envelope
EMPTY_STATUS_MESSAGES = ("STATUS_WAIT_CODE", "NO_SMS")

RENT_STATUS_FINISH = "1"
RENT_STATUS_CANCEL = "2"


class SmsActivateAdapter(BaseProviderAdapter):
    name = ProviderName.SMS_ACTIVATE.value
    display_name = "SMS-Activate"
    description = "SMS-Activate rental API (long-term number leases)"
    default_base_url = "https://api.sms-activate.io/stubs/handler_api.php"

    async def _call(self, action: str, **params) -> Any:
        """Run one action and raise on string or JSON error envelopes."""
        data = await self._request("GET", params={"action": action, **params})
        self._raise_for_envelope(data, action)
        return data

    def _raise_for_envelope(self, data: Any, action: str):
        if isinstance(data, str):
            code = data.strip().upper()
            if code.startswith("ACCESS_"):
                return
            message = ERROR_MESSAGES.get(code, f"API returned error: {data}")
            logger.error(f"SMS-Activate {action} string error: {data}")
            raise self._error(code, message, status_code=None)
        if isinstance(data, dict) and data.get("status") == "error":
            message = data.get("message") or "Unknown API error"
            if action == "getRentStatus" and message in EMPTY_STATUS_MESSAGES:
                return
            raise self._error(message, ERROR_MESSAGES.get(message, message))

    async def get_services_and_countries(
        self,
        country: str = DEFAULT_COUNTRY,
        rent_time: int = 4,
        operator: str = "any",
        incoming_call: bool = False,
        mode: str = RentalMode.RENTAL.value,
    ) -> Dict[str, Any]:
        data = await self._call(
            "getRentServicesAndCountries",
            rent_time=str(rent_time),
            operator=operator,
            country=country or DEFAULT_COUNTRY,
            incomingCall="true" if incoming_call else None,
        )
        services = data.get("services") if isinstance(data, dict) else None
        if not isinstance(services, dict) or not services:
            raise self._error(ProviderErrorCode.INVALID_RESPONSE, "Invalid or empty services data returned by API")

        countries = data.get("countries") or {}
        if not countries:
            logger.warning("SMS-Activate returned no countries")
        logger.info(f"SMS-Activate catalog: {len(services)} services, {len(countries)} countries")
        return catalog(services, countries, operators=data.get("operators", {}))

    async def rent_number(
        self,
        service: str,
        rent_time: int = 4,
        country: str = DEFAULT_COUNTRY,
        operator: str = "any",
        webhook_url: Optional[str] = None,
        incoming_call: bool = False,
        mode: str = RentalMode.RENTAL.value,
    ) -> RentalResult:
        country = country or DEFAULT_COUNTRY
        data = await self._call(
            "getRentNumber",
            service=service,
            rent_time=str(rent_time),
            operator=operator,
            country=country,
            url=webhook_url,
            incomingCall="true" if incoming_call else None,
        )
        phone = data.get("phone") if isinstance(data, dict) else None
        if not isinstance(phone, dict) or not phone.get("number") or not phone.get("id"):
            raise self._error(
                ProviderErrorCode.MISSING_PHONE_NUMBER,
                "Rental response did not contain a phone number",
                details={"response": data},
            )

        logger.info(f"SMS-Activate rented {mask_phone(phone['number'])} (rent id {phone['id']})")
        return RentalResult(
            phone_number=str(phone["number"]),
            rent_id=str(phone["id"]),
            service=service,
            country=str(country),
            end_date=parse_timestamp(phone.get("endDate")),
            cost=as_float(pick(phone, "cost", "price")),
            provider=self.name,
            external_id=str(phone["id"]),
            raw=data,
        )

    async def get_status(self, external_id: str) -> RentalStatus:
        data = await self._call("getRentStatus", id=external_id, page="0", size="10")
        if isinstance(data, dict) and data.get("status") == "error":
            return RentalStatus(external_id=str(external_id), raw=data)
        messages = decode_messages(data, provider=self.name)
        raw = data if isinstance(data, dict) else {"messages": data}
        return RentalStatus(external_id=str(external_id), messages=messages, status="active", raw=raw)

    async def cancel(self, external_id: str) -> Dict[str, Any]:
        data = await self._call("setRentStatus", id=external_id, status=RENT_STATUS_CANCEL)
        return {"status": "cancelled", "external_id": str(external_id), "response": data}

    async def finish(self, external_id: str) -> Dict[str, Any]:
        data = await self._call("setRentStatus", id=external_id, status=RENT_STATUS_FINISH)
        return {"status": "finished", "external_id": str(external_id), "response": data}

    async def extend(self, external_id: str, rent_time: int) -> ExtensionResult:
        data = await self._call("continueRentNumber", id=external_id, rent_time=str(rent_time))
        phone = data.get("phone") if isinstance(data, dict) else None
        phone = phone if isinstance(phone, dict) else {}
        return ExtensionResult(
            external_id=str(phone.get("id") or external_id),
            end_date=parse_timestamp(phone["endDate"]) if phone.get("endDate") else None,
            cost=as_float(pick(phone, "cost", "price")),
            raw=data,
        )

    async def list_active(self) -> List[ActiveRental]:
        data = await self._call("getRentList")
        rentals = []
        for key, entry in decode_values_map(data, provider=self.name):
            if isinstance(entry, dict):
                number = pick(entry, "phone", "number")
                rent_id = pick(entry, "id", default=key)
            else:
                number, rent_id = entry, key
            if not number:
                continue
            rentals.append(ActiveRental(
                external_id=str(rent_id),
                phone_number=str(number),
                provider=self.name,
                status="active",
            ))
        return rentals

    async def get_balance(self) -> Dict[str, Any]:
        data = await self._call("getBalance")
        if isinstance(data, str) and data.startswith("ACCESS_BALANCE:"):
            return {"balance": float(data.split(":", 1)[1]), "currency": "USD"}
        raise self._error(ProviderErrorCode.INVALID_BALANCE_RESPONSE, f"Unexpected balance response: {str(data)[:100]}")

