"""
SMSPVA adapter.

rent.php API selected by the "method" parameter, authenticated with
"apikey". Replies use a {"status": 1, "data": ...} envelope; status 0 carries
an error text in "msg". Rentals are bought in week or month units, so the
requested hours are rounded up to whole units.
"""

import logging
import math
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from logging_config import mask_phone
from .base import BaseProviderAdapter
from .catalog import FALLBACK_SMSPVA_SERVICES, FALLBACK_SOURCE, catalog
from .errors import ProviderErrorCode
from .mappings import (
    SMSPVA_CATALOG_COUNTRIES,
    SMSPVA_COUNTRIES,
    resolve_smspva_country,
    resolve_smspva_service,
)
from .normalizer import as_float, decode_messages, is_empty_envelope, parse_timestamp, pick
from .schema import (
    ActiveRental,
    ExtensionResult,
    ProviderName,
    RentalMode,
    RentalResult,
    RentalStatus,
)

logger = logging.getLogger(__name__)

DEFAULT_SENDER = "SMSPVA"

ORDER_STATES = {
    "0": "INACTIVE",
    "1": "ACTIVE",
    "2": "ACTIVATING",
    "-1": "INVALID",
}


def rent_units(hours: int) -> Tuple[str, int]:
    """Hours -> (dtype, dcount) for create."""
    return "week", max(1, math.ceil(int(hours) / 168))


def prolong_units(hours: int) -> Tuple[str, int]:
    """Hours -> (dtype, dcount) for prolong."""
    hours = int(hours)
    if hours <= 24:
        return "week", 1
    if hours <= 168:
        return "week", math.ceil(hours / 168)
    return "month", math.ceil(hours / 720)


class SmspvaAdapter(BaseProviderAdapter):
    name = ProviderName.SMSPVA.value
    display_name = "SMSPVA"
    description = "SMSPVA rental API (weekly and monthly leases)"
    default_base_url = "https://smspva.com/api/rent.php"

    def _auth_params(self) -> Dict[str, str]:
        return {"apikey": self.api_key}

    async def _call(self, method: str, **params) -> Any:
        data = await self._request("GET", params={"method": method, **params})
        if isinstance(data, dict) and str(data.get("status")) == "0":
            message = str(data.get("msg") or data.get("message") or "SMSPVA API error")
            if "no numbers" in message.lower() or "no free" in message.lower():
                raise self._error(ProviderErrorCode.NO_NUMBERS, message)
            raise self._error(ProviderErrorCode.API_ERROR, message, details={"method": method})
        return data

    # ==================== CATALOG ====================

    async def _country_services(self, country_code: str) -> List[Dict[str, Any]]:
        data = await self._call("getdata", country=country_code)
        body = data.get("data") if isinstance(data, dict) else None
        services = body.get("services") if isinstance(body, dict) else None
        return services if isinstance(services, list) else []

    async def get_services_and_countries(
        self,
        country: str = "0",
        rent_time: int = 4,
        operator: str = "any",
        incoming_call: bool = False,
        mode: str = RentalMode.RENTAL.value,
    ) -> Dict[str, Any]:
        countries = await self._countries()

        if country and country != "0":
            lookup = [resolve_smspva_country(country)]
        else:
            lookup = list(SMSPVA_CATALOG_COUNTRIES)

        services: Dict[str, Dict[str, Any]] = {}
        for code in lookup:
            try:
                entries = await self._country_services(code)
            except Exception as e:
                logger.warning(f"SMSPVA getdata failed for {code}: {e}")
                continue
            for entry in entries:
                service_code = pick(entry, "service", "id")
                if not service_code:
                    continue
                count = int(as_float(entry.get("count")) or 0)
                existing = services.get(service_code)
                # Prefer the country that actually has stock
                if existing is None or (count > 0 and existing["quant"]["current"] == 0):
                    services[service_code] = {
                        "name": pick(entry, "name", default=service_code),
                        "cost": as_float(pick(entry, "price_day", "price")) or 0.0,
                        "quant": {"current": count, "total": count},
                        "country": code,
                    }

        if not services:
            logger.warning("SMSPVA returned no services, serving fallback catalog")
            return catalog(FALLBACK_SMSPVA_SERVICES, countries, source=FALLBACK_SOURCE)

        return catalog(services, countries)

    async def _countries(self) -> Dict[str, Dict[str, Any]]:
        try:
            data = await self._call("getcountries")
            entries = data.get("data") if isinstance(data, dict) else None
        except Exception as e:
            logger.warning(f"SMSPVA getcountries failed, using country table: {e}")
            entries = None

        if isinstance(entries, list) and entries:
            countries = {}
            for entry in entries:
                if not isinstance(entry, dict):
                    continue
                code = pick(entry, "code", "country", "id")
                if code:
                    countries[str(code)] = {"code": str(code), "name": pick(entry, "name", default=str(code))}
            if countries:
                return countries

        return {cid: {"code": code, "name": code} for cid, code in SMSPVA_COUNTRIES.items()}

    # ==================== RENTAL ====================

    async def rent_number(
        self,
        service: str,
        rent_time: int = 4,
        country: str = "0",
        operator: str = "any",
        webhook_url: Optional[str] = None,
        incoming_call: bool = False,
        mode: str = RentalMode.RENTAL.value,
    ) -> RentalResult:
        smspva_country = resolve_smspva_country(country)
        smspva_service = resolve_smspva_service(service)
        dtype, dcount = rent_units(rent_time)

        data = await self._call(
            "create",
            dtype=dtype,
            dcount=str(dcount),
            country=smspva_country,
            service=smspva_service,
            provider=operator if operator and operator != "any" else None,
        )

        rent_id, phone_number, end_date = self._parse_created(data)
        logger.info(f"SMSPVA rented {mask_phone(phone_number)} (order {rent_id}, {dcount} {dtype})")
        return RentalResult(
            phone_number=phone_number,
            rent_id=rent_id,
            service=service,
            country=str(country),
            end_date=end_date,
            provider=self.name,
            external_id=rent_id,
            raw=data if isinstance(data, dict) else {"response": data},
        )

    def _parse_created(self, data: Any) -> Tuple[str, str, Optional[datetime]]:
        # Legacy plain-text reply: "id:phone"
        if isinstance(data, str) and ":" in data:
            rent_id, phone_number = data.split(":", 1)
            return rent_id.strip(), phone_number.strip(), None

        body = data.get("data") if isinstance(data, dict) else None
        if isinstance(body, list):
            body = body[0] if body else None
        if not isinstance(body, dict) or not body.get("id") or not body.get("pnumber"):
            raise self._error(
                ProviderErrorCode.MISSING_PHONE_NUMBER,
                "SMSPVA create response did not contain id and pnumber",
                details={"response": data},
            )

        phone_number = f"{body.get('ccode') or ''}{body['pnumber']}"
        end_date = parse_timestamp(body["until"]) if body.get("until") else None
        return str(body["id"]), phone_number, end_date

    async def get_status(self, external_id: str) -> RentalStatus:
        data = await self._request("GET", params={"method": "sms", "id": external_id})
        raw = data if isinstance(data, dict) else {"response": data}
        if (isinstance(data, dict) and str(data.get("status")) == "0") or is_empty_envelope(data):
            # status 0 is how SMSPVA reports "no SMS yet"
            logger.debug(f"SMSPVA order {external_id} has no messages: {raw.get('msg')}")
            return RentalStatus(external_id=str(external_id), raw=raw)
        messages = decode_messages(data, provider=self.name, default_sender=DEFAULT_SENDER)
        return RentalStatus(external_id=str(external_id), messages=messages, raw=raw)

    async def cancel(self, external_id: str) -> Dict[str, Any]:
        data = await self._request("GET", params={"method": "delete", "id": external_id, "status": "2"})
        if isinstance(data, dict) and str(data.get("status")) == "1":
            return {"status": "cancelled", "external_id": str(external_id), "response": data}
        message = data.get("msg") if isinstance(data, dict) else str(data)
        raise self._error(ProviderErrorCode.CANCEL_FAILED, message or "SMSPVA did not cancel the rental")

    async def extend(self, external_id: str, rent_time: int) -> ExtensionResult:
        dtype, dcount = prolong_units(rent_time)
        data = await self._request("GET", params={
            "method": "prolong", "id": external_id, "dtype": dtype, "dcount": str(dcount),
        })
        if not isinstance(data, dict) or str(data.get("status")) != "1":
            message = data.get("msg") if isinstance(data, dict) else str(data)
            raise self._error(ProviderErrorCode.EXTENSION_FAILED, message or "SMSPVA did not extend the rental")
        body = data.get("data") if isinstance(data.get("data"), dict) else {}
        return ExtensionResult(
            external_id=str(external_id),
            end_date=parse_timestamp(body["until"]) if body.get("until") else None,
            cost=as_float(body.get("price")),
            raw=data,
        )

    async def list_active(self) -> List[ActiveRental]:
        data = await self._call("orders")
        body = data.get("data") if isinstance(data, dict) else None
        if not isinstance(body, list):
            return []

        rentals = []
        for entry in body:
            if not isinstance(entry, dict) or not entry.get("pnumber"):
                continue
            state = ORDER_STATES.get(str(entry.get("state")), "UNKNOWN")
            rentals.append(ActiveRental(
                external_id=str(entry.get("id")),
                phone_number=f"{entry.get('ccode') or ''}{entry['pnumber']}",
                provider=self.name,
                service=entry.get("scode"),
                country=entry.get("cname"),
                status="active" if state in ("ACTIVE", "ACTIVATING") else state.lower(),
                end_date=parse_timestamp(entry["until"]) if entry.get("until") else None,
            ))
        return rentals

    async def get_balance(self) -> Dict[str, Any]:
        data = await self._request("GET", params={"method": "balance"})
        body = data.get("data") if isinstance(data, dict) else None
        source = body if isinstance(body, dict) else data if isinstance(data, dict) else {}
        balance = as_float(source.get("balance"))
        if balance is None:
            raise self._error(ProviderErrorCode.INVALID_BALANCE_RESPONSE, f"Unexpected balance response: {str(data)[:100]}")
        return {"balance": balance, "currency": "USD"}

    def external_id_for(self, row: Dict[str, Any]) -> Optional[str]:
        return row.get("external_url") or row.get("rent_id")
