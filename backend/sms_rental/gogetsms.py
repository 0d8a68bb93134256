"""
GoGetSMS adapter.

Same handler_api.php style as SMS-Activate but with two code spaces: the
rental API takes ISO country codes, the activation API numeric ids. Calls
are throttled to 10 per rolling minute and retried with a fixed 2 second
delay.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from config import get_settings
from logging_config import mask_phone
from .base import BaseProviderAdapter
from .catalog import (
    FALLBACK_GOGETSMS_ACTIVATION_SERVICES,
    FALLBACK_SOURCE,
    GOGETSMS_RENTAL_CATALOG,
    GOGETSMS_RENTAL_COUNTRIES,
    catalog,
)
from .errors import ProviderError, ProviderErrorCode
from .mappings import (
    GOGETSMS_COUNTRY_RETRY_CHAIN,
    GOGETSMS_DEFAULT_RENTAL_COUNTRY,
    GOGETSMS_DEFAULT_SERVICE,
    GOGETSMS_FULL_RENTAL_COUNTRIES,
    GOGETSMS_VERIFICATION_SERVICES,
    gogetsms_numeric_country,
    normalize_gogetsms_hours,
    resolve_gogetsms_activation_country,
    resolve_gogetsms_rental_country,
    resolve_gogetsms_service,
)
from .normalizer import as_float, decode_messages, extract_code, is_empty_envelope, parse_timestamp, pick
from .rate_limiter import SlidingWindowRateLimiter
from .schema import (
    ActiveRental,
    ExtensionResult,
    ProviderName,
    RentalMode,
    RentalResult,
    RentalStatus,
    SmsMessage,
)

logger = logging.getLogger(__name__)

RETRY_DELAYS = [2, 2]

ERROR_MESSAGES = {
    "BAD_KEY": "Invalid API key",
    "BAD_ACTION": "Invalid action parameter",
    "BAD_SERVICE": "Invalid service parameter",
    "BAD_COUNTRY": "Invalid country parameter",
    "NO_ACTIVATION": "Activation not found",
    "NOT_ENOUGH_FUNDS": "Insufficient balance for this rental",
    "ACCOUNT_BLOCKED": "Account is blocked",
    "NO_NUMBERS": "No numbers available for this service/country combination",
    "SERVICE_NOT_AVAILABLE": "Service temporarily unavailable",
}

STATUS_WAIT_CODE = "STATUS_WAIT_CODE"
STATUS_CANCEL = "STATUS_CANCEL"
STATUS_OK = "STATUS_OK"

ACTIVATION_CANCEL_STATUS = "8"
ACTIVATION_HOURS = 4
RENT_STATUS_FINISH = "1"
RENT_STATUS_CANCEL = "2"

SERVICE_NAMES = {
    "wa": "WhatsApp", "tg": "Telegram", "go": "Google", "fb": "Facebook",
    "tw": "Twitter", "ig": "Instagram", "ms": "Microsoft", "vi": "Viber",
    "wb": "WeChat", "ub": "Uber", "ds": "Discord", "am": "Amazon",
    "mb": "Yahoo", "ts": "PayPal", "vk": "VK.com", "hw": "Alipay/Alibaba",
    "ap": "Apple", "dh": "eBay", "mt": "Steam", "fu": "Snapchat",
    "oi": "Tinder", "lf": "TikTok/Douyin", "ot": "Other",
}


def detect_optimal_mode(service: str, hours: Optional[int] = None) -> str:
    """Pick activation for short verification leases, rental otherwise."""
    try:
        duration = int(hours) if hours is not None else 4
    except (TypeError, ValueError):
        duration = 4
    service = str(service or "")
    if service in GOGETSMS_VERIFICATION_SERVICES and duration <= 4:
        return RentalMode.ACTIVATION.value
    if service.startswith("full_"):
        return RentalMode.RENTAL.value
    if duration >= 24:
        return RentalMode.RENTAL.value
    return RentalMode.ACTIVATION.value


class GoGetSmsAdapter(BaseProviderAdapter):
    name = ProviderName.GOGETSMS.value
    display_name = "GoGetSMS"
    description = "GoGetSMS rental and activation API"
    supports_dual_mode = True
    default_base_url = "https://www.gogetsms.com/handler_api.php"

    def __init__(self, *args, **kwargs):
        if kwargs.get("rate_limiter") is None:
            settings = get_settings()
            kwargs["rate_limiter"] = SlidingWindowRateLimiter(
                max_requests=settings.GOGETSMS_RATE_LIMIT_REQUESTS,
                window_seconds=settings.GOGETSMS_RATE_LIMIT_WINDOW_SECONDS,
                name=self.name,
            )
        kwargs.setdefault("retry_delays", RETRY_DELAYS)
        super().__init__(*args, **kwargs)

    async def _call(self, action: str, **params) -> Any:
        data = await self._request("GET", params={"action": action, **params})
        if isinstance(data, str):
            code = data.strip().upper()
            if code in ERROR_MESSAGES:
                logger.error(f"GoGetSMS {action} returned {code}")
                raise self._error(code, ERROR_MESSAGES[code])
        elif isinstance(data, dict) and data.get("error"):
            raise self._error(ProviderErrorCode.API_ERROR, str(data["error"]))
        return data

    # ==================== CATALOG ====================

    async def get_services_and_countries(
        self,
        country: str = "0",
        rent_time: int = 4,
        operator: str = "any",
        incoming_call: bool = False,
        mode: str = RentalMode.RENTAL.value,
    ) -> Dict[str, Any]:
        self._require_key()
        if mode == RentalMode.ACTIVATION.value:
            return await self._activation_catalog(country)
        # No rental catalog endpoint upstream
        return catalog(
            GOGETSMS_RENTAL_CATALOG,
            dict(GOGETSMS_RENTAL_COUNTRIES),
            provider=self.name,
            mode=RentalMode.RENTAL.value,
        )

    async def _activation_catalog(self, country: str) -> Dict[str, Any]:
        target = resolve_gogetsms_activation_country(country) if country and country != "0" else "16"
        data = await self._call("getPrices", country=target)

        services = {}
        if isinstance(data, dict):
            for code, entry in data.items():
                if not isinstance(entry, dict):
                    continue
                count = int(as_float(pick(entry, "count", "quantity")) or 0)
                services[code] = {
                    "name": SERVICE_NAMES.get(code, code),
                    "cost": as_float(pick(entry, "cost", "price")) or 0.0,
                    "quant": {"current": count, "total": count},
                }

        countries = {target: {"id": target, "name": target}}
        if not services:
            logger.warning(f"GoGetSMS getPrices({target}) returned nothing, serving fallback catalog")
            return catalog(FALLBACK_GOGETSMS_ACTIVATION_SERVICES, countries, source=FALLBACK_SOURCE,
                           provider=self.name, mode=RentalMode.ACTIVATION.value)
        return catalog(services, countries, provider=self.name, mode=RentalMode.ACTIVATION.value)

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
        if mode == RentalMode.ACTIVATION.value:
            return await self._rent_activation(service, country)

        hours = normalize_gogetsms_hours(rent_time)
        if service.startswith("full_"):
            iso_country = GOGETSMS_FULL_RENTAL_COUNTRIES.get(service, GOGETSMS_DEFAULT_RENTAL_COUNTRY)
            service_id = GOGETSMS_DEFAULT_SERVICE
        else:
            iso_country = resolve_gogetsms_rental_country(country)
            service_id = resolve_gogetsms_service(service)

        data, iso_country = await self._rent_with_country_fallback(service_id, hours, iso_country)
        phone = data.get("phone") if isinstance(data, dict) else None
        if not isinstance(data, dict) or data.get("status") != "success" or not isinstance(phone, dict):
            raise self._error(ProviderErrorCode.RENTAL_FAILED, f"Rental failed: {str(data)[:200]}")
        if not phone.get("number") or not phone.get("id"):
            raise self._error(ProviderErrorCode.MISSING_PHONE_NUMBER, "Rental response did not contain a phone number",
                              details={"response": data})

        logger.info(f"GoGetSMS rented {mask_phone(phone['number'])} (rent id {phone['id']}, {iso_country})")
        return RentalResult(
            phone_number=str(phone["number"]),
            rent_id=str(phone["id"]),
            service=service,
            country=gogetsms_numeric_country(iso_country),
            end_date=parse_timestamp(phone["endDate"]) if phone.get("endDate") else None,
            cost=as_float(phone.get("cost")),
            provider=self.name,
            external_id=str(phone["id"]),
            raw=data,
        )

    async def _rent_with_country_fallback(self, service_id: str, hours: int, iso_country: str):
        try:
            data = await self._call("getRentNumber", service=service_id, rent_time=str(hours), country=iso_country)
            return data, iso_country
        except ProviderError as e:
            if e.code != ProviderErrorCode.BAD_COUNTRY.value:
                raise
            original = e

        for fallback in GOGETSMS_COUNTRY_RETRY_CHAIN:
            if fallback == iso_country:
                continue
            try:
                logger.info(f"GoGetSMS country {iso_country} rejected, trying {fallback}")
                data = await self._call("getRentNumber", service=service_id, rent_time=str(hours), country=fallback)
                return data, fallback
            except ProviderError as e:
                logger.warning(f"GoGetSMS fallback country {fallback} failed: {e.code}")
        raise original

    async def _rent_activation(self, service: str, country: str) -> RentalResult:
        service_id = resolve_gogetsms_service(service)
        country_id = resolve_gogetsms_activation_country(country)
        data = await self._call("getNumberV2", service=service_id, country=country_id)
        if not isinstance(data, dict) or not data.get("activationId") or not data.get("phoneNumber"):
            raise self._error(ProviderErrorCode.INVALID_RESPONSE, f"Invalid activation response: {str(data)[:200]}")

        logger.info(f"GoGetSMS activation {mask_phone(data['phoneNumber'])} (id {data['activationId']})")
        return RentalResult(
            phone_number=str(data["phoneNumber"]),
            rent_id=str(data["activationId"]),
            service=service,
            country=country_id,
            end_date=datetime.now(timezone.utc) + timedelta(hours=ACTIVATION_HOURS),
            cost=as_float(data.get("activationCost")),
            provider=self.name,
            mode=RentalMode.ACTIVATION.value,
            external_id=str(data["activationId"]),
            raw=data,
        )

    # ==================== LEASE OPERATIONS ====================

    async def get_status(self, external_id: str) -> RentalStatus:
        data = await self._call("getRentStatus", id=external_id)
        raw = data if isinstance(data, dict) else {"response": data}
        if self._waiting_for_sms(data) or is_empty_envelope(data):
            return RentalStatus(external_id=str(external_id), status=STATUS_WAIT_CODE, raw=raw)
        messages = decode_messages(data, provider=self.name)
        return RentalStatus(external_id=str(external_id), messages=messages, status="active", raw=raw)

    @staticmethod
    def _waiting_for_sms(data: Any) -> bool:
        if isinstance(data, str):
            return data.strip().upper() == STATUS_WAIT_CODE
        if isinstance(data, dict):
            return STATUS_WAIT_CODE in (str(data.get("status", "")).upper(), str(data.get("message", "")).upper())
        return False

    async def get_activation_status(self, activation_id: str) -> RentalStatus:
        data = await self._call("getStatus", id=activation_id)
        text = data.strip() if isinstance(data, str) else ""
        if text == STATUS_WAIT_CODE:
            return RentalStatus(external_id=str(activation_id), status=STATUS_WAIT_CODE)
        if text == STATUS_CANCEL:
            return RentalStatus(external_id=str(activation_id), status=STATUS_CANCEL)
        if text.startswith(f"{STATUS_OK}:"):
            code = text.split(":", 1)[1]
            message = SmsMessage(
                sender=self.display_name,
                message=code,
                received_at=datetime.now(timezone.utc),
                code=extract_code(code) or code,
            )
            return RentalStatus(external_id=str(activation_id), messages=[message], status=STATUS_OK)
        raise self._error(ProviderErrorCode.INVALID_RESPONSE, f"Unknown activation status: {str(data)[:100]}")

    async def fetch_messages(self, external_id: str, mode: str = RentalMode.RENTAL.value) -> List[SmsMessage]:
        if mode == RentalMode.ACTIVATION.value:
            return (await self.get_activation_status(external_id)).messages
        return await super().fetch_messages(external_id)

    async def cancel(self, external_id: str) -> Dict[str, Any]:
        data = await self._call("setRentStatus", id=external_id, status=RENT_STATUS_CANCEL)
        return {"status": "cancelled", "external_id": str(external_id), "response": data}

    async def cancel_activation(self, activation_id: str) -> Dict[str, Any]:
        data = await self._call("setStatus", id=activation_id, status=ACTIVATION_CANCEL_STATUS)
        if data != "ACCESS_CANCEL":
            raise self._error(ProviderErrorCode.CANCEL_FAILED, f"Failed to cancel activation: {str(data)[:100]}")
        return {"status": "cancelled", "external_id": str(activation_id), "response": data}

    async def finish(self, external_id: str) -> Dict[str, Any]:
        data = await self._call("setRentStatus", id=external_id, status=RENT_STATUS_FINISH)
        return {"status": "finished", "external_id": str(external_id), "response": data}

    async def extend(self, external_id: str, rent_time: int) -> ExtensionResult:
        data = await self._call("continueRentNumber", id=external_id, rent_time=str(rent_time))
        phone = data.get("phone") if isinstance(data, dict) and isinstance(data.get("phone"), dict) else {}
        if isinstance(data, dict) and data.get("status") not in (None, "success"):
            raise self._error(ProviderErrorCode.EXTENSION_FAILED, f"Extension failed: {str(data)[:200]}")
        return ExtensionResult(
            external_id=str(phone.get("id") or external_id),
            end_date=parse_timestamp(phone["endDate"]) if phone.get("endDate") else None,
            cost=as_float(phone.get("cost")),
            raw=data if isinstance(data, dict) else {"response": data},
        )

    async def list_active(self) -> List[ActiveRental]:
        data = await self._call("getRentList")
        if not isinstance(data, list):
            return []
        rentals = []
        for entry in data:
            if not isinstance(entry, dict) or not entry.get("number"):
                continue
            rentals.append(ActiveRental(
                external_id=str(entry.get("id") or ""),
                phone_number=str(entry["number"]),
                provider=self.name,
                service=entry.get("service"),
                status=entry.get("status") or "active",
                end_date=parse_timestamp(entry["endDate"]) if entry.get("endDate") else None,
            ))
        return rentals

    async def get_balance(self) -> Dict[str, Any]:
        data = await self._call("getBalance")
        if isinstance(data, str) and data.startswith("ACCESS_BALANCE:"):
            return {"balance": float(data.split(":", 1)[1] or 0), "currency": "USD"}
        raise self._error(ProviderErrorCode.INVALID_BALANCE_RESPONSE, f"Unexpected balance response: {str(data)[:100]}")

    async def test_connectivity(self) -> Dict[str, Any]:
        """Balance plus a rental catalog check; never raises."""
        report: Dict[str, Any] = {"provider": self.name, "available": self.is_available()}
        try:
            report["balance"] = await self.get_balance()
            report["status"] = "success"
        except ProviderError as e:
            report["status"] = "error"
            report["error"] = e.to_dict()
            return report
        try:
            await self._call("getRentServicesAndCountries")
            report["rentalApi"] = True
        except ProviderError as e:
            logger.warning(f"GoGetSMS rental API check failed: {e}")
            report["rentalApi"] = False
        return report

    def detect_optimal_mode(self, service: str, hours: Optional[int] = None) -> str:
        return detect_optimal_mode(service, hours)

    def external_id_for(self, row: Dict[str, Any]) -> Optional[str]:
        return row.get("external_url") or row.get("rent_id")
