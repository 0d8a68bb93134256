"""
Anosim adapter.

REST API under /api/v1 authenticated with an "apikey" query parameter.
Anosim sells products (RentalFull, RentalService, Activation); renting
means picking a product and creating an order for it. An order owns one or
more order bookings, and the booking id (not the order id) is what the SMS
and booking endpoints expect, so the booking id is stored as rent id.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from logging_config import mask_phone
from .base import BaseProviderAdapter, same_phone
from .catalog import (
    FALLBACK_ANOSIM_ACTIVATION_COUNTRY,
    FALLBACK_ANOSIM_ACTIVATION_MINUTES,
    FALLBACK_ANOSIM_ACTIVATION_SERVICES,
    FALLBACK_SOURCE,
    catalog,
)
from .errors import ProviderError, ProviderErrorCode
from .mappings import (
    ANOSIM_COUNTRY_IDS,
    ANOSIM_COUNTRY_NAMES,
    ANOSIM_POPULAR_RENTAL_SERVICES,
    anosim_price_band,
    anosim_service_for_product,
    resolve_anosim_country,
    resolve_anosim_product,
)
from .normalizer import as_float, decode_messages, parse_timestamp
from .schema import (
    ActiveRental,
    BookingResolution,
    ExtensionResult,
    ProviderName,
    RentalMode,
    RentalResult,
    RentalStatus,
)

logger = logging.getLogger(__name__)

RENTAL_FULL = "RentalFull"
RENTAL_SERVICE = "RentalService"
ACTIVATION = "Activation"

ACTIVE_STATE = "Active"
ACTIVATION_HOURS = 4

# full_<country> suffix -> Anosim country name
FULL_RENTAL_COUNTRIES = {name.lower(): name for name in ANOSIM_COUNTRY_NAMES.values()}


def _text(value: Any) -> str:
    return str(value or "").strip()


def _price(product: Dict[str, Any], default: float = 999.0) -> float:
    value = as_float(product.get("price"))
    return default if value is None else value


def _booking_number(booking: Dict[str, Any]) -> Optional[str]:
    sim_card = booking.get("simCard") if isinstance(booking.get("simCard"), dict) else {}
    return booking.get("number") or sim_card.get("phoneNumber")


class AnosimAdapter(BaseProviderAdapter):
    name = ProviderName.ANOSIM.value
    display_name = "Anosim"
    description = "Anosim rental and activation API (German and EU numbers)"
    supports_dual_mode = True
    default_base_url = "https://anosim.net/api/v1"

    def _auth_params(self) -> Dict[str, str]:
        return {"apikey": self.api_key}

    # ==================== RAW ENDPOINTS ====================

    async def get_products(self, country: Optional[str] = None) -> List[Dict[str, Any]]:
        params = {}
        if country:
            country_id = ANOSIM_COUNTRY_IDS.get(str(country))
            if country_id:
                params["countryId"] = country_id
        data = await self._request("GET", "/Products", params=params)
        return [p for p in data if isinstance(p, dict)] if isinstance(data, list) else []

    async def get_countries(self) -> Any:
        return await self._request("GET", "/Countries")

    async def get_orders(self) -> List[Dict[str, Any]]:
        data = await self._request("GET", "/Orders")
        return data if isinstance(data, list) else []

    async def get_current_bookings(self) -> List[Dict[str, Any]]:
        data = await self._request("GET", "/OrderBookingsCurrent")
        return [b for b in data if isinstance(b, dict)] if isinstance(data, list) else []

    async def create_order(self, product_id: Any) -> Any:
        return await self._request("POST", "/Orders", params={
            "productId": str(product_id), "amount": "1", "providerId": "0",
        })

    async def set_auto_renewal(self, enable: bool, order_booking_id: Optional[str] = None) -> Any:
        return await self._request("POST", "/OrderBookingsAutoRenewal", params={
            "enable": "1" if enable else "0",
            "orderBookingId": order_booking_id,
        })

    # ==================== CATALOG ====================

    async def get_services_and_countries(
        self,
        country: str = "0",
        rent_time: int = 4,
        operator: str = "any",
        incoming_call: bool = False,
        mode: str = RentalMode.RENTAL.value,
    ) -> Dict[str, Any]:
        if mode == RentalMode.ACTIVATION.value:
            return await self._activation_catalog()

        products = await self.get_products(country if country and country != "0" else None)
        rental_products = [p for p in products if p.get("rentalType") in (RENTAL_FULL, RENTAL_SERVICE)]
        services = self._rental_services(rental_products)
        countries = self._product_countries(rental_products)
        logger.info(f"Anosim rental catalog: {len(services)} services, {len(countries)} countries")
        return catalog(services, countries, mode=RentalMode.RENTAL.value)

    def _rental_services(self, products: List[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
        services: Dict[str, Dict[str, Any]] = {}
        full_products = [p for p in products if p.get("rentalType") == RENTAL_FULL]

        for product in full_products:
            country_name = _text(product.get("country"))
            if country_name.lower() not in FULL_RENTAL_COUNTRIES:
                continue
            services[f"full_{country_name.lower()}"] = self._service_entry(
                product, f"Full {country_name} Phone Rental", "full_rental", 15.0, 10080,
            )

        if full_products:
            cheapest = min(full_products, key=_price)
            services["full"] = self._service_entry(
                cheapest, "Full Phone Rental (Any Country)", "full_rental", 15.0, 10080,
            )

        for product in products:
            if product.get("rentalType") != RENTAL_SERVICE:
                continue
            product_name = _text(product.get("service"))
            if not any(p.lower() in product_name.lower() for p in ANOSIM_POPULAR_RENTAL_SERVICES):
                continue
            code = anosim_service_for_product(product_name)
            services.setdefault(code, self._service_entry(
                product, f"{product_name} Rental", "service_rental", 8.0, 1440,
            ))

        return services

    @staticmethod
    def _service_entry(product, label, rental_type, default_price, default_minutes) -> Dict[str, Any]:
        return {
            "name": label,
            "cost": _price(product, default_price),
            "currency": "USD",
            "type": rental_type,
            "country": product.get("country"),
            "productId": product.get("id"),
            "durationInMinutes": product.get("durationInMinutes") or default_minutes,
            "quant": {"current": 1, "total": 1},
        }

    @staticmethod
    def _product_countries(products: List[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
        ids_by_name = {name: cid for cid, name in ANOSIM_COUNTRY_NAMES.items()}
        countries = {}
        for product in products:
            name = _text(product.get("country"))
            if name in ids_by_name:
                cid = ids_by_name[name]
                countries[str(cid)] = {"id": cid, "name": name}
        return countries

    async def _activation_catalog(self) -> Dict[str, Any]:
        products = [p for p in await self.get_products() if p.get("rentalType") == ACTIVATION]
        if not products:
            logger.warning("Anosim lists no Activation products, serving fallback catalog")
            country = dict(FALLBACK_ANOSIM_ACTIVATION_COUNTRY)
            services = {
                code: {**entry, "durationInMinutes": FALLBACK_ANOSIM_ACTIVATION_MINUTES, "country": country["name"]}
                for code, entry in FALLBACK_ANOSIM_ACTIVATION_SERVICES.items()
            }
            return catalog(services, {str(country["id"]): country}, source=FALLBACK_SOURCE,
                           mode=RentalMode.ACTIVATION.value)

        services: Dict[str, Dict[str, Any]] = {}
        for product in products:
            code = anosim_service_for_product(product.get("service"))
            services.setdefault(code, self._service_entry(
                product, _text(product.get("service")) or code, "activation", 2.5, 240,
            ))
        return catalog(services, self._product_countries(products), mode=RentalMode.ACTIVATION.value)

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

        country_id = resolve_anosim_country(country)
        products = await self.get_products(str(country) if country and country != "0" else None)
        rental_products = [p for p in products if p.get("rentalType") in (RENTAL_FULL, RENTAL_SERVICE)]
        if not rental_products:
            raise self._error(ProviderErrorCode.NO_RENTAL_PRODUCTS, "No rental products available for this country")

        product = self._select_rental_product(rental_products, service, rent_time)
        logger.info(f"Anosim creating order for product {product.get('id')} ({product.get('rentalType')})")
        order = await self.create_order(product["id"])
        phone_number, booking_id, order_id, actual_country = await self._allocated_booking(order)

        actual_country = actual_country or _text(product.get("country")) or ANOSIM_COUNTRY_NAMES.get(country_id)
        is_full = product.get("rentalType") == RENTAL_FULL
        minutes = product.get("durationInMinutes") or int(rent_time) * 60
        logger.info(f"Anosim rented {mask_phone(phone_number)} (booking {booking_id}, order {order_id})")
        return RentalResult(
            phone_number=str(phone_number),
            rent_id=str(booking_id),
            service=f"full_{_text(actual_country).lower()}" if is_full else service,
            country=str(country),
            end_date=datetime.now(timezone.utc) + timedelta(minutes=int(minutes)),
            cost=as_float(product.get("price")),
            provider=self.name,
            order_id=str(order_id) if order_id else None,
            order_booking_id=str(booking_id),
            provider_id=str(product.get("id")),
            external_id=str(booking_id),
            auto_renewal=False,
            raw=order if isinstance(order, dict) else {"response": order},
        )

    def _select_rental_product(self, products: List[Dict[str, Any]], service: str, rent_time: int) -> Dict[str, Any]:
        if service == "full" or service.startswith("full_"):
            full_products = [p for p in products if p.get("rentalType") == RENTAL_FULL]
            if not full_products:
                raise self._error(ProviderErrorCode.NO_FULL_PRODUCTS, "No full rental products available for this country")
            if service == "full":
                return full_products[0]

            target_country = FULL_RENTAL_COUNTRIES.get(service[len("full_"):])
            candidates = [p for p in full_products if p.get("country") == target_country] if target_country else []
            if target_country == "Germany":
                low, high = anosim_price_band(rent_time)
                for product in candidates:
                    if low <= _price(product) <= high:
                        return product
            if candidates:
                return candidates[0]
            raise self._error(ProviderErrorCode.PRODUCT_NOT_FOUND, f"No full rental product for {service}")

        product_name = resolve_anosim_product(service).lower()
        service_products = [p for p in products if p.get("rentalType") == RENTAL_SERVICE]
        for product in service_products:
            if product_name in _text(product.get("service")).lower():
                return product
        for product in service_products:
            name = _text(product.get("service")).lower()
            if name and name in product_name:
                return product

        available = ", ".join(f"{p.get('rentalType')}:{p.get('service') or 'Full'}" for p in products[:5])
        raise self._error(
            ProviderErrorCode.PRODUCT_NOT_FOUND,
            f"No rental product for service {service}. Available: {available}",
        )

    async def _allocated_booking(self, order: Any):
        """(phone, booking id, order id, country) from any createOrder reply shape."""
        if not isinstance(order, dict):
            raise self._error(ProviderErrorCode.INVALID_RESPONSE, "Unexpected createOrder response",
                              details={"response": order})

        if order.get("number"):
            booking_id = order.get("id")
            return order["number"], booking_id, order.get("orderId") or booking_id, order.get("country")

        bookings = order.get("orderBookings")
        if isinstance(bookings, list) and bookings:
            booking = bookings[0]
            phone_number = _booking_number(booking)
            if not phone_number:
                raise self._error(ProviderErrorCode.MISSING_PHONE_NUMBER, "Order booking has no phone number",
                                  details={"response": order})
            return phone_number, booking.get("id"), order.get("id"), booking.get("country")

        if order.get("id"):
            # Order created but booking not returned inline
            try:
                current = await self.get_current_bookings()
            except ProviderError as e:
                raise self._error(ProviderErrorCode.PHONE_FETCH_FAILED,
                                  f"Order {order['id']} created but bookings could not be fetched: {e.message}")
            now = datetime.now(timezone.utc)
            for booking in current:
                end = booking.get("endDate") or booking.get("endTime")
                if _booking_number(booking) and (not end or parse_timestamp(end) > now):
                    return _booking_number(booking), booking.get("id"), order["id"], booking.get("country")
            raise self._error(ProviderErrorCode.NO_PHONE_ALLOCATED, f"Order {order['id']} has no allocated number")

        raise self._error(ProviderErrorCode.MISSING_PHONE_NUMBER, "createOrder response did not contain a phone number",
                          details={"response": order})

    async def _rent_activation(self, service: str, country: str) -> RentalResult:
        products = await self.get_products()
        candidates = [p for p in products if p.get("rentalType") == ACTIVATION]
        if not candidates:
            candidates = [p for p in products if p.get("rentalType") == RENTAL_SERVICE]
        if not candidates:
            raise self._error(ProviderErrorCode.NO_ACTIVATION_PRODUCTS, "No activation products available")

        product_name = resolve_anosim_product(service).lower()
        product = next(
            (p for p in candidates if product_name in _text(p.get("service")).lower()),
            candidates[0],
        )
        order = await self.create_order(product["id"])
        bookings = order.get("orderBookings") if isinstance(order, dict) else None
        booking = bookings[0] if isinstance(bookings, list) and bookings else None
        phone_number = _booking_number(booking) if booking else None
        if not phone_number:
            raise self._error(ProviderErrorCode.MISSING_PHONE_NUMBER, "Activation order has no phone number",
                              details={"response": order})

        logger.info(f"Anosim activation {mask_phone(phone_number)} (booking {booking.get('id')})")
        return RentalResult(
            phone_number=str(phone_number),
            rent_id=str(booking.get("id")),
            service=service,
            country=str(country),
            end_date=datetime.now(timezone.utc) + timedelta(hours=ACTIVATION_HOURS),
            cost=as_float(product.get("price")),
            provider=self.name,
            mode=RentalMode.ACTIVATION.value,
            order_id=str(order.get("id")) if order.get("id") else None,
            order_booking_id=str(booking.get("id")),
            provider_id=str(product.get("id")),
            external_id=str(booking.get("id")),
            raw=order,
        )

    # ==================== LEASE OPERATIONS ====================

    async def get_status(self, external_id: str) -> RentalStatus:
        data = await self._request("GET", f"/Sms/{external_id}")
        messages = decode_messages(data, provider=self.name)
        return RentalStatus(
            external_id=str(external_id),
            messages=messages,
            raw=data if isinstance(data, dict) else {"messages": data},
        )

    async def cancel(self, external_id: str) -> Dict[str, Any]:
        data = await self._request("PATCH", f"/OrderBookings/{external_id}")
        return {"status": "cancelled", "external_id": str(external_id), "response": data}

    async def finish(self, external_id: str) -> Dict[str, Any]:
        # Bookings simply run out; nothing to tell Anosim
        return {"status": "finished", "external_id": str(external_id)}

    async def extend(self, external_id: str, rent_time: int) -> ExtensionResult:
        data = await self._request("POST", "/OrderBookings", params={
            "orderBookingId": str(external_id),
            "extentionInMinutes": str(int(rent_time) * 60),
        })
        body = data if isinstance(data, dict) else {}
        end = body.get("endDate") or body.get("endTime")
        return ExtensionResult(
            external_id=str(body.get("id") or external_id),
            end_date=parse_timestamp(end) if end else None,
            cost=as_float(body.get("price")),
            raw=body,
        )

    async def list_active(self) -> List[ActiveRental]:
        rentals = []
        for booking in await self.get_current_bookings():
            number = _booking_number(booking)
            if not number:
                continue
            end = booking.get("endTime") or booking.get("endDate")
            rentals.append(ActiveRental(
                external_id=str(booking.get("id")),
                phone_number=str(number),
                provider=self.name,
                service=anosim_service_for_product(booking.get("productName")),
                country=booking.get("country"),
                status=_text(booking.get("state")).lower() or "active",
                end_date=parse_timestamp(end) if end else None,
                auto_renewal=bool(booking.get("autoRenewal")),
            ))
        return rentals

    async def resolve_booking(self, phone_number: str) -> Optional[BookingResolution]:
        """Search the full order history for the booking holding phone_number."""
        for order in await self.get_orders():
            bookings = order.get("orderBookings") if isinstance(order, dict) else None
            if not isinstance(bookings, list):
                continue
            for booking in bookings:
                if not isinstance(booking, dict) or not same_phone(_booking_number(booking), phone_number):
                    continue
                return BookingResolution(
                    phone_number=phone_number,
                    booking_id=str(booking.get("id")),
                    order_id=str(order.get("id")),
                    is_active=booking.get("state") == ACTIVE_STATE,
                    end_date=parse_timestamp(booking["endDate"]) if booking.get("endDate") else None,
                )
        logger.info(f"Anosim has no booking for {mask_phone(phone_number)}")
        return None

    async def get_balance(self) -> Dict[str, Any]:
        data = await self._request("GET", "/Balance")
        if isinstance(data, dict):
            balance = as_float(data.get("accountBalanceInUSD") or data.get("balance"))
        else:
            balance = as_float(data)
        if balance is None:
            raise self._error(ProviderErrorCode.INVALID_BALANCE_RESPONSE, f"Unexpected balance response: {str(data)[:100]}")
        return {"balance": balance, "currency": "USD"}

    async def test_api_key(self) -> Dict[str, Any]:
        try:
            return {"valid": True, "balance": await self.get_balance()}
        except ProviderError as e:
            return {"valid": False, "error": e.message}

    def external_id_for(self, row: Dict[str, Any]) -> Optional[str]:
        return row.get("order_booking_id") or row.get("external_url") or row.get("rent_id")
