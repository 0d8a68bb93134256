"""
SMS Rental Provider Module

Normalizes four third-party phone-number rental APIs behind one adapter
interface:
- Catalog of services and countries (rental or activation mode)
- Renting, status, cancel, extend and active-lease listing
- Response-shape decoding into one message shape
- Booking-id resolution for leases whose identifier changed upstream

Usage:
    from sms_rental import provider_registry

    adapter = provider_registry.get("anosim")
    rental = await adapter.rent_number("wa", rent_time=24, country="DE")
    messages = await adapter.fetch_messages(rental.rent_id)
"""

from sms_rental.errors import (
    ProviderError,
    ProviderErrorCode,
    ResponseShapeError,
    http_status_for,
)
from sms_rental.schema import (
    ProviderName,
    RentalMode,
    PhoneStatus,
    MessageSource,
    RentalResult,
    SmsMessage,
    RentalStatus,
    ActiveRental,
    BookingResolution,
    ExtensionResult,
)
from sms_rental.base import BaseProviderAdapter
from sms_rental.sms_activate import SmsActivateAdapter
from sms_rental.smspva import SmspvaAdapter
from sms_rental.anosim import AnosimAdapter
from sms_rental.gogetsms import GoGetSmsAdapter, detect_optimal_mode
from sms_rental.registry import ProviderRegistry, provider_registry, get_provider_registry

__all__ = [
    # Errors
    'ProviderError',
    'ProviderErrorCode',
    'ResponseShapeError',
    'http_status_for',
    # Shapes
    'ProviderName',
    'RentalMode',
    'PhoneStatus',
    'MessageSource',
    'RentalResult',
    'SmsMessage',
    'RentalStatus',
    'ActiveRental',
    'BookingResolution',
    'ExtensionResult',
    # Adapters
    'BaseProviderAdapter',
    'SmsActivateAdapter',
    'SmspvaAdapter',
    'AnosimAdapter',
    'GoGetSmsAdapter',
    'detect_optimal_mode',
    # Registry
    'ProviderRegistry',
    'provider_registry',
    'get_provider_registry',
]
