"""
Curated fallback catalogs.

These lists are served only when a provider's live catalog endpoint
returns nothing usable. Prices are indicative USD values maintained by
hand; responses built from them carry "source": "fallback" so callers can
tell them apart from live data.
"""

from types import MappingProxyType
from typing import Any, Dict, List, Tuple

FALLBACK_SOURCE = "fallback"
LIVE_SOURCE = "live"


def _services(entries: List[Tuple[str, str, float]], quantity: int = 100) -> Dict[str, Dict[str, Any]]:
    return {
        code: {"name": name, "cost": cost, "quant": {"current": quantity, "total": quantity}}
        for code, name, cost in entries
    }


# SMSPVA rental services (opt codes)
FALLBACK_SMSPVA_SERVICES = MappingProxyType(_services([
    ("opt1", "Google", 0.50),
    ("opt2", "Facebook", 0.45),
    ("opt16", "Instagram", 0.45),
    ("opt20", "WhatsApp", 0.40),
    ("opt29", "Telegram", 0.60),
    ("opt41", "Twitter", 0.40),
    ("opt15", "Microsoft", 0.40),
    ("opt44", "Amazon", 0.50),
    ("opt58", "Steam", 0.80),
    ("opt142", "Other", 0.30),
]))

# Anosim activation products when no Activation product is listed
FALLBACK_ANOSIM_ACTIVATION_SERVICES = MappingProxyType(_services([
    ("wa", "WhatsApp", 2.50),
    ("tg", "Telegram", 2.00),
    ("go", "Google", 2.80),
    ("fb", "Facebook", 2.60),
    ("ig", "Instagram", 2.70),
    ("tw", "Twitter", 2.90),
    ("ds", "Discord", 2.40),
    ("oi", "Tinder", 1.50),
    ("ap", "Apple", 3.00),
    ("nt", "Netflix", 2.80),
], quantity=50))
FALLBACK_ANOSIM_ACTIVATION_COUNTRY = MappingProxyType({"id": 98, "name": "Germany", "code": "DE"})
FALLBACK_ANOSIM_ACTIVATION_MINUTES = 240

# GoGetSMS activation services when getPrices is empty
FALLBACK_GOGETSMS_ACTIVATION_SERVICES = MappingProxyType(_services([
    ("wa", "WhatsApp", 1.0),
    ("tg", "Telegram", 1.0),
    ("fb", "Facebook", 1.0),
    ("ig", "Instagram", 1.0),
    ("go", "Google", 1.0),
    ("tw", "Twitter", 1.0),
    ("ot", "Other", 1.0),
], quantity=10))

# GoGetSMS has no rental catalog endpoint; full-country and core-service
# rentals are listed from this table.
GOGETSMS_RENTAL_CATALOG = MappingProxyType({
    **_services([
        ("full_uk", "Full rental - United Kingdom", 15.0),
        ("full_germany", "Full rental - Germany", 16.0),
        ("full_usa", "Full rental - USA", 12.0),
        ("full_netherlands", "Full rental - Netherlands", 17.0),
        ("full_poland", "Full rental - Poland", 14.0),
        ("full_lithuania", "Full rental - Lithuania", 14.0),
        ("full_france", "Full rental - France", 18.0),
        ("full_spain", "Full rental - Spain", 18.0),
        ("full_italy", "Full rental - Italy", 18.0),
        ("full_sweden", "Full rental - Sweden", 20.0),
    ], quantity=20),
    **_services([
        ("wa", "WhatsApp", 5.0),
        ("tg", "Telegram", 5.0),
        ("go", "Google", 6.0),
        ("fb", "Facebook", 5.0),
        ("ig", "Instagram", 5.0),
        ("tw", "Twitter", 4.0),
        ("ms", "Microsoft", 5.0),
        ("ap", "Apple", 7.0),
        ("ds", "Discord", 4.0),
        ("ot", "Other", 4.0),
    ], quantity=50),
})

GOGETSMS_RENTAL_COUNTRIES = MappingProxyType({
    "16": {"id": "16", "code": "GB", "name": "United Kingdom"},
    "43": {"id": "43", "code": "DE", "name": "Germany"},
    "187": {"id": "187", "code": "US", "name": "USA"},
    "48": {"id": "48", "code": "NL", "name": "Netherlands"},
    "15": {"id": "15", "code": "PL", "name": "Poland"},
    "44": {"id": "44", "code": "LT", "name": "Lithuania"},
    "78": {"id": "78", "code": "FR", "name": "France"},
    "56": {"id": "56", "code": "ES", "name": "Spain"},
    "86": {"id": "86", "code": "IT", "name": "Italy"},
    "46": {"id": "46", "code": "SE", "name": "Sweden"},
})


def catalog(services: Dict[str, Any], countries: Any, source: str = LIVE_SOURCE, **extra) -> Dict[str, Any]:
    """Shape of every get_services_and_countries response."""
    return {
        "services": dict(services),
        "countries": countries,
        "source": source,
        **extra,
    }
