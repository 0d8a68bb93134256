"""
Static code tables.

Internal service and country codes follow the SMS-Activate code space
("wa", "tg", ... and numeric country ids such as "0" Russia, "16" United
Kingdom, "43" Germany). Each adapter translates them into its own provider's
space through the tables below. Every table is read-only and loaded once per
process; lookups go through the resolve_* helpers so the documented
fallbacks apply uniformly.
"""

import logging
from types import MappingProxyType
from typing import Mapping, Dict

logger = logging.getLogger(__name__)


def frozen(table: Dict) -> Mapping:
    return MappingProxyType(dict(table))


# ==================== SMSPVA ====================

SMSPVA_DEFAULT_COUNTRY = "RU"
SMSPVA_DEFAULT_SERVICE = "opt142"  # "Other"

SMSPVA_COUNTRIES = frozen({
    "0": "RU", "1": "UA", "2": "KZ", "4": "PH", "6": "ID", "7": "MY",
    "9": "TZ", "12": "US", "13": "IL", "14": "HK", "15": "PL", "16": "UK",
    "21": "EG", "23": "IE", "24": "KH", "29": "RS", "32": "RO", "34": "EE",
    "36": "CA", "39": "AR", "43": "DE", "44": "LT", "45": "HR", "46": "SE",
    "48": "NL", "49": "LV", "50": "AT", "52": "TH", "54": "MX", "56": "ES",
    "59": "SI", "60": "BD", "62": "TR", "63": "CZ", "67": "NZ", "77": "CY",
    "78": "FR", "82": "BE", "83": "BG", "84": "HU", "85": "MD", "86": "IT",
    "87": "PY", "97": "PR", "117": "PT", "129": "GR", "141": "SK",
    "148": "AM", "155": "AL", "163": "FI",
})

SMSPVA_SERVICES = frozen({
    "vk": "opt33", "ok": "opt33", "go": "opt1", "ya": "opt23", "fb": "opt2",
    "wa": "opt20", "tg": "opt29", "tw": "opt41", "ig": "opt16", "ds": "opt147",
    "ma": "opt4", "mb": "opt4", "vi": "opt11", "li": "opt8", "ti": "opt9",
    "am": "opt44", "ap": "opt154", "ms": "opt15", "pp": "opt83", "sk": "opt74",
    "qw": "opt18", "wb": "opt24", "ai": "opt46", "nt": "opt225", "sp": "opt58",
    "tk": "opt104", "rv": "opt101", "cb": "opt70", "bn": "opt10", "kr": "opt81",
    "pm": "opt103", "n26": "opt52", "wd": "opt0", "kl": "opt156", "hp": "opt185",
    "cm": "opt56", "ft": "opt6", "jd": "opt198", "al": "opt61", "tb": "opt61",
    "ot": SMSPVA_DEFAULT_SERVICE,
})

# getdata is queried for these countries when building the merged catalog
SMSPVA_CATALOG_COUNTRIES = ("US", "DE", "UK", "RU", "FR")

SMSPVA_RENT_UNIT_HOURS = frozen({"week": 168, "month": 720})


# ==================== ANOSIM ====================

ANOSIM_DEFAULT_COUNTRY_ID = 98  # Germany
ANOSIM_OTHER_PRODUCT = "Other"

ANOSIM_COUNTRY_IDS = frozen({
    # Internal country codes with no Anosim stock go to Germany,
    # except the United Kingdom which Anosim carries.
    "0": 98, "12": 98, "43": 98, "16": 286,
    "DE": 98, "UK": 286, "GB": 286, "CZ": 67, "LT": 165, "NL": 196,
    "PL": 220, "PT": 221, "ZA": 252, "SE": 261, "CY": 66, "KE": 151,
})

ANOSIM_DIRECT_COUNTRY_IDS = frozenset([66, 67, 98, 151, 165, 196, 220, 221, 252, 261, 286])

ANOSIM_COUNTRY_NAMES = frozen({
    66: "Cyprus", 67: "CzechRepublic", 98: "Germany", 151: "Kenya",
    165: "Lithuania", 196: "Netherlands", 220: "Poland", 221: "Portugal",
    252: "SouthAfrica", 261: "Sweden", 286: "UnitedKingdom",
})

ANOSIM_COUNTRY_ISO = frozen({
    66: "CY", 67: "CZ", 98: "DE", 151: "KE", 165: "LT", 196: "NL",
    220: "PL", 221: "PT", 252: "ZA", 261: "SE", 286: "GB",
})

ANOSIM_SERVICE_PRODUCTS = frozen({
    "wa": "WhatsApp", "tg": "Telegram", "go": "Google", "fb": "Facebook",
    "ig": "Instagram", "tw": "Twitter", "ds": "Discord", "oi": "Tinder",
    "ap": "Apple", "nt": "Netflix", "ms": "Microsoft", "am": "Amazon",
    "ub": "Uber", "vi": "Viber", "tk": "TikTok", "vk": "VK",
    "ot": ANOSIM_OTHER_PRODUCT,
})

ANOSIM_PRODUCT_SERVICES = frozen({
    **{name.lower(): code for code, name in ANOSIM_SERVICE_PRODUCTS.items()},
    "youtube": "go",
    "gmail": "go",
})

# Germany full-rental products are priced per duration; (min, max) USD.
ANOSIM_GERMANY_PRICE_BANDS = frozen({
    4: (2.0, 4.0),
    24: (3.5, 4.5),
    168: (10.0, 12.0),
    720: (28.0, 32.0),
    2160: (58.0, 62.0),
    4320: (98.0, 102.0),
    8760: (148.0, 152.0),
})
ANOSIM_DEFAULT_PRICE_BAND = (10.0, 12.0)

ANOSIM_POPULAR_RENTAL_SERVICES = ("Google", "WhatsApp", "Telegram", "Apple", "Microsoft")


# ==================== GOGETSMS ====================

GOGETSMS_DEFAULT_SERVICE = "1"  # "Other"
GOGETSMS_DEFAULT_RENTAL_COUNTRY = "GB"
GOGETSMS_DEFAULT_ACTIVATION_COUNTRY = "16"
GOGETSMS_COUNTRY_RETRY_CHAIN = ("GB", "US", "RU")
GOGETSMS_RENT_HOURS = (4, 24, 72, 168, 360, 720)
GOGETSMS_DEFAULT_RENT_HOURS = 168

GOGETSMS_SERVICES = frozen({
    "wa": "3", "tg": "5", "go": "7", "fb": "9", "tw": "10", "ig": "15",
    "ms": "19", "vi": "4", "wb": "6", "ub": "11", "ds": "48", "am": "62",
    "mb": "22", "ts": "137", "vk": "483", "hw": "93", "ap": "254",
    "dh": "129", "mt": "28", "fu": "75", "oi": "29", "lf": "51",
    "ot": GOGETSMS_DEFAULT_SERVICE,
})

GOGETSMS_FULL_RENTAL_COUNTRIES = frozen({
    "full_uk": "GB", "full_germany": "DE", "full_usa": "US",
    "full_lithuania": "LT", "full_poland": "PL", "full_netherlands": "NL",
    "full_france": "FR", "full_spain": "ES", "full_italy": "IT",
    "full_czechrepublic": "CZ", "full_portugal": "PT", "full_sweden": "SE",
    "full_finland": "FI", "full_denmark": "DK", "full_estonia": "EE",
    "full_latvia": "LV", "full_ireland": "IE", "full_austria": "AT",
    "full_belgium": "BE",
})

# Internal country code -> (activation id, rental ISO code)
GOGETSMS_COUNTRIES = frozen({
    "43": ("43", "DE"), "DE": ("43", "DE"),
    "44": ("16", "GB"), "16": ("16", "GB"), "GB": ("16", "GB"), "UK": ("16", "GB"),
    "1": ("187", "US"), "12": ("187", "US"), "187": ("187", "US"), "US": ("187", "US"),
    "FR": ("78", "FR"), "78": ("78", "FR"),
    "IT": ("86", "IT"), "86": ("86", "IT"),
    "ES": ("56", "ES"), "56": ("56", "ES"),
    "NL": ("48", "NL"), "48": ("48", "NL"),
    "PL": ("15", "PL"), "15": ("15", "PL"),
    "CZ": ("63", "CZ"), "63": ("63", "CZ"),
    "PT": ("117", "PT"), "117": ("117", "PT"),
    "SE": ("46", "SE"), "46": ("46", "SE"),
    "FI": ("163", "FI"), "163": ("163", "FI"),
    "DK": ("172", "DK"), "172": ("172", "DK"),
    "EE": ("34", "EE"), "34": ("34", "EE"),
    "LV": ("49", "LV"), "49": ("49", "LV"),
    "LT": ("44", "LT"),
    "IE": ("23", "IE"), "23": ("23", "IE"),
    "AT": ("50", "AT"), "50": ("50", "AT"),
    "BE": ("82", "BE"), "82": ("82", "BE"),
    "0": ("0", "RU"), "RU": ("0", "RU"),
})

# Rental ISO code -> numeric country stored on the phone row
GOGETSMS_ISO_TO_NUMERIC = frozen({
    "GB": "16", "US": "187", "DE": "43", "FR": "78", "IT": "86", "ES": "56",
    "NL": "48", "PL": "15", "RU": "0", "UA": "1", "CZ": "63", "EE": "34",
    "LT": "44", "LV": "49", "ID": "6", "CY": "77", "PH": "4", "HR": "45",
    "MY": "7", "AT": "50", "TH": "52", "DK": "172", "RO": "32", "IE": "23",
    "GR": "129", "FI": "163", "PT": "117", "AU": "175", "SE": "46",
    "BE": "82",
})

GOGETSMS_VERIFICATION_SERVICES = frozenset(["wa", "tg", "fb", "ig", "go", "tw"])


# ==================== RESOLVERS ====================

def resolve_smspva_country(country: str) -> str:
    """Internal country -> SMSPVA 2-letter code (RU when unknown)."""
    country = str(country or "").strip()
    if country in SMSPVA_COUNTRIES:
        return SMSPVA_COUNTRIES[country]
    if len(country) == 2 and country.isalpha():
        return country.upper()
    logger.warning(f"No SMSPVA country for {country!r}, using {SMSPVA_DEFAULT_COUNTRY}")
    return SMSPVA_DEFAULT_COUNTRY


def resolve_smspva_service(service: str) -> str:
    """Internal service -> SMSPVA optNN code ("other" when unknown)."""
    service = str(service or "").strip()
    if service.startswith("opt"):
        return service
    if service in SMSPVA_SERVICES:
        return SMSPVA_SERVICES[service]
    logger.warning(f"No SMSPVA service for {service!r}, using {SMSPVA_DEFAULT_SERVICE}")
    return SMSPVA_DEFAULT_SERVICE


def resolve_anosim_country(country) -> int:
    """Internal country -> Anosim country id (Germany when unknown)."""
    key = str(country or "").strip()
    if key in ANOSIM_COUNTRY_IDS:
        return ANOSIM_COUNTRY_IDS[key]
    if key.upper() in ANOSIM_COUNTRY_IDS:
        return ANOSIM_COUNTRY_IDS[key.upper()]
    if key.isdigit() and int(key) in ANOSIM_DIRECT_COUNTRY_IDS:
        return int(key)
    logger.warning(f"No Anosim country for {key!r}, using {ANOSIM_DEFAULT_COUNTRY_ID}")
    return ANOSIM_DEFAULT_COUNTRY_ID


def resolve_anosim_product(service: str) -> str:
    """Internal service -> Anosim product name ("Other" when unknown)."""
    service = str(service or "").strip()
    if service in ANOSIM_SERVICE_PRODUCTS:
        return ANOSIM_SERVICE_PRODUCTS[service]
    logger.warning(f"No Anosim product for {service!r}, using {ANOSIM_OTHER_PRODUCT}")
    return ANOSIM_OTHER_PRODUCT


def anosim_service_for_product(product_name: str) -> str:
    """Anosim product name -> internal service code ("ot" when unknown)."""
    return ANOSIM_PRODUCT_SERVICES.get(str(product_name or "").strip().lower(), "ot")


def anosim_price_band(hours: int):
    return ANOSIM_GERMANY_PRICE_BANDS.get(int(hours), ANOSIM_DEFAULT_PRICE_BAND)


def resolve_gogetsms_service(service: str) -> str:
    """Internal service -> GoGetSMS numeric service ("1" when unknown)."""
    service = str(service or "").strip()
    if service in GOGETSMS_SERVICES:
        return GOGETSMS_SERVICES[service]
    if service.isdigit():
        return service
    logger.warning(f"No GoGetSMS service for {service!r}, using {GOGETSMS_DEFAULT_SERVICE}")
    return GOGETSMS_DEFAULT_SERVICE


def resolve_gogetsms_rental_country(country: str) -> str:
    """Internal country -> GoGetSMS rental ISO code (GB when unknown)."""
    entry = GOGETSMS_COUNTRIES.get(str(country or "").strip())
    if entry:
        return entry[1]
    logger.warning(f"No GoGetSMS rental country for {country!r}, using {GOGETSMS_DEFAULT_RENTAL_COUNTRY}")
    return GOGETSMS_DEFAULT_RENTAL_COUNTRY


def resolve_gogetsms_activation_country(country: str) -> str:
    """Internal country -> GoGetSMS activation id (16 when unknown)."""
    entry = GOGETSMS_COUNTRIES.get(str(country or "").strip())
    if entry:
        return entry[0]
    logger.warning(f"No GoGetSMS activation country for {country!r}, using {GOGETSMS_DEFAULT_ACTIVATION_COUNTRY}")
    return GOGETSMS_DEFAULT_ACTIVATION_COUNTRY


def gogetsms_numeric_country(iso_code: str) -> str:
    return GOGETSMS_ISO_TO_NUMERIC.get(str(iso_code or "").upper(), GOGETSMS_DEFAULT_ACTIVATION_COUNTRY)


def normalize_gogetsms_hours(hours) -> int:
    try:
        value = int(hours)
    except (TypeError, ValueError):
        return GOGETSMS_DEFAULT_RENT_HOURS
    return value if value in GOGETSMS_RENT_HOURS else GOGETSMS_DEFAULT_RENT_HOURS
