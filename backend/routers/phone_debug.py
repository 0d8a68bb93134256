"""
Provider Diagnostics Router

Read-only checks for checking provider credentials and catalogs from a
deployed instance.

Endpoints:
- GET /api/phone/test/auth - API key check for every provider
- GET /api/phone/test/gogetsms - GoGetSMS connectivity and balance
- GET /api/phone/test/gogetsms/dual-mode - Both GoGetSMS catalogs and mode detection
- GET /api/phone/test/anosim/api-key - Anosim key validity and balance
- GET /api/phone/test/anosim/services - Anosim rental catalog summary
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends

from sms_rental.errors import ProviderError
from sms_rental.registry import ProviderRegistry, get_provider_registry
from sms_rental.schema import ProviderName, RentalMode
from routers.phone import provider_http_error, internal_error

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/phone/test", tags=["Phone Diagnostics"])

MODE_DETECTION_EXAMPLES = [
    ("wa", 4),
    ("tg", 4),
    ("wa", 168),
    ("full_uk", 24),
    ("go", 72),
]


@router.get("/auth")
async def test_auth(registry: ProviderRegistry = Depends(get_provider_registry)):
    """Try a balance call against every configured provider."""
    results: Dict[str, Any] = {}
    for adapter in registry.all():
        if not adapter.is_available():
            results[adapter.name] = {"configured": False, "valid": False}
            continue
        try:
            balance = await adapter.get_balance()
            results[adapter.name] = {"configured": True, "valid": True, "balance": balance}
        except ProviderError as e:
            logger.warning(f"Auth check failed for {adapter.name}: {e}")
            results[adapter.name] = {"configured": True, "valid": False, "error": e.to_dict()}
    return {
        "status": "success",
        "data": results,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/gogetsms")
async def test_gogetsms(registry: ProviderRegistry = Depends(get_provider_registry)):
    adapter = registry.get(ProviderName.GOGETSMS.value)
    report = await adapter.test_connectivity()
    return {"status": report.get("status", "error"), "data": report}


@router.get("/gogetsms/dual-mode")
async def test_gogetsms_dual_mode(registry: ProviderRegistry = Depends(get_provider_registry)):
    """Rental and activation catalogs side by side, with mode detection examples."""
    adapter = registry.get(ProviderName.GOGETSMS.value)
    try:
        adapter._require_key()
        rental = await adapter.get_services_and_countries(mode=RentalMode.RENTAL.value)
        activation = await adapter.get_services_and_countries(mode=RentalMode.ACTIVATION.value)
    except ProviderError as e:
        raise provider_http_error(e)
    except Exception as e:
        raise internal_error("testing GoGetSMS dual mode", e)

    return {
        "status": "success",
        "data": {
            "rental": {
                "serviceCount": len(rental["services"]),
                "countryCount": len(rental["countries"]),
                "source": rental.get("source"),
            },
            "activation": {
                "serviceCount": len(activation["services"]),
                "countryCount": len(activation["countries"]),
                "source": activation.get("source"),
            },
            "modeDetection": [
                {"service": service, "hours": hours, "mode": adapter.detect_optimal_mode(service, hours)}
                for service, hours in MODE_DETECTION_EXAMPLES
            ],
        },
    }


@router.get("/anosim/api-key")
async def test_anosim_api_key(registry: ProviderRegistry = Depends(get_provider_registry)):
    adapter = registry.get(ProviderName.ANOSIM.value)
    if not adapter.is_available():
        return {"status": "error", "data": {"configured": False, "valid": False}}
    result = await adapter.test_api_key()
    return {
        "status": "success" if result["valid"] else "error",
        "data": {"configured": True, **result},
    }


@router.get("/anosim/services")
async def test_anosim_services(registry: ProviderRegistry = Depends(get_provider_registry)):
    """Summary of the Anosim rental catalog."""
    adapter = registry.get(ProviderName.ANOSIM.value)
    try:
        adapter._require_key()
        data = await adapter.get_services_and_countries(mode=RentalMode.RENTAL.value)
    except ProviderError as e:
        raise provider_http_error(e)
    except Exception as e:
        raise internal_error("testing Anosim services", e)

    return {
        "status": "success",
        "data": {
            "serviceCount": len(data["services"]),
            "countryCount": len(data["countries"]),
            "services": sorted(data["services"].keys()),
            "countries": sorted(str(c) for c in data["countries"]),
            "source": data.get("source"),
        },
    }
