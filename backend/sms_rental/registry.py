"""
Provider Registry

Central registry of the SMS rental providers.
Each provider has:
- Unique identifier (ProviderName)
- Adapter instance
- Availability (API key configured or not)

Supported Providers:
- sms_activate: SMS-Activate rentals
- smspva: SMSPVA weekly/monthly leases
- anosim: Anosim rentals and activations
- gogetsms: GoGetSMS rentals and activations
"""

import logging
from typing import Dict, Any, List, Optional, Type

from .anosim import AnosimAdapter
from .base import BaseProviderAdapter
from .errors import ProviderError, ProviderErrorCode
from .gogetsms import GoGetSmsAdapter
from .schema import ProviderName
from .sms_activate import SmsActivateAdapter
from .smspva import SmspvaAdapter

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """
    Lookup of provider adapters by name.

    Adapters are created lazily on first use so that tests can register
    fakes before anything touches settings.
    """

    _adapter_classes: Dict[ProviderName, Type[BaseProviderAdapter]] = {
        ProviderName.SMS_ACTIVATE: SmsActivateAdapter,
        ProviderName.SMSPVA: SmspvaAdapter,
        ProviderName.ANOSIM: AnosimAdapter,
        ProviderName.GOGETSMS: GoGetSmsAdapter,
    }

    def __init__(self, adapters: Optional[Dict[str, BaseProviderAdapter]] = None):
        self._adapters: Dict[str, BaseProviderAdapter] = dict(adapters or {})

    @staticmethod
    def names() -> List[str]:
        return [p.value for p in ProviderName]

    def register(self, adapter: BaseProviderAdapter):
        """Register (or replace) the adapter for adapter.name."""
        self._adapters[adapter.name] = adapter

    def get(self, name: Optional[str]) -> BaseProviderAdapter:
        """Adapter for name. Raises UNSUPPORTED_PROVIDER for unknown names."""
        key = str(name or ProviderName.SMS_ACTIVATE.value).strip().lower()
        if key in self._adapters:
            return self._adapters[key]
        try:
            provider = ProviderName(key)
        except ValueError:
            raise ProviderError(
                ProviderErrorCode.UNSUPPORTED_PROVIDER,
                f"Unsupported provider: {name}",
                provider=key,
                status_code=400,
            )
        adapter = self._adapter_classes[provider]()
        self._adapters[key] = adapter
        return adapter

    def all(self) -> List[BaseProviderAdapter]:
        return [self.get(name) for name in self.names()]

    def available(self) -> List[BaseProviderAdapter]:
        """Adapters with an API key configured."""
        return [adapter for adapter in self.all() if adapter.is_available()]

    def providers_info(self) -> Dict[str, Any]:
        providers = {adapter.name: adapter.info() for adapter in self.all()}
        return {
            "providers": providers,
            "availableCount": sum(1 for p in providers.values() if p["available"]),
            "totalCount": len(providers),
        }


# Global registry instance
provider_registry = ProviderRegistry()


def get_provider_registry() -> ProviderRegistry:
    """FastAPI dependency returning the process-wide registry."""
    return provider_registry
