"""
Provider adapter base class.

An adapter turns the normalized operation set (catalog, rent, status,
cancel, extend, list) into one provider's HTTP calls and maps the reply
back onto the shared result types. Adapters perform network calls only;
they never touch the database.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx

from config import get_settings
from .errors import ProviderError, ProviderErrorCode
from .normalizer import extract_code
from .rate_limiter import SlidingWindowRateLimiter
from .retry import RETRY_DELAYS, with_retry
from .schema import (
    ActiveRental,
    BookingResolution,
    ExtensionResult,
    RentalMode,
    RentalResult,
    RentalStatus,
    SmsMessage,
)

logger = logging.getLogger(__name__)


def digits_only(phone_number: Optional[str]) -> str:
    return "".join(ch for ch in str(phone_number or "") if ch.isdigit())


def same_phone(a: Optional[str], b: Optional[str]) -> bool:
    """Compare phone numbers ignoring '+', spaces and punctuation."""
    da, db = digits_only(a), digits_only(b)
    return bool(da) and da == db


class BaseProviderAdapter(ABC):
    """
    Common plumbing for the provider adapters.

    Subclasses set name/display_name/description, implement the abstract
    operations and, where the provider's auth parameter is not "api_key",
    override _auth_params.
    """

    name: str = ""
    display_name: str = ""
    description: str = ""
    supports_dual_mode: bool = False
    default_base_url: str = ""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
        retry_delays: Optional[List[float]] = None,
        rate_limiter: Optional[SlidingWindowRateLimiter] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        self.api_key = api_key if api_key is not None else settings.provider_api_keys.get(self.name, "")
        configured_url = getattr(settings, f"{self.name.upper()}_BASE_URL", None)
        self.base_url = (base_url or configured_url or self.default_base_url).rstrip("/")
        self.timeout = timeout or settings.PROVIDER_TIMEOUT_SECONDS
        self.max_attempts = max_attempts or settings.PROVIDER_MAX_ATTEMPTS
        self.retry_delays = RETRY_DELAYS if retry_delays is None else retry_delays
        self.rate_limiter = rate_limiter
        self.transport = transport

    # ==================== AVAILABILITY ====================

    def is_available(self) -> bool:
        """True when an API key is configured."""
        return bool(self.api_key)

    def info(self) -> Dict[str, Any]:
        return {
            "available": self.is_available(),
            "name": self.display_name,
            "description": self.description,
        }

    def _require_key(self):
        if not self.is_available():
            raise ProviderError(
                ProviderErrorCode.NO_API_KEY,
                f"{self.display_name} API key not configured",
                provider=self.name,
                status_code=400,
            )

    # ==================== HTTP ====================

    def _auth_params(self) -> Dict[str, str]:
        return {"api_key": self.api_key}

    async def _send(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Any] = None,
    ) -> httpx.Response:
        """Issue one HTTP call, converting transport failures to ProviderError."""
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                return await client.request(method, url, params=params, json=json_body)
        except httpx.TimeoutException:
            raise ProviderError(
                ProviderErrorCode.TIMEOUT,
                f"{self.display_name} did not respond within {self.timeout}s",
                provider=self.name,
                status_code=504,
            )
        except httpx.RequestError as e:
            raise ProviderError(
                ProviderErrorCode.CONNECTION_ERROR,
                f"Cannot connect to {self.display_name}: {str(e)[:100]}",
                provider=self.name,
                retryable=True,
            )

    def _map_http_error(self, response: httpx.Response) -> ProviderError:
        status_code = response.status_code
        body = response.text[:200]
        if status_code == 401:
            code = ProviderErrorCode.INVALID_API_KEY.value
        elif status_code == 403:
            code = ProviderErrorCode.ACCESS_FORBIDDEN.value
        elif status_code == 404:
            code = ProviderErrorCode.NOT_FOUND.value
        elif status_code == 429:
            code = ProviderErrorCode.RATE_LIMITED.value
        elif status_code >= 500:
            code = ProviderErrorCode.SERVER_ERROR.value
        else:
            code = f"HTTP_{status_code}"
        return ProviderError(
            code,
            f"{self.display_name} returned HTTP {status_code}: {body}",
            provider=self.name,
            status_code=status_code,
            retryable=status_code == 429 or status_code >= 500,
        )

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        """JSON when the body parses, otherwise the stripped text sentinel."""
        try:
            return response.json()
        except ValueError:
            return response.text.strip()

    async def _request(
        self,
        method: str = "GET",
        path: str = "",
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Any] = None,
    ) -> Any:
        """Authenticated call with rate limiting, retry and error mapping."""
        self._require_key()
        url = f"{self.base_url}{path}"
        query = {**self._auth_params(), **{k: v for k, v in (params or {}).items() if v is not None}}
        label = query.get("action") or query.get("method") or path or "request"

        async def attempt():
            if self.rate_limiter:
                await self.rate_limiter.acquire()
            response = await self._send(method, url, params=query, json_body=json_body)
            if response.status_code >= 400:
                raise self._map_http_error(response)
            return self._decode(response)

        return await with_retry(attempt, f"{self.name} {label}", self.max_attempts, self.retry_delays)

    def _error(self, code, message: str, **kwargs) -> ProviderError:
        return ProviderError(code, message, provider=self.name, **kwargs)

    # ==================== OPERATIONS ====================

    @abstractmethod
    async def get_services_and_countries(
        self,
        country: str = "0",
        rent_time: int = 4,
        operator: str = "any",
        incoming_call: bool = False,
        mode: str = RentalMode.RENTAL.value,
    ) -> Dict[str, Any]:
        """Catalog of rentable services and countries."""

    @abstractmethod
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
        """Lease a number."""

    @abstractmethod
    async def get_status(self, external_id: str) -> RentalStatus:
        """Messages and state of one lease."""

    @abstractmethod
    async def cancel(self, external_id: str) -> Dict[str, Any]:
        """Cancel a lease."""

    @abstractmethod
    async def extend(self, external_id: str, rent_time: int) -> ExtensionResult:
        """Extend a lease by rent_time hours."""

    @abstractmethod
    async def list_active(self) -> List[ActiveRental]:
        """Leases the provider currently considers active."""

    @abstractmethod
    async def get_balance(self) -> Dict[str, Any]:
        """Account balance."""

    async def fetch_messages(self, external_id: str, mode: str = RentalMode.RENTAL.value) -> List[SmsMessage]:
        status = await self.get_status(external_id)
        return status.messages

    async def resolve_booking(self, phone_number: str) -> Optional[BookingResolution]:
        """
        Find the provider's current identifier for phone_number.

        Scans the active lease list; adapters with a richer order history
        override this.
        """
        for rental in await self.list_active():
            if same_phone(rental.phone_number, phone_number):
                return BookingResolution(
                    phone_number=rental.phone_number,
                    booking_id=rental.external_id,
                    is_active=(rental.status or "active").lower() in ("active", "1", "true"),
                    end_date=rental.end_date,
                )
        return None

    def external_id_for(self, row: Dict[str, Any]) -> Optional[str]:
        """Identifier to query this provider with for a stored phone row."""
        return row.get("rent_id")

    @staticmethod
    def extract_code(text: Optional[str]) -> Optional[str]:
        return extract_code(text)
