"""
Provider error types.

Every adapter failure surfaces as a ProviderError carrying a code from the
provider's own vocabulary (mapped from its raw error string or HTTP status),
so routers and the sync controller can branch on codes rather than on
exception classes.
"""

from enum import Enum
from typing import Optional, Dict, Any


class ProviderErrorCode(str, Enum):
    """Known provider error codes."""
    # Configuration / authentication
    NO_API_KEY = "NO_API_KEY"
    BAD_KEY = "BAD_KEY"
    NOT_AUTHORIZED = "NOT_AUTHORIZED"
    INVALID_API_KEY = "INVALID_API_KEY"
    ACCESS_FORBIDDEN = "ACCESS_FORBIDDEN"
    BANNED = "BANNED"

    # Business / logical
    NO_NUMBERS = "NO_NUMBERS"
    NO_BALANCE = "NO_BALANCE"
    BAD_ACTION = "BAD_ACTION"
    BAD_SERVICE = "BAD_SERVICE"
    BAD_COUNTRY = "BAD_COUNTRY"
    EARLY_CANCEL_DENIED = "EARLY_CANCEL_DENIED"
    RENTAL_FAILED = "RENTAL_FAILED"
    EXTENSION_FAILED = "EXTENSION_FAILED"
    CANCEL_FAILED = "CANCEL_FAILED"
    NO_RENTAL_PRODUCTS = "NO_RENTAL_PRODUCTS"
    NO_FULL_PRODUCTS = "NO_FULL_PRODUCTS"
    PRODUCT_NOT_FOUND = "PRODUCT_NOT_FOUND"
    NO_ACTIVATION_PRODUCTS = "NO_ACTIVATION_PRODUCTS"
    NO_PHONE_ALLOCATED = "NO_PHONE_ALLOCATED"
    PHONE_FETCH_FAILED = "PHONE_FETCH_FAILED"
    MISSING_PHONE_NUMBER = "MISSING_PHONE_NUMBER"
    UNSUPPORTED_PROVIDER = "UNSUPPORTED_PROVIDER"
    API_ERROR = "API_ERROR"

    # Transport
    TIMEOUT = "TIMEOUT"
    CONNECTION_ERROR = "CONNECTION_ERROR"
    RATE_LIMITED = "RATE_LIMITED"
    NOT_FOUND = "NOT_FOUND"
    SERVER_ERROR = "SERVER_ERROR"

    # Shape / parsing
    INVALID_RESPONSE = "INVALID_RESPONSE"
    INVALID_BALANCE_RESPONSE = "INVALID_BALANCE_RESPONSE"


# Codes meaning "this lease is already gone upstream"; cancellation treats
# them as success.
ALREADY_INACTIVE_CODES = frozenset([
    ProviderErrorCode.NOT_AUTHORIZED.value,
    ProviderErrorCode.NOT_FOUND.value,
    "HTTP_400",
    "HTTP_404",
])

HTTP_STATUS_BY_CODE: Dict[str, int] = {
    ProviderErrorCode.NO_NUMBERS.value: 404,
    ProviderErrorCode.BAD_KEY.value: 401,
    ProviderErrorCode.NOT_AUTHORIZED.value: 401,
    ProviderErrorCode.INVALID_API_KEY.value: 401,
    ProviderErrorCode.NO_API_KEY.value: 400,
    ProviderErrorCode.UNSUPPORTED_PROVIDER.value: 400,
    ProviderErrorCode.TIMEOUT.value: 504,
    ProviderErrorCode.RATE_LIMITED.value: 429,
}


class ProviderError(Exception):
    """Typed failure raised by a provider adapter."""

    def __init__(
        self,
        code: str,
        message: str,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
        retryable: bool = False,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.code = code.value if isinstance(code, ProviderErrorCode) else str(code)
        self.message = message
        self.provider = provider
        self.status_code = status_code
        self.retryable = retryable
        self.details = details or {}

    def __str__(self) -> str:
        prefix = f"[{self.provider}] " if self.provider else ""
        return f"{prefix}{self.code}: {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "provider": self.provider,
        }

    @property
    def is_already_inactive(self) -> bool:
        """True when the provider reports the lease as no longer active."""
        if self.code in ALREADY_INACTIVE_CODES:
            return True
        return "not active" in self.message.lower() or "inactive" in self.message.lower()


class ResponseShapeError(ProviderError):
    """Provider returned a payload that matches none of the known shapes."""

    def __init__(self, message: str, provider: Optional[str] = None, payload: Any = None):
        super().__init__(
            ProviderErrorCode.INVALID_RESPONSE,
            message,
            provider=provider,
            details={"payload_type": type(payload).__name__},
        )
        self.payload = payload


def http_status_for(error: ProviderError) -> int:
    """HTTP status a router should answer with for this error."""
    return HTTP_STATUS_BY_CODE.get(error.code, 500)
