"""
Bounded retry for provider calls.

Only transient transport failures are retried; authentication, validation
and business errors (no numbers, bad key) propagate on the first attempt.
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, TypeVar

from .errors import ProviderError, ProviderErrorCode

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Delays between attempts (seconds); 3 attempts in total
RETRY_DELAYS = [1, 2]

NON_RETRYABLE_HTTP_STATUSES = frozenset([400, 401, 403, 404, 422])

TRANSIENT_CODES = frozenset([
    ProviderErrorCode.CONNECTION_ERROR.value,
    ProviderErrorCode.SERVER_ERROR.value,
    ProviderErrorCode.RATE_LIMITED.value,
])


def is_retryable(error: Exception) -> bool:
    """Whether a failed provider call is worth another attempt."""
    if not isinstance(error, ProviderError):
        return False
    if error.status_code in NON_RETRYABLE_HTTP_STATUSES:
        return False
    # Timeouts already consumed the full client timeout
    if error.code == ProviderErrorCode.TIMEOUT.value:
        return False
    return error.retryable or error.code in TRANSIENT_CODES


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    description: str,
    max_attempts: int = 3,
    delays: Optional[List[float]] = None,
) -> T:
    """
    Run operation, retrying transient ProviderErrors.

    Args:
        operation: zero-argument coroutine factory
        description: label for log lines
        max_attempts: total attempts including the first
        delays: wait before attempt n+1; the last entry repeats
    """
    delays = RETRY_DELAYS if delays is None else delays
    attempt = 0

    while True:
        attempt += 1
        try:
            return await operation()
        except ProviderError as e:
            if attempt >= max_attempts or not is_retryable(e):
                raise
            delay = delays[min(attempt - 1, len(delays) - 1)] if delays else 0
            logger.warning(f"{description} attempt {attempt} failed ({e.code}), retrying in {delay}s")
            await asyncio.sleep(delay)
