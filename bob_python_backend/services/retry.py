"""Retry loop with exponential backoff shared by the upstream clients."""

import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

from bob_python_backend.errors import MalformedResponseError, RetryExhaustedError, TransportError

logger = logging.getLogger("bob_backend")

T = TypeVar("T")

MAX_BACKOFF_SECONDS = 32.0
JITTER_RANGE = (0.85, 1.15)
RETRYABLE_ERRORS: Tuple[Type[BaseException], ...] = (TransportError, MalformedResponseError)


def backoff_delay(
    attempt: int,
    base_delay: float = 1.0,
    jitter: Optional[Tuple[float, float]] = JITTER_RANGE,
    cap: float = MAX_BACKOFF_SECONDS,
) -> float:
    """Delay before retry number ``attempt`` (0-based): base x 2^attempt x U[jitter], capped."""
    factor = random.uniform(*jitter) if jitter else 1.0
    return min(base_delay * (2 ** attempt) * factor, cap)


async def _sleep(seconds: float) -> None:
    await asyncio.sleep(seconds)


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    *,
    attempts: int,
    delay: Callable[[int], float] = backoff_delay,
    retry_on: Tuple[Type[BaseException], ...] = RETRYABLE_ERRORS,
    label: str = "upstream call",
) -> T:
    if attempts < 1:
        raise ValueError("attempts must be >= 1")

    last_error: Optional[BaseException] = None
    for attempt in range(attempts):
        try:
            return await operation()
        except retry_on as exc:
            last_error = exc
            logger.warning("[RETRY] %s attempt %d/%d failed: %s", label, attempt + 1, attempts, exc)
            if attempt + 1 >= attempts:
                break
            wait_seconds = delay(attempt)
            logger.info("[RETRY] Retrying %s in %.2fs", label, wait_seconds)
            await _sleep(wait_seconds)

    raise RetryExhaustedError(attempts, last_error)
