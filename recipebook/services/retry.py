from __future__ import annotations

import logging
import time
from typing import Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_BASE_DELAY_SECONDS = 1.0


def backoff_delay(attempt: int, base_delay: float = DEFAULT_BASE_DELAY_SECONDS) -> float:
    """Delay to wait before attempt number `attempt` (0-based)."""
    if attempt <= 0:
        return 0.0
    return base_delay * (2 ** (attempt - 1))


def with_retry(
    operation: Callable[[], T],
    max_attempts: int,
    *,
    base_delay: float = DEFAULT_BASE_DELAY_SECONDS,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    last_error: Exception | None = None
    for attempt in range(max_attempts):
        if attempt > 0:
            delay = backoff_delay(attempt, base_delay)
            logger.info(
                "retry.wait attempt=%d/%d delay=%.1fs error=%s",
                attempt + 1,
                max_attempts,
                delay,
                last_error,
            )
            sleep(delay)
        try:
            return operation()
        except Exception as error:
            last_error = error

    assert last_error is not None
    raise last_error
