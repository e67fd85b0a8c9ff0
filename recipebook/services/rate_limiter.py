from __future__ import annotations

import math
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable

PRUNE_INTERVAL_SECONDS = 60.0


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    remaining: int
    reset_at: float
    retry_after: int = 0


class RateLimiter(ABC):
    """Admission check keyed by an arbitrary string, usually the acting user id."""

    @abstractmethod
    def check(self, key: str) -> RateLimitDecision:
        """Count one request against `key` and tell whether it is admitted."""


@dataclass
class _Window:
    count: int
    reset_at: float


class InMemoryRateLimiter(RateLimiter):
    """
    Fixed-window counter held in process memory.

    Each worker process keeps its own counters, so limits are per process;
    a shared backend is needed once more than one instance serves traffic.
    """

    def __init__(
        self,
        limit: int,
        window_seconds: float,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if limit < 1:
            raise ValueError("limit must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._windows: dict[str, _Window] = {}
        self._next_prune = clock() + PRUNE_INTERVAL_SECONDS

    def check(self, key: str) -> RateLimitDecision:
        with self._lock:
            now = self._clock()
            self._prune(now)

            window = self._windows.get(key)
            if window is None or now >= window.reset_at:
                window = _Window(count=1, reset_at=now + self.window_seconds)
                self._windows[key] = window
                return RateLimitDecision(True, self.limit - 1, window.reset_at)

            if window.count >= self.limit:
                retry_after = max(1, math.ceil(window.reset_at - now))
                return RateLimitDecision(False, 0, window.reset_at, retry_after)

            window.count += 1
            return RateLimitDecision(True, self.limit - window.count, window.reset_at)

    def __len__(self) -> int:
        return len(self._windows)

    def _prune(self, now: float) -> None:
        if now < self._next_prune:
            return
        expired = [key for key, window in self._windows.items() if now >= window.reset_at]
        for key in expired:
            del self._windows[key]
        self._next_prune = now + PRUNE_INTERVAL_SECONDS
