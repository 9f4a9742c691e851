"""In-memory sliding-window rate limiting for login and submission."""

from __future__ import annotations

import math
import threading
import time
from collections import deque
from typing import Callable, Deque, Dict, Iterable, Tuple

from codearena.core.exceptions import RateLimitExceededError

# (key, limit, window seconds, message)
Rule = Tuple[str, int, int, str]


class InMemoryRateLimiter:
    """Sliding-window rate limiter suitable for single-node deployments."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._hits: Dict[str, Deque[float]] = {}

    def _prune(self, key: str, now: float, window_seconds: int) -> Deque[float]:
        hits = self._hits.setdefault(key, deque())
        cutoff = now - window_seconds
        while hits and hits[0] <= cutoff:
            hits.popleft()
        return hits

    def hit(self, key: str, limit: int, window_seconds: int) -> int:
        """
        Record one request against ``key``.

        Returns:
            0 when allowed, otherwise seconds until the next slot frees up.
        """
        now = self._clock()
        with self._lock:
            hits = self._prune(key, now, window_seconds)
            if len(hits) >= limit:
                return max(1, math.ceil(hits[0] + window_seconds - now))
            hits.append(now)
            return 0

    def allow(self, key: str, limit: int, window_seconds: int) -> bool:
        return self.hit(key, limit, window_seconds) == 0

    def remaining(self, key: str, limit: int, window_seconds: int) -> int:
        now = self._clock()
        with self._lock:
            return max(0, limit - len(self._prune(key, now, window_seconds)))

    def enforce(self, rules: Iterable[Rule]) -> None:
        """Apply each rule in order, raising on the first one exhausted"""
        for key, limit, window_seconds, message in rules:
            retry_after = self.hit(key, limit, window_seconds)
            if retry_after:
                raise RateLimitExceededError(message, retry_after=retry_after)

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()


rate_limiter = InMemoryRateLimiter()
