"""Per-key sliding-window limiter guarding the auth endpoints."""

from __future__ import annotations

import threading
import time
from collections import deque
from typing import Deque, Dict, Iterable, Tuple


class SlidingWindowRateLimiter:
    """Counts hits per key inside a trailing window.

    State is per process; it throttles abusive clients and carries no session
    state, so losing it on restart is harmless.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._hits: Dict[str, Deque[float]] = {}

    def _prune(self, key: str, now: float, window_seconds: int) -> Deque[float]:
        hits = self._hits.setdefault(key, deque())
        cutoff = now - window_seconds
        while hits and hits[0] <= cutoff:
            hits.popleft()
        return hits

    def allow(self, key: str, limit: int, window_seconds: int) -> bool:
        now = time.monotonic()
        with self._lock:
            hits = self._prune(key, now, window_seconds)
            if len(hits) >= limit:
                return False
            hits.append(now)
            return True

    def allow_all(self, rules: Iterable[Tuple[str, int, int]]) -> bool:
        """Check several (key, limit, window) rules; stops at the first refusal."""
        return all(self.allow(key, limit, window) for key, limit, window in rules)

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()


rate_limiter = SlidingWindowRateLimiter()
