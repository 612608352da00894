"""
backend/oddsleague/services/rate_limiter.py

Purpose:
    In-process sliding-window rate limiter for public read endpoints.
    Per-instance only: each worker process keeps its own window.
"""

import threading
import time
from collections import deque
from typing import Callable

from starlette.requests import Request


class SlidingWindowRateLimiter:
    """At most `limit` hits per key within any `window_seconds` span."""

    def __init__(
        self,
        limit: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._hits: dict[str, deque[float]] = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()

    def tracked_keys(self) -> int:
        """Number of keys currently tracked."""
        with self._lock:
            return len(self._hits)

    def _sweep(self, cutoff: float) -> None:
        # Keys whose newest hit left the window; callers hold the lock.
        stale = [key for key, hits in self._hits.items() if not hits or hits[-1] <= cutoff]
        for key in stale:
            del self._hits[key]

    def is_limited(self, key: str) -> bool:
        """Record a hit for key unless it is over the limit. True means reject."""
        now = self._clock()
        cutoff = now - self.window_seconds
        with self._lock:
            if now - self._last_sweep >= self.window_seconds:
                self._sweep(cutoff)
                self._last_sweep = now
            hits = self._hits.setdefault(key, deque())
            while hits and hits[0] <= cutoff:
                hits.popleft()
            if len(hits) >= self.limit:
                return True
            hits.append(now)
            return False

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()


def client_id(request: Request) -> str:
    """First x-forwarded-for hop, then x-real-ip, else "unknown"."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = (request.headers.get("x-real-ip") or "").strip()
    if real_ip:
        return real_ip
    return "unknown"
