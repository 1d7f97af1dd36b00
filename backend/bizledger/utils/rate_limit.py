import time
from collections import deque
from threading import Lock
from typing import Optional

from fastapi import Request

_MAX_KEYS = 50_000
_PRUNE_EVERY_SECONDS = 60


class SlidingWindowRateLimiter:
    """In-process sliding-window counter keyed by an arbitrary string."""

    def __init__(self, *, max_keys: int = _MAX_KEYS, prune_every_seconds: int = _PRUNE_EVERY_SECONDS) -> None:
        self._hits: dict[str, deque[float]] = {}
        self._lock = Lock()
        self._max_keys = max_keys
        self._prune_every = max(1, int(prune_every_seconds))
        self._pruned_at = 0.0

    def allow(self, key: str, limit: int, window_seconds: int) -> tuple[bool, int]:
        """Record a hit for *key*; return ``(allowed, hits_in_window)``."""
        if limit <= 0 or window_seconds <= 0:
            return True, 0
        now = time.monotonic()
        cutoff = now - window_seconds
        with self._lock:
            if len(self._hits) > self._max_keys or now - self._pruned_at >= self._prune_every:
                self._prune(cutoff)
                self._pruned_at = now

            hits = self._hits.setdefault(key, deque())
            while hits and hits[0] <= cutoff:
                hits.popleft()
            if len(hits) >= limit:
                return False, len(hits)
            hits.append(now)
            return True, len(hits)

    def _prune(self, cutoff: float) -> None:
        # Caller holds the lock.
        for key in list(self._hits):
            hits = self._hits[key]
            while hits and hits[0] <= cutoff:
                hits.popleft()
            if not hits:
                del self._hits[key]

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()
            self._pruned_at = 0.0


rate_limiter = SlidingWindowRateLimiter()


def get_client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


def get_user_agent(request: Request) -> Optional[str]:
    return request.headers.get("user-agent") if request else None
