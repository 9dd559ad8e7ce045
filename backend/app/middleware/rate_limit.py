"""Reusable in-memory rate limiter.

Guards password login and supervisor PIN submission. State is per process;
for multi-replica deployments, swap to Redis.
"""

from __future__ import annotations

import time
from collections.abc import Callable

from fastapi import HTTPException, status


class InMemoryRateLimiter:
    """Sliding-window in-memory rate limiter keyed by an arbitrary string.

    Keys whose newest attempt has left the window are dropped, at most once
    per window, so per-order keys do not pile up for the life of the process.
    """

    def __init__(
        self,
        window_seconds: int = 60,
        max_attempts: int = 5,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._window = window_seconds
        self._max = max_attempts
        self._clock = clock
        self._attempts: dict[str, list[float]] = {}
        self._last_sweep = clock()

    @property
    def tracked_keys(self) -> int:
        return len(self._attempts)

    def _evict_stale(self, now: float) -> None:
        if now - self._last_sweep < self._window:
            return
        self._last_sweep = now
        stale = [
            key
            for key, attempts in self._attempts.items()
            if not attempts or now - attempts[-1] >= self._window
        ]
        for key in stale:
            del self._attempts[key]

    def check(self, key: str) -> None:
        """Record an attempt for *key*; HTTP 429 once the window is full."""
        now = self._clock()
        self._evict_stale(now)
        recent = [t for t in self._attempts.get(key, []) if now - t < self._window]
        if len(recent) >= self._max:
            self._attempts[key] = recent
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail=f"Too many attempts. Try again in {self._window} seconds.",
            )
        recent.append(now)
        self._attempts[key] = recent

    def reset(self, key: str | None = None) -> None:
        """Forget one key's attempts, or every key when *key* is None."""
        if key is None:
            self._attempts.clear()
        else:
            self._attempts.pop(key, None)
