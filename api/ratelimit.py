"""Per-client request limiting for the data routes.

Fixed window per client key: at most `limit` requests every `window_seconds`.
Responses carry the standard `RateLimit-*` headers.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass, field
from threading import Lock
from typing import Callable

# Prune expired client windows once this many are tracked
_MAX_TRACKED_CLIENTS = 10_000


@dataclass(frozen=True)
class RateLimitInfo:
    """Outcome of one request against a client's window."""

    limit: int
    remaining: int
    reset_at: float  # Unix timestamp when the window resets
    allowed: bool

    def reset_in_seconds(self, now: float) -> int:
        return max(0, math.ceil(self.reset_at - now))

    def headers(self, now: float) -> dict[str, str]:
        return {
            "RateLimit-Limit": str(self.limit),
            "RateLimit-Remaining": str(self.remaining),
            "RateLimit-Reset": str(self.reset_in_seconds(now)),
        }


@dataclass
class _ClientWindow:
    count: int
    reset_at: float


@dataclass
class RateLimiter:
    """Thread-safe fixed-window limiter keyed by client."""

    limit: int = 60
    window_seconds: int = 60
    clock: Callable[[], float] = time.time
    _windows: dict[str, _ClientWindow] = field(default_factory=dict)
    _lock: Lock = field(default_factory=Lock)

    def __post_init__(self) -> None:
        if self.limit < 1:
            raise ValueError(f"limit must be >= 1, got {self.limit}")
        if self.window_seconds < 1:
            raise ValueError(f"window_seconds must be >= 1, got {self.window_seconds}")

    def hit(self, key: str) -> RateLimitInfo:
        """Count one request for `key`."""
        now = self.clock()
        with self._lock:
            if len(self._windows) >= _MAX_TRACKED_CLIENTS:
                self._clear_expired(now)

            window = self._windows.get(key)
            if window is None or window.reset_at <= now:
                window = _ClientWindow(count=0, reset_at=now + self.window_seconds)
                self._windows[key] = window

            allowed = window.count < self.limit
            if allowed:
                window.count += 1

            return RateLimitInfo(
                limit=self.limit,
                remaining=max(0, self.limit - window.count),
                reset_at=window.reset_at,
                allowed=allowed,
            )

    def _clear_expired(self, now: float) -> None:
        expired = [key for key, window in self._windows.items() if window.reset_at <= now]
        for key in expired:
            del self._windows[key]
