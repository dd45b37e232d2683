"""Sliding-window posting limits per platform."""

from __future__ import annotations

from collections import deque
from collections.abc import Callable
from datetime import datetime, timedelta
from threading import Lock

from pubflow.clock import utcnow
from pubflow.config.models import PlatformRateLimit

_HOUR = timedelta(hours=1)
_DAY = timedelta(days=1)


class PlatformRateLimiter:
    """Track posts per platform over the last hour and the last day."""

    def __init__(
        self,
        limits: dict[str, PlatformRateLimit] | None = None,
        *,
        now: Callable[[], datetime] = utcnow,
    ) -> None:
        self._limits = {key.lower(): value for key, value in (limits or {}).items()}
        self._now = now
        self._lock = Lock()
        self._windows: dict[str, deque[datetime]] = {}

    def update_limits(self, limits: dict[str, PlatformRateLimit]) -> None:
        with self._lock:
            self._limits = {key.lower(): value for key, value in limits.items()}

    def try_acquire(self, platform: str) -> bool:
        """Record a post for *platform* unless that would exceed its limits."""
        key = platform.lower()
        now = self._now()
        with self._lock:
            limit = self._limits.get(key)
            if limit is None:
                return True
            window = self._windows.setdefault(key, deque())
            day_cutoff = now - _DAY
            while window and window[0] <= day_cutoff:
                window.popleft()
            hour_cutoff = now - _HOUR
            last_hour = sum(1 for stamp in window if stamp > hour_cutoff)
            if last_hour >= limit.posts_per_hour or len(window) >= limit.posts_per_day:
                return False
            window.append(now)
            return True

    def usage(self, platform: str) -> dict[str, int]:
        key = platform.lower()
        now = self._now()
        with self._lock:
            window = list(self._windows.get(key, ()))
        return {
            "last_hour": sum(1 for stamp in window if stamp > now - _HOUR),
            "last_day": sum(1 for stamp in window if stamp > now - _DAY),
        }
