"""Fixed-window request quota.

Each caller identifier gets a window of ``window_seconds``; the first
request opens the window and at most ``limit`` requests are admitted
inside it. Rejected requests do not consume quota. Counters live in memory
and are lost on restart.

Example:
    >>> limiter = RateLimiter(limit=30, window_seconds=60)
    >>> limiter.admit("user-42")
    True
    >>> limiter.headers("user-42").remaining
    29
"""

from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 30
DEFAULT_WINDOW_SECONDS = 60.0


@dataclass(frozen=True)
class RateLimitEntry:
    count: int
    reset_at: float


@dataclass(frozen=True)
class RateLimitHeaders:
    """Quota state for one identifier, as reported to the caller."""

    limit: int
    remaining: int
    reset_at: float

    def as_http_headers(self) -> dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(math.ceil(self.reset_at)),
        }


class RateLimitStore:
    """In-memory identifier -> window store.

    Each operation is atomic. Compound check-and-increment is the limiter's
    responsibility.
    """

    def __init__(self) -> None:
        self._entries: dict[str, RateLimitEntry] = {}
        self._lock = threading.Lock()

    def get(self, identifier: str) -> RateLimitEntry | None:
        with self._lock:
            return self._entries.get(identifier)

    def put(self, identifier: str, entry: RateLimitEntry) -> None:
        with self._lock:
            self._entries[identifier] = entry

    def delete(self, identifier: str) -> None:
        with self._lock:
            self._entries.pop(identifier, None)

    def sweep(self, now: float) -> int:
        """Delete windows that ended before ``now``. Returns the count removed."""
        with self._lock:
            expired = [key for key, entry in self._entries.items() if now > entry.reset_at]
            for key in expired:
                del self._entries[key]
            return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class RateLimiter:
    """Per-identifier fixed-window limiter.

    Attributes:
        limit: Requests admitted per window.
        window_seconds: Window length.
        bypass: When True every request is admitted (load testing only).
    """

    def __init__(
        self,
        store: RateLimitStore | None = None,
        limit: int = DEFAULT_LIMIT,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        bypass: bool = False,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store if store is not None else RateLimitStore()
        self.limit = limit
        self.window_seconds = window_seconds
        self.bypass = bypass
        self._clock = clock
        self._lock = threading.Lock()
        self._logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")
        if bypass:
            self._logger.warning("Rate limit bypass enabled; quotas are not enforced")

    def admit(self, identifier: str) -> bool:
        """Count a request against ``identifier`` and decide admission."""
        if self.bypass:
            return True

        now = self._clock()
        with self._lock:
            entry = self.store.get(identifier)

            if entry is None or now > entry.reset_at:
                self.store.put(identifier, RateLimitEntry(1, now + self.window_seconds))
                return True

            if entry.count >= self.limit:
                self._logger.debug(f"Quota exhausted for identifier {identifier[:8]}...")
                return False

            self.store.put(identifier, RateLimitEntry(entry.count + 1, entry.reset_at))
            return True

    def headers(self, identifier: str) -> RateLimitHeaders:
        """Current quota state for ``identifier``. Does not count a request."""
        now = self._clock()
        entry = self.store.get(identifier)

        if entry is None or now > entry.reset_at:
            return RateLimitHeaders(self.limit, self.limit, now + self.window_seconds)

        return RateLimitHeaders(
            limit=self.limit,
            remaining=max(0, self.limit - entry.count),
            reset_at=entry.reset_at,
        )

    def reset(self, identifier: str | None = None) -> None:
        """Forget one identifier's window, or all of them."""
        if identifier is None:
            self.store.clear()
        else:
            self.store.delete(identifier)

    def sweep(self) -> int:
        removed = self.store.sweep(self._clock())
        if removed:
            self._logger.debug(f"Swept {removed} expired rate limit windows")
        return removed
