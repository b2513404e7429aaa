"""In-Process Venue Enrichment Cache.

Encyclopedia lookups are slow (several seconds); the same venue is often
requested in bursts. This cache keeps enrichment values keyed by a
normalized venue query, each with its own lifetime.

Cached values are:
- Invisible once expired (removed lazily on read, and by periodic sweeps)
- Shared by all requests in the process
- Lost on restart

The cache is a pure optimization: the pipeline produces the same record
without it, only slower.

Example:
    >>> cache = VenueCache(default_ttl_seconds=300)
    >>> key = normalize_key("Senso-ji Temple")
    >>> cache.put(key, enrichment)
    >>> cache.get(key) is enrichment
    True
"""

from __future__ import annotations

import hashlib
import logging
import re
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable

from momentsense.core.models import VenueEnrichment
from momentsense.utils.logging import log_event

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300.0

_WHITESPACE = re.compile(r"\s+")
_DISALLOWED = re.compile(r"[^a-z0-9_-]")


def normalize_key(query: str) -> str:
    """Normalize a venue query into a cache key.

    Lowercases, trims, collapses whitespace runs to ``_`` and strips every
    character outside ``[a-z0-9_-]``.

    Example:
        >>> normalize_key("  Senso-ji   Temple! ")
        'senso-ji_temple'
    """
    key = _WHITESPACE.sub("_", query.strip().lower())
    return _DISALLOWED.sub("", key)


def venue_cache_key(query: str) -> str:
    """Cache key for a venue query.

    ASCII queries use ``normalize_key`` unchanged. Queries with non-ASCII
    characters would lose them to normalization (a name written only in
    kanji normalizes to ``""``), so they get a digest of the case-folded
    query appended.

    Example:
        >>> venue_cache_key("Senso-ji Temple")
        'senso-ji_temple'
        >>> venue_cache_key("浅草寺") == venue_cache_key("東京タワー")
        False
    """
    key = normalize_key(query)
    if key and query.isascii():
        return key

    folded = _WHITESPACE.sub(" ", query.strip().casefold())
    digest = hashlib.sha256(folded.encode("utf-8")).hexdigest()[:16]
    return f"{key}_{digest}" if key else digest


@dataclass(frozen=True)
class CacheEntry:
    value: VenueEnrichment
    expires_at: float


@dataclass
class CacheMetrics:
    """Hit/miss counters for one cache instance."""

    hits: int = 0
    misses: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


class VenueCache:
    """Thread-safe TTL cache for venue enrichment."""

    def __init__(
        self,
        default_ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.default_ttl_seconds = default_ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self.metrics = CacheMetrics()
        self._logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def get(self, key: str) -> VenueEnrichment | None:
        """Return the live value for ``key``, or None on miss or expiry."""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.metrics.misses += 1
                return None
            if now > entry.expires_at:
                del self._entries[key]
                self.metrics.misses += 1
                return None
            self.metrics.hits += 1
            return entry.value

    def put(
        self,
        key: str,
        value: VenueEnrichment,
        ttl_seconds: float | None = None,
    ) -> None:
        """Store ``value`` under ``key``. Last write wins."""
        ttl = self.default_ttl_seconds if ttl_seconds is None else ttl_seconds
        with self._lock:
            self._entries[key] = CacheEntry(value, self._clock() + ttl)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def sweep(self) -> int:
        """Remove expired entries. Returns the number removed."""
        now = self._clock()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if now > entry.expires_at]
            for key in expired:
                del self._entries[key]
        if expired:
            log_event(
                self._logger,
                "cache_sweep",
                logging.DEBUG,
                removed=len(expired),
                remaining=len(self._entries),
            )
        return len(expired)

    def clear(self) -> int:
        """Drop all entries and reset metrics. Returns the number removed."""
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            self.metrics = CacheMetrics()
        return count

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get_stats(self) -> dict[str, Any]:
        with self._lock:
            size = len(self._entries)
            keys = sorted(self._entries)[:20]
        return {
            "size": size,
            "keys": keys,
            "hits": self.metrics.hits,
            "misses": self.metrics.misses,
            "hit_rate": round(self.metrics.hit_rate, 3),
            "default_ttl_seconds": self.default_ttl_seconds,
        }
