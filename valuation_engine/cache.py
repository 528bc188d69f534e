"""
Indicator Cache - One entry per key, each with its own TTL.

Entries are frozen dataclasses and a write swaps the whole entry under a
lock, so readers see either the old entry or the new one.
"""

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional, Union

from valuation_engine.models import CacheEntry, CompositeResult, IndicatorKey, IndicatorResult


logger = logging.getLogger(__name__)


Clock = Callable[[], float]

FRESHNESS_VALID = "valid"
FRESHNESS_EXPIRED = "expired"


class IndicatorCache:
    """
    TTL cache keyed by IndicatorKey.

    Expired entries are kept (not evicted) so they can be served as stale
    fallbacks when every source fails.

    Usage:
        cache = IndicatorCache({IndicatorKey.CAPE: 86400, ...})
        if not cache.is_fresh(IndicatorKey.CAPE):
            cache.write(IndicatorKey.CAPE, result)
    """

    def __init__(self, ttl_seconds: Mapping[IndicatorKey, float], clock: Clock = time.monotonic) -> None:
        missing = [key.value for key in IndicatorKey if key not in ttl_seconds]
        if missing:
            raise ValueError(f"Missing TTL for keys: {missing}")
        for key, ttl in ttl_seconds.items():
            if ttl <= 0:
                raise ValueError(f"TTL for {key.value} must be positive, got {ttl}")

        self._ttls: dict[IndicatorKey, float] = {key: float(ttl_seconds[key]) for key in IndicatorKey}
        self._clock = clock
        self._entries: dict[IndicatorKey, CacheEntry] = {}
        self._lock = threading.Lock()

        # Stats
        self._hits = 0
        self._misses = 0

    # ─────────────────────────────────────────────────────────────
    # Read / write
    # ─────────────────────────────────────────────────────────────

    def ttl(self, key: IndicatorKey) -> float:
        return self._ttls[key]

    def read(self, key: IndicatorKey) -> Optional[CacheEntry]:
        """Current entry for a key, fresh or not."""
        with self._lock:
            return self._entries.get(key)

    def write(self, key: IndicatorKey, data: Union[IndicatorResult, CompositeResult]) -> CacheEntry:
        """Replace the entry for a key and reset its fetch timestamp."""
        entry = CacheEntry(
            key=key,
            data=data,
            fetched_at=self._clock(),
            stored_at=datetime.now(timezone.utc),
        )
        with self._lock:
            self._entries[key] = entry
        logger.debug(f"[cache] Stored {key.value}")
        return entry

    def is_fresh(self, key: IndicatorKey) -> bool:
        """True when an entry exists and is within its TTL."""
        entry = self.read(key)
        fresh = entry is not None and self._age(entry) <= self._ttls[key]
        with self._lock:
            if fresh:
                self._hits += 1
            else:
                self._misses += 1
        return fresh

    def read_fresh(self, key: IndicatorKey) -> Optional[CacheEntry]:
        """Entry for a key only if it is within its TTL."""
        entry = self.read(key)
        if entry is None or self._age(entry) > self._ttls[key]:
            return None
        return entry

    def age_seconds(self, key: IndicatorKey) -> Optional[float]:
        entry = self.read(key)
        return None if entry is None else self._age(entry)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
        logger.info("[cache] Cleared")

    def _age(self, entry: CacheEntry) -> float:
        return self._clock() - entry.fetched_at

    # ─────────────────────────────────────────────────────────────
    # Reporting
    # ─────────────────────────────────────────────────────────────

    def freshness(self) -> dict[str, str]:
        """`valid` / `expired` per key; keys never written are expired."""
        report = {}
        for key in IndicatorKey:
            entry = self.read(key)
            valid = entry is not None and self._age(entry) <= self._ttls[key]
            report[key.value] = FRESHNESS_VALID if valid else FRESHNESS_EXPIRED
        return report

    def has_entries(self) -> bool:
        with self._lock:
            return bool(self._entries)

    def get_stats(self) -> dict[str, Any]:
        """Get cache statistics."""
        with self._lock:
            entries = dict(self._entries)
            hits, misses = self._hits, self._misses
        return {
            "entries": len(entries),
            "hits": hits,
            "misses": misses,
            "ttl_seconds": {key.value: ttl for key, ttl in self._ttls.items()},
            "age_seconds": {key.value: round(self._age(entry), 1) for key, entry in entries.items()},
        }
