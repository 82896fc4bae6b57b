"""Result cache: bounded memo table with time-based expiry.

Entries live in a ``cachetools.FIFOCache`` so that inserting past capacity
evicts the oldest-inserted entry. Each entry records when it was stored;
``get`` treats entries older than the timeout as misses and drops them.
"""

import json
import logging
import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from cachetools import FIFOCache

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TIMEOUT_MS = 5 * 60 * 1000
DEFAULT_MAX_CACHE_ENTRIES = 100


def canonical_params(params: Mapping[str, Any]) -> str:
    """Serialize params so that key order never matters.

    Mapping keys are sorted at every nesting level; list and tuple order is
    kept because it is meaningful to the backend (e.g. sort precedence).
    ``None`` values are dropped at the top level since they are never sent.
    """
    cleaned = {k: v for k, v in params.items() if v is not None}
    return json.dumps(
        cleaned,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )


def make_cache_key(collection: str, params: Mapping[str, Any]) -> str:
    return f"search:{collection}:{canonical_params(params)}"


def make_schema_key(collection: str) -> str:
    return f"schema:{collection}"


@dataclass
class CacheEntry:
    key: str
    value: Any
    stored_at: float


class ResultCache:
    """Thread-safe memo store bounded by entry count and entry age.

    Example:
        cache = ResultCache(timeout_ms=60_000, max_entries=50)
        cache.put(make_cache_key("products", params), response)
        response = cache.get(make_cache_key("products", params))
    """

    def __init__(
        self,
        timeout_ms: int = DEFAULT_CACHE_TIMEOUT_MS,
        max_entries: int = DEFAULT_MAX_CACHE_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            timeout_ms: Maximum entry age in milliseconds
            max_entries: Maximum number of resident entries
            clock: Monotonic time source in seconds (injectable for tests)
        """
        if timeout_ms <= 0:
            raise ValueError("timeout_ms must be positive")
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self._timeout_ms = timeout_ms
        self._max_entries = max_entries
        self._clock = clock
        self._entries: FIFOCache[str, CacheEntry] = FIFOCache(maxsize=max_entries)
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    @property
    def timeout_ms(self) -> int:
        return self._timeout_ms

    @property
    def max_entries(self) -> int:
        return self._max_entries

    def _is_expired(self, entry: CacheEntry, now: float) -> bool:
        return (now - entry.stored_at) * 1000 >= self._timeout_ms

    def get(self, key: str) -> Any | None:
        """Return the live value for ``key``, or ``None`` on a miss."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            if self._is_expired(entry, self._clock()):
                del self._entries[key]
                self._misses += 1
                logger.debug("Cache entry expired: %s", key)
                return None
            self._hits += 1
            return entry.value

    def put(self, key: str, value: Any) -> None:
        """Store ``value``; evicts the oldest-inserted entry when full."""
        with self._lock:
            now = self._clock()
            existing = self._entries.get(key)
            if existing is not None:
                # Update in place: keeps the insertion slot, refreshes the age.
                existing.value = value
                existing.stored_at = now
                return
            if len(self._entries) >= self._max_entries:
                evicted_key, _ = self._entries.popitem()
                logger.debug("Cache full (%s), evicted: %s", self._max_entries, evicted_key)
            self._entries[key] = CacheEntry(key=key, value=value, stored_at=now)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def stats(self) -> dict[str, int]:
        with self._lock:
            return {
                "size": len(self._entries),
                "max_size": self._max_entries,
                "timeout_ms": self._timeout_ms,
                "hits": self._hits,
                "misses": self._misses,
            }
