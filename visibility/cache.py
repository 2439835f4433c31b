"""
In-memory result cache with a per-collection staleness window.

Shared by every request thread of the API server. Writers outside this
package are responsible for calling ``invalidate``.
"""

import threading
import time
from typing import Any, Callable, Dict, Hashable, Optional, Tuple

from visibility.config import CACHE_MAX_ENTRIES, cache_ttl


class ResultCache:
    """Cache query results keyed by (collection, policy params, filters, ...)."""

    def __init__(
        self,
        ttl_for: Callable[[str], float] = cache_ttl,
        clock: Callable[[], float] = time.monotonic,
        max_entries: int = CACHE_MAX_ENTRIES,
    ):
        self._entries: Dict[Tuple, Tuple[float, Any]] = {}
        self._ttl_for = ttl_for
        self._clock = clock
        self._max_entries = max_entries
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def _expired(self, key: Tuple, stored_at: float, now: float) -> bool:
        return now - stored_at >= self._ttl_for(key[0])

    def get(self, key: Tuple[Hashable, ...]) -> Optional[Any]:
        """Return the cached value for *key*; key[0] must be the collection name."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                stored_at, value = entry
                if not self._expired(key, stored_at, self._clock()):
                    self.hits += 1
                    return value
                self._entries.pop(key, None)
            self.misses += 1
            return None

    def set(self, key: Tuple[Hashable, ...], value: Any) -> None:
        """Store *value*; expired entries are dropped, then the oldest beyond the cap."""
        with self._lock:
            now = self._clock()
            for k in [k for k, (t, _) in self._entries.items() if self._expired(k, t, now)]:
                del self._entries[k]
            self._entries.pop(key, None)
            self._entries[key] = (now, value)
            while len(self._entries) > self._max_entries:
                del self._entries[next(iter(self._entries))]

    def invalidate(self, collection: Optional[str] = None) -> int:
        """Drop every entry (or only those of *collection*); returns how many."""
        with self._lock:
            if collection is None:
                dropped = len(self._entries)
                self._entries.clear()
                return dropped
            stale = [k for k in self._entries if k[0] == collection]
            for k in stale:
                del self._entries[k]
            return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
