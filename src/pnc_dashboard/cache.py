"""Time-bounded in-memory cache keyed by opaque strings.

Entries carry an absolute expiry. There is no LRU/LFU eviction: once the
store grows past ``max_entries`` a cleanup pass drops whatever has already
expired, which may leave the store above the limit if nothing has.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

log = logging.getLogger(__name__)

DEFAULT_TTL = 3600.0     # 1 hour
DEFAULT_MAX_ENTRIES = 100


class _CacheEntry:
    """Value plus absolute expiry on the cache's clock."""
    __slots__ = ("value", "expires_at")

    def __init__(self, value: Any, expires_at: float):
        self.value = value
        self.expires_at = expires_at

    def expired(self, now: float) -> bool:
        return now >= self.expires_at


class TTLCache:
    """Key/value store with per-entry TTL and opportunistic cleanup.

    ``clock`` returns seconds and defaults to ``time.monotonic``; tests pass a
    fake clock to move time forward without sleeping.
    """

    def __init__(
        self,
        default_ttl: float = DEFAULT_TTL,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        prefix: str = "",
        clock: Callable[[], float] = time.monotonic,
    ):
        self.default_ttl = default_ttl
        self.max_entries = max_entries
        self.prefix = prefix
        self._clock = clock
        self._store: dict[str, _CacheEntry] = {}

    def full_key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value if still fresh, else drop it and return ``default``."""
        fk = self.full_key(key)
        entry = self._store.get(fk)
        if entry is None:
            log.debug("cache miss %s", fk)
            return default
        if entry.expired(self._clock()):
            del self._store[fk]
            log.debug("cache expired %s", fk)
            return default
        log.debug("cache hit %s", fk)
        return entry.value

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        self._store[self.full_key(key)] = _CacheEntry(value, self._clock() + ttl)
        if len(self._store) > self.max_entries:
            removed = self.cleanup()
            log.debug(
                "cache over %d entries, cleanup removed %d",
                self.max_entries, removed,
            )

    def cleanup(self) -> int:
        """Delete every expired entry. Returns how many were removed."""
        now = self._clock()
        stale = [k for k, e in self._store.items() if e.expired(now)]
        for k in stale:
            del self._store[k]
        return len(stale)

    def clear(self) -> None:
        self._store.clear()

    def __len__(self) -> int:
        return len(self._store)

    def __contains__(self, key: str) -> bool:
        """Freshness check only; a cached None counts and nothing is evicted."""
        entry = self._store.get(self.full_key(key))
        return entry is not None and not entry.expired(self._clock())
