"""In-process TTL cache for debrid availability and metadata lookups.

Entries expire ``ttl_seconds`` after they were set. The clock is injectable
so tests can move time forward without sleeping. The cache is bounded:
when full, expired entries are purged first, then the least recently used.
"""

import time
from collections import OrderedDict
from collections.abc import Callable
from typing import Any

from loguru import logger

log = logger.bind(stage="cache")

_MISSING = object()


class TTLCache:
    """Key-value store with per-entry expiry and a size cap.

    get() returns ``default`` for absent or expired keys; expired entries
    are dropped on access. Cached values may be falsy (e.g. ``False``).
    """

    def __init__(
        self, clock: Callable[[], float] = time.monotonic, max_entries: int = 4096
    ) -> None:
        self._clock = clock
        self._max_entries = max(1, int(max_entries))
        self._entries: "OrderedDict[str, tuple[Any, float]]" = OrderedDict()

    def get(self, key: str, default: Any = None) -> Any:
        entry = self._entries.get(key, _MISSING)
        if entry is _MISSING:
            return default
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            log.debug(f"Cache expired: {key}")
            return default
        self._entries.move_to_end(key)
        return value

    def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        self._entries[key] = (value, self._clock() + ttl_seconds)
        self._entries.move_to_end(key)
        if len(self._entries) > self._max_entries:
            self._evict()

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def _evict(self) -> None:
        now = self._clock()
        expired = [k for k, (_, expires_at) in self._entries.items() if now >= expires_at]
        for k in expired:
            del self._entries[k]
        while len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)
        log.debug(f"Cache evicted down to {len(self._entries)} entries ({len(expired)} expired)")

    def __contains__(self, key: str) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    def __len__(self) -> int:
        return len(self._entries)
