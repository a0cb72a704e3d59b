"""
Rule Cache - in-memory cache of resolved rule lookups
Each key carries its own expiry; the map is bounded (least recently used goes first)
"""

import time
from collections import OrderedDict
from typing import Any, Callable, Hashable, Optional

GLOBAL_SCOPE = "global"

# Returned by get() on a miss so a cached None ("no rule") stays distinguishable
MISSING = object()


def scope_key(name: str, organization_id: Optional[int]) -> tuple[str, Any]:
    """Cache key for a per-organization lookup"""
    return (name, organization_id if organization_id is not None else GLOBAL_SCOPE)


class RuleCache:
    """Per-key TTL cache.

    Values are advisory: concurrent misses for the same key may both hit the
    store and the last write wins. Mutations must evict before returning so a
    following read never sees data older than the write.
    """

    def __init__(
        self,
        ttl_seconds: float = 300.0,
        max_entries: int = 10_000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[Hashable, tuple[float, Any]] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        return self.get(key) is not MISSING

    def get(self, key: Hashable) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            return MISSING

        expires_at, value = entry
        if expires_at <= self._clock():
            del self._entries[key]
            return MISSING

        self._entries.move_to_end(key)
        return value

    def set(self, key: Hashable, value: Any) -> None:
        self._entries[key] = (self._clock() + self.ttl_seconds, value)
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def invalidate(self, key: Hashable) -> bool:
        """Evict one key, returns True if it was cached"""
        return self._entries.pop(key, None) is not None

    def invalidate_where(self, predicate: Callable[[Hashable], bool]) -> int:
        """Evict every key matching predicate, returns the count"""
        stale = [key for key in self._entries if predicate(key)]
        for key in stale:
            del self._entries[key]
        return len(stale)

    def clear(self) -> None:
        self._entries.clear()
