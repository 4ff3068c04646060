# =============================================================================
# TTL Cache — per-application response cache
# =============================================================================
#
# Caches web-search results per normalised query so repeated checks of the
# same text do not spend search quota. Created in create_app() with an
# explicit TTL and size bound, reached through the get_search_cache
# dependency.
#
# DESIGN DECISION: In-process dict with insertion-order eviction. Entries are
# small and a miss only costs one extra search call.
# =============================================================================

from __future__ import annotations

import time
from collections import OrderedDict
from collections.abc import Callable
from typing import Any


class TTLCache:
    """Mapping with per-entry expiry and a maximum size."""

    def __init__(
        self,
        ttl_seconds: float,
        max_entries: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, tuple[float, Any]] = OrderedDict()

    def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if expires_at <= self._clock():
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: Any) -> None:
        self._entries.pop(key, None)
        self._entries[key] = (self._clock() + self.ttl_seconds, value)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


def cache_key(*parts: str) -> str:
    return "|".join(" ".join(part.lower().split()) for part in parts)
