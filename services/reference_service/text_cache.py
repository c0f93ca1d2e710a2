"""
TTL cache for fetched reference texts.
"""

import time
from collections import OrderedDict
from typing import Callable, Dict, Optional, Tuple

from services.reference_service.models import TextResult


class TextCache:
    """
    Keyed by normalized reference. Entries expire after ``ttl_seconds``;
    when full, the oldest insertion is evicted.
    """

    def __init__(self, ttl_seconds: float = 3600, max_size: int = 100,
                 clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self.max_size = max_size
        self._clock = clock
        self._entries: "OrderedDict[str, Tuple[float, TextResult]]" = OrderedDict()
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Optional[TextResult]:
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None

        stored_at, result = entry
        if self._clock() - stored_at > self.ttl_seconds:
            del self._entries[key]
            self.misses += 1
            return None

        self.hits += 1
        return result

    def put(self, key: str, result: TextResult):
        if key in self._entries:
            del self._entries[key]
        while len(self._entries) >= self.max_size:
            self._entries.popitem(last=False)
        self._entries[key] = (self._clock(), result)

    def purge_expired(self) -> int:
        now = self._clock()
        expired = [key for key, (stored_at, _) in self._entries.items() if now - stored_at > self.ttl_seconds]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def clear(self):
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def stats(self) -> Dict[str, int]:
        return {"size": len(self._entries), "max_size": self.max_size, "hits": self.hits, "misses": self.misses}
