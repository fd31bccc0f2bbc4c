"""
Short-lived cache for advisory availability results.

Entries are grouped by listing so a commit or cancellation can drop every
cached answer for that listing in one call.
"""

import logging
import time
from collections.abc import Callable, Hashable
from typing import Any

logger = logging.getLogger(__name__)


class AvailabilityCache:
    def __init__(self, ttl_seconds: float = 30.0, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        # listing_id -> {query key -> (stored_at, value)}
        self._entries: dict[str, dict[Hashable, tuple[float, Any]]] = {}

    def get(self, listing_id: str, key: Hashable) -> Any | None:
        if self.ttl_seconds <= 0:
            return None
        bucket = self._entries.get(listing_id)
        if not bucket or key not in bucket:
            return None
        stored_at, value = bucket[key]
        if self._clock() - stored_at > self.ttl_seconds:
            del bucket[key]
            return None
        return value

    def set(self, listing_id: str, key: Hashable, value: Any) -> None:
        if self.ttl_seconds <= 0:
            return
        self._entries.setdefault(listing_id, {})[key] = (self._clock(), value)

    def invalidate(self, listing_id: str) -> int:
        """Drop every cached result for a listing. Returns how many were dropped."""
        dropped = len(self._entries.pop(listing_id, {}))
        if dropped:
            logger.debug(f"Invalidated {dropped} cached availability results for listing {listing_id}")
        return dropped

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return sum(len(bucket) for bucket in self._entries.values())
