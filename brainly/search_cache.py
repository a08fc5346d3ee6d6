"""
Time-bounded cache of search outcomes.

Keyed by the normalized query (trimmed, lower-cased). Entries older than
the TTL are never returned: they are dropped lazily on lookup, and
prune() removes all of them at once.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from .config import DEFAULT_CACHE_TTL
from .types import Content

logger = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 100


def normalize_query(query: str) -> str:
    """Cache key for a query."""
    return query.strip().lower()


@dataclass(frozen=True)
class SearchCacheEntry:
    """A cached search outcome."""
    query: str
    results: tuple[Content, ...]
    summary: str
    latency_ms: int
    result_count: int
    created_at: float

    def age(self, now: float) -> float:
        return now - self.created_at


class SearchResultCache:
    """
    In-memory TTL cache for search outcomes.

    One instance belongs to one session; construct and discard it with
    the session rather than sharing it globally.
    """

    def __init__(
        self,
        ttl: float = DEFAULT_CACHE_TTL,
        *,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            ttl: Maximum entry age in seconds
            max_entries: Oldest entries are evicted beyond this count
            clock: Monotonic time source (injectable for tests)
        """
        self._ttl = ttl
        self._max_entries = max_entries
        self._clock = clock
        self._entries: dict[str, SearchCacheEntry] = {}

    @property
    def ttl(self) -> float:
        return self._ttl

    def get(self, query: str) -> Optional[SearchCacheEntry]:
        """Return the fresh entry for query, or None."""
        key = normalize_query(query)
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.age(self._clock()) >= self._ttl:
            logger.debug("Search cache expired for %r", key)
            del self._entries[key]
            return None
        return entry

    def put(
        self,
        query: str,
        results: list[Content],
        summary: str,
        latency_ms: int,
    ) -> SearchCacheEntry:
        """Store an outcome under the normalized query."""
        key = normalize_query(query)
        entry = SearchCacheEntry(
            query=key,
            results=tuple(results),
            summary=summary,
            latency_ms=latency_ms,
            result_count=len(results),
            created_at=self._clock(),
        )
        # Re-insert so dict order tracks recency of writes
        self._entries.pop(key, None)
        self._entries[key] = entry
        while len(self._entries) > self._max_entries:
            oldest = next(iter(self._entries))
            del self._entries[oldest]
        return entry

    def prune(self) -> int:
        """Drop all expired entries. Returns count removed."""
        now = self._clock()
        expired = [k for k, e in self._entries.items() if e.age(now) >= self._ttl]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, query: str) -> bool:
        return self.get(query) is not None
