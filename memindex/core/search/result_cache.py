"""LRU cache of ranked search responses, invalidated wholesale on sync."""

import json
import time
from collections import OrderedDict

from loguru import logger
from pydantic import BaseModel, Field

from ..enumeration import MemorySource
from ..schema import CacheStatus, SearchResponse
from ..utils import collapse_whitespace, hash_text


class CacheEntry(BaseModel):
    """One memoized search response."""

    fingerprint: str
    response: SearchResponse
    created_at: float = Field(default_factory=time.time)
    generation: int = 0


class ResultCache:
    """Bounded LRU mapping from query fingerprints to search responses.

    Every entry is stamped with the generation that was current when its
    ranking started. ``invalidate`` drops all entries and bumps the
    generation, so a ranking that was in flight during a sync cannot be
    inserted afterwards.
    """

    def __init__(self, enabled: bool = True, max_entries: int = 256):
        self.enabled = enabled
        self.max_entries = max_entries
        self.generation: int = 0
        self.hits: int = 0
        self.misses: int = 0
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()

    @staticmethod
    def fingerprint(
        query: str,
        agent_id: str,
        max_results: int,
        min_score: float,
        sources: list[MemorySource] | None = None,
    ) -> str:
        """Cache key of a query. Whitespace is collapsed, case is kept."""
        payload = {
            "query": collapse_whitespace(query),
            "agent_id": agent_id,
            "max_results": max_results,
            "min_score": float(min_score),
            "sources": sorted(s.value for s in sources or []),
        }
        return hash_text(json.dumps(payload, sort_keys=True, ensure_ascii=False))

    def get(self, fingerprint: str) -> SearchResponse | None:
        """Return a copy of the cached response, marking it most recently used."""
        if not self.enabled:
            return None

        entry = self._entries.get(fingerprint)
        if entry is None or entry.generation != self.generation:
            self.misses += 1
            return None

        self._entries.move_to_end(fingerprint)
        self.hits += 1
        return entry.response.model_copy(deep=True)

    def put(self, fingerprint: str, response: SearchResponse, generation: int) -> bool:
        """Store a copy of a response computed during ``generation``.

        Returns:
            False if caching is disabled or the generation is outdated
        """
        if not self.enabled or self.max_entries <= 0:
            return False

        if generation != self.generation:
            logger.debug(f"Dropping cache insert from generation {generation}, current is {self.generation}")
            return False

        if len(self._entries) >= self.max_entries and fingerprint not in self._entries:
            self._entries.popitem(last=False)

        self._entries[fingerprint] = CacheEntry(
            fingerprint=fingerprint,
            response=response.model_copy(deep=True),
            generation=generation,
        )
        self._entries.move_to_end(fingerprint)
        return True

    def invalidate(self):
        """Drop every entry and start a new generation."""
        if self._entries:
            logger.debug(f"Invalidating {len(self._entries)} cached search responses")
        self._entries.clear()
        self.generation += 1

    def __len__(self) -> int:
        return len(self._entries)

    def status(self) -> CacheStatus:
        return CacheStatus(enabled=self.enabled, entries=len(self._entries), max_entries=self.max_entries)
