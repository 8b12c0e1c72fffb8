"""Response schemas of the search and sync operations."""

from pydantic import Field

from .index_snapshot import FallbackInfo, _WireModel
from .memory_search_result import MemorySearchResult


class SearchResponse(_WireModel):
    """Ranked results together with the provider that embedded the query."""

    results: list[MemorySearchResult] = Field(default_factory=list)
    provider: str | None = None
    model: str | None = None
    fallback: FallbackInfo | None = None
    error: str | None = None


class SyncResponse(_WireModel):
    """Outcome of a sync request."""

    synced: bool
    error: str | None = None
