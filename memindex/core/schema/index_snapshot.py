"""Point-in-time status snapshot schemas."""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..enumeration import MemorySource, SyncState


class _WireModel(BaseModel):
    """Base model that serializes with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        """Dump with camelCase keys and without unset optional values."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class FallbackInfo(_WireModel):
    """Embedding provider substitution currently in effect."""

    from_: str = Field(..., alias="from", description="Provider that was requested")
    reason: str | None = Field(default=None, description="Why the requested provider was not used")


class SourceCount(_WireModel):
    """Indexed file and chunk counts of one source kind."""

    source: MemorySource
    files: int = 0
    chunks: int = 0


class CacheStatus(_WireModel):
    """Result cache statistics."""

    enabled: bool
    entries: int | None = None
    max_entries: int | None = None


class FtsStatus(_WireModel):
    """Full-text index availability."""

    enabled: bool
    available: bool
    error: str | None = None


class VectorStatus(_WireModel):
    """Vector index availability."""

    enabled: bool
    available: bool | None = None
    extension_path: str | None = None
    load_error: str | None = None
    dims: int | None = None


class BatchStatus(_WireModel):
    """Batch embedder statistics."""

    enabled: bool
    failures: int = 0
    limit: int = 0
    wait: bool = True
    concurrency: int = 0
    poll_interval_ms: int = 0
    timeout_ms: int = 0
    last_error: str | None = None
    last_provider: str | None = None


class LastSync(_WireModel):
    """Outcome of the most recent sync."""

    reason: str | None = None
    at_ms: int | None = None
    ok: bool = False
    error: str | None = None


class IndexSnapshot(_WireModel):
    """Aggregated diagnostics of one agent's memory index."""

    enabled: bool = True
    agent_id: str = "default"
    state: SyncState | None = None
    files: int | None = None
    chunks: int | None = None
    dirty: bool | None = None
    workspace_dir: str | None = None
    db_path: str | None = None
    sources: list[MemorySource] | None = None
    extra_paths: list[str] | None = None
    source_counts: list[SourceCount] | None = None
    provider: str | None = None
    model: str | None = None
    requested_provider: str | None = None
    fallback: FallbackInfo | None = None
    cache: CacheStatus | None = None
    fts: FtsStatus | None = None
    vector: VectorStatus | None = None
    batch: BatchStatus | None = None
    last_sync: LastSync | None = None
    file_errors: dict[str, str] | None = None
    error: str | None = None
