"""Configuration schemas for the memory search subsystem using Pydantic models."""

import os

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..enumeration import MemorySource

CONFIG_VERSION = 1


class ChunkingConfig(BaseModel):
    """Configuration for splitting source files into chunks."""

    model_config = ConfigDict(extra="ignore")

    chunk_tokens: int = Field(default=400, ge=8, description="Maximum tokens per chunk (about 4 chars per token)")
    chunk_overlap: int = Field(default=0, ge=0, description="Overlapping tokens between consecutive chunks")


class EmbeddingConfig(BaseModel):
    """Configuration for the embedding provider chain."""

    model_config = ConfigDict(extra="ignore")

    provider: str = Field(default="openai", description="Requested embedding provider")
    model: str = Field(default="text-embedding-3-small", description="Model name for the requested provider")
    fallbacks: list[str] = Field(default_factory=lambda: ["local"], description="Providers tried after the requested one")
    dimensions: int = Field(default=256, gt=0, description="Vector dimensions requested from providers")
    api_key: str | None = Field(default=None, description="API key for remote providers")
    base_url: str | None = Field(default=None, description="Base URL for remote providers")
    max_input_length: int = Field(default=8192, gt=0, description="Maximum characters sent per input text")

    @property
    def resolved_api_key(self) -> str | None:
        """Get API key, preferring the environment variable."""
        return os.getenv("MEMINDEX_EMBEDDING_API_KEY") or self.api_key

    @property
    def resolved_base_url(self) -> str | None:
        """Get base URL, preferring the environment variable."""
        return os.getenv("MEMINDEX_EMBEDDING_BASE_URL") or self.base_url

    @property
    def provider_order(self) -> list[str]:
        """Requested provider followed by the distinct fallbacks."""
        order: list[str] = []
        for name in [self.provider, *self.fallbacks]:
            name = (name or "").strip()
            if name and name not in order:
                order.append(name)
        return order


class FtsConfig(BaseModel):
    """Configuration for the full-text index."""

    model_config = ConfigDict(extra="ignore")

    enabled: bool = Field(default=True)


class VectorConfig(BaseModel):
    """Configuration for the vector index."""

    model_config = ConfigDict(extra="ignore")

    enabled: bool = Field(default=True)
    backend: str = Field(default="local", description="Vector backend: local or sqlite_vec")
    extension_path: str | None = Field(default=None, description="Path to the sqlite-vec loadable extension")
    dims: int | None = Field(default=None, description="Expected dimensionality, defaults to embedding dimensions")
    db_path: str = Field(default=":memory:", description="SQLite database used by the sqlite_vec backend")


class StoreConfig(BaseModel):
    """Configuration for the persistent memory store."""

    model_config = ConfigDict(extra="ignore")

    enabled: bool = Field(default=True)
    db_path: str | None = Field(
        default=None,
        description="SQLite file of the store, '{agent_id}' is substituted; defaults to <workspace>/.memindex/<agent_id>.sqlite",
    )


class CacheConfig(BaseModel):
    """Configuration for the query result cache."""

    model_config = ConfigDict(extra="ignore")

    enabled: bool = Field(default=True)
    max_entries: int = Field(default=256, ge=1)


class BatchConfig(BaseModel):
    """Configuration for batch embedding."""

    model_config = ConfigDict(extra="ignore")

    enabled: bool = Field(default=True)
    limit: int = Field(default=32, ge=1, description="Maximum chunks per batch")
    concurrency: int = Field(default=2, ge=1, description="Parallel in-flight batches")
    poll_interval_ms: int = Field(default=500, ge=1, description="Queue draining cadence")
    timeout_ms: int = Field(default=60_000, ge=1, description="Deadline of a single batch call")
    wait: bool = Field(default=True, description="Whether sync blocks until embedding completes")


class QueryConfig(BaseModel):
    """Defaults applied to search requests."""

    model_config = ConfigDict(extra="ignore")

    max_results: int = Field(default=10, ge=1)
    min_score: float = Field(default=0.0, ge=0.0)
    candidate_multiplier: float = Field(default=4.0, ge=1.0)
    snippet_max_chars: int = Field(default=700, ge=1)


class HybridConfig(BaseModel):
    """Weights used to merge vector and full-text scores."""

    model_config = ConfigDict(extra="ignore")

    vector_weight: float = Field(default=0.5, gt=0.0)
    text_weight: float = Field(default=0.5, gt=0.0)
    single_modality_discount: float | None = Field(
        default=None,
        ge=0.0,
        le=1.0,
        description="Factor applied to chunks found by only one modality; defaults to that modality's weight",
    )

    @model_validator(mode="after")
    def _check_weights(self) -> "HybridConfig":
        if self.vector_weight < self.text_weight:
            raise ValueError(
                f"vector_weight ({self.vector_weight}) must be >= text_weight ({self.text_weight})",
            )
        return self

    @property
    def normalized_weights(self) -> tuple[float, float]:
        """Vector and text weights scaled to sum to one."""
        total = self.vector_weight + self.text_weight
        return self.vector_weight / total, self.text_weight / total


class WatchConfig(BaseModel):
    """Configuration for file watching."""

    model_config = ConfigDict(extra="ignore")

    enabled: bool = Field(default=False)
    debounce_ms: int = Field(default=1500, ge=0)


class SyncConfig(BaseModel):
    """Configuration for automatic sync triggers."""

    model_config = ConfigDict(extra="ignore")

    on_start: bool = Field(default=True, description="Sync when the manager is opened")
    on_search: bool = Field(default=True, description="Schedule a background sync when searching a dirty index")
    interval_minutes: float = Field(default=0, ge=0, description="Periodic sync interval, 0 to disable")


class MemorySearchConfig(BaseModel):
    """Root configuration of the memory search subsystem."""

    model_config = ConfigDict(extra="ignore")

    config_version: int = Field(default=CONFIG_VERSION)
    enabled: bool = Field(default=True)
    workspace_dir: str = Field(default=".")
    extra_paths: list[str] = Field(default_factory=list)
    sources: list[MemorySource] = Field(default_factory=lambda: [MemorySource.MEMORY])

    chunking: ChunkingConfig = Field(default_factory=ChunkingConfig)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    fts: FtsConfig = Field(default_factory=FtsConfig)
    vector: VectorConfig = Field(default_factory=VectorConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    batch: BatchConfig = Field(default_factory=BatchConfig)
    query: QueryConfig = Field(default_factory=QueryConfig)
    hybrid: HybridConfig = Field(default_factory=HybridConfig)
    watch: WatchConfig = Field(default_factory=WatchConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)

    @model_validator(mode="after")
    def _check_version(self) -> "MemorySearchConfig":
        if self.config_version != CONFIG_VERSION:
            raise ValueError(f"Unsupported config_version {self.config_version}, expected {CONFIG_VERSION}")
        return self

    @property
    def vector_dims(self) -> int:
        """Dimensionality expected by the vector index."""
        return self.vector.dims or self.embedding.dimensions

    def store_path(self, agent_id: str) -> str:
        """Database file of the persistent store of an agent."""
        if self.store.db_path:
            return os.path.expanduser(self.store.db_path.replace("{agent_id}", agent_id))
        return os.path.join(os.path.abspath(self.workspace_dir), ".memindex", f"{agent_id}.sqlite")
