"""schema"""

from .batch_job import BatchJob
from .embedding_record import EmbeddingRecord
from .file_metadata import FileMetadata
from .index_snapshot import (
    BatchStatus,
    CacheStatus,
    FallbackInfo,
    FtsStatus,
    IndexSnapshot,
    LastSync,
    SourceCount,
    VectorStatus,
)
from .memory_chunk import MemoryChunk
from .memory_search_config import (
    BatchConfig,
    CacheConfig,
    ChunkingConfig,
    EmbeddingConfig,
    FtsConfig,
    HybridConfig,
    MemorySearchConfig,
    QueryConfig,
    StoreConfig,
    SyncConfig,
    VectorConfig,
    WatchConfig,
)
from .memory_search_result import MemorySearchResult
from .scan_result import ScanResult, SourceSpec
from .search_response import SearchResponse, SyncResponse

__all__ = [
    "BatchConfig",
    "BatchJob",
    "BatchStatus",
    "CacheConfig",
    "CacheStatus",
    "ChunkingConfig",
    "EmbeddingConfig",
    "EmbeddingRecord",
    "FallbackInfo",
    "FileMetadata",
    "FtsConfig",
    "FtsStatus",
    "HybridConfig",
    "IndexSnapshot",
    "LastSync",
    "MemoryChunk",
    "MemorySearchConfig",
    "MemorySearchResult",
    "QueryConfig",
    "ScanResult",
    "SearchResponse",
    "SourceCount",
    "SourceSpec",
    "StoreConfig",
    "SyncConfig",
    "SyncResponse",
    "VectorConfig",
    "VectorStatus",
    "WatchConfig",
]
