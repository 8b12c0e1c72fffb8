"""Base vector index interface.

A vector index is an optional capability. It is selected once, when the
manager is constructed, and reports its availability instead of failing:
backends that cannot be loaded are replaced by ``NullVectorIndex``.
"""

from abc import ABC, abstractmethod

from ..errors import IndexUnavailableError
from ..schema import EmbeddingRecord


class BaseVectorIndex(ABC):
    """Stores one embedding record per chunk and answers cosine-similarity queries.

    Record bookkeeping lives here; subclasses only implement the similarity
    backend. All methods are synchronous so a caller can mutate the vector
    and full-text indexes for one chunk without yielding to the event loop.
    """

    backend: str = "base"

    def __init__(self, dims: int, extension_path: str | None = None, **kwargs):
        self.dims: int = dims
        self.extension_path: str | None = extension_path
        self.enabled: bool = True
        self.load_error: str | None = None
        self.error: str | None = None
        self.kwargs: dict = kwargs

        self._records: dict[str, EmbeddingRecord] = {}
        self._by_hash: dict[tuple[str, str, str], set[str]] = {}

    @property
    def available(self) -> bool:
        """Whether the index can serve queries."""
        return self.load_error is None

    @abstractmethod
    def _backend_upsert(self, chunk_id: str, vector: list[float]):
        """Store or replace the vector of a chunk in the backend."""

    @abstractmethod
    def _backend_remove(self, chunk_id: str):
        """Delete the vector of a chunk from the backend."""

    @abstractmethod
    def _backend_query(self, vector: list[float], k: int) -> list[tuple[str, float]]:
        """Return up to k (chunk_id, cosine similarity) pairs, best first."""

    def _backend_clear(self):
        """Delete all vectors from the backend."""
        for chunk_id in list(self._records):
            self._backend_remove(chunk_id)

    def upsert(self, record: EmbeddingRecord):
        """Insert the record of a chunk, superseding any previous version."""
        if record.dims != self.dims:
            raise ValueError(f"Vector has {record.dims} dims, index expects {self.dims}")

        self.remove(record.chunk_id)
        self._backend_upsert(record.chunk_id, record.vector)
        self._records[record.chunk_id] = record
        key = (record.content_hash, record.provider, record.model)
        self._by_hash.setdefault(key, set()).add(record.chunk_id)

    def remove(self, chunk_id: str):
        """Delete the record of a chunk if present."""
        record = self._records.pop(chunk_id, None)
        if record is None:
            return

        self._backend_remove(chunk_id)
        key = (record.content_hash, record.provider, record.model)
        ids = self._by_hash.get(key)
        if ids is not None:
            ids.discard(chunk_id)
            if not ids:
                del self._by_hash[key]

    def get(self, chunk_id: str) -> EmbeddingRecord | None:
        """Return the record of a chunk."""
        return self._records.get(chunk_id)

    def find_by_hash(self, content_hash: str, provider: str, model: str) -> EmbeddingRecord | None:
        """Return any record that embedded the same content with the same provider and model."""
        ids = self._by_hash.get((content_hash, provider, model))
        if not ids:
            return None
        return self._records[min(ids)]

    def query(self, vector: list[float], k: int) -> list[tuple[str, float]]:
        """Return up to k nearest chunks as (chunk_id, score), score in [0, 1], higher is closer."""
        if k <= 0 or not self._records:
            return []
        if len(vector) != self.dims:
            raise IndexUnavailableError(f"query vector has {len(vector)} dims, index expects {self.dims}")

        try:
            hits = self._backend_query(vector, k)
        except Exception as e:
            self.error = f"{type(e).__name__}: {e}"
            raise IndexUnavailableError(f"vector query failed: {self.error}") from e
        self.error = None
        return [(chunk_id, min(1.0, max(0.0, score))) for chunk_id, score in hits]

    def count(self) -> int:
        """Number of stored records."""
        return len(self._records)

    def clear(self):
        """Delete every record."""
        self._backend_clear()
        self._records.clear()
        self._by_hash.clear()

    def close(self):
        """Release backend resources."""


class NullVectorIndex(BaseVectorIndex):
    """Stand-in used when vector search is disabled or its backend failed to load."""

    backend = "none"

    def __init__(self, dims: int, enabled: bool = True, load_error: str | None = None, **kwargs):
        super().__init__(dims=dims, **kwargs)
        self.enabled = enabled
        self.load_error = load_error or ("vector search disabled" if not enabled else "vector backend unavailable")

    def upsert(self, record: EmbeddingRecord):
        return

    def _backend_upsert(self, chunk_id: str, vector: list[float]):
        return

    def _backend_remove(self, chunk_id: str):
        return

    def _backend_query(self, vector: list[float], k: int) -> list[tuple[str, float]]:
        return []

    def query(self, vector: list[float], k: int) -> list[tuple[str, float]]:
        return []
