"""Chunk table that keeps the full-text and vector indexes in step."""

from loguru import logger

from ..enumeration import MemorySource
from ..fts_index import FullTextIndex
from ..memory_store import SqliteMemoryStore
from ..schema import EmbeddingRecord, MemoryChunk
from ..vector_index import BaseVectorIndex


class MemoryIndex:
    """Current chunk versions plus their full-text postings and vectors.

    Every mutation is synchronous. Applying or removing a chunk touches both
    indexes without yielding to the event loop, so a concurrent search sees
    either the old or the new state of a chunk in both modalities. When a
    store is attached every mutation is written through to it as well.
    """

    def __init__(self, fts: FullTextIndex, vector: BaseVectorIndex, store: SqliteMemoryStore | None = None):
        self.fts = fts
        self.vector = vector
        self.store = store
        self.chunks: dict[str, MemoryChunk] = {}

    def get(self, chunk_id: str) -> MemoryChunk | None:
        return self.chunks.get(chunk_id)

    def restore(self) -> tuple[int, int]:
        """Rebuild the in-memory indexes from the store.

        Vectors of another dimensionality or of a superseded chunk version
        are skipped.

        Returns:
            Number of restored chunks and vectors
        """
        if self.store is None:
            return 0, 0

        for chunk in self.store.load_chunks():
            self.chunks[chunk.id] = chunk
            self.fts.upsert(chunk)

        vectors = 0
        if self.vector.available:
            for record in self.store.load_embeddings():
                chunk = self.chunks.get(record.chunk_id)
                if chunk is None or chunk.hash != record.content_hash or record.dims != self.vector.dims:
                    continue
                self.vector.upsert(record)
                vectors += 1

        logger.info(f"Restored {len(self.chunks)} chunks and {vectors} vectors from {self.store.db_path}")
        return len(self.chunks), vectors

    def apply(self, chunk: MemoryChunk, record: EmbeddingRecord | None = None):
        """Make ``chunk`` the current version of its identity.

        The previous vector is dropped unless ``record`` replaces it.

        Raises:
            ValueError: If the record does not belong to the chunk or has the wrong dimensionality
        """
        if record is not None:
            self._check_record(chunk, record)

        self.chunks[chunk.id] = chunk
        self.fts.upsert(chunk)
        if record is not None:
            self.vector.upsert(record)
        else:
            self.vector.remove(chunk.id)

        if self.store is not None:
            self.store.upsert_chunk(chunk)
            if record is not None:
                self.store.upsert_embedding(record)
            else:
                self.store.delete_embedding(chunk.id)

    def attach_vector(self, chunk: MemoryChunk, record: EmbeddingRecord) -> bool:
        """Store a vector computed for ``chunk`` if that version is still current."""
        current = self.chunks.get(chunk.id)
        if current is None or current.hash != chunk.hash:
            return False

        self._check_record(current, record)
        self.vector.upsert(record)
        if self.store is not None:
            self.store.upsert_embedding(record)
        return True

    def remove(self, chunk_id: str):
        """Purge a chunk from both indexes."""
        self.chunks.pop(chunk_id, None)
        self.fts.remove(chunk_id)
        self.vector.remove(chunk_id)
        if self.store is not None:
            self.store.delete_chunk(chunk_id)

    def commit(self):
        """Make the written-through mutations durable."""
        if self.store is not None:
            self.store.commit()

    def _check_record(self, chunk: MemoryChunk, record: EmbeddingRecord):
        if record.chunk_id != chunk.id or record.content_hash != chunk.hash:
            raise ValueError(f"Embedding record does not match chunk {chunk.path}:{chunk.start_line}")
        if self.vector.available and record.dims != self.vector.dims:
            raise ValueError(f"Vector has {record.dims} dims, index expects {self.vector.dims}")

    def chunk_counts(self) -> dict[MemorySource, int]:
        counts: dict[MemorySource, int] = {}
        for chunk in self.chunks.values():
            counts[chunk.source] = counts.get(chunk.source, 0) + 1
        return counts
