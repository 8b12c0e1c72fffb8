"""SQLite persistence of indexed chunks, their vectors and file metadata."""

import sqlite3
import struct
import time
from pathlib import Path

from loguru import logger

from ..enumeration import MemorySource
from ..schema import EmbeddingRecord, FileMetadata, MemoryChunk


class SqliteMemoryStore:
    """Durable copy of the memory index of one agent.

    The in-memory indexes are rebuilt from this store when a manager opens,
    so unchanged chunks keep their vectors across restarts. Writes go
    through the implicit transaction of the connection and become durable
    on ``commit``.
    """

    def __init__(self, db_path: str, dims: int):
        self.db_path = db_path
        self.dims = dims
        self.conn: sqlite3.Connection | None = None

    @staticmethod
    def vector_to_blob(embedding: list[float]) -> bytes:
        """Convert vector to binary blob."""
        return struct.pack(f"{len(embedding)}f", *embedding)

    @staticmethod
    def blob_to_vector(blob: bytes, dims: int) -> list[float]:
        return list(struct.unpack(f"{dims}f", blob))

    def open(self):
        """Create the database and its schema.

        Raises:
            sqlite3.Error: If the database cannot be opened
            OSError: If the parent directory cannot be created
        """
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        try:
            self._create_tables()
            self._check_dims()
        except Exception:
            self.conn.close()
            self.conn = None
            raise
        logger.info(f"Opened memory store {self.db_path}")

    def _create_tables(self):
        cursor = self.conn.cursor()

        # Metadata
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS meta (
                key TEXT PRIMARY KEY,
                value TEXT
            )
        """,
        )

        # Files
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS files (
                path TEXT,
                source TEXT,
                hash TEXT,
                mtime REAL,
                size INTEGER,
                PRIMARY KEY (path, source)
            )
        """,
        )

        # Chunks
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS chunks (
                id TEXT PRIMARY KEY,
                path TEXT,
                source TEXT,
                start_line INTEGER,
                end_line INTEGER,
                hash TEXT,
                text TEXT,
                updated_at INTEGER
            )
        """,
        )

        cursor.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_chunks_path_source
            ON chunks(path, source)
        """,
        )

        # Embeddings, one per chunk
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS embeddings (
                chunk_id TEXT PRIMARY KEY,
                content_hash TEXT,
                provider TEXT,
                model TEXT,
                dims INTEGER,
                vector BLOB
            )
        """,
        )

        self.conn.commit()
        cursor.close()

    def _check_dims(self):
        """Drop stored vectors whose dimensionality no longer matches the configuration."""
        row = self.conn.execute("SELECT value FROM meta WHERE key = 'dims'").fetchone()
        if row is not None and int(row[0]) != self.dims:
            logger.warning(f"Vector dims changed from {row[0]} to {self.dims}, dropping stored embeddings")
            self.conn.execute("DELETE FROM embeddings")

        self.conn.execute("INSERT OR REPLACE INTO meta (key, value) VALUES ('dims', ?)", (str(self.dims),))
        self.conn.commit()

    # ============================================================================
    # Loading
    # ============================================================================

    def load_chunks(self) -> list[MemoryChunk]:
        rows = self.conn.execute(
            "SELECT id, path, source, start_line, end_line, hash, text FROM chunks ORDER BY id",
        ).fetchall()
        return [
            MemoryChunk(
                id=row[0],
                path=row[1],
                source=MemorySource(row[2]),
                start_line=row[3],
                end_line=row[4],
                hash=row[5],
                text=row[6],
            )
            for row in rows
        ]

    def load_embeddings(self) -> list[EmbeddingRecord]:
        rows = self.conn.execute(
            "SELECT chunk_id, content_hash, provider, model, dims, vector FROM embeddings ORDER BY chunk_id",
        ).fetchall()
        return [
            EmbeddingRecord(
                chunk_id=row[0],
                content_hash=row[1],
                provider=row[2],
                model=row[3],
                dims=row[4],
                vector=self.blob_to_vector(row[5], row[4]),
            )
            for row in rows
        ]

    def load_file_counts(self) -> dict[MemorySource, int]:
        counts: dict[MemorySource, int] = {}
        for source, count in self.conn.execute("SELECT source, COUNT(*) FROM files GROUP BY source"):
            counts[MemorySource(source)] = count
        return counts

    # ============================================================================
    # Writing
    # ============================================================================

    def upsert_chunk(self, chunk: MemoryChunk):
        self.conn.execute(
            """
            INSERT OR REPLACE INTO chunks (id, path, source, start_line, end_line, hash, text, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """,
            (
                chunk.id,
                chunk.path,
                chunk.source.value,
                chunk.start_line,
                chunk.end_line,
                chunk.hash,
                chunk.text,
                int(time.time() * 1000),
            ),
        )

    def delete_chunk(self, chunk_id: str):
        self.conn.execute("DELETE FROM chunks WHERE id = ?", (chunk_id,))
        self.delete_embedding(chunk_id)

    def upsert_embedding(self, record: EmbeddingRecord):
        self.conn.execute(
            """
            INSERT OR REPLACE INTO embeddings (chunk_id, content_hash, provider, model, dims, vector)
            VALUES (?, ?, ?, ?, ?, ?)
        """,
            (
                record.chunk_id,
                record.content_hash,
                record.provider,
                record.model,
                record.dims,
                self.vector_to_blob(record.vector),
            ),
        )

    def delete_embedding(self, chunk_id: str):
        self.conn.execute("DELETE FROM embeddings WHERE chunk_id = ?", (chunk_id,))

    def replace_files(self, files: list[FileMetadata]):
        """Replace the metadata of the files seen by the last scan."""
        self.conn.execute("DELETE FROM files")
        self.conn.executemany(
            "INSERT OR REPLACE INTO files (path, source, hash, mtime, size) VALUES (?, ?, ?, ?, ?)",
            [(f.path, f.source.value, f.hash, f.mtime_ms, f.size) for f in files],
        )

    def commit(self):
        if self.conn is not None:
            self.conn.commit()

    def close(self):
        if self.conn is not None:
            self.conn.commit()
            self.conn.close()
            self.conn = None
            logger.info(f"Closed memory store {self.db_path}")
