"""Vector index backed by the sqlite-vec loadable extension."""

import sqlite3
import struct

from loguru import logger

from .base_vector_index import BaseVectorIndex


class SqliteVecIndex(BaseVectorIndex):
    """Cosine search in a sqlite-vec ``vec0`` virtual table.

    The extension is loaded from ``extension_path`` when configured,
    otherwise from the ``sqlite_vec`` package. Construction raises when the
    extension cannot be loaded so the caller can fall back to a null index.

    The table is derived from the records held by the index, which the
    manager restores from its memory store on open, so it is recreated
    empty on construction.
    """

    backend = "sqlite_vec"
    TABLE = "chunks_vec"

    def __init__(self, db_path: str = ":memory:", **kwargs):
        super().__init__(**kwargs)
        self.db_path = db_path
        self.conn: sqlite3.Connection = sqlite3.connect(db_path, check_same_thread=False)
        try:
            self._load_extension()
            self.conn.execute(f"DROP TABLE IF EXISTS {self.TABLE}")
            self.conn.execute(
                f"""
                CREATE VIRTUAL TABLE {self.TABLE} USING vec0(
                    id TEXT PRIMARY KEY,
                    embedding FLOAT[{self.dims}] distance_metric=cosine
                )
            """,
            )
            self.conn.commit()
        except Exception:
            self.conn.close()
            raise
        logger.info(f"Created sqlite-vec table (dims={self.dims}) in {db_path}")

    def _load_extension(self):
        self.conn.enable_load_extension(True)
        try:
            if self.extension_path:
                self.conn.load_extension(self.extension_path)
                logger.info(f"Loaded sqlite-vec: {self.extension_path}")
            else:
                import sqlite_vec

                self.extension_path = sqlite_vec.loadable_path()
                self.conn.load_extension(self.extension_path)
                logger.info(f"Loaded sqlite-vec from package: {self.extension_path}")
        finally:
            self.conn.enable_load_extension(False)

    @staticmethod
    def vector_to_blob(embedding: list[float]) -> bytes:
        """Convert vector to binary blob for sqlite-vec."""
        return struct.pack(f"{len(embedding)}f", *embedding)

    def _backend_upsert(self, chunk_id: str, vector: list[float]):
        # vec0 tables do not support INSERT OR REPLACE
        self.conn.execute(f"DELETE FROM {self.TABLE} WHERE id = ?", (chunk_id,))
        self.conn.execute(
            f"INSERT INTO {self.TABLE} (id, embedding) VALUES (?, ?)",
            (chunk_id, self.vector_to_blob(vector)),
        )
        self.conn.commit()

    def _backend_remove(self, chunk_id: str):
        self.conn.execute(f"DELETE FROM {self.TABLE} WHERE id = ?", (chunk_id,))
        self.conn.commit()

    def _backend_clear(self):
        self.conn.execute(f"DELETE FROM {self.TABLE}")
        self.conn.commit()

    def _backend_query(self, vector: list[float], k: int) -> list[tuple[str, float]]:
        cursor = self.conn.execute(
            f"""
            SELECT id, distance FROM {self.TABLE}
            WHERE embedding MATCH ? AND k = ?
            ORDER BY distance
        """,
            (self.vector_to_blob(vector), k),
        )
        try:
            # cosine distance is 1 - similarity
            hits = [(chunk_id, 1.0 - float(distance)) for chunk_id, distance in cursor.fetchall()]
        finally:
            cursor.close()
        # ties broken by id
        return sorted(hits, key=lambda hit: (-hit[1], hit[0]))

    def close(self):
        self.conn.close()
