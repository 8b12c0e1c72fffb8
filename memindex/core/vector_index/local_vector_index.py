"""In-memory numpy vector index."""

import numpy as np

from .base_vector_index import BaseVectorIndex
from ..utils import batch_cosine_similarity


class LocalVectorIndex(BaseVectorIndex):
    """Brute-force cosine search over a numpy matrix.

    The matrix is rebuilt lazily on the first query after a mutation.
    """

    backend = "local"

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self._vectors: dict[str, list[float]] = {}
        self._ids: list[str] = []
        self._matrix: np.ndarray | None = None

    def _backend_upsert(self, chunk_id: str, vector: list[float]):
        self._vectors[chunk_id] = vector
        self._matrix = None

    def _backend_remove(self, chunk_id: str):
        if self._vectors.pop(chunk_id, None) is not None:
            self._matrix = None

    def _backend_clear(self):
        self._vectors.clear()
        self._ids = []
        self._matrix = None

    def _backend_query(self, vector: list[float], k: int) -> list[tuple[str, float]]:
        if not self._vectors:
            return []

        if self._matrix is None:
            self._ids = sorted(self._vectors)
            self._matrix = np.array([self._vectors[i] for i in self._ids], dtype=np.float64)

        query = np.array([vector], dtype=np.float64)
        scores = batch_cosine_similarity(query, self._matrix)[0]

        k = min(k, len(self._ids))
        # ties broken by id
        order = sorted(range(len(self._ids)), key=lambda i: (-scores[i], self._ids[i]))[:k]
        return [(self._ids[i], float(scores[i])) for i in order]
