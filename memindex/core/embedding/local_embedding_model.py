"""Offline embedding model based on feature hashing."""

import hashlib
import re

import numpy as np

from .base_embedding_model import BaseEmbeddingModel

TOKEN_PATTERN = re.compile(r"\w+", re.UNICODE)


class LocalHashEmbeddingModel(BaseEmbeddingModel):
    """Deterministic bag-of-features embedder that needs no network.

    Words and character trigrams are hashed into ``dimensions`` signed
    buckets and the result is L2-normalized, so texts sharing vocabulary
    have a high cosine similarity.
    """

    provider_name = "local"

    def __init__(self, model_name: str = "hash-v1", **kwargs):
        super().__init__(model_name=model_name or "hash-v1", **kwargs)

    def _features(self, text: str) -> list[str]:
        words = [w.lower() for w in TOKEN_PATTERN.findall(text)]
        features = [f"w:{w}" for w in words]
        for word in words:
            padded = f"#{word}#"
            features.extend(f"c:{padded[i:i + 3]}" for i in range(max(1, len(padded) - 2)))
        return features

    def _embed_one(self, text: str) -> list[float]:
        vec = np.zeros(self.dimensions, dtype=np.float64)
        for feature in self._features(text):
            digest = hashlib.blake2b(feature.encode("utf-8"), digest_size=8).digest()
            bucket = int.from_bytes(digest[:4], "little") % self.dimensions
            sign = 1.0 if digest[4] & 1 else -1.0
            weight = 1.0 if feature.startswith("w:") else 0.5
            vec[bucket] += sign * weight

        norm = np.linalg.norm(vec)
        if norm > 0:
            vec = vec / norm
        return vec.tolist()

    async def _get_embeddings(self, input_text: list[str], **kwargs) -> list[list[float]]:
        return [self._embed_one(text) for text in input_text]
