"""Common utility functions"""

import hashlib
import re

import numpy as np

_WHITESPACE = re.compile(r"\s+")


def hash_text(text: str) -> str:
    """Generate SHA-256 hash of text content.

    Args:
        text: Input text to hash

    Returns:
        Hexadecimal representation of the SHA-256 hash
    """
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def collapse_whitespace(text: str) -> str:
    """Collapse runs of whitespace into single spaces and strip the ends."""
    return _WHITESPACE.sub(" ", text).strip()


def batch_cosine_similarity(nd_array1: np.ndarray, nd_array2: np.ndarray) -> np.ndarray:
    """Calculate cosine similarity matrix between two batches of vectors.

    Args:
        nd_array1: Matrix of shape (batch_size1, emb_size)
        nd_array2: Matrix of shape (batch_size2, emb_size)

    Returns:
        Similarity matrix of shape (batch_size1, batch_size2) where
        result[i, j] is the cosine similarity between nd_array1[i] and nd_array2[j]

    Raises:
        ValueError: If embedding dimensions don't match
    """
    if nd_array1.shape[1] != nd_array2.shape[1]:
        raise ValueError(f"Embedding dimensions must match: {nd_array1.shape[1]} != {nd_array2.shape[1]}")

    dot_products = np.dot(nd_array1, nd_array2.T)

    norms1 = np.linalg.norm(nd_array1, axis=1)
    norms2 = np.linalg.norm(nd_array2, axis=1)
    norm_products = np.outer(norms1, norms2)

    # Zero vectors score 0 instead of dividing by zero
    norm_products = np.where(norm_products == 0, 1e-10, norm_products)

    return dot_products / norm_products
