"""utils"""

from .chunking_utils import chunk_id_for, chunk_markdown
from .common_utils import batch_cosine_similarity, collapse_whitespace, hash_text
from .logger_utils import init_logger
from .singleton import singleton

__all__ = [
    "batch_cosine_similarity",
    "chunk_id_for",
    "chunk_markdown",
    "collapse_whitespace",
    "hash_text",
    "init_logger",
    "singleton",
]
